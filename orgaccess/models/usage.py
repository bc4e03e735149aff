from pydantic import BaseModel, ConfigDict

from orgaccess.models.plan import Plan


class LimitCheck(BaseModel):
    """
    Outcome of comparing current usage with a plan limit.

    limit and remaining are -1 when the plan does not cap the resource.
    """
    model_config = ConfigDict(frozen=True)

    plan: Plan
    resource: str
    current_usage: int
    limit: int
    remaining: int
    allowed: bool

    @property
    def unlimited(self) -> bool:
        return self.limit < 0
