from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from orgaccess.models.plan import Plan


class TrialActivation(BaseModel):
    """Successful self-service trial activation."""
    model_config = ConfigDict(frozen=True)

    org_id: str
    status: str = "TRIAL"
    plan: Plan
    trial_ends_at: datetime
    days_remaining: int
    vertical: Optional[str] = None
