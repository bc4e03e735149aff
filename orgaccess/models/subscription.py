"""
orgaccess/models/subscription.py

Subscription state of an organization, as written by billing and the
trial-activation flow.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from orgaccess.models.plan import Plan


class SubscriptionStatus(str, Enum):
    TRIAL = "TRIAL"
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Subscription(BaseModel):
    """
    One subscription per organization.

    A TRIAL whose trial_ends_at is in the past is not active, whatever the
    stored status says.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    org_id: str
    plan: Plan = Plan.BASIC
    status: SubscriptionStatus
    trial_ends_at: Optional[datetime] = None
    vertical: Optional[str] = None
    updated_at: Optional[datetime] = None

    def is_trial_expired(self, now: datetime) -> bool:
        if self.status != SubscriptionStatus.TRIAL:
            return False
        ends = as_utc(self.trial_ends_at)
        return ends is None or ends <= as_utc(now)
