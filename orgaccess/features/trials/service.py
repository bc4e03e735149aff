"""
orgaccess/features/trials/service.py

Self-service trial activation.

Two independent safeguards:
- Per-actor attempt limit (default 3 per rolling 24h window). Attempts that
  end in a conflict still count; blocked attempts do not extend the window.
- Idempotent subscription transition, serialized per organization: an
  ACTIVE subscription or a running trial is a conflict and nothing is
  written. Otherwise the org gets {TRIAL, PRO, now + 30 days}.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Callable, Optional
from uuid import uuid4

from orgaccess.core.config import Settings, settings
from orgaccess.core.errors import ConflictError, RateLimitError, ValidationError
from orgaccess.core.logging import log_event
from orgaccess.core.ratelimit import RateLimitStore
from orgaccess.features.permissions.checker import utc_now
from orgaccess.features.repository.base import AccessRepository
from orgaccess.models.plan import Plan
from orgaccess.models.subscription import Subscription, SubscriptionStatus, as_utc
from orgaccess.models.trial import TrialActivation


logger = logging.getLogger(__name__)

ACTIVE_SUBSCRIPTION = "ACTIVE_SUBSCRIPTION"
TRIAL_ALREADY_ACTIVE = "TRIAL_ALREADY_ACTIVE"

_DAY_SECONDS = 24 * 60 * 60


def _normalize_now(now: Optional[Any]) -> datetime:
    if now is None:
        return utc_now()
    return as_utc(now)


def days_remaining(trial_ends_at: Optional[datetime], now: Optional[Any] = None) -> int:
    """Whole days left in a trial, rounded up; 0 once it has ended."""
    if trial_ends_at is None:
        return 0
    seconds = (as_utc(trial_ends_at) - _normalize_now(now)).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / _DAY_SECONDS)


def rate_limit_key(actor_id: str) -> str:
    return f"trial:{actor_id}"


class TrialActivationGuard:
    def __init__(
        self,
        repository: AccessRepository,
        store: RateLimitStore,
        clock: Optional[Callable[[], datetime]] = None,
        settings_obj: Optional[Settings] = None,
    ):
        cfg = settings_obj or settings
        self.repository = repository
        self.store = store
        self.clock = clock or utc_now
        self.max_attempts = cfg.TRIAL_MAX_ATTEMPTS
        self.window_seconds = cfg.TRIAL_ATTEMPT_WINDOW_SECONDS
        self.trial_days = cfg.TRIAL_DAYS
        self.trial_plan = Plan(cfg.TRIAL_PLAN.upper())

    def _consume_attempt(self, actor_id: str, now: datetime) -> None:
        window = self.store.increment(
            rate_limit_key(actor_id),
            limit=self.max_attempts,
            window_seconds=self.window_seconds,
            now=now.timestamp(),
        )
        if window.allowed:
            return
        retry_after = window.retry_after(now.timestamp())
        logger.warning(
            "[trials] rate limited",
            extra={"actor_id": actor_id, "error_code": "rate_limited", "status": 429},
        )
        raise RateLimitError(
            "Too many trial activation attempts. Try again later.",
            details={
                "limit": self.max_attempts,
                "count": window.count,
                "retry_after": retry_after,
                "reset_at": datetime.fromtimestamp(window.reset_at, now.tzinfo).isoformat(),
            },
        )

    def activate(self, actor_id: str, org_id: str, vertical: Optional[str] = None) -> TrialActivation:
        """
        Start a trial for `org_id` on behalf of `actor_id`.

        Raises:
            ValidationError: Missing actor or organization id
            RateLimitError: Attempt limit reached for this actor (429)
            ConflictError: code ACTIVE_SUBSCRIPTION or TRIAL_ALREADY_ACTIVE (409)
        """
        if not actor_id or not org_id:
            raise ValidationError("actor_id and org_id are required")

        now = _normalize_now(self.clock())
        self._consume_attempt(actor_id, now)

        ends_at = now + timedelta(days=self.trial_days)

        def transition(current: Optional[Subscription]) -> Subscription:
            if current is not None:
                if current.status == SubscriptionStatus.ACTIVE:
                    raise ConflictError(
                        "Organization already has an active subscription",
                        code=ACTIVE_SUBSCRIPTION,
                        details={"plan": current.plan.value},
                    )
                if current.status == SubscriptionStatus.TRIAL and not current.is_trial_expired(now):
                    raise ConflictError(
                        "A trial is already active for this organization",
                        code=TRIAL_ALREADY_ACTIVE,
                        details={
                            "days_remaining": days_remaining(current.trial_ends_at, now),
                            "trial_ends_at": as_utc(current.trial_ends_at).isoformat(),
                        },
                    )
            return Subscription(
                id=current.id if current else str(uuid4()),
                org_id=org_id,
                plan=self.trial_plan,
                status=SubscriptionStatus.TRIAL,
                trial_ends_at=ends_at,
                vertical=vertical if vertical is not None else (current.vertical if current else None),
                updated_at=now,
            )

        try:
            subscription = self.repository.transition_subscription(org_id, transition)
        except ConflictError as exc:
            logger.info(
                "[trials] activation conflict",
                extra={"actor_id": actor_id, "org_id": org_id, "error_code": exc.code, "status": 409},
            )
            raise

        log_event(
            "info",
            "[trials] activated",
            actor_id=actor_id,
            org_id=org_id,
            event_type="trial.activated",
            extra={"plan": subscription.plan.value, "vertical": subscription.vertical},
        )
        return TrialActivation(
            org_id=org_id,
            status=SubscriptionStatus.TRIAL.value,
            plan=subscription.plan,
            trial_ends_at=subscription.trial_ends_at,
            days_remaining=days_remaining(subscription.trial_ends_at, now),
            vertical=subscription.vertical,
        )
