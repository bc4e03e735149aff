"""
orgaccess/features/plans/service.py

Plan upgrade/downgrade for an organization.

The new plan takes effect immediately as an ACTIVE subscription. Resources
whose current usage exceeds the new plan's limits are reported but not
enforced; existing data is never removed by a downgrade.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Optional, Union
from uuid import uuid4
import logging

from orgaccess.features.permissions.checker import effective_plan
from orgaccess.features.plans.catalog import PLAN_ORDER, RESOURCES, get_plan_limit, is_upgrade, coerce_plan
from orgaccess.features.repository.base import AccessRepository
from orgaccess.models.plan import Plan, UNLIMITED
from orgaccess.models.subscription import Subscription, SubscriptionStatus


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanChange:
    org_id: str
    from_plan: Plan
    to_plan: Plan
    is_upgrade: bool
    over_limit: List[str]


def _normalize_now(now: Optional[Any]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if getattr(now, "tzinfo", None) is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def over_limit_resources(repository: AccessRepository, org_id: str, plan: Union[str, Plan]) -> List[str]:
    """Resources whose stored usage exceeds `plan`'s limits."""
    over = []
    for resource in sorted(RESOURCES):
        limit = get_plan_limit(plan, resource)
        if limit == UNLIMITED:
            continue
        if repository.get_usage_count(org_id, resource) > limit:
            over.append(resource)
    return over


def change_plan(
    repository: AccessRepository,
    org_id: str,
    to_plan: Union[str, Plan],
    now: Optional[Any] = None,
) -> PlanChange:
    """
    Move the organization to `to_plan`.

    Args:
        repository: Data layer
        org_id: Organization to change
        to_plan: Target plan (name or Plan)
        now: Clock override (tests)

    Returns:
        PlanChange with the previous effective plan and advisory over-limit list

    Raises:
        ValidationError: If to_plan is not a known plan
    """
    target = coerce_plan(to_plan)
    normalized_now = _normalize_now(now)
    previous = {"plan": PLAN_ORDER[0]}

    def transition(current: Optional[Subscription]) -> Subscription:
        previous["plan"] = effective_plan(current, normalized_now)
        return Subscription(
            id=current.id if current else str(uuid4()),
            org_id=org_id,
            plan=target,
            status=SubscriptionStatus.ACTIVE,
            trial_ends_at=None,
            vertical=current.vertical if current else None,
            updated_at=normalized_now,
        )

    repository.transition_subscription(org_id, transition)
    from_plan = previous["plan"]
    change = PlanChange(
        org_id=org_id,
        from_plan=from_plan,
        to_plan=target,
        is_upgrade=is_upgrade(from_plan, target),
        over_limit=over_limit_resources(repository, org_id, target),
    )
    logger.info(
        "[plans] plan changed",
        extra={
            "org_id": org_id,
            "event_type": "plan.upgraded" if change.is_upgrade else "plan.changed",
        },
    )
    return change
