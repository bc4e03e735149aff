"""
orgaccess/features/usage/service.py

Usage limits (plan limit vs. current count).

Handles:
- Pure limit checks over the plan catalog
- Org-level checks that read usage through the repository
- Banner metadata (ok / approaching_limit / at_limit)
"""

from typing import Any, Dict, Union

from orgaccess.core.errors import ValidationError
from orgaccess.features.plans.catalog import get_plan_config, get_plan_limit, minimum_plan_for_limit
from orgaccess.models.plan import Plan, UNLIMITED
from orgaccess.models.usage import LimitCheck

# Fraction of the limit at which usage banners start warning
APPROACHING_THRESHOLD = 0.8


def check_limit(plan: Union[str, Plan], resource: str, current_usage: int) -> LimitCheck:
    """
    Compare current usage with the plan limit.

    Reaching the limit blocks the next creation: allowed = usage < limit.

    Raises:
        ValidationError: Unknown resource or negative usage
    """
    if current_usage < 0:
        raise ValidationError(
            "current_usage must be non-negative",
            code="invalid_usage",
            details={"resource": resource, "current_usage": current_usage},
        )
    limit = get_plan_limit(plan, resource)
    plan = get_plan_config(plan).plan
    if limit == UNLIMITED:
        return LimitCheck(
            plan=plan,
            resource=resource,
            current_usage=current_usage,
            limit=UNLIMITED,
            remaining=UNLIMITED,
            allowed=True,
        )
    return LimitCheck(
        plan=plan,
        resource=resource,
        current_usage=current_usage,
        limit=limit,
        remaining=max(0, limit - current_usage),
        allowed=current_usage < limit,
    )


def check_org_limit(checker, org_id: str, resource: str) -> LimitCheck:
    """Limit check for an organization using its effective plan and stored usage."""
    plan = checker.effective_plan(org_id)
    usage = checker.repository.get_usage_count(org_id, resource)
    return check_limit(plan, resource, usage)


def limit_metadata(check: LimitCheck) -> Dict[str, Any]:
    if check.unlimited:
        status = "ok"
        percent = 0.0
    elif check.limit == 0:
        status = "at_limit"
        percent = 100.0
    else:
        percent = round(100.0 * check.current_usage / check.limit, 1)
        if not check.allowed:
            status = "at_limit"
        elif check.current_usage >= APPROACHING_THRESHOLD * check.limit:
            status = "approaching_limit"
        else:
            status = "ok"

    metadata: Dict[str, Any] = {
        "resource": check.resource,
        "plan": check.plan.value,
        "current_usage": check.current_usage,
        "limit": check.limit,
        "remaining": check.remaining,
        "allowed": check.allowed,
        "percent_used": percent,
        "status": status,
    }
    if not check.allowed:
        upgrade_plan = minimum_plan_for_limit(check.resource, check.current_usage + 1)
        metadata["upgrade_plan"] = upgrade_plan.value if upgrade_plan else None
    return metadata
