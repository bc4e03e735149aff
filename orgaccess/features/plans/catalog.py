"""
orgaccess/features/plans/catalog.py

Static plan catalog.

Handles:
- Plan ordering (BASIC < PRO < AGENCY < ENTERPRISE)
- Per-plan resource limits (-1 = unlimited)
- Cumulative permission sets per plan
- UI feature gates
"""

from types import MappingProxyType
from typing import FrozenSet, List, Mapping, Optional, Union

from orgaccess.core.errors import ValidationError
from orgaccess.features.permissions.catalog import permissions_for_plan
from orgaccess.models.permission import Permission
from orgaccess.models.plan import Plan, PlanConfig, UNLIMITED


PLAN_ORDER: List[Plan] = [Plan.BASIC, Plan.PRO, Plan.AGENCY, Plan.ENTERPRISE]

# Resource limits per plan
DEFAULT_PLANS = {
    Plan.BASIC: {
        "name": "Basic",
        "limits": {
            "seats": 1,
            "leads": 100,
            "properties": 50,
            "campaigns": 3,
            "automations": 0,
            "integrations": 2,
        },
    },
    Plan.PRO: {
        "name": "Pro",
        "limits": {
            "seats": 5,
            "leads": 1000,
            "properties": 500,
            "campaigns": 20,
            "automations": 10,
            "integrations": 10,
        },
    },
    Plan.AGENCY: {
        "name": "Agency",
        "limits": {
            "seats": UNLIMITED,
            "leads": UNLIMITED,
            "properties": UNLIMITED,
            "campaigns": UNLIMITED,
            "automations": UNLIMITED,
            "integrations": UNLIMITED,
        },
    },
    Plan.ENTERPRISE: {
        "name": "Enterprise",
        "limits": {
            "seats": UNLIMITED,
            "leads": UNLIMITED,
            "properties": UNLIMITED,
            "campaigns": UNLIMITED,
            "automations": UNLIMITED,
            "integrations": UNLIMITED,
        },
    },
}

RESOURCES: FrozenSet[str] = frozenset(DEFAULT_PLANS[Plan.BASIC]["limits"])

PLAN_CONFIGS: Mapping[Plan, PlanConfig] = MappingProxyType({
    plan: PlanConfig(
        plan=plan,
        name=config["name"],
        limits=dict(config["limits"]),
        features=permissions_for_plan(plan),
    )
    for plan, config in DEFAULT_PLANS.items()
})

# UI feature flags: feature key -> lowest plan exposing it
FEATURE_GATES: Mapping[str, Plan] = MappingProxyType({
    "automations": Plan.PRO,
    "advanced_reports": Plan.PRO,
    "api_access": Plan.AGENCY,
    "white_label": Plan.AGENCY,
    "custom_integrations": Plan.ENTERPRISE,
    "bulk_operations": Plan.AGENCY,
    "advanced_analytics": Plan.AGENCY,
})


def coerce_plan(plan: Union[str, Plan]) -> Plan:
    if isinstance(plan, Plan):
        return plan
    try:
        return Plan(str(plan).strip().upper())
    except ValueError:
        raise ValidationError(f"Unknown plan: {plan!r}", code="unknown_plan", details={"plan": str(plan)})


def plan_rank(plan: Union[str, Plan]) -> int:
    return PLAN_ORDER.index(coerce_plan(plan))


def plan_at_least(plan: Union[str, Plan], minimum: Union[str, Plan]) -> bool:
    return plan_rank(plan) >= plan_rank(minimum)


def is_upgrade(from_plan: Union[str, Plan], to_plan: Union[str, Plan]) -> bool:
    return plan_rank(to_plan) > plan_rank(from_plan)


def get_plan_config(plan: Union[str, Plan]) -> PlanConfig:
    return PLAN_CONFIGS[coerce_plan(plan)]


def get_plan_limit(plan: Union[str, Plan], resource: str) -> int:
    """
    Max count of `resource` allowed on `plan` (-1 = unlimited).

    Raises:
        ValidationError: If the resource is not a known limited resource
    """
    limits = get_plan_config(plan).limits
    if resource not in limits:
        raise ValidationError(
            f"Unknown resource: {resource!r}",
            code="unknown_resource",
            details={"resource": resource, "known": sorted(RESOURCES)},
        )
    return limits[resource]


def get_plan_permissions(plan: Union[str, Plan]) -> FrozenSet[Permission]:
    return get_plan_config(plan).features


def plan_has_feature(plan: Union[str, Plan], feature: str) -> bool:
    minimum = FEATURE_GATES.get(feature)
    if minimum is None:
        return False
    return plan_at_least(plan, minimum)


def minimum_plan_for_limit(resource: str, needed: int) -> Optional[Plan]:
    """Lowest plan whose limit admits `needed` units of `resource`, if any."""
    for plan in PLAN_ORDER:
        limit = get_plan_limit(plan, resource)
        if limit == UNLIMITED or needed <= limit:
            return plan
    return None

