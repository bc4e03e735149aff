"""Plan and permission catalogs."""
import pytest

from orgaccess.core.errors import ValidationError
from orgaccess.features.permissions.catalog import (
    PERMISSION_CATALOG,
    describe,
    permissions_for_plan,
    required_plan_for,
)
from orgaccess.features.plans.catalog import (
    FEATURE_GATES,
    PLAN_CONFIGS,
    PLAN_ORDER,
    RESOURCES,
    get_plan_limit,
    get_plan_permissions,
    is_upgrade,
    minimum_plan_for_limit,
    plan_has_feature,
    plan_rank,
)
from orgaccess.models.permission import CustomPermissions, Permission, parse_permission
from orgaccess.models.plan import Plan, UNLIMITED


def test_plan_order_is_total():
    assert PLAN_ORDER == [Plan.BASIC, Plan.PRO, Plan.AGENCY, Plan.ENTERPRISE]
    assert [plan_rank(p) for p in PLAN_ORDER] == [0, 1, 2, 3]


def test_is_upgrade():
    assert is_upgrade(Plan.BASIC, Plan.PRO)
    assert is_upgrade("pro", "ENTERPRISE")
    assert not is_upgrade(Plan.AGENCY, Plan.PRO)
    assert not is_upgrade(Plan.PRO, Plan.PRO)


def test_unknown_plan_is_validation_error():
    with pytest.raises(ValidationError) as exc:
        plan_rank("PLATINUM")
    assert exc.value.code == "unknown_plan"


def test_limits_match_tiers():
    assert get_plan_limit(Plan.BASIC, "seats") == 1
    assert get_plan_limit(Plan.PRO, "leads") == 1000
    assert get_plan_limit(Plan.BASIC, "automations") == 0
    assert get_plan_limit(Plan.AGENCY, "campaigns") == UNLIMITED
    assert get_plan_limit(Plan.ENTERPRISE, "integrations") == UNLIMITED


def test_every_plan_covers_every_resource():
    for config in PLAN_CONFIGS.values():
        assert set(config.limits) == set(RESOURCES)


def test_unknown_resource_is_validation_error():
    with pytest.raises(ValidationError) as exc:
        get_plan_limit(Plan.PRO, "spaceships")
    assert exc.value.code == "unknown_resource"


def test_plan_permissions_are_monotonic():
    for lower, higher in zip(PLAN_ORDER, PLAN_ORDER[1:]):
        assert get_plan_permissions(higher) >= get_plan_permissions(lower)
    assert get_plan_permissions(Plan.ENTERPRISE) == frozenset(Permission)


def test_permission_min_plan_consistent_with_plan_features():
    for permission, spec in PERMISSION_CATALOG.items():
        for plan in PLAN_ORDER:
            unlocked = permission in permissions_for_plan(plan)
            assert unlocked == (plan_rank(plan) >= plan_rank(spec.min_plan)), (permission, plan)


def test_required_plan_and_description():
    assert required_plan_for(Permission.ORG_MEMBERS_READ) == Plan.BASIC
    assert required_plan_for("LEADS_EXPORT") == Plan.PRO
    assert required_plan_for(Permission.ORG_INVITE_MEMBERS) == Plan.AGENCY
    assert required_plan_for(Permission.ORG_BILLING) == Plan.ENTERPRISE
    assert describe(Permission.ORG_MEMBERS_READ) == "View organization members"


def test_every_permission_catalogued():
    assert set(PERMISSION_CATALOG) == set(Permission)


def test_parse_permission_rejects_unknown():
    assert parse_permission(" leads_read ") == Permission.LEADS_READ
    with pytest.raises(ValidationError) as exc:
        parse_permission("LEADS_TELEPORT")
    assert exc.value.code == "unknown_permission"


def test_feature_gates():
    assert set(FEATURE_GATES) == {
        "automations",
        "advanced_reports",
        "api_access",
        "white_label",
        "custom_integrations",
        "bulk_operations",
        "advanced_analytics",
    }
    assert not plan_has_feature(Plan.BASIC, "automations")
    assert plan_has_feature(Plan.PRO, "automations")
    assert not plan_has_feature(Plan.AGENCY, "custom_integrations")
    assert plan_has_feature(Plan.ENTERPRISE, "custom_integrations")
    assert not plan_has_feature(Plan.ENTERPRISE, "time_travel")


def test_minimum_plan_for_limit():
    assert minimum_plan_for_limit("leads", 50) == Plan.BASIC
    assert minimum_plan_for_limit("leads", 101) == Plan.PRO
    assert minimum_plan_for_limit("leads", 5000) == Plan.AGENCY
    assert minimum_plan_for_limit("automations", 1) == Plan.PRO


def test_custom_permissions_storage_form():
    overrides = CustomPermissions.parse(["LEADS_EXPORT", "!LEADS_DELETE", "!LEADS_EXPORT"])
    assert overrides.grants == {Permission.LEADS_EXPORT}
    assert overrides.revokes == {Permission.LEADS_DELETE, Permission.LEADS_EXPORT}
    assert overrides.to_list() == ["LEADS_EXPORT", "!LEADS_DELETE", "!LEADS_EXPORT"]
    # revocation wins when both are present
    assert Permission.LEADS_EXPORT not in overrides.apply({Permission.LEADS_READ})


def test_custom_permissions_reject_unknown():
    with pytest.raises(ValidationError):
        CustomPermissions.parse(["!NOT_A_PERMISSION"])
