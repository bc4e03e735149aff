"""Plan upgrade/downgrade."""
import pytest

from orgaccess.core.errors import ValidationError
from orgaccess.features.plans.service import change_plan
from orgaccess.models.plan import Plan
from orgaccess.models.subscription import SubscriptionStatus
from orgaccess.tests.factories import FIXED_NOW, ORG_ID, make_subscription, set_subscription


def test_upgrade_from_no_subscription(seeded_repository):
    change = change_plan(seeded_repository, ORG_ID, "pro", now=FIXED_NOW)
    assert change.from_plan == Plan.BASIC
    assert change.to_plan == Plan.PRO
    assert change.is_upgrade is True
    assert change.over_limit == []
    stored = seeded_repository.get_subscription(ORG_ID)
    assert stored.plan == Plan.PRO
    assert stored.status == SubscriptionStatus.ACTIVE


def test_downgrade_reports_over_limit(seeded_repository):
    set_subscription(seeded_repository, make_subscription(Plan.AGENCY))
    seeded_repository.set_usage_count(ORG_ID, "leads", 1500)
    seeded_repository.set_usage_count(ORG_ID, "seats", 3)
    change = change_plan(seeded_repository, ORG_ID, Plan.PRO, now=FIXED_NOW)
    assert change.is_upgrade is False
    assert change.over_limit == ["leads"]
    # advisory only: usage untouched
    assert seeded_repository.get_usage_count(ORG_ID, "leads") == 1500


def test_trial_converts_to_active(seeded_repository):
    set_subscription(seeded_repository, make_subscription(Plan.PRO, status=SubscriptionStatus.TRIAL))
    change_plan(seeded_repository, ORG_ID, Plan.PRO, now=FIXED_NOW)
    stored = seeded_repository.get_subscription(ORG_ID)
    assert stored.status == SubscriptionStatus.ACTIVE
    assert stored.trial_ends_at is None


def test_unknown_plan(seeded_repository):
    with pytest.raises(ValidationError):
        change_plan(seeded_repository, ORG_ID, "GOLD")
    assert seeded_repository.get_subscription(ORG_ID) is None
