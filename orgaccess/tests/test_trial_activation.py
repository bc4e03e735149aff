"""Trial activation: attempt limit and idempotent subscription transition."""
import threading
from datetime import timedelta

import pytest

from orgaccess.core.config import Settings
from orgaccess.core.errors import ConflictError, RateLimitError, ValidationError
from orgaccess.core.ratelimit import InMemoryRateLimitStore
from orgaccess.features.trials.service import TrialActivationGuard, days_remaining
from orgaccess.models.plan import Plan
from orgaccess.models.subscription import SubscriptionStatus
from orgaccess.tests.factories import FIXED_NOW, ORG_ID, make_subscription, set_subscription


@pytest.fixture
def trial_guard(seeded_repository, rate_limit_store, clock):
    return TrialActivationGuard(seeded_repository, rate_limit_store, clock=clock, settings_obj=Settings())


def test_creates_trial_when_no_subscription(trial_guard, seeded_repository):
    result = trial_guard.activate("owner", ORG_ID, vertical="real_estate")
    assert result.status == "TRIAL"
    assert result.days_remaining == 30
    assert result.plan == Plan.PRO
    assert result.trial_ends_at == FIXED_NOW + timedelta(days=30)

    stored = seeded_repository.get_subscription(ORG_ID)
    assert stored.status == SubscriptionStatus.TRIAL
    assert stored.plan == Plan.PRO
    assert stored.trial_ends_at == FIXED_NOW + timedelta(days=30)
    assert stored.vertical == "real_estate"


def test_active_subscription_conflict(trial_guard, seeded_repository):
    before = set_subscription(seeded_repository, make_subscription(Plan.BASIC, status=SubscriptionStatus.ACTIVE))
    with pytest.raises(ConflictError) as exc:
        trial_guard.activate("owner", ORG_ID)
    assert exc.value.code == "ACTIVE_SUBSCRIPTION"
    assert exc.value.status_code == 409
    assert seeded_repository.get_subscription(ORG_ID) == before


def test_running_trial_conflict_reports_days(trial_guard, seeded_repository):
    before = set_subscription(
        seeded_repository,
        make_subscription(Plan.PRO, status=SubscriptionStatus.TRIAL, trial_ends_at=FIXED_NOW + timedelta(days=10)),
    )
    with pytest.raises(ConflictError) as exc:
        trial_guard.activate("owner", ORG_ID)
    assert exc.value.code == "TRIAL_ALREADY_ACTIVE"
    assert exc.value.details["days_remaining"] == 10
    assert seeded_repository.get_subscription(ORG_ID) == before


def test_days_remaining_rounds_up():
    assert days_remaining(FIXED_NOW + timedelta(days=9, hours=1), FIXED_NOW) == 10
    assert days_remaining(FIXED_NOW + timedelta(seconds=1), FIXED_NOW) == 1
    assert days_remaining(FIXED_NOW, FIXED_NOW) == 0
    assert days_remaining(None, FIXED_NOW) == 0


@pytest.mark.parametrize(
    "status, ends",
    [
        (SubscriptionStatus.TRIAL, FIXED_NOW - timedelta(days=1)),
        (SubscriptionStatus.CANCELED, None),
        (SubscriptionStatus.PAST_DUE, None),
    ],
)
def test_inactive_subscription_is_upserted(trial_guard, seeded_repository, status, ends):
    previous = set_subscription(seeded_repository, make_subscription(Plan.BASIC, status=status, trial_ends_at=ends))
    trial_guard.activate("owner", ORG_ID)
    stored = seeded_repository.get_subscription(ORG_ID)
    assert stored.id == previous.id
    assert stored.status == SubscriptionStatus.TRIAL
    assert stored.trial_ends_at == FIXED_NOW + timedelta(days=30)


def test_fourth_attempt_in_window_is_rate_limited(trial_guard, seeded_repository):
    set_subscription(seeded_repository, make_subscription(Plan.PRO, status=SubscriptionStatus.ACTIVE))
    for _ in range(3):
        with pytest.raises(ConflictError):
            trial_guard.activate("owner", ORG_ID)

    before = seeded_repository.get_subscription(ORG_ID)
    with pytest.raises(RateLimitError) as exc:
        trial_guard.activate("owner", ORG_ID)
    assert exc.value.status_code == 429
    assert exc.value.details["limit"] == 3
    assert exc.value.details["retry_after"] == 86400
    assert seeded_repository.get_subscription(ORG_ID) == before


def test_rate_limited_attempt_does_not_create_subscription(trial_guard, seeded_repository, rate_limit_store):
    for _ in range(3):
        rate_limit_store.increment("trial:owner", limit=3, window_seconds=86400, now=FIXED_NOW.timestamp())
    with pytest.raises(RateLimitError):
        trial_guard.activate("owner", ORG_ID)
    assert seeded_repository.get_subscription(ORG_ID) is None


def test_window_elapses_then_fresh_attempt(trial_guard, seeded_repository, rate_limit_store, clock):
    set_subscription(seeded_repository, make_subscription(Plan.PRO, status=SubscriptionStatus.ACTIVE))
    for _ in range(3):
        with pytest.raises(ConflictError):
            trial_guard.activate("owner", ORG_ID)
    clock.advance(hours=12)
    with pytest.raises(RateLimitError):
        trial_guard.activate("owner", ORG_ID)

    clock.advance(hours=12)
    with pytest.raises(ConflictError):
        trial_guard.activate("owner", ORG_ID)
    assert rate_limit_store.get("trial:owner").count == 1


def test_rate_limit_is_per_actor(trial_guard, seeded_repository):
    set_subscription(seeded_repository, make_subscription(Plan.PRO, status=SubscriptionStatus.ACTIVE))
    for _ in range(3):
        with pytest.raises(ConflictError):
            trial_guard.activate("owner", ORG_ID)
    with pytest.raises(ConflictError):
        trial_guard.activate("admin", ORG_ID)


def test_missing_ids_rejected(trial_guard):
    with pytest.raises(ValidationError):
        trial_guard.activate("", ORG_ID)


def test_concurrent_activation_creates_one_trial(seeded_repository, clock):
    guard = TrialActivationGuard(seeded_repository, InMemoryRateLimitStore(), clock=clock, settings_obj=Settings())
    outcomes = []
    lock = threading.Lock()
    barrier = threading.Barrier(2)

    def attempt(actor_id):
        barrier.wait()
        try:
            guard.activate(actor_id, ORG_ID)
            result = "created"
        except ConflictError as exc:
            result = exc.code
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=attempt, args=(a,)) for a in ("owner", "admin")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["TRIAL_ALREADY_ACTIVE", "created"]
    assert seeded_repository.get_subscription(ORG_ID).trial_ends_at == FIXED_NOW + timedelta(days=30)
    assert seeded_repository._org_locks == {}


def test_settings_drive_limits(seeded_repository, clock):
    cfg = Settings(TRIAL_MAX_ATTEMPTS=1, TRIAL_DAYS=14, TRIAL_PLAN="agency")
    guard = TrialActivationGuard(seeded_repository, InMemoryRateLimitStore(), clock=clock, settings_obj=cfg)
    result = guard.activate("owner", ORG_ID)
    assert result.plan == Plan.AGENCY
    assert result.days_remaining == 14
    with pytest.raises(RateLimitError):
        guard.activate("owner", ORG_ID)


def test_transition_locks_released_per_org(seeded_repository):
    for i in range(50):
        org_id = f"org_{i}"
        seeded_repository.transition_subscription(org_id, lambda current, org_id=org_id: make_subscription(org_id=org_id))
    assert seeded_repository._org_locks == {}

    def refuse(current):
        raise ConflictError("Subscription is locked", code="locked")

    with pytest.raises(ConflictError):
        seeded_repository.transition_subscription(ORG_ID, refuse)
    assert seeded_repository._org_locks == {}
