"""SQLAlchemy repository against a SQLite file database."""
from datetime import timedelta

import pytest
from sqlalchemy import insert
from sqlalchemy.orm import sessionmaker

from orgaccess.core.database import build_engine, check_connection, create_all_tables, subscriptions
from orgaccess.core.errors import ConflictError
from orgaccess.core.ratelimit import InMemoryRateLimitStore
from orgaccess.core.config import Settings
from orgaccess.features.permissions.checker import PermissionChecker
from orgaccess.features.repository.sql import SqlAccessRepository
from orgaccess.features.trials.service import TrialActivationGuard
from orgaccess.models.membership import MembershipStatus, Role
from orgaccess.models.organization import Organization
from orgaccess.models.permission import Permission
from orgaccess.models.plan import Plan
from orgaccess.models.subscription import SubscriptionStatus
from orgaccess.tests.factories import FIXED_NOW, ORG_ID, FakeClock, make_membership, make_subscription, set_subscription


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'orgaccess.db'}")
    create_all_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def sql_repository(session_factory):
    repo = SqlAccessRepository(session_factory)
    repo.save_organization(Organization(id=ORG_ID, name="Acme Realty", created_at=FIXED_NOW))
    for actor_id, role in (("owner", Role.OWNER), ("member", Role.MEMBER)):
        repo.save_membership(make_membership(actor_id, role, overrides=["!LEADS_WRITE"] if actor_id == "member" else ()))
    return repo


def test_check_connection(engine):
    assert check_connection(engine) is True


def test_membership_round_trip(sql_repository):
    membership = sql_repository.get_membership("member", ORG_ID)
    assert membership.role == Role.MEMBER
    assert membership.custom_permissions.revokes == {Permission.LEADS_WRITE}
    assert membership.joined_at == FIXED_NOW - timedelta(days=30)
    assert sql_repository.get_organization(ORG_ID).name == "Acme Realty"
    assert sql_repository.get_membership("ghost", ORG_ID) is None


def test_one_active_membership_per_actor(sql_repository):
    duplicate = make_membership("member", Role.VIEWER).model_copy(update={"id": "other-id"})
    with pytest.raises(ConflictError):
        sql_repository.save_membership(duplicate)


def test_archived_membership_hidden(sql_repository):
    archived = sql_repository.get_membership("member", ORG_ID).model_copy(
        update={"status": MembershipStatus.ARCHIVED}
    )
    sql_repository.save_membership(archived)
    assert sql_repository.get_membership("member", ORG_ID) is None
    assert [m.actor_id for m in sql_repository.list_memberships(ORG_ID)] == ["owner"]
    assert len(sql_repository.list_memberships(ORG_ID, include_archived=True)) == 2


def test_subscription_transition_and_usage(sql_repository):
    set_subscription(sql_repository, make_subscription(Plan.PRO))
    stored = sql_repository.get_subscription(ORG_ID)
    assert stored.plan == Plan.PRO
    assert stored.status == SubscriptionStatus.ACTIVE
    assert stored.updated_at == FIXED_NOW

    sql_repository.set_usage_count(ORG_ID, "leads", 10)
    sql_repository.set_usage_count(ORG_ID, "leads", 12)
    assert sql_repository.get_usage_count(ORG_ID, "leads") == 12
    assert sql_repository.get_usage_count(ORG_ID, "seats") == 0


def test_checker_over_sql(sql_repository):
    set_subscription(sql_repository, make_subscription(Plan.PRO))
    checker = PermissionChecker(sql_repository, clock=FakeClock())
    assert checker.has_permission("owner", ORG_ID, Permission.LEADS_EXPORT)
    assert not checker.has_permission("member", ORG_ID, Permission.LEADS_WRITE)


def test_trial_activation_over_sql(sql_repository):
    guard = TrialActivationGuard(sql_repository, InMemoryRateLimitStore(), clock=FakeClock(), settings_obj=Settings())
    result = guard.activate("owner", ORG_ID)
    assert result.days_remaining == 30
    stored = sql_repository.get_subscription(ORG_ID)
    assert stored.status == SubscriptionStatus.TRIAL
    assert stored.trial_ends_at == FIXED_NOW + timedelta(days=30)

    with pytest.raises(ConflictError) as exc:
        guard.activate("member", ORG_ID)
    assert exc.value.code == "TRIAL_ALREADY_ACTIVE"


def test_insert_race_loser_sees_winner(sql_repository, session_factory):
    """A competing insert lands between our read and our insert."""
    calls = []

    def transition(current):
        calls.append(current)
        if current is not None:
            raise ConflictError("already there", code="TRIAL_ALREADY_ACTIVE")
        winner = make_subscription(Plan.PRO, status=SubscriptionStatus.TRIAL, trial_ends_at=FIXED_NOW + timedelta(days=30))
        with session_factory() as session:
            session.execute(
                insert(subscriptions).values(
                    id="winner",
                    org_id=ORG_ID,
                    plan=winner.plan.value,
                    status=winner.status.value,
                    trial_ends_at=winner.trial_ends_at,
                )
            )
            session.commit()
        return make_subscription(Plan.PRO, status=SubscriptionStatus.TRIAL, trial_ends_at=FIXED_NOW + timedelta(days=45))

    with pytest.raises(ConflictError):
        sql_repository.transition_subscription(ORG_ID, transition)

    assert calls[0] is None
    assert calls[1].id == "winner"
    stored = sql_repository.get_subscription(ORG_ID)
    assert stored.id == "winner"
    assert stored.trial_ends_at == FIXED_NOW + timedelta(days=30)
