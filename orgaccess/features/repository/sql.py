"""
SQLAlchemy-backed repository.

Subscription transitions lock the org's row (SELECT ... FOR UPDATE). When no
row exists yet, the unique org_id constraint decides the winner of
concurrent inserts; the loser re-reads the winner's row and re-applies its
transition to it.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from orgaccess.core.database import (
    get_db_session,
    memberships,
    organizations,
    subscriptions,
    usage_counters,
)
from orgaccess.core.errors import ConflictError
from orgaccess.features.repository.base import SubscriptionTransition
from orgaccess.models.membership import Membership, MembershipStatus, Role
from orgaccess.models.organization import Organization
from orgaccess.models.permission import CustomPermissions
from orgaccess.models.plan import Plan
from orgaccess.models.subscription import Subscription, SubscriptionStatus, as_utc


logger = logging.getLogger(__name__)

# Insert race: one retry is enough since the second pass always finds a row
MAX_TRANSITION_ATTEMPTS = 2


def _to_db(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return as_utc(value).astimezone(timezone.utc)


def _row_to_membership(row) -> Membership:
    return Membership(
        id=row.id,
        org_id=row.org_id,
        actor_id=row.actor_id,
        role=Role(row.role),
        status=MembershipStatus(row.status),
        custom_permissions=CustomPermissions.parse(row.custom_permissions or []),
        joined_at=as_utc(row.joined_at),
    )


def _row_to_subscription(row) -> Subscription:
    return Subscription(
        id=row.id,
        org_id=row.org_id,
        plan=Plan(row.plan),
        status=SubscriptionStatus(row.status),
        trial_ends_at=as_utc(row.trial_ends_at),
        vertical=row.vertical,
        updated_at=as_utc(row.updated_at),
    )


def _subscription_values(subscription: Subscription) -> dict:
    return {
        "plan": subscription.plan.value,
        "status": subscription.status.value,
        "trial_ends_at": _to_db(subscription.trial_ends_at),
        "vertical": subscription.vertical,
        "updated_at": _to_db(subscription.updated_at),
    }


class SqlAccessRepository:
    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        # None -> the process-wide factory from core.database
        self._session_factory = session_factory

    def _session(self):
        return get_db_session(self._session_factory)

    def get_organization(self, org_id: str) -> Optional[Organization]:
        with self._session() as session:
            row = session.execute(select(organizations).where(organizations.c.id == org_id)).first()
        if not row:
            return None
        return Organization(id=row.id, name=row.name, created_at=as_utc(row.created_at))

    def save_organization(self, organization: Organization) -> Organization:
        values = {"name": organization.name}
        if organization.created_at is not None:
            values["created_at"] = _to_db(organization.created_at)
        with self._session() as session:
            exists = session.execute(
                select(organizations.c.id).where(organizations.c.id == organization.id)
            ).first()
            if exists:
                session.execute(update(organizations).where(organizations.c.id == organization.id).values(**values))
            else:
                session.execute(insert(organizations).values(id=organization.id, **values))
        return organization

    def get_membership(self, actor_id: str, org_id: str) -> Optional[Membership]:
        with self._session() as session:
            row = session.execute(
                select(memberships)
                .where(memberships.c.actor_id == actor_id)
                .where(memberships.c.org_id == org_id)
                .where(memberships.c.status == MembershipStatus.ACTIVE.value)
            ).first()
        return _row_to_membership(row) if row else None

    def list_memberships(self, org_id: str, include_archived: bool = False) -> List[Membership]:
        query = select(memberships).where(memberships.c.org_id == org_id)
        if not include_archived:
            query = query.where(memberships.c.status == MembershipStatus.ACTIVE.value)
        with self._session() as session:
            rows = session.execute(query.order_by(memberships.c.joined_at, memberships.c.actor_id)).all()
        return [_row_to_membership(row) for row in rows]

    def save_membership(self, membership: Membership) -> Membership:
        values = {
            "org_id": membership.org_id,
            "actor_id": membership.actor_id,
            "role": membership.role.value,
            "status": membership.status.value,
            "custom_permissions": membership.custom_permissions.to_list(),
            "joined_at": _to_db(membership.joined_at),
        }
        with self._session() as session:
            if membership.is_active:
                other = session.execute(
                    select(memberships.c.id)
                    .where(memberships.c.actor_id == membership.actor_id)
                    .where(memberships.c.org_id == membership.org_id)
                    .where(memberships.c.status == MembershipStatus.ACTIVE.value)
                    .where(memberships.c.id != membership.id)
                ).first()
                if other:
                    raise ConflictError(
                        "Actor already has an active membership in this organization",
                        code="membership_exists",
                        details={"actor_id": membership.actor_id, "org_id": membership.org_id},
                    )
            exists = session.execute(
                select(memberships.c.id).where(memberships.c.id == membership.id)
            ).first()
            if exists:
                session.execute(update(memberships).where(memberships.c.id == membership.id).values(**values))
            else:
                session.execute(insert(memberships).values(id=membership.id, **values))
        return membership

    def get_subscription(self, org_id: str) -> Optional[Subscription]:
        with self._session() as session:
            row = session.execute(select(subscriptions).where(subscriptions.c.org_id == org_id)).first()
        return _row_to_subscription(row) if row else None

    def transition_subscription(self, org_id: str, fn: SubscriptionTransition) -> Subscription:
        attempt = 0
        while True:
            attempt += 1
            try:
                with self._session() as session:
                    row = session.execute(
                        select(subscriptions)
                        .where(subscriptions.c.org_id == org_id)
                        .with_for_update()
                    ).first()
                    current = _row_to_subscription(row) if row else None
                    updated = fn(current)
                    values = _subscription_values(updated)
                    if row is None:
                        session.execute(insert(subscriptions).values(id=updated.id, org_id=org_id, **values))
                    else:
                        session.execute(
                            update(subscriptions).where(subscriptions.c.org_id == org_id).values(**values)
                        )
                return updated
            except IntegrityError:
                if attempt >= MAX_TRANSITION_ATTEMPTS:
                    raise
                logger.info(
                    "[repository] subscription insert lost race, re-reading",
                    extra={"org_id": org_id},
                )

    def get_usage_count(self, org_id: str, resource: str) -> int:
        with self._session() as session:
            row = session.execute(
                select(usage_counters.c.count)
                .where(usage_counters.c.org_id == org_id)
                .where(usage_counters.c.resource == resource)
            ).first()
        return int(row[0]) if row else 0

    def set_usage_count(self, org_id: str, resource: str, count: int) -> None:
        with self._session() as session:
            exists = session.execute(
                select(usage_counters.c.count)
                .where(usage_counters.c.org_id == org_id)
                .where(usage_counters.c.resource == resource)
            ).first()
            if exists:
                session.execute(
                    update(usage_counters)
                    .where(usage_counters.c.org_id == org_id)
                    .where(usage_counters.c.resource == resource)
                    .values(count=count)
                )
            else:
                session.execute(insert(usage_counters).values(org_id=org_id, resource=resource, count=count))
