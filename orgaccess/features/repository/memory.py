"""In-process repository for tests and single-instance deployments."""

import threading
from contextlib import contextmanager
from typing import Dict, List, Optional, Tuple

from orgaccess.core.errors import ConflictError
from orgaccess.features.repository.base import SubscriptionTransition
from orgaccess.models.membership import Membership, MembershipStatus
from orgaccess.models.organization import Organization
from orgaccess.models.subscription import Subscription


class InMemoryAccessRepository:
    def __init__(self):
        self._lock = threading.Lock()
        # org_id -> [lock, holders]; entries live only while a transition is in flight
        self._org_locks: Dict[str, list] = {}
        self._organizations: Dict[str, Organization] = {}
        self._memberships: Dict[str, Membership] = {}
        self._subscriptions: Dict[str, Subscription] = {}
        self._usage: Dict[Tuple[str, str], int] = {}

    @contextmanager
    def _org_lock(self, org_id: str):
        with self._lock:
            entry = self._org_locks.setdefault(org_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._org_locks[org_id]

    def get_organization(self, org_id: str) -> Optional[Organization]:
        with self._lock:
            return self._organizations.get(org_id)

    def save_organization(self, organization: Organization) -> Organization:
        with self._lock:
            self._organizations[organization.id] = organization
        return organization

    def get_membership(self, actor_id: str, org_id: str) -> Optional[Membership]:
        with self._lock:
            for membership in self._memberships.values():
                if (
                    membership.actor_id == actor_id
                    and membership.org_id == org_id
                    and membership.status == MembershipStatus.ACTIVE
                ):
                    return membership
        return None

    def list_memberships(self, org_id: str, include_archived: bool = False) -> List[Membership]:
        with self._lock:
            rows = [m for m in self._memberships.values() if m.org_id == org_id]
        if not include_archived:
            rows = [m for m in rows if m.is_active]
        return sorted(rows, key=lambda m: (m.joined_at is None, m.joined_at, m.actor_id))

    def save_membership(self, membership: Membership) -> Membership:
        with self._lock:
            if membership.is_active:
                for other in self._memberships.values():
                    if (
                        other.id != membership.id
                        and other.actor_id == membership.actor_id
                        and other.org_id == membership.org_id
                        and other.is_active
                    ):
                        raise ConflictError(
                            "Actor already has an active membership in this organization",
                            code="membership_exists",
                            details={"actor_id": membership.actor_id, "org_id": membership.org_id},
                        )
            self._memberships[membership.id] = membership
        return membership

    def get_subscription(self, org_id: str) -> Optional[Subscription]:
        with self._lock:
            return self._subscriptions.get(org_id)

    def transition_subscription(self, org_id: str, fn: SubscriptionTransition) -> Subscription:
        with self._org_lock(org_id):
            current = self.get_subscription(org_id)
            updated = fn(current)
            with self._lock:
                self._subscriptions[org_id] = updated
            return updated

    def get_usage_count(self, org_id: str, resource: str) -> int:
        with self._lock:
            return self._usage.get((org_id, resource), 0)

    def set_usage_count(self, org_id: str, resource: str, count: int) -> None:
        with self._lock:
            self._usage[(org_id, resource)] = count
