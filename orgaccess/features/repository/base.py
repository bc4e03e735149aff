"""
orgaccess/features/repository/base.py

Data-layer contract consumed by the checker, guards and the trial flow.
Adapters own all blocking I/O and transactions; callers never see sessions.
"""

from typing import Callable, List, Optional, Protocol

from orgaccess.models.membership import Membership
from orgaccess.models.organization import Organization
from orgaccess.models.subscription import Subscription


# Receives the current subscription (or None) under the org's lock and
# returns the row to persist. Raising aborts the transition unchanged.
SubscriptionTransition = Callable[[Optional[Subscription]], Subscription]


class AccessRepository(Protocol):
    def get_organization(self, org_id: str) -> Optional[Organization]:
        ...

    def save_organization(self, organization: Organization) -> Organization:
        ...

    def get_membership(self, actor_id: str, org_id: str) -> Optional[Membership]:
        """The ACTIVE membership of actor in org, if any."""
        ...

    def list_memberships(self, org_id: str, include_archived: bool = False) -> List[Membership]:
        ...

    def save_membership(self, membership: Membership) -> Membership:
        ...

    def get_subscription(self, org_id: str) -> Optional[Subscription]:
        ...

    def transition_subscription(self, org_id: str, fn: SubscriptionTransition) -> Subscription:
        """Apply `fn` atomically with respect to other transitions of the same org."""
        ...

    def get_usage_count(self, org_id: str, resource: str) -> int:
        ...

    def set_usage_count(self, org_id: str, resource: str, count: int) -> None:
        ...
