"""
orgaccess/features/permissions/checker.py

Permission resolution.

Resolution order for one permission:
1. No ACTIVE membership -> deny (default deny, never raises)
2. Role defaults, then custom overrides (grants added, revokes removed)
3. AND the organization's effective plan must reach the permission's
   minimum plan; CANCELED, PAST_DUE, expired TRIAL or missing
   subscriptions count as BASIC

The module-level functions are pure over already-loaded records.
PermissionChecker loads those records from an AccessRepository.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Union
import logging

from orgaccess.features.permissions.catalog import required_plan_for
from orgaccess.features.plans.catalog import plan_at_least
from orgaccess.features.repository.base import AccessRepository
from orgaccess.features.roles.model import permissions_for_role
from orgaccess.models.membership import Membership, Role
from orgaccess.models.permission import Permission, parse_permission
from orgaccess.models.plan import Plan
from orgaccess.models.subscription import Subscription, SubscriptionStatus, as_utc


logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

REASON_NO_MEMBERSHIP = "no_membership"
REASON_NOT_GRANTED = "not_granted"
REASON_PLAN_REQUIRED = "plan_required"


def _normalize_now(now: Optional[Any]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    return as_utc(now)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PermissionDecision:
    permission: Permission
    allowed: bool
    reason: Optional[str]
    required_plan: Plan
    effective_plan: Plan


def has_active_subscription(subscription: Optional[Subscription], now: Optional[Any] = None) -> bool:
    if subscription is None:
        return False
    if subscription.status not in (SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE):
        return False
    return not subscription.is_trial_expired(_normalize_now(now))


def effective_plan(subscription: Optional[Subscription], now: Optional[Any] = None) -> Plan:
    """Plan used for gating: the stored plan only while the subscription is active."""
    if has_active_subscription(subscription, now):
        return subscription.plan
    return Plan.BASIC


def granted_permissions(membership: Optional[Membership]) -> FrozenSet[Permission]:
    """Role defaults with custom overrides applied, before plan gating."""
    if membership is None or not membership.is_active:
        return frozenset()
    return membership.custom_permissions.apply(permissions_for_role(membership.role))


def check_permission(
    membership: Optional[Membership],
    subscription: Optional[Subscription],
    permission: Union[str, Permission],
    now: Optional[Any] = None,
) -> PermissionDecision:
    perm = parse_permission(permission)
    required = required_plan_for(perm)
    plan = effective_plan(subscription, now)

    if membership is None or not membership.is_active:
        return PermissionDecision(perm, False, REASON_NO_MEMBERSHIP, required, plan)
    if perm not in granted_permissions(membership):
        return PermissionDecision(perm, False, REASON_NOT_GRANTED, required, plan)
    if not plan_at_least(plan, required):
        return PermissionDecision(perm, False, REASON_PLAN_REQUIRED, required, plan)
    return PermissionDecision(perm, True, None, required, plan)


def resolve_effective_permissions(
    membership: Optional[Membership],
    subscription: Optional[Subscription],
    now: Optional[Any] = None,
) -> FrozenSet[Permission]:
    plan = effective_plan(subscription, now)
    return frozenset(
        p for p in granted_permissions(membership)
        if plan_at_least(plan, required_plan_for(p))
    )


@dataclass(frozen=True)
class AccessContext:
    """Records loaded once per request; all checks run against this."""
    actor_id: Optional[str]
    org_id: Optional[str]
    membership: Optional[Membership]
    subscription: Optional[Subscription]
    usage: Dict[str, int] = field(default_factory=dict)
    now: Optional[datetime] = None


class PermissionChecker:
    """Repository-backed facade; every method is read-only."""

    def __init__(self, repository: AccessRepository, clock: Optional[Clock] = None):
        self.repository = repository
        self.clock = clock or utc_now

    def _membership(self, actor_id: Optional[str], org_id: Optional[str]) -> Optional[Membership]:
        if not actor_id or not org_id:
            return None
        membership = self.repository.get_membership(actor_id, org_id)
        if membership is None or not membership.is_active:
            return None
        return membership

    def _subscription(self, org_id: Optional[str]) -> Optional[Subscription]:
        if not org_id:
            return None
        return self.repository.get_subscription(org_id)

    def role_of(self, actor_id: Optional[str], org_id: Optional[str]) -> Optional[Role]:
        membership = self._membership(actor_id, org_id)
        return membership.role if membership else None

    def check_permission(self, actor_id: str, org_id: str, permission: Union[str, Permission]) -> PermissionDecision:
        perm = parse_permission(permission)
        decision = check_permission(
            self._membership(actor_id, org_id),
            self._subscription(org_id),
            perm,
            self.clock(),
        )
        logger.debug(
            "[permissions] check",
            extra={
                "actor_id": actor_id,
                "org_id": org_id,
                "permission": perm.value,
                "allowed": decision.allowed,
                "reason": decision.reason,
            },
        )
        return decision

    def has_permission(self, actor_id: str, org_id: str, permission: Union[str, Permission]) -> bool:
        return self.check_permission(actor_id, org_id, permission).allowed

    def missing_permissions(
        self, actor_id: str, org_id: str, permissions: Iterable[Union[str, Permission]]
    ) -> List[Permission]:
        perms = [parse_permission(p) for p in permissions]
        effective = self.effective_permissions(actor_id, org_id)
        return [p for p in perms if p not in effective]

    def has_all_permissions(self, actor_id: str, org_id: str, permissions: Iterable[Union[str, Permission]]) -> bool:
        return not self.missing_permissions(actor_id, org_id, permissions)

    def has_any_permission(self, actor_id: str, org_id: str, permissions: Iterable[Union[str, Permission]]) -> bool:
        perms = [parse_permission(p) for p in permissions]
        effective = self.effective_permissions(actor_id, org_id)
        return any(p in effective for p in perms)

    def effective_permissions(self, actor_id: str, org_id: str) -> FrozenSet[Permission]:
        return resolve_effective_permissions(
            self._membership(actor_id, org_id),
            self._subscription(org_id),
            self.clock(),
        )

    def has_active_subscription(self, org_id: str) -> bool:
        return has_active_subscription(self._subscription(org_id), self.clock())

    def effective_plan(self, org_id: str) -> Plan:
        return effective_plan(self._subscription(org_id), self.clock())

    def load_context(
        self,
        actor_id: Optional[str],
        org_id: Optional[str],
        resources: Iterable[str] = (),
    ) -> AccessContext:
        usage: Dict[str, int] = {}
        if org_id:
            for resource in resources:
                usage[resource] = self.repository.get_usage_count(org_id, resource)
        return AccessContext(
            actor_id=actor_id,
            org_id=org_id,
            membership=self._membership(actor_id, org_id),
            subscription=self._subscription(org_id),
            usage=usage,
            now=self.clock(),
        )
