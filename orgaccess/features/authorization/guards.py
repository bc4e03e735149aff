"""
orgaccess/features/authorization/guards.py

Composable request guards.

A guard is a callable AccessContext -> Optional[Denial]. None means pass.
Guards are pure: they read the already-loaded context and never write.
A missing actor or organization is always 401 and wins over every other
check.
"""

from functools import wraps
from typing import Any, Callable, Iterable, List, Optional, Tuple, Union
import logging

from orgaccess.core.config import settings
from orgaccess.features.permissions.catalog import required_plan_for
from orgaccess.features.permissions.checker import (
    AccessContext,
    check_permission,
    has_active_subscription,
    effective_plan,
)
from orgaccess.features.plans.catalog import PLAN_ORDER, get_plan_limit, minimum_plan_for_limit, plan_rank
from orgaccess.features.usage.service import check_limit
from orgaccess.models.denial import Denial
from orgaccess.models.membership import Role
from orgaccess.models.permission import Permission, parse_permission


logger = logging.getLogger(__name__)

Guard = Callable[[AccessContext], Optional[Denial]]


def _upgrade_url() -> str:
    return settings.UPGRADE_URL


def _attach_resources(guard: Guard, resources: Iterable[str]) -> Guard:
    # Usage counters the loader must fetch before running this guard
    guard.resources = tuple(resources)
    return guard


def guard_resources(guard: Guard) -> Tuple[str, ...]:
    return tuple(getattr(guard, "resources", ()))


def _log_denial(ctx: AccessContext, denial: Denial) -> None:
    logger.debug(
        "[authorization] DENY",
        extra={
            "actor_id": ctx.actor_id,
            "org_id": ctx.org_id,
            "error_code": denial.code,
            "status": denial.http_status,
        },
    )


def require_authenticated() -> Guard:
    def guard(ctx: AccessContext) -> Optional[Denial]:
        if not ctx.actor_id:
            return Denial(
                http_status=401,
                code="unauthenticated",
                message="Authentication required",
                details={},
            )
        if not ctx.org_id:
            return Denial(
                http_status=401,
                code="unauthenticated",
                message="Organization context required",
                details={"actor_id": ctx.actor_id},
            )
        return None

    return _attach_resources(guard, ())


_authenticated = require_authenticated()


def require_permission(*permissions: Union[str, Permission]) -> Guard:
    """Pass only when the actor holds every listed permission."""
    required = [parse_permission(p) for p in permissions]

    def guard(ctx: AccessContext) -> Optional[Denial]:
        denial = _authenticated(ctx)
        if denial:
            return denial
        missing = [
            decision for decision in (
                check_permission(ctx.membership, ctx.subscription, perm, ctx.now)
                for perm in required
            )
            if not decision.allowed
        ]
        if not missing:
            return None
        first = missing[0]
        denial = Denial(
            http_status=403,
            code="permission_denied",
            message=f"Missing required permission: {first.permission.value}",
            details={
                "required": [p.value for p in required],
                "missing": [d.permission.value for d in missing],
                "reason": first.reason,
                "required_plan": first.required_plan.value,
                "current_plan": first.effective_plan.value,
                "upgrade_url": _upgrade_url(),
            },
        )
        _log_denial(ctx, denial)
        return denial

    return _attach_resources(guard, ())


def require_any_permission(*permissions: Union[str, Permission]) -> Guard:
    """Pass when the actor holds at least one listed permission."""
    required = [parse_permission(p) for p in permissions]

    def guard(ctx: AccessContext) -> Optional[Denial]:
        denial = _authenticated(ctx)
        if denial:
            return denial
        for perm in required:
            if check_permission(ctx.membership, ctx.subscription, perm, ctx.now).allowed:
                return None
        lowest = min((required_plan_for(p) for p in required), key=plan_rank, default=PLAN_ORDER[0])
        denial = Denial(
            http_status=403,
            code="permission_denied",
            message="Requires at least one of: " + ", ".join(p.value for p in required),
            details={
                "required": [p.value for p in required],
                "missing": [p.value for p in required],
                "required_plan": lowest.value,
                "current_plan": effective_plan(ctx.subscription, ctx.now).value,
                "upgrade_url": _upgrade_url(),
            },
        )
        _log_denial(ctx, denial)
        return denial

    return _attach_resources(guard, ())


def require_role(*roles: Union[str, Role]) -> Guard:
    allowed = [Role(r) for r in roles]

    def guard(ctx: AccessContext) -> Optional[Denial]:
        denial = _authenticated(ctx)
        if denial:
            return denial
        current = ctx.membership.role if ctx.membership and ctx.membership.is_active else None
        if current in allowed:
            return None
        denial = Denial(
            http_status=403,
            code="role_required",
            message="Requires role: " + " or ".join(r.value for r in allowed),
            details={
                "required": [r.value for r in allowed],
                "current": current.value if current else None,
            },
        )
        _log_denial(ctx, denial)
        return denial

    return _attach_resources(guard, ())


def require_owner() -> Guard:
    return require_role(Role.OWNER)


def require_admin_or_owner() -> Guard:
    return require_role(Role.OWNER, Role.ADMIN)


def require_active_subscription() -> Guard:
    def guard(ctx: AccessContext) -> Optional[Denial]:
        denial = _authenticated(ctx)
        if denial:
            return denial
        if has_active_subscription(ctx.subscription, ctx.now):
            return None
        subscription = ctx.subscription
        denial = Denial(
            http_status=402,
            code="subscription_required",
            message="An active subscription is required",
            details={
                "status": subscription.status.value if subscription else None,
                "plan": subscription.plan.value if subscription else None,
                "upgrade_url": _upgrade_url(),
            },
        )
        _log_denial(ctx, denial)
        return denial

    return _attach_resources(guard, ())


def require_within_limit(resource: str) -> Guard:
    """Pass while the org's usage of `resource` is below its effective plan limit."""
    get_plan_limit(PLAN_ORDER[0], resource)

    def guard(ctx: AccessContext) -> Optional[Denial]:
        denial = _authenticated(ctx)
        if denial:
            return denial
        if resource not in ctx.usage:
            raise KeyError(f"Usage for {resource!r} was not loaded into the access context")
        plan = effective_plan(ctx.subscription, ctx.now)
        check = check_limit(plan, resource, ctx.usage[resource])
        if check.allowed:
            return None
        upgrade_plan = minimum_plan_for_limit(resource, check.current_usage + 1)
        denial = Denial(
            http_status=403,
            code="quota_exceeded",
            message=f"Plan limit reached for {resource}",
            details={
                "resource": resource,
                "limit": check.limit,
                "current_usage": check.current_usage,
                "remaining": check.remaining,
                "current_plan": plan.value,
                "required_plan": upgrade_plan.value if upgrade_plan else None,
                "upgrade_url": _upgrade_url(),
            },
        )
        _log_denial(ctx, denial)
        return denial

    return _attach_resources(guard, (resource,))


def combine_guards(*guards: Guard) -> Guard:
    """Run guards in order; the first denial short-circuits."""
    chain: List[Guard] = list(guards)

    def guard(ctx: AccessContext) -> Optional[Denial]:
        for g in chain:
            denial = g(ctx)
            if denial is not None:
                return denial
        return None

    resources: List[str] = []
    for g in chain:
        for resource in guard_resources(g):
            if resource not in resources:
                resources.append(resource)
    return _attach_resources(guard, resources)


def authorize(*guards: Guard):
    """
    Decorator: run `guards` before the handler.

    The handler receives the AccessContext as first argument and runs
    exactly once when every guard passes; otherwise the Denial is returned
    and the handler is not called.
    """
    combined = combine_guards(*guards)

    def decorator(handler: Callable[..., Any]):
        @wraps(handler)
        def wrapper(ctx: AccessContext, *args, **kwargs):
            denial = combined(ctx)
            if denial is not None:
                return denial
            return handler(ctx, *args, **kwargs)

        wrapper.guard = combined
        return wrapper

    return decorator


def enforce(checker, actor_id: Optional[str], org_id: Optional[str], *guards: Guard) -> AccessContext:
    """
    Load the access context for (actor, org), run `guards` and raise the
    first denial as its AppError. Returns the context on success.
    """
    combined = combine_guards(*guards)
    ctx = checker.load_context(actor_id, org_id, resources=guard_resources(combined))
    denial = combined(ctx)
    if denial is not None:
        raise denial.to_error()
    return ctx
