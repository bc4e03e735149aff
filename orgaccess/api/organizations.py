"""
Organization access API.

- GET    /v1/orgs/{org_id}/permissions: caller's effective permissions
- GET    /v1/orgs/{org_id}/members: active members (ORG_MEMBERS_READ)
- PATCH  /v1/orgs/{org_id}/members/{actor_id}: role/overrides (ORG_MEMBERS_WRITE)
- DELETE /v1/orgs/{org_id}/members/{actor_id}: archive member (OWNER/ADMIN)
- GET    /v1/orgs/{org_id}/limits/{resource}: usage vs. plan limit
- POST   /v1/orgs/{org_id}/plan: upgrade/downgrade (OWNER)
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from orgaccess.api.deps import get_checker, get_repository, guarded
from orgaccess.core.auth import get_optional_actor_id
from orgaccess.core.errors import ValidationError
from orgaccess.features.authorization.guards import enforce, require_owner, require_permission, require_role
from orgaccess.features.memberships import service as memberships
from orgaccess.features.permissions.checker import (
    AccessContext,
    PermissionChecker,
    effective_plan,
    has_active_subscription,
    resolve_effective_permissions,
)
from orgaccess.features.plans.catalog import FEATURE_GATES, get_plan_config, plan_has_feature
from orgaccess.features.plans.service import change_plan
from orgaccess.features.repository.base import AccessRepository
from orgaccess.features.usage.service import check_org_limit, limit_metadata
from orgaccess.models.membership import Membership, Role
from orgaccess.models.permission import Permission


router = APIRouter(prefix="/v1/orgs", tags=["organizations"])

# Any active membership
require_member = require_role(*Role)


class MemberResponse(BaseModel):
    id: str
    actor_id: str
    role: str
    status: str
    custom_permissions: List[str]
    joined_at: Optional[datetime] = None


class MemberUpdateRequest(BaseModel):
    role: Optional[str] = None
    custom_permissions: Optional[List[str]] = None


class PlanChangeRequest(BaseModel):
    plan: str


def _member_response(membership: Membership) -> MemberResponse:
    return MemberResponse(
        id=membership.id,
        actor_id=membership.actor_id,
        role=membership.role.value,
        status=membership.status.value,
        custom_permissions=membership.custom_permissions.to_list(),
        joined_at=membership.joined_at,
    )


@router.get("/{org_id}/permissions")
def get_permissions(
    org_id: str,
    ctx: AccessContext = Depends(guarded(require_member)),
    repository: AccessRepository = Depends(get_repository),
) -> Dict[str, Any]:
    plan = effective_plan(ctx.subscription, ctx.now)
    organization = repository.get_organization(org_id)
    subscription = ctx.subscription
    return {
        "org_id": org_id,
        "organization_name": organization.name if organization else None,
        "actor_id": ctx.actor_id,
        "role": ctx.membership.role.value,
        "plan": plan.value,
        "subscription_status": subscription.status.value if subscription else None,
        "has_active_subscription": has_active_subscription(subscription, ctx.now),
        "permissions": sorted(p.value for p in resolve_effective_permissions(ctx.membership, subscription, ctx.now)),
        "limits": dict(get_plan_config(plan).limits),
        "features": {feature: plan_has_feature(plan, feature) for feature in sorted(FEATURE_GATES)},
    }


@router.get("/{org_id}/members", response_model=List[MemberResponse])
def list_members(
    org_id: str,
    actor_id: Optional[str] = Depends(get_optional_actor_id),
    checker: PermissionChecker = Depends(get_checker),
):
    return [_member_response(m) for m in memberships.list_members(checker, actor_id, org_id)]


@router.patch("/{org_id}/members/{member_actor_id}", response_model=MemberResponse)
def update_member(
    org_id: str,
    member_actor_id: str,
    body: MemberUpdateRequest,
    actor_id: Optional[str] = Depends(get_optional_actor_id),
    checker: PermissionChecker = Depends(get_checker),
):
    """
    Change a member's role and/or replace their custom permissions.

    Errors:
        400: Nothing to update, unknown role/permission, owner protection
        401/403: Caller not authenticated, lacks ORG_MEMBERS_WRITE, or grants
            a permission it does not hold
        404: Member not found
    """
    enforce(checker, actor_id, org_id, require_permission(Permission.ORG_MEMBERS_WRITE))
    if body.role is None and body.custom_permissions is None:
        raise ValidationError("Provide role and/or custom_permissions", code="empty_update")

    membership = memberships.update_member(
        checker,
        actor_id,
        org_id,
        member_actor_id,
        role=body.role,
        entries=body.custom_permissions,
    )
    return _member_response(membership)


@router.delete("/{org_id}/members/{member_actor_id}", response_model=MemberResponse)
def remove_member(
    org_id: str,
    member_actor_id: str,
    actor_id: Optional[str] = Depends(get_optional_actor_id),
    checker: PermissionChecker = Depends(get_checker),
):
    return _member_response(memberships.remove_member(checker, actor_id, org_id, member_actor_id))


@router.get("/{org_id}/limits/{resource}")
def get_limit(
    org_id: str,
    resource: str,
    ctx: AccessContext = Depends(guarded(require_member)),
    checker: PermissionChecker = Depends(get_checker),
) -> Dict[str, Any]:
    return limit_metadata(check_org_limit(checker, org_id, resource))


@router.post("/{org_id}/plan")
def post_plan_change(
    org_id: str,
    body: PlanChangeRequest,
    ctx: AccessContext = Depends(guarded(require_owner())),
    checker: PermissionChecker = Depends(get_checker),
) -> Dict[str, Any]:
    change = change_plan(checker.repository, org_id, body.plan, now=checker.clock())
    return {
        "org_id": org_id,
        "from_plan": change.from_plan.value,
        "to_plan": change.to_plan.value,
        "is_upgrade": change.is_upgrade,
        "over_limit": change.over_limit,
    }
