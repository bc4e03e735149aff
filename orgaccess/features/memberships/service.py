"""
orgaccess/features/memberships/service.py

Guarded membership updates.

Rules:
- Role and custom-permission edits need ORG_MEMBERS_WRITE
- Removal needs OWNER or ADMIN
- The OWNER membership keeps its role and cannot be removed; nobody can be
  promoted to OWNER here (ownership transfer lives elsewhere)
- Actors cannot remove themselves
- New custom grants are limited to permissions the caller holds
- Each update is checked in full and saved in a single write
- Removal archives the membership; rows are never deleted
"""

import logging
from typing import Iterable, List, Optional, Union

from orgaccess.core.errors import ForbiddenError, NotFoundError, ValidationError
from orgaccess.features.authorization.guards import (
    enforce,
    require_admin_or_owner,
    require_permission,
)
from orgaccess.features.permissions.checker import PermissionChecker
from orgaccess.models.membership import Membership, MembershipStatus, Role
from orgaccess.models.permission import CustomPermissions, Permission, parse_permission


logger = logging.getLogger(__name__)


def _load_target(checker: PermissionChecker, org_id: str, target_actor_id: str) -> Membership:
    membership = checker.repository.get_membership(target_actor_id, org_id)
    if membership is None:
        raise NotFoundError(
            "Member not found",
            code="member_not_found",
            details={"actor_id": target_actor_id, "org_id": org_id},
        )
    return membership


def _parse_role(role: Union[str, Role]) -> Role:
    if isinstance(role, Role):
        return role
    try:
        return Role(str(role).strip().upper())
    except ValueError:
        raise ValidationError(f"Unknown role: {role!r}", code="invalid_role", details={"role": str(role)})


def list_members(checker: PermissionChecker, caller_id: str, org_id: str) -> List[Membership]:
    enforce(checker, caller_id, org_id, require_permission(Permission.ORG_MEMBERS_READ))
    return checker.repository.list_memberships(org_id)


def update_member(
    checker: PermissionChecker,
    caller_id: str,
    org_id: str,
    target_actor_id: str,
    role: Optional[Union[str, Role]] = None,
    entries: Optional[Iterable[str]] = None,
) -> Membership:
    """
    Change a member's role and/or replace their overrides in one write.

    `entries` are "PERM" grants and "!PERM" revokes. The caller is authorized
    once, every rule is checked against the resulting membership, and nothing
    is saved unless all of them pass.
    """
    enforce(checker, caller_id, org_id, require_permission(Permission.ORG_MEMBERS_WRITE))
    new_role = _parse_role(role) if role is not None else None
    overrides = CustomPermissions.parse(entries) if entries is not None else None
    target = _load_target(checker, org_id, target_actor_id)
    return _apply_update(checker, caller_id, target, new_role, overrides)


def change_member_role(
    checker: PermissionChecker,
    caller_id: str,
    org_id: str,
    target_actor_id: str,
    role: Union[str, Role],
) -> Membership:
    return update_member(checker, caller_id, org_id, target_actor_id, role=role)


def set_custom_permissions(
    checker: PermissionChecker,
    caller_id: str,
    org_id: str,
    target_actor_id: str,
    entries: Iterable[str],
) -> Membership:
    """Replace the target's overrides with `entries` ("PERM" grants, "!PERM" revokes)."""
    return update_member(checker, caller_id, org_id, target_actor_id, entries=entries)


def grant_custom_permission(
    checker: PermissionChecker,
    caller_id: str,
    org_id: str,
    target_actor_id: str,
    permission: Union[str, Permission],
) -> Membership:
    enforce(checker, caller_id, org_id, require_permission(Permission.ORG_MEMBERS_WRITE))
    perm = parse_permission(permission)
    target = _load_target(checker, org_id, target_actor_id)
    current = target.custom_permissions
    overrides = CustomPermissions(grants=current.grants | {perm}, revokes=current.revokes - {perm})
    return _apply_update(checker, caller_id, target, None, overrides)


def revoke_custom_permission(
    checker: PermissionChecker,
    caller_id: str,
    org_id: str,
    target_actor_id: str,
    permission: Union[str, Permission],
) -> Membership:
    enforce(checker, caller_id, org_id, require_permission(Permission.ORG_MEMBERS_WRITE))
    perm = parse_permission(permission)
    target = _load_target(checker, org_id, target_actor_id)
    current = target.custom_permissions
    overrides = CustomPermissions(grants=current.grants - {perm}, revokes=current.revokes | {perm})
    return _apply_update(checker, caller_id, target, None, overrides)


def _apply_update(
    checker: PermissionChecker,
    caller_id: str,
    target: Membership,
    new_role: Optional[Role],
    overrides: Optional[CustomPermissions],
) -> Membership:
    role = new_role if new_role is not None else target.role
    custom = overrides if overrides is not None else target.custom_permissions

    if target.role == Role.OWNER and role != Role.OWNER:
        raise ValidationError("Cannot change owner role", code="owner_role_locked")
    if role == Role.OWNER and target.role != Role.OWNER:
        raise ValidationError(
            "Ownership transfer is not supported here",
            code="owner_assignment_unsupported",
        )
    if role == Role.OWNER and custom.revokes:
        raise ValidationError("Cannot revoke permissions from the owner", code="owner_role_locked")

    # New grants are limited to what the caller holds
    added = custom.grants - target.custom_permissions.grants
    exceeding = sorted(p.value for p in added - checker.effective_permissions(caller_id, target.org_id))
    if exceeding:
        raise ForbiddenError(
            "Cannot grant permissions you do not hold",
            code="grant_exceeds_caller",
            details={"permissions": exceeding},
        )

    if role == target.role and custom == target.custom_permissions:
        return target

    updated = checker.repository.save_membership(
        target.model_copy(update={"role": role, "custom_permissions": custom})
    )
    logger.info(
        "[memberships] member updated",
        extra={
            "actor_id": caller_id,
            "org_id": target.org_id,
            "event_type": "membership.updated",
        },
    )
    return updated

def remove_member(checker: PermissionChecker, caller_id: str, org_id: str, target_actor_id: str) -> Membership:
    enforce(checker, caller_id, org_id, require_admin_or_owner())
    if target_actor_id == caller_id:
        raise ValidationError("Cannot remove yourself", code="cannot_remove_self")
    target = _load_target(checker, org_id, target_actor_id)
    if target.role == Role.OWNER:
        raise ValidationError("Cannot remove organization owner", code="owner_not_removable")

    archived = checker.repository.save_membership(
        target.model_copy(update={"status": MembershipStatus.ARCHIVED})
    )
    logger.info(
        "[memberships] member removed",
        extra={"actor_id": caller_id, "org_id": org_id, "event_type": "membership.archived"},
    )
    return archived
