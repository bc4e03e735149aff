"""
orgaccess/features/roles/model.py

Role -> default permission set, plus the declared containment between roles
(OWNER ⊇ ADMIN ⊇ MANAGER ⊇ MEMBER ⊇ VIEWER). The containment table is
checked when this module is imported; a violation is a configuration bug.
"""

from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Set, Tuple

from orgaccess.models.membership import Role
from orgaccess.models.permission import Permission


class RoleModelError(RuntimeError):
    """Role table violates a declared containment edge."""


P = Permission

_OWNER = frozenset(Permission)

_ADMIN = _OWNER - {P.ORG_BILLING, P.ORG_MEMBERS_DELETE, P.DEDICATED_SUPPORT}

_MANAGER = frozenset({
    P.LEADS_READ, P.LEADS_WRITE, P.LEADS_DELETE, P.LEADS_EXPORT, P.LEADS_ASSIGN,
    P.PROPERTIES_READ, P.PROPERTIES_WRITE, P.PROPERTIES_DELETE,
    P.PROPERTIES_PUBLISH, P.PROPERTIES_ASSIGN_AGENT,
    P.CAMPAIGNS_READ, P.CAMPAIGNS_WRITE, P.CAMPAIGNS_DELETE,
    P.CAMPAIGNS_ACTIVATE, P.CAMPAIGNS_VIEW_ANALYTICS,
    P.AUTOMATIONS_READ, P.AUTOMATIONS_WRITE, P.AUTOMATIONS_EXECUTE,
    P.INTEGRATIONS_READ, P.INTEGRATIONS_WRITE, P.INTEGRATIONS_SYNC,
    P.REPORTS_VIEW_BASIC, P.REPORTS_VIEW_ADVANCED, P.REPORTS_EXPORT,
    P.ORG_MEMBERS_READ,
})

_MEMBER = frozenset({
    P.LEADS_READ, P.LEADS_WRITE,
    P.PROPERTIES_READ, P.PROPERTIES_WRITE,
    P.CAMPAIGNS_READ, P.CAMPAIGNS_VIEW_ANALYTICS,
    P.AUTOMATIONS_READ,
    P.INTEGRATIONS_READ,
    P.REPORTS_VIEW_BASIC,
})

_VIEWER = frozenset({
    P.LEADS_READ,
    P.PROPERTIES_READ,
    P.CAMPAIGNS_READ,
    P.REPORTS_VIEW_BASIC,
})

ROLE_PERMISSIONS: Mapping[Role, FrozenSet[Permission]] = MappingProxyType({
    Role.OWNER: _OWNER,
    Role.ADMIN: _ADMIN,
    Role.MANAGER: _MANAGER,
    Role.MEMBER: _MEMBER,
    Role.VIEWER: _VIEWER,
})

# (higher, lower): permissions(higher) must include permissions(lower)
ROLE_CONTAINMENT: Tuple[Tuple[Role, Role], ...] = (
    (Role.OWNER, Role.ADMIN),
    (Role.ADMIN, Role.MANAGER),
    (Role.MANAGER, Role.MEMBER),
    (Role.MEMBER, Role.VIEWER),
)


def validate_role_containment(
    table: Optional[Mapping[Role, Iterable[Permission]]] = None,
    edges: Optional[Iterable[Tuple[Role, Role]]] = None,
) -> None:
    """
    Check every declared containment edge against the role table.

    Raises:
        RoleModelError: Naming the first violated edge and what is missing
    """
    table = ROLE_PERMISSIONS if table is None else table
    edges = ROLE_CONTAINMENT if edges is None else edges
    for higher, lower in edges:
        if higher not in table or lower not in table:
            raise RoleModelError(f"Containment edge {higher.value} -> {lower.value} references an undefined role")
        missing = set(table[lower]) - set(table[higher])
        if missing:
            names = ", ".join(sorted(p.value for p in missing))
            raise RoleModelError(
                f"Role {higher.value} must include every permission of {lower.value}; missing: {names}"
            )


def _closure(edges: Iterable[Tuple[Role, Role]]) -> Dict[Role, Set[Role]]:
    below: Dict[Role, Set[Role]] = {role: {role} for role in Role}
    changed = True
    while changed:
        changed = False
        for higher, lower in edges:
            before = len(below[higher])
            below[higher] |= below[lower]
            if len(below[higher]) != before:
                changed = True
    return below


_INCLUDES = _closure(ROLE_CONTAINMENT)


def permissions_for_role(role: Role) -> FrozenSet[Permission]:
    return ROLE_PERMISSIONS.get(Role(role), frozenset())


def role_includes(higher: Role, lower: Role) -> bool:
    """True when `higher` is `lower` or sits above it in the containment chain."""
    return Role(lower) in _INCLUDES[Role(higher)]


validate_role_containment()
