"""
orgaccess/models/permission.py

Permission identifiers and per-member custom permission overrides.
"""

from enum import Enum
from typing import FrozenSet, Iterable, List, Union

from pydantic import BaseModel, ConfigDict

from orgaccess.core.errors import ValidationError


class Permission(str, Enum):
    LEADS_READ = "LEADS_READ"
    LEADS_WRITE = "LEADS_WRITE"
    LEADS_DELETE = "LEADS_DELETE"
    LEADS_EXPORT = "LEADS_EXPORT"
    LEADS_BULK_ACTIONS = "LEADS_BULK_ACTIONS"
    LEADS_ASSIGN = "LEADS_ASSIGN"

    PROPERTIES_READ = "PROPERTIES_READ"
    PROPERTIES_WRITE = "PROPERTIES_WRITE"
    PROPERTIES_DELETE = "PROPERTIES_DELETE"
    PROPERTIES_PUBLISH = "PROPERTIES_PUBLISH"
    PROPERTIES_ASSIGN_AGENT = "PROPERTIES_ASSIGN_AGENT"
    PROPERTIES_IMPORT = "PROPERTIES_IMPORT"

    CAMPAIGNS_READ = "CAMPAIGNS_READ"
    CAMPAIGNS_WRITE = "CAMPAIGNS_WRITE"
    CAMPAIGNS_DELETE = "CAMPAIGNS_DELETE"
    CAMPAIGNS_ACTIVATE = "CAMPAIGNS_ACTIVATE"
    CAMPAIGNS_VIEW_ANALYTICS = "CAMPAIGNS_VIEW_ANALYTICS"
    CAMPAIGNS_MANAGE_BUDGET = "CAMPAIGNS_MANAGE_BUDGET"

    AUTOMATIONS_READ = "AUTOMATIONS_READ"
    AUTOMATIONS_WRITE = "AUTOMATIONS_WRITE"
    AUTOMATIONS_DELETE = "AUTOMATIONS_DELETE"
    AUTOMATIONS_EXECUTE = "AUTOMATIONS_EXECUTE"

    INTEGRATIONS_READ = "INTEGRATIONS_READ"
    INTEGRATIONS_WRITE = "INTEGRATIONS_WRITE"
    INTEGRATIONS_DELETE = "INTEGRATIONS_DELETE"
    INTEGRATIONS_SYNC = "INTEGRATIONS_SYNC"

    REPORTS_VIEW_BASIC = "REPORTS_VIEW_BASIC"
    REPORTS_VIEW_ADVANCED = "REPORTS_VIEW_ADVANCED"
    REPORTS_EXPORT = "REPORTS_EXPORT"
    REPORTS_SCHEDULE = "REPORTS_SCHEDULE"
    REPORTS_CUSTOM = "REPORTS_CUSTOM"

    ORG_SETTINGS = "ORG_SETTINGS"
    ORG_BILLING = "ORG_BILLING"
    ORG_MEMBERS_READ = "ORG_MEMBERS_READ"
    ORG_MEMBERS_WRITE = "ORG_MEMBERS_WRITE"
    ORG_MEMBERS_DELETE = "ORG_MEMBERS_DELETE"
    ORG_INVITE_MEMBERS = "ORG_INVITE_MEMBERS"

    API_ACCESS = "API_ACCESS"
    WHITE_LABEL = "WHITE_LABEL"
    CUSTOM_INTEGRATIONS = "CUSTOM_INTEGRATIONS"
    DEDICATED_SUPPORT = "DEDICATED_SUPPORT"
    BULK_OPERATIONS = "BULK_OPERATIONS"
    ADVANCED_ANALYTICS = "ADVANCED_ANALYTICS"


REVOKE_PREFIX = "!"


def parse_permission(value: Union[str, Permission]) -> Permission:
    """Resolve a permission identifier; unknown identifiers are a programmer error."""
    if isinstance(value, Permission):
        return value
    try:
        return Permission(str(value).strip().upper())
    except ValueError:
        raise ValidationError(
            f"Unknown permission identifier: {value!r}",
            code="unknown_permission",
            details={"permission": str(value)},
        )


class CustomPermissions(BaseModel):
    """
    Explicit per-member overrides layered on top of role defaults.

    Stored as a flat list of identifiers; a leading "!" marks a revocation
    (e.g. ["LEADS_DELETE", "!LEADS_EXPORT"]). A permission that is both
    granted and revoked is treated as revoked.
    """
    model_config = ConfigDict(frozen=True)

    grants: FrozenSet[Permission] = frozenset()
    revokes: FrozenSet[Permission] = frozenset()

    @classmethod
    def parse(cls, entries: Iterable[str] = ()) -> "CustomPermissions":
        grants = set()
        revokes = set()
        for raw in entries or ():
            entry = str(raw).strip()
            if entry.startswith(REVOKE_PREFIX):
                revokes.add(parse_permission(entry[len(REVOKE_PREFIX):]))
            else:
                grants.add(parse_permission(entry))
        return cls(grants=frozenset(grants), revokes=frozenset(revokes))

    def to_list(self) -> List[str]:
        """Storage form, sorted for stable persistence."""
        granted = sorted(p.value for p in self.grants)
        revoked = sorted(REVOKE_PREFIX + p.value for p in self.revokes)
        return granted + revoked

    def apply(self, base: Iterable[Permission]) -> FrozenSet[Permission]:
        return frozenset((set(base) | self.grants) - self.revokes)

    def is_empty(self) -> bool:
        return not self.grants and not self.revokes
