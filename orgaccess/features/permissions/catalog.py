"""
orgaccess/features/permissions/catalog.py

Static permission catalog: minimum plan tier and human description for
every permission. Descriptions feed upgrade prompts and the permission
matrix UI.
"""

from typing import Dict, FrozenSet, List, Union

from pydantic import BaseModel, ConfigDict

from orgaccess.models.permission import Permission, parse_permission
from orgaccess.models.plan import Plan


class PermissionSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    permission: Permission
    min_plan: Plan
    description: str


# Tier in which each permission first becomes available
_PLAN_INTRODUCES: Dict[Plan, List[Permission]] = {
    Plan.BASIC: [
        Permission.LEADS_READ,
        Permission.LEADS_WRITE,
        Permission.PROPERTIES_READ,
        Permission.PROPERTIES_WRITE,
        Permission.CAMPAIGNS_READ,
        Permission.REPORTS_VIEW_BASIC,
        Permission.INTEGRATIONS_READ,
        Permission.ORG_MEMBERS_READ,
    ],
    Plan.PRO: [
        Permission.LEADS_DELETE,
        Permission.LEADS_EXPORT,
        Permission.LEADS_BULK_ACTIONS,
        Permission.LEADS_ASSIGN,
        Permission.PROPERTIES_DELETE,
        Permission.PROPERTIES_PUBLISH,
        Permission.PROPERTIES_ASSIGN_AGENT,
        Permission.PROPERTIES_IMPORT,
        Permission.CAMPAIGNS_WRITE,
        Permission.CAMPAIGNS_DELETE,
        Permission.CAMPAIGNS_ACTIVATE,
        Permission.CAMPAIGNS_VIEW_ANALYTICS,
        Permission.AUTOMATIONS_READ,
        Permission.AUTOMATIONS_WRITE,
        Permission.AUTOMATIONS_EXECUTE,
        Permission.INTEGRATIONS_WRITE,
        Permission.INTEGRATIONS_SYNC,
        Permission.REPORTS_VIEW_ADVANCED,
        Permission.REPORTS_EXPORT,
    ],
    Plan.AGENCY: [
        Permission.AUTOMATIONS_DELETE,
        Permission.INTEGRATIONS_DELETE,
        Permission.REPORTS_SCHEDULE,
        Permission.REPORTS_CUSTOM,
        Permission.CAMPAIGNS_MANAGE_BUDGET,
        Permission.ORG_SETTINGS,
        Permission.ORG_INVITE_MEMBERS,
        Permission.ORG_MEMBERS_WRITE,
        Permission.API_ACCESS,
        Permission.WHITE_LABEL,
        Permission.BULK_OPERATIONS,
        Permission.ADVANCED_ANALYTICS,
    ],
    Plan.ENTERPRISE: [
        Permission.CUSTOM_INTEGRATIONS,
        Permission.DEDICATED_SUPPORT,
        Permission.ORG_MEMBERS_DELETE,
        Permission.ORG_BILLING,
    ],
}

_DESCRIPTIONS: Dict[Permission, str] = {
    Permission.LEADS_READ: "View leads and their details",
    Permission.LEADS_WRITE: "Create and edit leads",
    Permission.LEADS_DELETE: "Delete leads",
    Permission.LEADS_EXPORT: "Export leads to CSV/Excel",
    Permission.LEADS_BULK_ACTIONS: "Perform bulk operations on leads",
    Permission.LEADS_ASSIGN: "Assign leads to team members",
    Permission.PROPERTIES_READ: "View properties and listings",
    Permission.PROPERTIES_WRITE: "Create and edit properties",
    Permission.PROPERTIES_DELETE: "Delete properties",
    Permission.PROPERTIES_PUBLISH: "Publish properties to listings",
    Permission.PROPERTIES_ASSIGN_AGENT: "Assign properties to agents",
    Permission.PROPERTIES_IMPORT: "Import properties from external sources",
    Permission.CAMPAIGNS_READ: "View campaigns and their performance",
    Permission.CAMPAIGNS_WRITE: "Create and edit campaigns",
    Permission.CAMPAIGNS_DELETE: "Delete campaigns",
    Permission.CAMPAIGNS_ACTIVATE: "Activate and pause campaigns",
    Permission.CAMPAIGNS_VIEW_ANALYTICS: "View detailed campaign analytics",
    Permission.CAMPAIGNS_MANAGE_BUDGET: "Manage campaign budgets",
    Permission.AUTOMATIONS_READ: "View automation workflows",
    Permission.AUTOMATIONS_WRITE: "Create and edit automations",
    Permission.AUTOMATIONS_DELETE: "Delete automations",
    Permission.AUTOMATIONS_EXECUTE: "Manually trigger automations",
    Permission.INTEGRATIONS_READ: "View connected integrations",
    Permission.INTEGRATIONS_WRITE: "Connect and configure integrations",
    Permission.INTEGRATIONS_DELETE: "Disconnect integrations",
    Permission.INTEGRATIONS_SYNC: "Trigger manual syncs",
    Permission.REPORTS_VIEW_BASIC: "View basic reports and dashboards",
    Permission.REPORTS_VIEW_ADVANCED: "View advanced analytics and insights",
    Permission.REPORTS_EXPORT: "Export reports to PDF/Excel",
    Permission.REPORTS_SCHEDULE: "Schedule automated report delivery",
    Permission.REPORTS_CUSTOM: "Create custom reports",
    Permission.ORG_SETTINGS: "Manage organization settings",
    Permission.ORG_BILLING: "Access billing and subscription management",
    Permission.ORG_MEMBERS_READ: "View organization members",
    Permission.ORG_MEMBERS_WRITE: "Manage member roles and permissions",
    Permission.ORG_MEMBERS_DELETE: "Remove members from organization",
    Permission.ORG_INVITE_MEMBERS: "Invite new members to organization",
    Permission.API_ACCESS: "Access API keys and documentation",
    Permission.WHITE_LABEL: "Customize branding and white-label features",
    Permission.CUSTOM_INTEGRATIONS: "Create custom integrations and webhooks",
    Permission.DEDICATED_SUPPORT: "Access dedicated support channels",
    Permission.BULK_OPERATIONS: "Perform advanced bulk operations",
    Permission.ADVANCED_ANALYTICS: "Access advanced analytics and AI insights",
}


def _build_catalog() -> Dict[Permission, PermissionSpec]:
    catalog: Dict[Permission, PermissionSpec] = {}
    for plan, introduced in _PLAN_INTRODUCES.items():
        for permission in introduced:
            if permission in catalog:
                raise RuntimeError(f"Permission {permission.value} introduced by more than one plan")
            catalog[permission] = PermissionSpec(
                permission=permission,
                min_plan=plan,
                description=_DESCRIPTIONS[permission],
            )
    uncatalogued = set(Permission) - set(catalog)
    if uncatalogued:
        names = ", ".join(sorted(p.value for p in uncatalogued))
        raise RuntimeError(f"Permissions missing from catalog: {names}")
    return catalog


PERMISSION_CATALOG: Dict[Permission, PermissionSpec] = _build_catalog()


def get_permission_spec(permission: Union[str, Permission]) -> PermissionSpec:
    return PERMISSION_CATALOG[parse_permission(permission)]


def required_plan_for(permission: Union[str, Permission]) -> Plan:
    """Lowest plan that unlocks the permission."""
    return get_permission_spec(permission).min_plan


def describe(permission: Union[str, Permission]) -> str:
    return get_permission_spec(permission).description



def permissions_for_plan(plan: Plan) -> FrozenSet[Permission]:
    """Every permission unlocked at `plan`, including lower tiers."""
    plan = Plan(plan)
    unlocked = set()
    for tier, introduced in _PLAN_INTRODUCES.items():
        unlocked.update(introduced)
        if tier == plan:
            break
    return frozenset(unlocked)
