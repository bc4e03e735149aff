"""
orgaccess/models/membership.py

Membership binds an actor to an organization with a role.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from orgaccess.models.permission import CustomPermissions


class Role(str, Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    MEMBER = "MEMBER"
    VIEWER = "VIEWER"


class MembershipStatus(str, Enum):
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"


class Membership(BaseModel):
    """
    Membership of one actor in one organization.

    Constraint: at most one ACTIVE membership per (actor_id, org_id), and
    exactly one OWNER per organization.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    org_id: str
    actor_id: str
    role: Role
    status: MembershipStatus = MembershipStatus.ACTIVE
    custom_permissions: CustomPermissions = Field(default_factory=CustomPermissions)
    joined_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == MembershipStatus.ACTIVE
