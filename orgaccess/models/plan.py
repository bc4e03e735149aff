"""
orgaccess/models/plan.py

Subscription plan tiers and their static configuration.
"""

from enum import Enum
from typing import Dict, FrozenSet

from pydantic import BaseModel, ConfigDict

from orgaccess.models.permission import Permission


class Plan(str, Enum):
    """Plan tiers, declared lowest to highest."""
    BASIC = "BASIC"
    PRO = "PRO"
    AGENCY = "AGENCY"
    ENTERPRISE = "ENTERPRISE"


# Limit value meaning "no cap"
UNLIMITED = -1


class PlanConfig(BaseModel):
    """
    Static configuration of one plan tier.

    limits: resource name -> max count (-1 = unlimited)
    features: permissions the plan unlocks (cumulative over lower tiers)
    """
    model_config = ConfigDict(frozen=True)

    plan: Plan
    name: str
    limits: Dict[str, int]
    features: FrozenSet[Permission]
