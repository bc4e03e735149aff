from typing import Optional
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class Organization(BaseModel):
    """Tenant boundary; owns memberships and one subscription."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    created_at: Optional[datetime] = None
