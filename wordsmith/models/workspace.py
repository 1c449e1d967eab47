"""
wordsmith/models/workspace.py

Workspace model: the tenant that owns a subscription and the usage counters.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict


class Workspace(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    owner_user_id: str
    name: str
    usage_count: int
    usage_limit: int
    created_at: Optional[datetime] = None


class UsageStats(BaseModel):
    usage_count: int
    usage_limit: int
    remaining: int
    percentage_used: int
