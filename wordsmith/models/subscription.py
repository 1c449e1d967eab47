"""
wordsmith/models/subscription.py

Subscription state for a workspace, and the partial update the reconciler
applies to it.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict

from wordsmith.models.plan import PlanId


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class Subscription(BaseModel):
    """
    Subscription represents a workspace's billing state.

    Constraint: at most one subscription per workspace.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    workspace_id: str
    external_subscription_ref: Optional[str] = None
    plan_id: PlanId
    status: SubscriptionStatus
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    last_event_at: Optional[datetime] = None


class SubscriptionUpdate(BaseModel):
    """
    Partial update. Only fields explicitly set are written; an explicit None
    clears the column, an omitted field leaves it untouched.

    event_at is the provider event timestamp used for ordering and is not a
    subscription field in its own right.
    """
    model_config = ConfigDict(frozen=True)

    external_subscription_ref: Optional[str] = None
    plan_id: Optional[PlanId] = None
    status: Optional[SubscriptionStatus] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    event_at: Optional[datetime] = None

    def changes(self) -> Dict[str, Any]:
        """Column values for the fields present in this update."""
        values = self.model_dump(exclude_unset=True, exclude={"event_at"})
        for key in ("plan_id", "status"):
            if values.get(key) is not None:
                values[key] = values[key].value
        return values
