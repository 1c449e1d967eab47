"""
wordsmith/models/webhook_event.py

Authenticated Stripe webhook event.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict


class EventType(str, Enum):
    """Stripe event tags the dispatcher handles."""
    CHECKOUT_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    PAYMENT_FAILED = "invoice.payment_failed"

    @classmethod
    def from_tag(cls, tag: str) -> Optional["EventType"]:
        try:
            return cls(tag)
        except ValueError:
            return None


class WebhookEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: str
    created: datetime
    data: Dict[str, Any]

    @property
    def kind(self) -> Optional[EventType]:
        return EventType.from_tag(self.type)

    @property
    def metadata(self) -> Dict[str, Any]:
        return self.data.get("metadata") or {}
