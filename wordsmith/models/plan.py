"""
wordsmith/models/plan.py

Plan model: a purchasable tier with a monthly generation quota.
"""

from enum import Enum
from typing import Literal, Optional, Tuple, Union
from pydantic import BaseModel, ConfigDict


UNLIMITED = "unlimited"


class PlanId(str, Enum):
    FREE = "free"
    STARTER = "starter"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class Plan(BaseModel):
    """
    Plan represents a capability tier.

    Invariant: the free plan has no external price reference and can
    never be the target of a checkout.
    """
    model_config = ConfigDict(frozen=True)

    id: PlanId
    name: str
    price_cents: int
    price_display: str
    monthly_quota: Union[int, Literal["unlimited"]]
    features: Tuple[str, ...] = ()
    external_price_ref: Optional[str] = None

    @property
    def is_free(self) -> bool:
        return self.id is PlanId.FREE

    @property
    def is_unlimited(self) -> bool:
        return self.monthly_quota == UNLIMITED
