"""
wordsmith/features/plans/catalog.py

Plan catalog: the static plan → price/quota table.

The catalog is built once at process start from settings (Stripe price ids)
and handed to every consumer; it cannot be mutated afterwards.
"""

from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Union

from wordsmith.models.plan import Plan, PlanId, UNLIMITED


# Finite stand-in for "unlimited" so quota checks stay integer comparisons
UNLIMITED_QUOTA = 999_999


# Default plan configurations; price_setting names the Settings field holding the Stripe price id
DEFAULT_PLANS = {
    PlanId.FREE: {
        "name": "Free",
        "price_cents": 0,
        "price_display": "$0/month",
        "monthly_quota": 100,
        "price_setting": None,
        "features": (
            "100 generations per month",
            "All content modules",
            "Basic templates",
            "Email support",
        ),
    },
    PlanId.STARTER: {
        "name": "Starter",
        "price_cents": 1500,
        "price_display": "$15/month",
        "monthly_quota": 500,
        "price_setting": "STRIPE_STARTER_PRICE_ID",
        "features": (
            "500 generations per month",
            "All content modules",
            "All templates",
            "Brand voice customization",
            "Priority email support",
        ),
    },
    PlanId.PRO: {
        "name": "Pro",
        "price_cents": 9900,
        "price_display": "$99/month",
        "monthly_quota": UNLIMITED,
        "price_setting": "STRIPE_PRO_PRICE_ID",
        "features": (
            "Unlimited generations",
            "All content modules",
            "All templates + custom templates",
            "Advanced brand voice",
            "Bulk CSV generation",
            "Priority support",
            "API access",
        ),
    },
    PlanId.ENTERPRISE: {
        "name": "Enterprise",
        "price_cents": 29900,
        "price_display": "$299+/month",
        "monthly_quota": UNLIMITED,
        "price_setting": "STRIPE_ENTERPRISE_PRICE_ID",
        "features": (
            "Everything in Pro",
            "Team collaboration",
            "Custom integrations",
            "Dedicated account manager",
            "SLA guarantee",
            "Custom training",
        ),
    },
}


class PlanCatalog:
    """Read-only plan table keyed by PlanId."""

    __slots__ = ("_plans",)

    def __init__(self, plans: Iterable[Plan]):
        table = {}
        for plan in plans:
            if plan.is_free and plan.external_price_ref:
                raise ValueError("The free plan cannot carry an external price reference")
            table[plan.id] = plan
        if PlanId.FREE not in table:
            raise ValueError("Plan catalog must define the free plan")
        self._plans: Mapping[PlanId, Plan] = MappingProxyType(table)

    def __setattr__(self, name, value):
        if hasattr(self, "_plans"):
            raise AttributeError("PlanCatalog is immutable")
        object.__setattr__(self, name, value)

    def lookup(self, plan_id: Union[str, PlanId, None]) -> Optional[Plan]:
        """Plan for an id, or None when the id is not in the catalog."""
        if plan_id is None:
            return None
        try:
            key = PlanId(plan_id)
        except ValueError:
            return None
        return self._plans.get(key)

    def quota_of(self, plan_id: Union[str, PlanId]) -> int:
        """Numeric monthly quota; raises KeyError for unknown plans."""
        plan = self.lookup(plan_id)
        if plan is None:
            raise KeyError(plan_id)
        if plan.is_unlimited:
            return UNLIMITED_QUOTA
        return int(plan.monthly_quota)

    def plans(self) -> List[Plan]:
        """All plans in tier order."""
        return [self._plans[plan_id] for plan_id in PlanId if plan_id in self._plans]

    def __contains__(self, plan_id) -> bool:
        return self.lookup(plan_id) is not None


def build_plan_catalog(settings_obj) -> PlanCatalog:
    """Build the catalog from DEFAULT_PLANS, resolving Stripe price ids from settings."""
    plans = []
    for plan_id, config in DEFAULT_PLANS.items():
        price_setting = config["price_setting"]
        price_ref = getattr(settings_obj, price_setting, None) if price_setting else None
        plans.append(
            Plan(
                id=plan_id,
                name=config["name"],
                price_cents=config["price_cents"],
                price_display=config["price_display"],
                monthly_quota=config["monthly_quota"],
                features=config["features"],
                external_price_ref=price_ref or None,
            )
        )
    return PlanCatalog(plans)
