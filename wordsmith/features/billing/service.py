"""
Billing service orchestrator.

Business logic that coordinates:
- Checkout initiation
- Cancellation at period end
- Subscription read model for the billing page

All Stripe-specific code is in stripe_provider.py; webhook intake is in
webhooks.py.
"""
import logging
from typing import Optional, Dict, Any, List

from wordsmith.core.config import settings
from wordsmith.core.errors import (
    BillingProviderError,
    BillingUnavailableError,
    ConfigurationError,
    NotFoundError,
    ValidationError,
)
from wordsmith.features.billing.provider import BillingProvider, CheckoutSession
from wordsmith.features.billing.reconciler import load_subscription, reconcile
from wordsmith.features.billing.stripe_provider import StripeProvider
from wordsmith.features.plans.catalog import PlanCatalog
from wordsmith.features.workspaces.service import get_workspace, workspace_exists
from wordsmith.models.plan import Plan, PlanId
from wordsmith.models.subscription import SubscriptionStatus, SubscriptionUpdate


logger = logging.getLogger("wordsmith")

CANCEL_MESSAGE = "Subscription will be canceled at the end of the billing period"


def billing_enabled() -> bool:
    """Check if billing is enabled (Stripe configured)."""
    return bool(settings.STRIPE_SECRET_KEY)


def get_provider() -> Optional[BillingProvider]:
    """Get billing provider if billing is enabled."""
    if not billing_enabled():
        return None
    try:
        return StripeProvider()
    except BillingProviderError:
        return None


def _require_provider() -> BillingProvider:
    provider = get_provider()
    if provider is None:
        raise BillingUnavailableError("Billing is not configured")
    return provider


def list_plans(catalog: PlanCatalog) -> List[Plan]:
    return catalog.plans()


def default_success_url() -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/billing?success=true"


def default_cancel_url() -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/billing?canceled=true"


def start_checkout(
    workspace_id: str,
    plan_id: str,
    catalog: PlanCatalog,
    success_url: Optional[str] = None,
    cancel_url: Optional[str] = None,
) -> CheckoutSession:
    """
    Start a hosted checkout for a paid plan.

    The session carries {workspace_id, plan_id} as metadata on both the
    checkout and the subscription it creates; that is how later webhook
    events are tied back to the workspace.

    Args:
        workspace_id: Workspace being upgraded
        plan_id: Target plan id
        catalog: Plan catalog
        success_url: Redirect URL on success (defaults under FRONTEND_URL)
        cancel_url: Redirect URL on cancel (defaults under FRONTEND_URL)

    Returns:
        CheckoutSession(session_id, redirect_url)

    Raises:
        ValidationError: Unknown plan, or the free plan
        ConfigurationError: Plan has no Stripe price configured
        NotFoundError: Workspace does not exist
        BillingUnavailableError: Stripe is not configured
        BillingProviderError: Stripe rejected the request
    """
    plan = catalog.lookup(plan_id)
    if plan is None:
        raise ValidationError(f"Unknown plan: {plan_id}")
    if plan.is_free:
        raise ValidationError("The free plan does not require checkout")
    if not plan.external_price_ref:
        raise ConfigurationError(f"No Stripe price configured for plan: {plan.id.value}")
    if not workspace_exists(workspace_id):
        raise NotFoundError(f"Workspace not found: {workspace_id}")

    provider = _require_provider()
    metadata = {"workspace_id": workspace_id, "plan_id": plan.id.value}
    session = provider.create_checkout_session(
        price_id=plan.external_price_ref,
        success_url=success_url or default_success_url(),
        cancel_url=cancel_url or default_cancel_url(),
        metadata=metadata,
    )

    logger.info(
        "billing.checkout.started",
        extra={"workspace_id": workspace_id, "plan_id": plan.id.value, "session_id": session.session_id},
    )
    return session


def cancel_subscription(workspace_id: str, catalog: PlanCatalog) -> Dict[str, Any]:
    """
    Cancel the workspace's subscription at the end of the current period.

    Stripe keeps billing until period_end; locally the subscription is marked
    canceled while plan_id and period_end are preserved.

    Raises:
        NotFoundError: Workspace has no externally billed subscription
        BillingUnavailableError: Stripe is not configured
        BillingProviderError: Stripe rejected the request
    """
    subscription = load_subscription(workspace_id)
    if subscription is None or not subscription.external_subscription_ref:
        raise NotFoundError("No active subscription found")

    provider = _require_provider()
    provider.cancel_at_period_end(subscription.external_subscription_ref)

    result = reconcile(
        workspace_id,
        SubscriptionUpdate(status=SubscriptionStatus.CANCELED),
        catalog,
    )

    logger.info("billing.subscription.cancel_scheduled", extra={"workspace_id": workspace_id})
    return {"message": CANCEL_MESSAGE, "subscription": result.subscription}


def get_subscription_info(workspace_id: str) -> Dict[str, Any]:
    """
    Billing page view of a workspace.

    Workspaces that never checked out get a synthesized free/active entry.

    Returns:
        {
            "id": str | None,
            "plan_id": str,
            "status": str,
            "period_start": datetime | None,
            "period_end": datetime | None,
            "usage_count": int,
            "usage_limit": int
        }
    """
    workspace = get_workspace(workspace_id)
    subscription = load_subscription(workspace_id)

    if subscription is None:
        return {
            "id": None,
            "plan_id": PlanId.FREE.value,
            "status": SubscriptionStatus.ACTIVE.value,
            "period_start": None,
            "period_end": None,
            "usage_count": workspace.usage_count,
            "usage_limit": workspace.usage_limit,
        }

    return {
        "id": subscription.id,
        "plan_id": subscription.plan_id.value,
        "status": subscription.status.value,
        "period_start": subscription.period_start,
        "period_end": subscription.period_end,
        "usage_count": workspace.usage_count,
        "usage_limit": workspace.usage_limit,
    }
