"""
Stripe billing provider implementation.

Implements the BillingProvider protocol using the Stripe API.
Webhook signature verification lives in webhooks.py.
"""
from typing import Dict, Any, Optional
import stripe

from wordsmith.core.config import settings
from wordsmith.core.errors import BillingProviderError
from wordsmith.features.billing.provider import CheckoutSession


def _to_dict(obj: Any) -> Dict[str, Any]:
    if obj is None:
        return {}
    if hasattr(obj, "to_dict_recursive"):
        return obj.to_dict_recursive()
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


class StripeProvider:
    """Stripe implementation of BillingProvider protocol."""

    def __init__(self, secret_key: Optional[str] = None):
        """
        Initialize Stripe provider.

        Args:
            secret_key: Stripe secret key (defaults to STRIPE_SECRET_KEY setting)
        """
        self.secret_key = secret_key or settings.STRIPE_SECRET_KEY

        if not self.secret_key:
            raise BillingProviderError("STRIPE_SECRET_KEY not configured")

        stripe.api_key = self.secret_key

    def create_checkout_session(
        self,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> CheckoutSession:
        """Create Stripe checkout session."""
        try:
            session = stripe.checkout.Session.create(
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                mode="subscription",
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata,
                subscription_data={"metadata": metadata},
            )
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe checkout session creation failed: {e}")
        return CheckoutSession(session_id=session.id, redirect_url=session.url)

    def cancel_at_period_end(self, subscription_ref: str) -> Dict[str, Any]:
        """Set cancel_at_period_end on a Stripe subscription."""
        try:
            subscription = stripe.Subscription.modify(
                subscription_ref,
                cancel_at_period_end=True,
            )
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe subscription cancellation failed: {e}")
        return _to_dict(subscription)

    def retrieve_subscription(self, subscription_ref: str) -> Optional[Dict[str, Any]]:
        """Retrieve a Stripe subscription, or None if Stripe does not know it."""
        try:
            subscription = stripe.Subscription.retrieve(subscription_ref)
        except stripe.InvalidRequestError:
            return None
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe subscription lookup failed: {e}")
        return _to_dict(subscription)
