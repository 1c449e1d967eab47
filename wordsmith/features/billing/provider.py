"""
Billing provider protocol.

Defines the interface the billing service needs from a payment gateway.
This allows swapping providers (or a mock in tests) without changing
business logic.
"""
from typing import Protocol, Dict, Any, Optional
from dataclasses import dataclass

from wordsmith.core.errors import BillingProviderError


@dataclass(frozen=True)
class CheckoutSession:
    """Hosted checkout created for a workspace."""
    session_id: str
    redirect_url: str


class BillingProvider(Protocol):
    """
    Protocol for billing providers.

    Implementations must handle:
    - Checkout session creation
    - Scheduling cancellation at period end
    - Subscription lookup (for events that only carry a subscription ref)
    """

    def create_checkout_session(
        self,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> CheckoutSession:
        """
        Create a subscription-mode checkout session.

        Args:
            price_id: Provider price ID (e.g., Stripe price ID)
            success_url: URL to redirect on success
            cancel_url: URL to redirect on cancellation
            metadata: Correlation data, attached to the session and to the
                subscription it creates

        Returns:
            CheckoutSession with the provider session id and redirect URL

        Raises:
            BillingProviderError: If session creation fails
        """
        ...

    def cancel_at_period_end(self, subscription_ref: str) -> Dict[str, Any]:
        """
        Ask the provider to cancel a subscription when the current period ends.

        Args:
            subscription_ref: Provider subscription ID

        Returns:
            The provider's subscription object

        Raises:
            BillingProviderError: If the provider call fails
        """
        ...

    def retrieve_subscription(self, subscription_ref: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a subscription object by its provider ID.

        Returns:
            The subscription as a plain dict, or None if it does not exist

        Raises:
            BillingProviderError: If the provider call fails
        """
        ...


__all__ = ["BillingProvider", "BillingProviderError", "CheckoutSession"]
