"""
Billing provider protocol.

Defines the interface for billing providers (Stripe, etc.).
This allows swapping providers, or faking them in tests, without changing
the webhook ingestor or the subscription lifecycle service.
"""
from typing import Protocol, Dict, Any, List, Optional
from dataclasses import dataclass

from wardrobe.core.errors import SignatureInvalidError, UpstreamServiceError


@dataclass(frozen=True)
class BillingEvent:
    """Verified billing event, normalized from the provider's payload.

    Subscription fields are only populated for subscription events. Period
    bounds and timestamps are epoch seconds.
    """
    event_id: str
    event_type: str
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    status: Optional[str] = None
    price_id: Optional[str] = None
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    cancel_at_period_end: Optional[bool] = None
    canceled_at: Optional[int] = None
    latest_invoice_id: Optional[str] = None


@dataclass(frozen=True)
class SubscriptionSnapshot:
    """Provider-side subscription state as returned by create/update/retrieve."""
    subscription_id: str
    customer_id: Optional[str]
    status: str
    price_id: Optional[str]
    current_period_start: Optional[int]
    current_period_end: Optional[int]
    cancel_at_period_end: bool = False
    canceled_at: Optional[int] = None
    client_secret: Optional[str] = None


class BillingProvider(Protocol):
    """
    Protocol for billing providers.

    Implementations must handle:
    - Customer creation and lookup
    - Subscription creation and update
    - Price lookup
    - Card setup, payment intent lookup and embedded checkout sessions
    - Webhook signature verification and parsing
    """

    def create_customer(self, user_id: str, email: Optional[str] = None) -> str:
        """
        Create a billing customer for the user.

        Returns:
            Provider customer ID (e.g., Stripe customer ID)

        Raises:
            BillingProviderError: If customer creation fails
        """
        ...

    def retrieve_customer(self, customer_id: str) -> Dict[str, Any]:
        ...

    def list_prices(self, lookup_keys: List[str]) -> List[Dict[str, Any]]:
        ...

    def create_subscription(self, customer_id: str, price_id: str) -> SubscriptionSnapshot:
        """
        Create an incomplete subscription awaiting payment confirmation.

        The snapshot carries the client secret the frontend needs to confirm
        the first payment.
        """
        ...

    def update_subscription(self, subscription_id: str, *, cancel_at_period_end: bool) -> SubscriptionSnapshot:
        ...

    def retrieve_invoice_period(self, invoice_id: str) -> Dict[str, Optional[int]]:
        """Return {"period_start": ..., "period_end": ...} for an invoice."""
        ...

    def create_setup_intent(self, customer_id: str) -> Optional[str]:
        """Start a card setup for replacing the payment method. Returns its client secret."""
        ...

    def retrieve_payment_intent(self, payment_intent_id: str) -> Dict[str, Any]:
        """Return {"status", "customer_id", "amount", "currency"}."""
        ...

    def create_checkout_session(self, customer_id: str, price_id: str, return_url: str) -> Dict[str, Any]:
        """
        Create an embedded subscription checkout for one price.

        Returns:
            {"session_id": str, "client_secret": str | None}
        """
        ...

    def retrieve_checkout_session(self, session_id: str) -> Dict[str, Any]:
        """Return {"status", "customer_id", "customer_email"}."""
        ...

    def handle_webhook(self, payload: bytes, signature: Optional[str]) -> BillingEvent:
        """
        Verify webhook signature and parse event.

        Raises:
            BillingWebhookError: If signature invalid or payload unparseable
        """
        ...


class BillingProviderError(UpstreamServiceError):
    """Billing provider call failed; retryable."""
    pass


class BillingWebhookError(SignatureInvalidError):
    """Webhook payload could not be authenticated."""
    pass
