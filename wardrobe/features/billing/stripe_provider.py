"""
Stripe billing provider implementation.

Implements BillingProvider protocol using the Stripe API.
Handles webhook signature verification and event parsing.
"""
import json
from typing import Dict, Any, List, Optional
import stripe

from wardrobe.features.billing.provider import (
    BillingEvent,
    BillingProviderError,
    BillingWebhookError,
    SubscriptionSnapshot,
)


SIGNATURE_TOLERANCE_SECONDS = 300


def _field(obj: Any, key: str, default: Any = None) -> Any:
    """Read a key from a Stripe object or plain dict."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError, AttributeError):
        return default
    return default if value is None else value


def _first_item(subscription: Any) -> Any:
    items = _field(_field(subscription, "items"), "data", [])
    return items[0] if items else None


def _period_bounds(subscription: Any) -> Dict[str, Optional[int]]:
    # Newer API versions report the period per subscription item.
    item = _first_item(subscription)
    return {
        "start": _field(item, "current_period_start") or _field(subscription, "current_period_start"),
        "end": _field(item, "current_period_end") or _field(subscription, "current_period_end"),
    }


def _id_of(value: Any) -> Optional[str]:
    """Expandable fields are either an id string or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return _field(value, "id")


def _client_secret(invoice: Any) -> Optional[str]:
    secret = _field(_field(invoice, "confirmation_secret"), "client_secret")
    if secret:
        return secret
    return _field(_field(invoice, "payment_intent"), "client_secret")


class StripeProvider:
    """Stripe implementation of BillingProvider protocol."""

    def __init__(self, secret_key: str, webhook_secret: Optional[str] = None):
        """
        Initialize Stripe provider.

        Args:
            secret_key: Stripe secret key
            webhook_secret: Stripe webhook signing secret
        """
        if not secret_key:
            raise BillingProviderError("STRIPE_SECRET_KEY not configured")

        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        stripe.api_key = self.secret_key

    def create_customer(self, user_id: str, email: Optional[str] = None) -> str:
        """Create Stripe customer tagged with the internal user id."""
        customer_data: Dict[str, Any] = {"metadata": {"user_id": user_id}}
        if email:
            customer_data["email"] = email
        try:
            customer = stripe.Customer.create(**customer_data)
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe customer creation failed: {e}")
        return customer.id

    def retrieve_customer(self, customer_id: str) -> Dict[str, Any]:
        try:
            customer = stripe.Customer.retrieve(customer_id)
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe customer lookup failed: {e}")
        return {
            "id": _field(customer, "id"),
            "email": _field(customer, "email"),
            "deleted": bool(_field(customer, "deleted", False)),
        }

    def list_prices(self, lookup_keys: List[str]) -> List[Dict[str, Any]]:
        try:
            prices = stripe.Price.list(lookup_keys=lookup_keys, expand=["data.product"])
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe price lookup failed: {e}")
        result = []
        for price in _field(prices, "data", []):
            product = _field(price, "product")
            result.append({
                "id": _field(price, "id"),
                "lookup_key": _field(price, "lookup_key"),
                "unit_amount": _field(price, "unit_amount"),
                "currency": _field(price, "currency"),
                "interval": _field(_field(price, "recurring"), "interval"),
                "product_name": _field(product, "name") if not isinstance(product, str) else None,
            })
        return result

    def create_subscription(self, customer_id: str, price_id: str) -> SubscriptionSnapshot:
        try:
            subscription = stripe.Subscription.create(
                customer=customer_id,
                items=[{"price": price_id}],
                payment_behavior="default_incomplete",
                payment_settings={"save_default_payment_method": "on_subscription"},
                expand=["latest_invoice.confirmation_secret"],
            )
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe subscription creation failed: {e}")
        return self._snapshot(subscription)

    def update_subscription(self, subscription_id: str, *, cancel_at_period_end: bool) -> SubscriptionSnapshot:
        try:
            subscription = stripe.Subscription.modify(
                subscription_id,
                cancel_at_period_end=cancel_at_period_end,
            )
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe subscription update failed: {e}")
        return self._snapshot(subscription)

    def retrieve_invoice_period(self, invoice_id: str) -> Dict[str, Optional[int]]:
        try:
            invoice = stripe.Invoice.retrieve(invoice_id)
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe invoice lookup failed: {e}")
        return {
            "period_start": _field(invoice, "period_start"),
            "period_end": _field(invoice, "period_end"),
        }

    def create_setup_intent(self, customer_id: str) -> Optional[str]:
        try:
            intent = stripe.SetupIntent.create(customer=customer_id, payment_method_types=["card"])
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe setup intent creation failed: {e}")
        return _field(intent, "client_secret")

    def retrieve_payment_intent(self, payment_intent_id: str) -> Dict[str, Any]:
        try:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id)
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe payment intent lookup failed: {e}")
        return {
            "status": _field(intent, "status"),
            "customer_id": _id_of(_field(intent, "customer")),
            "amount": _field(intent, "amount"),
            "currency": _field(intent, "currency"),
        }

    def create_checkout_session(self, customer_id: str, price_id: str, return_url: str) -> Dict[str, Any]:
        try:
            session = stripe.checkout.Session.create(
                ui_mode="custom",
                customer=customer_id,
                line_items=[{"price": price_id, "quantity": 1}],
                mode="subscription",
                return_url=return_url,
                automatic_tax={"enabled": True},
            )
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe checkout session creation failed: {e}")
        return {"session_id": _field(session, "id"), "client_secret": _field(session, "client_secret")}

    def retrieve_checkout_session(self, session_id: str) -> Dict[str, Any]:
        try:
            session = stripe.checkout.Session.retrieve(session_id)
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe checkout session lookup failed: {e}")
        return {
            "status": _field(session, "status"),
            "customer_id": _id_of(_field(session, "customer")),
            "customer_email": _field(_field(session, "customer_details"), "email"),
        }

    def handle_webhook(self, payload: bytes, signature: Optional[str]) -> BillingEvent:
        """Verify Stripe webhook signature and parse event."""
        if not self.webhook_secret:
            raise BillingWebhookError("STRIPE_WEBHOOK_SECRET not configured")
        if not signature:
            raise BillingWebhookError("Missing stripe-signature header")

        try:
            text = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                text, signature, self.webhook_secret, tolerance=SIGNATURE_TOLERANCE_SECONDS
            )
            event = json.loads(text)
        except UnicodeDecodeError as e:
            raise BillingWebhookError(f"Invalid payload encoding: {e}")
        except stripe.SignatureVerificationError as e:
            raise BillingWebhookError(f"Invalid signature: {e}")
        except ValueError as e:
            raise BillingWebhookError(f"Invalid payload: {e}")

        if not isinstance(event, dict) or "type" not in event:
            raise BillingWebhookError("Invalid payload: not a Stripe event")
        return self._parse_event(event)

    def _parse_event(self, event: Dict[str, Any]) -> BillingEvent:
        """Parse Stripe event into normalized BillingEvent."""
        event_type = event["type"]
        event_id = event.get("id", "")
        data = (event.get("data") or {}).get("object") or {}

        if not event_type.startswith("customer.subscription."):
            return BillingEvent(event_id=event_id, event_type=event_type)

        bounds = _period_bounds(data)
        price_id = _field(_field(_first_item(data), "price"), "id")
        return BillingEvent(
            event_id=event_id,
            event_type=event_type,
            customer_id=_id_of(data.get("customer")),
            subscription_id=data.get("id"),
            status=data.get("status"),
            price_id=price_id,
            current_period_start=bounds["start"],
            current_period_end=bounds["end"],
            cancel_at_period_end=data.get("cancel_at_period_end"),
            canceled_at=data.get("canceled_at"),
            latest_invoice_id=_id_of(data.get("latest_invoice")),
        )

    def _snapshot(self, subscription: Any) -> SubscriptionSnapshot:
        bounds = _period_bounds(subscription)
        invoice = _field(subscription, "latest_invoice")
        start, end = bounds["start"], bounds["end"]
        if not isinstance(invoice, str):
            start = start or _field(invoice, "period_start")
            end = end or _field(invoice, "period_end")
        return SubscriptionSnapshot(
            subscription_id=_field(subscription, "id"),
            customer_id=_id_of(_field(subscription, "customer")),
            status=_field(subscription, "status", "incomplete"),
            price_id=_field(_field(_first_item(subscription), "price"), "id"),
            current_period_start=start,
            current_period_end=end,
            cancel_at_period_end=bool(_field(subscription, "cancel_at_period_end", False)),
            canceled_at=_field(subscription, "canceled_at"),
            client_secret=None if isinstance(invoice, str) else _client_secret(invoice),
        )
