"""Test doubles and helpers shared by the test modules."""
import hashlib
import hmac
import json
import time
from typing import Any, Dict, List, Optional

from wardrobe.core.errors import UpstreamServiceError
from wardrobe.features.billing.provider import BillingEvent, BillingWebhookError, SubscriptionSnapshot
from wardrobe.features.items.labeler import analyze_labels
from wardrobe.models.wardrobe import ItemAnalysis, OutfitResponse, OutfitSuggestion, StylePreferences, WardrobeItem


WEBHOOK_SECRET = "whsec_test_secret"
PRICE_BASIC = "price_basic_test"
PRICE_PREMIUM = "price_premium_test"


class FakeLabeler:
    def __init__(self, labels: Optional[List[str]] = None, fail: bool = False):
        self.labels = labels or ["Shirt", "Casual", "Blue"]
        self.fail = fail
        self.calls: List[str] = []

    def classify(self, image_url: str) -> ItemAnalysis:
        self.calls.append(image_url)
        if self.fail:
            raise UpstreamServiceError("Image classification failed: ConnectError")
        return analyze_labels(self.labels)


class FakeRecommender:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[List[WardrobeItem]] = []

    def suggest(self, wardrobe: List[WardrobeItem], preferences: StylePreferences) -> OutfitResponse:
        self.calls.append(list(wardrobe))
        if self.fail:
            raise UpstreamServiceError("Outfit generation failed: APIConnectionError")
        by_category: Dict[str, str] = {}
        for item in wardrobe:
            by_category.setdefault(item.category, item.id)
        pieces = {key: by_category.get(key, wardrobe[0].id) for key in ("Top", "Bottom", "Shoes")}
        return OutfitResponse(outfits=[OutfitSuggestion(outfit_id="Outfit 1", outfit_pieces=pieces, match=90)])


class FakeBillingProvider:
    """In-memory BillingProvider. `events` are returned by handle_webhook in order."""

    def __init__(self, events: Optional[List[BillingEvent]] = None, invoice_periods: Optional[Dict[str, Dict]] = None):
        self.events = list(events or [])
        self.invoice_periods = invoice_periods or {}
        self.customers: List[str] = []
        self.deleted_customers: set = set()
        self.subscriptions: Dict[str, SubscriptionSnapshot] = {}
        self.setup_intents: List[str] = []
        self.payment_intents: Dict[str, Dict[str, Any]] = {}
        self.checkout_sessions: Dict[str, Dict[str, Any]] = {}

    def create_customer(self, user_id: str, email: Optional[str] = None) -> str:
        customer_id = f"cus_{len(self.customers) + 1}"
        self.customers.append(customer_id)
        return customer_id

    def retrieve_customer(self, customer_id: str) -> Dict[str, Any]:
        return {"id": customer_id, "email": None, "deleted": customer_id in self.deleted_customers}

    def list_prices(self, lookup_keys: List[str]) -> List[Dict[str, Any]]:
        return [{"id": f"price_{key}", "lookup_key": key} for key in lookup_keys]

    def create_subscription(self, customer_id: str, price_id: str) -> SubscriptionSnapshot:
        snapshot = SubscriptionSnapshot(
            subscription_id=f"sub_{len(self.subscriptions) + 1}",
            customer_id=customer_id,
            status="incomplete",
            price_id=price_id,
            current_period_start=1_760_000_000,
            current_period_end=1_762_592_000,
            client_secret="pi_secret_123",
        )
        self.subscriptions[snapshot.subscription_id] = snapshot
        return snapshot

    def update_subscription(self, subscription_id: str, *, cancel_at_period_end: bool) -> SubscriptionSnapshot:
        current = self.subscriptions.get(subscription_id) or SubscriptionSnapshot(
            subscription_id=subscription_id,
            customer_id="cus_1",
            status="active",
            price_id=PRICE_BASIC,
            current_period_start=None,
            current_period_end=None,
        )
        updated = SubscriptionSnapshot(
            subscription_id=current.subscription_id,
            customer_id=current.customer_id,
            status=current.status,
            price_id=current.price_id,
            current_period_start=current.current_period_start,
            current_period_end=current.current_period_end,
            cancel_at_period_end=cancel_at_period_end,
        )
        self.subscriptions[subscription_id] = updated
        return updated

    def retrieve_invoice_period(self, invoice_id: str) -> Dict[str, Optional[int]]:
        return self.invoice_periods.get(invoice_id, {"period_start": None, "period_end": None})

    def create_setup_intent(self, customer_id: str) -> Optional[str]:
        self.setup_intents.append(customer_id)
        return f"seti_secret_{len(self.setup_intents)}"

    def retrieve_payment_intent(self, payment_intent_id: str) -> Dict[str, Any]:
        return self.payment_intents[payment_intent_id]

    def create_checkout_session(self, customer_id: str, price_id: str, return_url: str) -> Dict[str, Any]:
        session_id = f"cs_{len(self.checkout_sessions) + 1}"
        self.checkout_sessions[session_id] = {
            "status": "open",
            "customer_id": customer_id,
            "customer_email": None,
            "price_id": price_id,
            "return_url": return_url,
        }
        return {"session_id": session_id, "client_secret": f"{session_id}_secret"}

    def retrieve_checkout_session(self, session_id: str) -> Dict[str, Any]:
        return self.checkout_sessions[session_id]

    def handle_webhook(self, payload: bytes, signature: Optional[str]) -> BillingEvent:
        if signature != "valid":
            raise BillingWebhookError("Invalid signature")
        return self.events.pop(0)


def subscription_event(
    event_type: str = "customer.subscription.updated",
    *,
    customer_id: Optional[str] = "cus_1",
    status: str = "active",
    price_id: Optional[str] = PRICE_BASIC,
    period_start: Optional[int] = 1_760_000_000,
    period_end: Optional[int] = 1_762_592_000,
    cancel_at_period_end: bool = False,
    latest_invoice_id: Optional[str] = None,
) -> BillingEvent:
    return BillingEvent(
        event_id="evt_1",
        event_type=event_type,
        customer_id=customer_id,
        subscription_id="sub_1",
        status=status,
        price_id=price_id,
        current_period_start=period_start,
        current_period_end=period_end,
        cancel_at_period_end=cancel_at_period_end,
        latest_invoice_id=latest_invoice_id,
    )


def stripe_subscription_payload(
    event_type: str = "customer.subscription.updated",
    *,
    customer_id: str = "cus_1",
    status: str = "active",
    price_id: str = PRICE_PREMIUM,
    period_end: int = 1_762_592_000,
) -> bytes:
    event = {
        "id": "evt_stripe_1",
        "object": "event",
        "type": event_type,
        "data": {
            "object": {
                "id": "sub_stripe_1",
                "object": "subscription",
                "customer": customer_id,
                "status": status,
                "cancel_at_period_end": False,
                "canceled_at": None,
                "items": {
                    "data": [{
                        "price": {"id": price_id},
                        "current_period_start": period_end - 30 * 86400,
                        "current_period_end": period_end,
                    }],
                },
            },
        },
    }
    return json.dumps(event).encode("utf-8")


def stripe_signature(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Stripe-Signature header value (t=...,v1=...) for a payload."""
    ts = int(timestamp if timestamp is not None else time.time())
    signed = f"{ts}.{payload.decode('utf-8')}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"
