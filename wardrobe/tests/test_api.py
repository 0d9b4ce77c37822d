"""
HTTP surface: routing, identity and the error contract.
"""
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from wardrobe.core.config import Settings
from wardrobe.features.profiles.store import SqlProfileStore
from wardrobe.features.usage.service import week_start_ms
from wardrobe.main import create_app
from wardrobe.services import build_services
from wardrobe.tests.fakes import (
    PRICE_BASIC,
    PRICE_PREMIUM,
    FakeBillingProvider,
    FakeLabeler,
    FakeRecommender,
    subscription_event,
)


USER = {"X-User-Id": "user-1"}


@pytest.fixture
def provider():
    return FakeBillingProvider()


@pytest.fixture
def store():
    return SqlProfileStore()


@pytest.fixture
def client(dev_auth, store, provider):
    cfg = Settings(STRIPE_PRICE_BASIC=PRICE_BASIC, STRIPE_PRICE_PREMIUM=PRICE_PREMIUM, STRIPE_PUBLISHABLE_KEY="pk_test")
    services = build_services(
        cfg,
        store=store,
        billing_provider=provider,
        labeler=FakeLabeler(["Shirt", "Blue"]),
        recommender=FakeRecommender(),
    )
    return TestClient(create_app(services))


@pytest.fixture
def client_without_billing(dev_auth, store):
    services = build_services(
        Settings(STRIPE_SECRET_KEY=None),
        store=store,
        labeler=FakeLabeler(),
        recommender=FakeRecommender(),
    )
    return TestClient(create_app(services))


def _upload(client):
    item = client.post("/api/items", json={"image_url": "https://img.test/1.jpg"}, headers=USER).json()
    return client.post(f"/api/items/{item['item_id']}/analyze", headers=USER)


def test_missing_identity_is_401(client):
    res = client.get("/api/usage")
    assert res.status_code == 401
    body = res.json()
    assert body["error"]["code"] == "unauthorized"
    assert body["error"]["request_id"]
    assert res.headers["x-request-id"] == body["error"]["request_id"]


def test_request_id_echoed(client):
    res = client.get("/api/usage", headers={**USER, "x-request-id": "req-123"})
    assert res.headers["x-request-id"] == "req-123"


def test_malformed_request_id_is_replaced(client):
    res = client.get("/api/usage", headers={**USER, "x-request-id": "not a token"})
    assert res.headers["x-request-id"] != "not a token"
    assert len(res.headers["x-request-id"]) == 32


def test_register_and_list_items(client):
    res = client.post("/api/items", json={"image_url": "https://img.test/1.jpg"}, headers=USER)
    assert res.status_code == 201
    assert res.json()["status"] == "pending"

    listed = client.get("/api/items", headers=USER).json()
    assert [i["item_id"] for i in listed] == [res.json()["item_id"]]


def test_analyze_item_charges_quota(client):
    res = _upload(client)
    assert res.status_code == 200
    assert res.json()["category"] == "Top"

    usage = client.get("/api/usage", headers=USER).json()
    assert usage["image_uploads"] == {"used": 1, "remaining": 7, "total": 8}


def test_analyze_unknown_item_is_404(client):
    res = client.post("/api/items/nope/analyze", headers=USER)
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "not_found"


def test_limit_reached_is_429_with_reason(client, store):
    store.set("user-1", {"image_uploads": 8, "week_start_timestamp": week_start_ms(datetime.now(timezone.utc))})

    res = _upload(client)

    assert res.status_code == 429
    error = res.json()["error"]
    assert error["code"] == "quota_exceeded"
    assert error["reason"] == "limit_reached"
    assert error["remaining"] == 0


def test_inactive_subscription_is_403(client, store):
    store.set("user-1", {"subscription_tier": "basic", "subscription_status": "past_due"})

    res = _upload(client)

    assert res.status_code == 403
    assert res.json()["error"]["reason"] == "inactive_subscription"


def test_generate_outfits(client):
    _upload(client)
    res = client.post("/api/outfits/generate", json={"preferences": {"occasion": "Office"}}, headers=USER)
    assert res.status_code == 200
    assert res.json()["outfits"][0]["match"] == 90

    usage = client.get("/api/usage", headers=USER).json()
    assert usage["outfit_generations"]["used"] == 1


def test_generate_outfits_empty_wardrobe_is_400(client):
    res = client.post("/api/outfits/generate", json={}, headers=USER)
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "validation_error"


def test_subscription_lifecycle(client, store):
    config = client.get("/api/subscriptions/config").json()
    assert config["publishable_key"] == "pk_test"

    created = client.post(
        "/api/subscriptions", json={"price_id": PRICE_BASIC, "email": "a@example.com"}, headers=USER
    )
    assert created.status_code == 200
    assert created.json()["client_secret"] == "pi_secret_123"

    cancel = client.post("/api/subscriptions/cancel", json={"subscription_id": "sub_1"}, headers=USER)
    assert cancel.json()["cancel_at_period_end"] is True

    resume = client.post("/api/subscriptions/resume", json={"subscription_id": "sub_1"}, headers=USER)
    assert resume.json()["cancel_at_period_end"] is False

    status = client.get("/api/subscriptions/status", headers=USER).json()
    assert status["subscription_id"] == "sub_1"
    assert status["subscription_status"] == "incomplete"


def test_checkout_flow(client, provider):
    created = client.post("/api/subscriptions/checkout-session", json={"price_id": PRICE_PREMIUM}, headers=USER)
    assert created.status_code == 200
    assert created.json() == {"session_id": "cs_1", "client_secret": "cs_1_secret"}

    provider.checkout_sessions["cs_1"]["status"] = "complete"
    status = client.get("/api/subscriptions/session-status", params={"session_id": "cs_1"}, headers=USER)
    assert status.json()["status"] == "complete"

    setup = client.post("/api/subscriptions/setup-intent", headers=USER)
    assert setup.json() == {"client_secret": "seti_secret_1"}


def test_verify_payment_without_intent_is_400(client):
    res = client.get("/api/subscriptions/verify-payment", headers=USER)
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "validation_error"


def test_cancel_foreign_subscription_is_403(client, store):
    store.set("user-1", {"subscription_id": "sub_mine"})
    res = client.post("/api/subscriptions/cancel", json={"subscription_id": "sub_theirs"}, headers=USER)
    assert res.status_code == 403


def test_unknown_price_is_400(client):
    res = client.post("/api/subscriptions", json={"price_id": "price_nope"}, headers=USER)
    assert res.status_code == 400


def test_billing_disabled_is_503(client_without_billing):
    res = client_without_billing.get("/api/subscriptions/config")
    assert res.status_code == 503
    assert res.json()["error"]["code"] == "billing_disabled"

    res = client_without_billing.post("/api/webhooks/stripe", content=b"{}", headers={"stripe-signature": "valid"})
    assert res.status_code == 503


def test_webhook_applies_event(client, store, provider):
    store.set("user-1", {"stripe_customer_id": "cus_1"})
    provider.events.append(subscription_event(status="active", price_id=PRICE_PREMIUM))

    res = client.post("/api/webhooks/stripe", content=b"{}", headers={"stripe-signature": "valid"})

    assert res.status_code == 200
    assert res.json() == {"received": True, "event_id": "evt_1", "action": "applied"}
    assert store.get("user-1")["subscription_tier"] == "premium"


def test_webhook_orphan_still_acknowledged(client, provider):
    provider.events.append(subscription_event(customer_id="cus_unknown"))
    res = client.post("/api/webhooks/stripe", content=b"{}", headers={"stripe-signature": "valid"})
    assert res.status_code == 200
    assert res.json()["action"] == "orphan"


def test_webhook_bad_signature_is_400(client, store, provider):
    store.set("user-1", {"stripe_customer_id": "cus_1"})
    provider.events.append(subscription_event(status="active", price_id=PRICE_PREMIUM))

    res = client.post("/api/webhooks/stripe", content=b"{}", headers={"stripe-signature": "forged"})

    assert res.status_code == 400
    assert res.json()["error"]["code"] == "signature_invalid"
    assert store.get("user-1")["subscription_tier"] is None


def test_admin_reconcile_requires_key(client, monkeypatch):
    from wardrobe.core.config import settings
    monkeypatch.setattr(settings, "ADMIN_KEY", "admin-secret")

    assert client.post("/api/admin/reconcile").status_code == 401
    assert client.post("/api/admin/reconcile", headers={"x-admin-key": "wrong"}).status_code == 401


def test_admin_reconcile_downgrades(client, store, monkeypatch):
    from wardrobe.core.config import settings
    monkeypatch.setattr(settings, "ADMIN_KEY", "admin-secret")
    store.set("user-1", {
        "subscription_tier": "premium",
        "subscription_status": "canceled",
        "current_period_end": 1_000,
    })

    res = client.post("/api/admin/reconcile", headers={"x-admin-key": "admin-secret"})

    assert res.status_code == 200
    assert [d["user_id"] for d in res.json()["downgraded"]] == ["user-1"]
    assert store.get("user-1")["subscription_tier"] == "free"


def test_healthz(client):
    res = client.get("/healthz")
    assert res.status_code == 200
    assert res.json()["db"]["connected"] is True


def test_healthz_reports_db_down(client, monkeypatch):
    monkeypatch.setattr("wardrobe.api.health.check_connection", lambda: False)
    res = client.get("/healthz")
    assert res.status_code == 503
    assert res.json()["ok"] is False


def test_unknown_route_uses_error_shape(client):
    res = client.get("/api/nope", headers=USER)
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "not_found"
