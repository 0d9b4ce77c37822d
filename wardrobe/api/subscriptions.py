"""
Subscription routes.

- GET  /api/subscriptions/config: publishable key and plan prices
- POST /api/subscriptions/customer: ensure a Stripe customer
- POST /api/subscriptions: start a subscription
- POST /api/subscriptions/cancel: cancel at period end
- POST /api/subscriptions/resume: undo a pending cancel
- GET  /api/subscriptions/status: stored subscription state
- POST /api/subscriptions/setup-intent: collect a replacement card
- GET  /api/subscriptions/verify-payment: payment intent outcome
- POST /api/subscriptions/checkout-session: embedded checkout for a price
- GET  /api/subscriptions/session-status: checkout session outcome

All routes answer 503 `billing_disabled` when STRIPE_SECRET_KEY is not set.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from wardrobe.core.auth import get_current_user_id
from wardrobe.services import Services, get_services


router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


class CustomerRequest(BaseModel):
    email: Optional[str] = None


class CreateSubscriptionRequest(BaseModel):
    price_id: str = Field(..., min_length=1)
    email: Optional[str] = None


class SubscriptionRequest(BaseModel):
    subscription_id: str = Field(..., min_length=1)


class CheckoutSessionResponse(BaseModel):
    session_id: Optional[str] = None
    client_secret: Optional[str] = None


class CreateSubscriptionResponse(BaseModel):
    subscription_id: str
    client_secret: Optional[str] = None
    status: str


@router.get("/config")
def get_config(services: Services = Depends(get_services)) -> Dict[str, Any]:
    return services.require_billing().get_prices_config()


@router.post("/customer")
def create_customer(
    body: CustomerRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    customer_id = services.require_billing().ensure_customer(user_id, body.email)
    return {"customer_id": customer_id}


@router.post("", response_model=CreateSubscriptionResponse)
def create_subscription(
    body: CreateSubscriptionRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    return services.require_billing().create_subscription(user_id, body.price_id, body.email)


@router.post("/cancel")
def cancel_subscription(
    body: SubscriptionRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return services.require_billing().cancel_subscription(user_id, body.subscription_id)


@router.post("/resume")
def resume_subscription(
    body: SubscriptionRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return services.require_billing().reactivate_subscription(user_id, body.subscription_id)


@router.get("/status")
def get_status(
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return services.require_billing().get_subscription_status(user_id)


@router.post("/setup-intent")
def create_setup_intent(
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return services.require_billing().create_setup_intent(user_id)


@router.get("/verify-payment")
def verify_payment(
    payment_intent: str = Query(""),
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return services.require_billing().verify_payment(user_id, payment_intent)


@router.post("/checkout-session", response_model=CheckoutSessionResponse)
def create_checkout_session(
    body: CreateSubscriptionRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    return services.require_billing().create_checkout_session(user_id, body.price_id, body.email)


@router.get("/session-status")
def session_status(
    session_id: str = Query(""),
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return services.require_billing().get_checkout_session_status(user_id, session_id)
