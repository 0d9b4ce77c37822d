"""
Billing service orchestrator.

Coordinates:
- Customer management
- Subscription lifecycle (create, cancel at period end, resume)
- Price configuration for the checkout screen
- Stored subscription status
- Card replacement, payment verification and embedded checkout sessions

All Stripe-specific code is in stripe_provider.py.
"""
from typing import Optional, Dict, Any
import logging

from wardrobe.core.errors import ForbiddenError, NotFoundError, ValidationError
from wardrobe.features.billing.provider import BillingProvider
from wardrobe.features.billing.webhook import PriceTierMap
from wardrobe.features.entitlements.policy import parse_tier
from wardrobe.features.profiles.store import ProfileStore


logger = logging.getLogger("wardrobe.billing")

PRICE_LOOKUP_KEYS = ["monthly_basic", "monthly_premium"]


class BillingService:
    def __init__(
        self,
        store: ProfileStore,
        provider: BillingProvider,
        price_tiers: PriceTierMap,
        publishable_key: Optional[str] = None,
        frontend_url: str = "http://localhost:3000",
    ):
        self.store = store
        self.provider = provider
        self.price_tiers = price_tiers
        self.publishable_key = publishable_key
        self.frontend_url = frontend_url.rstrip("/")

    def get_prices_config(self) -> Dict[str, Any]:
        return {
            "publishable_key": self.publishable_key,
            "prices": self.provider.list_prices(PRICE_LOOKUP_KEYS),
        }

    def ensure_customer(self, user_id: str, email: Optional[str] = None) -> str:
        """
        Ensure a billing customer exists for the user.

        Returns:
            Stripe customer ID (existing one if already stored and not deleted)

        Raises:
            BillingProviderError: If customer lookup or creation fails
        """
        profile = self.store.get(user_id) or {}
        existing = profile.get("stripe_customer_id")
        if existing:
            if not self.provider.retrieve_customer(existing).get("deleted"):
                return existing
            logger.warning(
                "[billing] stored customer was deleted; creating a new one",
                extra={"user_id": user_id, "customer_id": existing},
            )

        customer_id = self.provider.create_customer(user_id, email)
        fields: Dict[str, Any] = {"stripe_customer_id": customer_id}
        if email:
            fields["email"] = email
        self.store.set(user_id, fields, merge=True)
        logger.info("[billing] customer created", extra={"user_id": user_id, "customer_id": customer_id})
        return customer_id

    def create_subscription(self, user_id: str, price_id: str, email: Optional[str] = None) -> Dict[str, Any]:
        """
        Start a subscription for one of the configured prices.

        The subscription is created incomplete; its tier is only granted when
        the provider reports it active through the webhook.

        Returns:
            {"subscription_id": str, "client_secret": str | None, "status": str}

        Raises:
            ValidationError: price id is not one of the configured plans
            BillingProviderError: provider call failed
        """
        if price_id not in self.price_tiers:
            raise ValidationError(f"Unknown price: {price_id}")

        customer_id = self.ensure_customer(user_id, email)
        snapshot = self.provider.create_subscription(customer_id, price_id)

        fields: Dict[str, Any] = {
            "stripe_customer_id": customer_id,
            "subscription_id": snapshot.subscription_id,
            "subscription_status": snapshot.status,
            "price_id": snapshot.price_id or price_id,
        }
        if snapshot.current_period_start is not None:
            fields["current_period_start"] = snapshot.current_period_start
        if snapshot.current_period_end is not None:
            fields["current_period_end"] = snapshot.current_period_end
        self.store.set(user_id, fields, merge=True)

        logger.info(
            "[billing] subscription created",
            extra={"user_id": user_id, "subscription_id": snapshot.subscription_id, "status": snapshot.status},
        )
        return {
            "subscription_id": snapshot.subscription_id,
            "client_secret": snapshot.client_secret,
            "status": snapshot.status,
        }

    def _owned_subscription(self, user_id: str, subscription_id: str) -> Dict[str, Any]:
        if not subscription_id:
            raise ValidationError("Subscription ID is required")
        profile = self.store.get(user_id)
        if profile is None:
            raise NotFoundError("User not found")
        if profile.get("subscription_id") != subscription_id:
            raise ForbiddenError("Unauthorized access to this subscription")
        return profile

    def _set_cancel_at_period_end(self, user_id: str, subscription_id: str, cancel: bool) -> Dict[str, Any]:
        self._owned_subscription(user_id, subscription_id)
        snapshot = self.provider.update_subscription(subscription_id, cancel_at_period_end=cancel)
        self.store.update(user_id, {"cancel_at_period_end": snapshot.cancel_at_period_end})
        logger.info(
            "[billing] cancel_at_period_end changed",
            extra={"user_id": user_id, "subscription_id": subscription_id, "cancel_at_period_end": cancel},
        )
        return {"success": True, "cancel_at_period_end": snapshot.cancel_at_period_end}

    def cancel_subscription(self, user_id: str, subscription_id: str) -> Dict[str, Any]:
        """Cancel at period end; the tier stays until the period runs out."""
        return self._set_cancel_at_period_end(user_id, subscription_id, True)

    def reactivate_subscription(self, user_id: str, subscription_id: str) -> Dict[str, Any]:
        return self._set_cancel_at_period_end(user_id, subscription_id, False)

    def get_subscription_status(self, user_id: str) -> Dict[str, Any]:
        profile = self.store.get(user_id)
        if profile is None:
            raise NotFoundError("User not found")
        has_subscription = bool(profile.get("subscription_id"))
        return {
            "has_subscription": has_subscription,
            "tier": parse_tier(profile.get("subscription_tier")).value,
            "subscription_status": profile.get("subscription_status"),
            "subscription_id": profile.get("subscription_id"),
            "price_id": profile.get("price_id"),
            "current_period_start": profile.get("current_period_start"),
            "current_period_end": profile.get("current_period_end"),
            "cancel_at_period_end": bool(profile.get("cancel_at_period_end")),
            "canceled_at": profile.get("canceled_at"),
        }

    def create_setup_intent(self, user_id: str) -> Dict[str, Any]:
        """Client secret for collecting a replacement card for the stored customer."""
        profile = self.store.get(user_id)
        if profile is None:
            raise NotFoundError("User not found")
        customer_id = profile.get("stripe_customer_id")
        if not customer_id:
            raise ValidationError("No Stripe customer found for this user")
        return {"client_secret": self.provider.create_setup_intent(customer_id)}

    def verify_payment(self, user_id: str, payment_intent_id: str) -> Dict[str, Any]:
        if not payment_intent_id:
            raise ValidationError("Payment intent ID is required")
        intent = self.provider.retrieve_payment_intent(payment_intent_id)
        customer_id = intent.get("customer_id")
        self._require_own_customer(user_id, customer_id)

        email = ""
        if customer_id:
            customer = self.provider.retrieve_customer(customer_id)
            if not customer.get("deleted"):
                email = customer.get("email") or ""
        return {
            "status": intent.get("status"),
            "customer_email": email,
            "amount": intent.get("amount"),
            "currency": intent.get("currency"),
        }

    def create_checkout_session(self, user_id: str, price_id: str, email: Optional[str] = None) -> Dict[str, Any]:
        """
        Embedded checkout for one of the configured prices.

        The session is bound to the user's customer so the resulting
        subscription webhooks find the profile.
        """
        if price_id not in self.price_tiers:
            raise ValidationError(f"Unknown price: {price_id}")
        customer_id = self.ensure_customer(user_id, email)
        return_url = f"{self.frontend_url}/return?session_id={{CHECKOUT_SESSION_ID}}"
        session = self.provider.create_checkout_session(customer_id, price_id, return_url)
        logger.info(
            "[billing] checkout session created",
            extra={"user_id": user_id, "session_id": session.get("session_id"), "price_id": price_id},
        )
        return session

    def get_checkout_session_status(self, user_id: str, session_id: str) -> Dict[str, Any]:
        if not session_id:
            raise ValidationError("Session ID is required")
        session = self.provider.retrieve_checkout_session(session_id)
        self._require_own_customer(user_id, session.get("customer_id"))
        return {"status": session.get("status"), "customer_email": session.get("customer_email")}

    def _require_own_customer(self, user_id: str, customer_id: Optional[str]) -> None:
        if customer_id is None:
            return
        profile = self.store.get(user_id) or {}
        if profile.get("stripe_customer_id") != customer_id:
            raise ForbiddenError("Payment belongs to another customer")
