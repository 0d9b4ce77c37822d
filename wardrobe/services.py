"""
Service wiring.

Builds every feature service once, with its collaborators injected, and
hangs the result on `app.state.services`. Routes reach it through
`get_services`; tests pass their own container with fakes.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import Request

from wardrobe.core.config import Settings, settings as default_settings
from wardrobe.core.errors import AppError
from wardrobe.features.billing.provider import BillingProvider
from wardrobe.features.billing.reconcile_job import run_reconcile_job
from wardrobe.features.billing.service import BillingService
from wardrobe.features.billing.stripe_provider import StripeProvider
from wardrobe.features.billing.webhook import PriceTierMap, WebhookIngestor, WebhookOutcome
from wardrobe.features.entitlements.policy import DEFAULT_TIER_LIMITS, EntitlementPolicy
from wardrobe.features.items.labeler import HttpLabeler, Labeler
from wardrobe.features.items.service import ItemService
from wardrobe.features.outfits.recommender import GroqRecommender, Recommender
from wardrobe.features.outfits.service import OutfitService
from wardrobe.features.profiles.store import ProfileStore, SqlProfileStore
from wardrobe.features.quota.service import QuotaService


class BillingDisabledError(AppError):
    code = "billing_disabled"
    status_code = 503


@dataclass
class Services:
    store: ProfileStore
    quota: QuotaService
    items: ItemService
    outfits: OutfitService
    billing: Optional[BillingService] = None
    webhook: Optional[WebhookIngestor] = None

    def require_billing(self) -> BillingService:
        if self.billing is None:
            raise BillingDisabledError("Billing is not configured")
        return self.billing

    def apply_billing_event(self, payload: bytes, signature: Optional[str]) -> WebhookOutcome:
        if self.webhook is None:
            raise BillingDisabledError("Billing is not configured")
        return self.webhook.ingest(payload, signature)

    def run_reconciliation(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        return run_reconcile_job(self.store, now)


def build_services(
    cfg: Optional[Settings] = None,
    *,
    store: Optional[ProfileStore] = None,
    billing_provider: Optional[BillingProvider] = None,
    labeler: Optional[Labeler] = None,
    recommender: Optional[Recommender] = None,
    policy: Optional[EntitlementPolicy] = None,
) -> Services:
    cfg = cfg or default_settings
    store = store or SqlProfileStore()
    quota = QuotaService(store, policy or EntitlementPolicy(DEFAULT_TIER_LIMITS))

    labeler = labeler or HttpLabeler(cfg.LABELER_API_URL, cfg.LABELER_API_KEY, cfg.LABELER_MODEL)
    recommender = recommender or GroqRecommender(cfg.GROQ_API_KEY, cfg.GROQ_MODEL)
    items = ItemService(quota, labeler)
    outfits = OutfitService(quota, items, recommender)

    if billing_provider is None and cfg.billing_enabled:
        billing_provider = StripeProvider(cfg.STRIPE_SECRET_KEY, cfg.STRIPE_WEBHOOK_SECRET)

    billing = webhook = None
    if billing_provider is not None:
        price_tiers = PriceTierMap.from_settings(cfg)
        billing = BillingService(
            store, billing_provider, price_tiers, cfg.STRIPE_PUBLISHABLE_KEY, frontend_url=cfg.FRONTEND_URL
        )
        webhook = WebhookIngestor(store, billing_provider, price_tiers)

    return Services(store=store, quota=quota, items=items, outfits=outfits, billing=billing, webhook=webhook)


def get_services(request: Request) -> Services:
    return request.app.state.services
