"""
Billing webhook ingestion.

1. Verify signature (the only authentication for this endpoint)
2. Ignore event types outside the subscription lifecycle (logged)
3. Normalize the subscription fields and resolve the tier from the price id
4. Force FREE for terminal statuses
5. Merge the fields into every profile holding the customer id

Once the signature checks out the event is always acknowledged, even when no
profile matches, so the provider does not retry an unresolvable event.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional
import logging

from wardrobe.features.billing.provider import BillingEvent, BillingProvider
from wardrobe.features.entitlements.policy import SubscriptionTier
from wardrobe.features.profiles.store import ProfileStore


logger = logging.getLogger("wardrobe.billing.webhook")

SUBSCRIPTION_EVENT_TYPES = frozenset({
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
})

# Statuses that drop the user to FREE whatever the price says.
DOWNGRADE_STATUSES = frozenset({"canceled", "unpaid", "incomplete_expired"})


class PriceTierMap:
    """Read-only price id -> tier table."""

    def __init__(self, mapping: Mapping[str, SubscriptionTier]):
        self._mapping = MappingProxyType({k: SubscriptionTier(v) for k, v in mapping.items() if k})

    @classmethod
    def from_settings(cls, cfg) -> "PriceTierMap":
        return cls({
            cfg.STRIPE_PRICE_BASIC: SubscriptionTier.BASIC,
            cfg.STRIPE_PRICE_PREMIUM: SubscriptionTier.PREMIUM,
        })

    def tier_for(self, price_id: Optional[str]) -> Optional[SubscriptionTier]:
        if not price_id:
            return None
        return self._mapping.get(price_id)

    def __contains__(self, price_id: object) -> bool:
        return price_id in self._mapping


@dataclass(frozen=True)
class WebhookOutcome:
    event_id: str
    event_type: str
    action: str  # applied | ignored | orphan
    user_ids: List[str] = field(default_factory=list)
    fields: Dict[str, Any] = field(default_factory=dict)


class WebhookIngestor:
    def __init__(self, store: ProfileStore, provider: BillingProvider, price_tiers: PriceTierMap):
        self.store = store
        self.provider = provider
        self.price_tiers = price_tiers

    def ingest(self, payload: bytes, signature: Optional[str]) -> WebhookOutcome:
        """
        Verify and apply a billing webhook.

        Raises:
            BillingWebhookError: signature invalid (nothing was read or written)
            BillingProviderError: invoice lookup failed (retryable, provider redelivers)
            StorageUnavailableError: profile store failed (retryable)
        """
        event = self.provider.handle_webhook(payload, signature)

        if event.event_type not in SUBSCRIPTION_EVENT_TYPES:
            logger.info(
                "[billing] ignoring webhook event type",
                extra={"event_id": event.event_id, "event_type": event.event_type},
            )
            return WebhookOutcome(event_id=event.event_id, event_type=event.event_type, action="ignored")

        fields = self.subscription_fields(event)

        if not event.customer_id:
            logger.warning(
                "[billing] subscription event without customer",
                extra={"event_id": event.event_id, "event_type": event.event_type},
            )
            return WebhookOutcome(event.event_id, event.event_type, action="orphan", fields=fields)

        matches = self.store.query([("stripe_customer_id", "==", event.customer_id)])
        if not matches:
            logger.warning(
                "[billing] no profile for customer",
                extra={"event_id": event.event_id, "customer_id": event.customer_id},
            )
            return WebhookOutcome(event.event_id, event.event_type, action="orphan", fields=fields)

        if len(matches) > 1:
            logger.warning(
                "[billing] customer mapped to multiple profiles",
                extra={"customer_id": event.customer_id, "count": len(matches)},
            )

        updated = []
        for profile in matches:
            if self.store.update(profile["user_id"], fields):
                updated.append(profile["user_id"])

        logger.info(
            "[billing] subscription state applied",
            extra={
                "event_id": event.event_id,
                "event_type": event.event_type,
                "customer_id": event.customer_id,
                "status": event.status,
                "tier": fields.get("subscription_tier"),
                "user_ids": updated,
            },
        )
        return WebhookOutcome(event.event_id, event.event_type, action="applied", user_ids=updated, fields=fields)

    def subscription_fields(self, event: BillingEvent) -> Dict[str, Any]:
        """Profile fields carried by a subscription event; absent values are left out."""
        carried = {
            "subscription_status": event.status,
            "subscription_id": event.subscription_id,
            "price_id": event.price_id,
        }
        fields: Dict[str, Any] = {key: value for key, value in carried.items() if value is not None}

        period_start, period_end = event.current_period_start, event.current_period_end
        if (period_start is None or period_end is None) and event.latest_invoice_id:
            invoice = self.provider.retrieve_invoice_period(event.latest_invoice_id)
            period_start = period_start if period_start is not None else invoice.get("period_start")
            period_end = period_end if period_end is not None else invoice.get("period_end")
        if period_start is not None:
            fields["current_period_start"] = int(period_start)
        if period_end is not None:
            fields["current_period_end"] = int(period_end)
        if event.cancel_at_period_end is not None:
            fields["cancel_at_period_end"] = bool(event.cancel_at_period_end)
        if event.canceled_at is not None:
            fields["canceled_at"] = int(event.canceled_at)

        if event.status in DOWNGRADE_STATUSES:
            fields["subscription_tier"] = SubscriptionTier.FREE.value
        else:
            tier = self.price_tiers.tier_for(event.price_id)
            if tier is not None:
                fields["subscription_tier"] = tier.value
            else:
                logger.warning(
                    "[billing] price id not mapped to a tier",
                    extra={"event_id": event.event_id, "price_id": event.price_id},
                )
        return fields
