"""
wardrobe/features/entitlements/policy.py

Entitlement policy: subscription tier -> weekly usage limits.

The limits table is immutable configuration handed to the policy at
construction; `limits_for` is pure and total over any input.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional


class SubscriptionTier(str, Enum):
    FREE = "free"
    BASIC = "basic"
    PREMIUM = "premium"


PAID_TIERS = frozenset({SubscriptionTier.BASIC, SubscriptionTier.PREMIUM})

ACTIVE_STATUS = "active"


class QuotaAction(str, Enum):
    """Metered actions and the counter field each one consumes."""
    IMAGE_UPLOAD = "image_uploads"
    OUTFIT_GENERATION = "outfit_generations"


@dataclass(frozen=True)
class TierLimits:
    max_image_uploads: int
    max_outfit_generations: int

    def __post_init__(self):
        if self.max_image_uploads < 0 or self.max_outfit_generations < 0:
            raise ValueError("Tier limits must be non-negative")

    def limit_for(self, action: QuotaAction) -> int:
        if action is QuotaAction.IMAGE_UPLOAD:
            return self.max_image_uploads
        return self.max_outfit_generations


TierLimitsTable = Mapping[SubscriptionTier, TierLimits]

DEFAULT_TIER_LIMITS: TierLimitsTable = MappingProxyType({
    SubscriptionTier.FREE: TierLimits(max_image_uploads=8, max_outfit_generations=3),
    SubscriptionTier.BASIC: TierLimits(max_image_uploads=25, max_outfit_generations=10),
    SubscriptionTier.PREMIUM: TierLimits(max_image_uploads=5000, max_outfit_generations=2500),
})


def parse_tier(value: Optional[Any]) -> SubscriptionTier:
    """Resolve a stored tier value; anything unrecognised is FREE."""
    if isinstance(value, SubscriptionTier):
        return value
    if isinstance(value, str):
        try:
            return SubscriptionTier(value.strip().lower())
        except ValueError:
            return SubscriptionTier.FREE
    return SubscriptionTier.FREE


def is_paid(tier: Optional[Any]) -> bool:
    return parse_tier(tier) in PAID_TIERS


class EntitlementPolicy:
    """Maps a tier to its limits using an injected, read-only table."""

    def __init__(self, table: TierLimitsTable = DEFAULT_TIER_LIMITS):
        if SubscriptionTier.FREE not in table:
            raise ValueError("Tier limits table must define the FREE tier")
        self._table: TierLimitsTable = MappingProxyType(dict(table))

    def limits_for(self, tier: Optional[Any]) -> TierLimits:
        resolved = parse_tier(tier)
        return self._table.get(resolved, self._table[SubscriptionTier.FREE])
