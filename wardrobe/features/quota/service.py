"""
wardrobe/features/quota/service.py

Quota operations exposed to the HTTP layer:
- check_and_consume_image_upload_quota / check_and_consume_outfit_generation_quota
- get_usage_status
"""

from datetime import datetime, timezone
from typing import Any, ContextManager, Dict, Optional

from wardrobe.features.entitlements.policy import (
    EntitlementPolicy,
    QuotaAction,
    is_paid,
    parse_tier,
    ACTIVE_STATUS,
)
from wardrobe.features.profiles.store import ProfileStore
from wardrobe.features.quota.guard import QuotaDecision, QuotaGuard
from wardrobe.features.usage.service import UsageCounterStore, resets_on, week_start

# Stored status for profiles that never subscribed.
DEFAULT_STATUS = "expired"


def _normalize_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


class QuotaService:
    def __init__(self, store: ProfileStore, policy: EntitlementPolicy):
        self.store = store
        self.policy = policy
        self.counters = UsageCounterStore(store)
        self.guard = QuotaGuard(policy, self.counters)

    def _entitlement(self, user_id: str):
        profile = self.store.get(user_id) or {}
        tier = parse_tier(profile.get("subscription_tier"))
        status = profile.get("subscription_status") or DEFAULT_STATUS
        return tier, status

    def _consume(self, user_id: str, action: QuotaAction, now: Optional[datetime]) -> ContextManager[QuotaDecision]:
        tier, status = self._entitlement(user_id)
        return self.guard.consume(user_id, tier, status, action, _normalize_now(now))

    def check_and_consume_image_upload_quota(
        self, user_id: str, now: Optional[datetime] = None
    ) -> ContextManager[QuotaDecision]:
        return self._consume(user_id, QuotaAction.IMAGE_UPLOAD, now)

    def check_and_consume_outfit_generation_quota(
        self, user_id: str, now: Optional[datetime] = None
    ) -> ContextManager[QuotaDecision]:
        return self._consume(user_id, QuotaAction.OUTFIT_GENERATION, now)

    def get_usage_status(self, user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Returns:
            {
                "tier": "free",
                "subscription_status": "expired",
                "active": True,
                "week_start": "2026-10-12T00:00:00+00:00",
                "resets_on": "2026-10-19",
                "resets_on_display": "Monday, October 19, 2026",
                "image_uploads": {"used": 3, "remaining": 5, "total": 8},
                "outfit_generations": {"used": 0, "remaining": 3, "total": 3},
            }
        """
        moment = _normalize_now(now)
        tier, status = self._entitlement(user_id)
        limits = self.policy.limits_for(tier)
        counter = self.counters.current_counter(user_id, moment)
        active = not is_paid(tier) or status == ACTIVE_STATUS

        usage: Dict[str, Any] = {}
        for action in QuotaAction:
            total = limits.limit_for(action)
            used = counter.count_for(action)
            usage[action.value] = {
                "used": used,
                "remaining": max(0, total - used) if active else 0,
                "total": total,
            }

        reset_at = resets_on(moment)
        return {
            "tier": tier.value,
            "subscription_status": status,
            "active": active,
            "week_start": week_start(moment).isoformat(),
            "resets_on": reset_at.date().isoformat(),
            "resets_on_display": f"{reset_at:%A, %B} {reset_at.day}, {reset_at.year}",
            **usage,
        }
