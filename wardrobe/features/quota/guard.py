"""
wardrobe/features/quota/guard.py

Quota guard: authorize a metered action, then record it once it succeeded.

Authorization never mutates. Consumption is recorded only after the guarded
action completes, so a downstream failure is not charged. A crash between a
successful collaborator call and the increment under-counts by one; that race
is accepted.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterator, Optional
import logging

from wardrobe.core.errors import QuotaExceededError
from wardrobe.features.entitlements.policy import (
    ACTIVE_STATUS,
    EntitlementPolicy,
    QuotaAction,
    is_paid,
    parse_tier,
)
from wardrobe.features.usage.service import UsageCounterStore


logger = logging.getLogger("wardrobe.quota")


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    remaining: int
    limit: int
    used: int
    reason: Optional[str] = None


class QuotaGuard:
    def __init__(self, policy: EntitlementPolicy, counters: UsageCounterStore):
        self.policy = policy
        self.counters = counters

    def authorize(
        self,
        user_id: str,
        tier: Optional[Any],
        status: Optional[str],
        action: QuotaAction,
        now: datetime,
    ) -> QuotaDecision:
        limit = self.policy.limits_for(tier).limit_for(action)

        # Lapsed paid users lose their elevated limits outright.
        if is_paid(tier) and status != ACTIVE_STATUS:
            return QuotaDecision(
                allowed=False,
                remaining=0,
                limit=limit,
                used=0,
                reason=QuotaExceededError.REASON_INACTIVE,
            )

        counter = self.counters.current_counter(user_id, now)
        used = counter.count_for(action)
        remaining = max(0, limit - used)
        if remaining <= 0:
            return QuotaDecision(
                allowed=False,
                remaining=0,
                limit=limit,
                used=used,
                reason=QuotaExceededError.REASON_LIMIT,
            )
        return QuotaDecision(allowed=True, remaining=remaining, limit=limit, used=used)

    def record(self, user_id: str, action: QuotaAction) -> None:
        self.counters.increment(user_id, action)

    def require(
        self,
        user_id: str,
        tier: Optional[Any],
        status: Optional[str],
        action: QuotaAction,
        now: datetime,
    ) -> QuotaDecision:
        """Authorize or raise QuotaExceededError."""
        decision = self.authorize(user_id, tier, status, action, now)
        if decision.allowed:
            return decision

        logger.info(
            "[quota] denied",
            extra={
                "user_id": user_id,
                "action": action.value,
                "reason": decision.reason,
                "tier": parse_tier(tier).value,
                "used": decision.used,
                "limit": decision.limit,
            },
        )
        if decision.reason == QuotaExceededError.REASON_INACTIVE:
            message = "Subscription is not active"
        else:
            message = f"Weekly {action.value.replace('_', ' ')} limit reached"
        raise QuotaExceededError(
            message,
            reason=decision.reason,
            remaining=decision.remaining,
            details={
                "action": action.value,
                "tier": parse_tier(tier).value,
                "subscription_status": status,
                "limit": decision.limit,
            },
        )

    @contextmanager
    def consume(
        self,
        user_id: str,
        tier: Optional[Any],
        status: Optional[str],
        action: QuotaAction,
        now: datetime,
    ) -> Iterator[QuotaDecision]:
        """
        Guard a block of work with the user's quota.

        Usage:
            with guard.consume(user_id, tier, status, QuotaAction.IMAGE_UPLOAD, now):
                result = labeler.classify(url)

        Raises QuotaExceededError before the block runs when denied. The usage
        is recorded only when the block exits without an exception.
        """
        decision = self.require(user_id, tier, status, action, now)
        yield decision
        self.record(user_id, action)
