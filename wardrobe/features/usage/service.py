"""
wardrobe/features/usage/service.py

Weekly usage counters.

Handles:
- Week boundaries (Monday 00:00:00 UTC, regardless of server timezone)
- Lazy reset of a stale counter on read (no background reset job)
- Atomic per-field increments
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
import logging

from wardrobe.core.errors import NotFoundError
from wardrobe.features.entitlements.policy import QuotaAction
from wardrobe.features.profiles.store import Increment, ProfileStore


logger = logging.getLogger("wardrobe.usage")

WEEK = timedelta(days=7)


def _normalize_now(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def week_start(now: datetime) -> datetime:
    """Monday 00:00:00 UTC at or before `now`. Naive datetimes are read as UTC."""
    current = _normalize_now(now)
    midnight = current.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight - timedelta(days=midnight.weekday())


def to_epoch_ms(moment: datetime) -> int:
    return int(_normalize_now(moment).timestamp() * 1000)


def week_start_ms(now: datetime) -> int:
    return to_epoch_ms(week_start(now))


def resets_on(now: datetime) -> datetime:
    """When the current week's counters roll over."""
    return week_start(now) + WEEK


@dataclass(frozen=True)
class UsageCounter:
    image_uploads: int
    outfit_generations: int
    week_start_timestamp: int  # epoch ms

    @classmethod
    def fresh(cls, now: datetime) -> "UsageCounter":
        return cls(image_uploads=0, outfit_generations=0, week_start_timestamp=week_start_ms(now))

    @classmethod
    def from_profile(cls, profile: Dict[str, Any]) -> Optional["UsageCounter"]:
        stamp = profile.get("week_start_timestamp")
        if stamp is None:
            return None
        return cls(
            image_uploads=int(profile.get("image_uploads") or 0),
            outfit_generations=int(profile.get("outfit_generations") or 0),
            week_start_timestamp=int(stamp),
        )

    def as_fields(self) -> Dict[str, int]:
        return {
            "image_uploads": self.image_uploads,
            "outfit_generations": self.outfit_generations,
            "week_start_timestamp": self.week_start_timestamp,
        }

    def count_for(self, action: QuotaAction) -> int:
        return getattr(self, action.value)


class UsageCounterStore:
    """Reads and bumps the usage counter embedded in each profile."""

    def __init__(self, store: ProfileStore):
        self._store = store

    def current_counter(self, user_id: str, now: datetime) -> UsageCounter:
        """
        Return the counter for the week containing `now`.

        A missing counter, or one stamped before this week's start, is replaced
        by a zeroed counter stamped at the new week start. Previous values are
        discarded. The replacement is conditional on the stored stamp still
        being stale, so a concurrent reader that already reset (and maybe
        incremented) the counter is not wiped.
        """
        current_start = week_start_ms(now)
        profile = self._store.get(user_id)

        if profile is None:
            fresh = UsageCounter.fresh(now)
            if self._store.create(user_id, fresh.as_fields()):
                logger.info("[usage] counter initialized", extra={"user_id": user_id, "week_start": current_start})
                return fresh
            # Created by a concurrent request since our read; never overwrite it
            profile = self._store.get(user_id) or {}

        counter = UsageCounter.from_profile(profile)
        if counter is not None and counter.week_start_timestamp >= current_start:
            return counter

        fresh = UsageCounter.fresh(now)
        stale_stamp = ("week_start_timestamp", "==", None) if counter is None else (
            "week_start_timestamp", "<", current_start
        )
        replaced = self._store.update(user_id, fresh.as_fields(), conditions=[stale_stamp])
        if replaced:
            logger.info(
                "[usage] weekly counter reset",
                extra={
                    "user_id": user_id,
                    "previous_week_start": counter.week_start_timestamp if counter else None,
                    "week_start": current_start,
                },
            )
            return fresh

        # Lost the race to another reader; whatever it stored is current.
        profile = self._store.get(user_id)
        counter = UsageCounter.from_profile(profile) if profile else None
        return counter if counter is not None else fresh

    def increment(self, user_id: str, action: QuotaAction) -> None:
        """Add one to the action's counter field at the storage layer."""
        if not self._store.update(user_id, {action.value: Increment(1)}):
            raise NotFoundError(f"Profile {user_id} not found")
