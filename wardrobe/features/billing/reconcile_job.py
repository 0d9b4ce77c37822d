"""
Scheduled subscription reconciliation.

Catches lapsed paid subscriptions whose webhook never arrived. Profiles on a
paid tier whose period has ended are either downgraded (cancellation was
requested, or the provider no longer reports them active) or flagged for
manual review (still "active" and set to renew: most likely a renewal
webhook that is late, so no automatic downgrade).

All downgrades are committed in one transaction. Each write only applies if
the profile still holds the state the sweep observed, so a webhook that lands
mid-sweep wins.
"""
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import insert
from sqlalchemy.exc import SQLAlchemyError

from wardrobe.core.database import get_db_session, job_runs
from wardrobe.core.errors import ReconciliationError, StorageUnavailableError
from wardrobe.features.entitlements.policy import ACTIVE_STATUS, PAID_TIERS, SubscriptionTier
from wardrobe.features.profiles.store import ProfileStore, ProfileWrite


logger = logging.getLogger("wardrobe.billing.reconcile")

JOB_NAME = "subscriptions.reconcile"
EXPIRED_STATUS = "expired"


@dataclass
class ReconcileResult:
    downgraded: List[Dict[str, Any]] = field(default_factory=list)
    needs_manual_review: List[Dict[str, Any]] = field(default_factory=list)
    # Changed by another writer between the query and the commit.
    skipped: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _epoch_seconds(now: datetime) -> int:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return int(now.timestamp())


class SubscriptionReconciler:
    def __init__(self, store: ProfileStore):
        self.store = store

    def reconcile(self, now: datetime) -> ReconcileResult:
        cutoff = _epoch_seconds(now)
        candidates = self.store.query([
            ("subscription_tier", "in", sorted(t.value for t in PAID_TIERS)),
            ("current_period_end", "<=", cutoff),
        ])

        result = ReconcileResult()
        writes: List[ProfileWrite] = []
        pending: Dict[str, Dict[str, Any]] = {}

        for profile in candidates:
            user_id = profile["user_id"]
            status = profile.get("subscription_status")
            cancel_at_period_end = bool(profile.get("cancel_at_period_end"))

            if cancel_at_period_end or status != ACTIVE_STATUS:
                writes.append(ProfileWrite(
                    user_id=user_id,
                    fields={
                        "subscription_tier": SubscriptionTier.FREE.value,
                        "subscription_status": EXPIRED_STATUS,
                    },
                    conditions=(
                        ("subscription_tier", "==", profile["subscription_tier"]),
                        ("current_period_end", "==", profile["current_period_end"]),
                        ("subscription_status", "==", status),
                        ("cancel_at_period_end", "==", profile.get("cancel_at_period_end")),
                    ),
                ))
                pending[user_id] = {
                    "user_id": user_id,
                    "previous_tier": profile["subscription_tier"],
                    "previous_status": status,
                }
            else:
                result.needs_manual_review.append({
                    "user_id": user_id,
                    "tier": profile["subscription_tier"],
                    "status": status,
                    "period_end": profile["current_period_end"],
                })
                logger.warning(
                    "[reconcile] period ended but subscription still active; manual check required",
                    extra={"user_id": user_id, "period_end": profile["current_period_end"]},
                )

        if writes:
            try:
                written = set(self.store.batch_commit(writes))
            except StorageUnavailableError as e:
                logger.error(
                    "[reconcile] batch commit failed; no profiles downgraded",
                    extra={"attempted": len(writes)},
                )
                raise ReconciliationError(
                    f"Reconciliation aborted, {len(writes)} downgrades rolled back",
                    details={"attempted": len(writes)},
                ) from e

            for write in writes:
                if write.user_id in written:
                    result.downgraded.append(pending[write.user_id])
                    logger.info(
                        "[reconcile] downgraded to free",
                        extra=pending[write.user_id],
                    )
                else:
                    result.skipped.append(write.user_id)
                    logger.info(
                        "[reconcile] profile changed during sweep; left as is",
                        extra={"user_id": write.user_id},
                    )

        return result


def _record_job_run(started_at: datetime, status: str, stats: Optional[Dict[str, Any]], error: Optional[str]) -> None:
    try:
        with get_db_session() as session:
            session.execute(
                insert(job_runs).values(
                    job_name=JOB_NAME,
                    started_at=started_at,
                    finished_at=datetime.now(timezone.utc),
                    status=status,
                    stats=stats,
                    error=error[:500] if error else None,
                )
            )
    except SQLAlchemyError:
        logger.exception("[reconcile] could not record job run")


def run_reconcile_job(store: ProfileStore, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Run one sweep, record it in job_runs and return the result."""
    started_at = datetime.now(timezone.utc)
    moment = now or started_at
    try:
        result = SubscriptionReconciler(store).reconcile(moment)
    except (ReconciliationError, StorageUnavailableError) as e:
        _record_job_run(started_at, "failed", None, str(e))
        raise

    stats = {
        "downgraded": len(result.downgraded),
        "needs_manual_review": len(result.needs_manual_review),
        "skipped": len(result.skipped),
    }
    _record_job_run(started_at, "success", stats, None)
    logger.info("[reconcile] sweep complete", extra=stats)
    return {**result.as_dict(), "timestamp": moment.isoformat()}
