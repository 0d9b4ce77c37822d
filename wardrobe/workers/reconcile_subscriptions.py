"""Subscription reconciliation worker.

Runs the reconciliation sweep once a day by default. Pass --once for a single
run (cron, manual recovery).
"""
import argparse
import logging
import time

from wardrobe.core.config import settings
from wardrobe.core.database import create_all_tables
from wardrobe.core.errors import AppError
from wardrobe.core.logging import configure_logging
from wardrobe.features.billing.reconcile_job import run_reconcile_job
from wardrobe.features.profiles.store import SqlProfileStore

logger = logging.getLogger("wardrobe.workers.reconcile")


def run_forever(interval_seconds: int) -> None:
    store = SqlProfileStore()
    while True:
        try:
            run_reconcile_job(store)
        except AppError as e:
            # Failed sweeps are recorded in job_runs; the next tick retries
            logger.error("[reconcile] sweep failed", extra={"error_code": e.code, "error_message": e.message})
        time.sleep(interval_seconds)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Downgrade lapsed subscriptions")
    parser.add_argument("--once", action="store_true", help="run a single sweep and exit")
    parser.add_argument(
        "--interval",
        type=int,
        default=settings.RECONCILE_INTERVAL_SECONDS,
        help="seconds between sweeps",
    )
    args = parser.parse_args(argv)

    configure_logging(settings.ENV, settings.LOG_LEVEL)
    create_all_tables()

    if args.once:
        result = run_reconcile_job(SqlProfileStore())
        print(result)
        return 0

    run_forever(args.interval)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
