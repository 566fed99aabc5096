"""Release due seller payouts to their wallets.

Usage:
    python -m backend.process_payouts

Intended to run once a day from cron; exits non-zero if any payout failed.
"""
import logging
import sys

from backend.core import config
from backend.database import SessionLocal
from backend.services.payouts import process_pending_payments


def main() -> None:
    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    db = SessionLocal()
    try:
        summary = process_pending_payments(db)
    finally:
        db.close()

    print(f"processed={summary.processed} completed={summary.completed} failed={summary.failed}")
    if summary.failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
