"""
Run broker maintenance jobs by hand.

    python run_sync.py sync [--feed-id FEED] [--since 2026-01-01]
    python run_sync.py reconcile [--older-than-seconds 120]
    python run_sync.py purge
"""
import argparse
import sys
from datetime import date, timedelta

from broker.database import SessionLocal, create_tables
from broker.exceptions import BrokerError
from broker.services.booking_coordinator import BookingCoordinator
from broker.services.quote_cache import QuoteCache
from broker.services.sync_engine import SyncEngine
from broker.utils.logging_config import setup_logging


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Hotel broker maintenance jobs")
    sub = parser.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Pull catalog content from the provider")
    sync.add_argument("--feed-id")
    sync.add_argument("--since", type=date.fromisoformat, help="Only hotels revised after this date")

    reconcile = sub.add_parser("reconcile", help="Resolve PENDING reservations")
    reconcile.add_argument("--older-than-seconds", type=int)

    sub.add_parser("purge", help="Delete expired room searches")

    args = parser.parse_args(argv)
    setup_logging(json_format=False)
    create_tables()

    db = SessionLocal()
    try:
        if args.command == "sync":
            results = SyncEngine(db, request_id="manual-sync").sync_all(
                feed_id=args.feed_id, last_revision_date=args.since
            )
            for name, stats in results.items():
                print(f"{name:16} {stats.as_dict()}")
        elif args.command == "reconcile":
            older_than = None
            if args.older_than_seconds is not None:
                older_than = timedelta(seconds=args.older_than_seconds)
            summary = BookingCoordinator(db, request_id="manual-reconcile").reconcile_pending(older_than)
            print(vars(summary))
        else:
            print(f"Removed {QuoteCache(db).purge_expired()} expired room searches")
    except BrokerError as e:
        print(f"Error ({e.code}): {e.message}", file=sys.stderr)
        return 1
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
