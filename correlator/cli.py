"""CLI commands for the symptom correlator."""

import argparse
import asyncio
import logging
import sys

from sqlalchemy.orm import Session

from correlator.config import settings
from correlator.database import Base, SessionLocal, engine
from correlator.models import User
from correlator.services.correlation_cache import SqlCorrelationCache
from correlator.services.event_store import SqlEventStore
from correlator.services.recalculation_service import RecalculationService


def _require_user(db: Session, user_id: str) -> None:
    if db.query(User).filter(User.id == user_id).first() is None:
        print(f"Error: User '{user_id}' not found.")
        sys.exit(1)


def init_db() -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(engine)
    print("Database tables created.")


def recalculate(user_id: str, force: bool = False) -> None:
    """Recompute one user's correlations inline."""
    db: Session = SessionLocal()

    try:
        _require_user(db, user_id)
        service = RecalculationService(SqlEventStore(db), SqlCorrelationCache(db))
        result = asyncio.run(service.recalculate_user(user_id, force=force))

        print(
            f"Recalculated {user_id}: {result.computed} computed, "
            f"{result.cache_hits} from cache, {len(result.errors)} errors"
        )
        for error in result.errors:
            print(f"  {error.cause_id} -> {error.effect_id}: {error.message}")

    finally:
        db.close()


def run_batch() -> None:
    """Run the scheduled batch once, as the cron endpoint would."""
    db: Session = SessionLocal()

    try:
        service = RecalculationService(SqlEventStore(db), SqlCorrelationCache(db))
        summary = asyncio.run(service.run_scheduled_batch())
        print(
            f"Processed {summary.users_processed} users: "
            f"{summary.pairs_computed} pairs, "
            f"{summary.cache_entries_created} entries created, "
            f"{summary.expired_entries_cleaned} expired removed "
            f"in {summary.duration}ms"
        )
        if summary.errors:
            print(f"{len(summary.errors)} errors:")
            for error in summary.errors:
                print(f"  {error}")
            sys.exit(1)

    finally:
        db.close()


def cleanup(user_id: str) -> None:
    """Remove expired cache entries for a user."""
    db: Session = SessionLocal()

    try:
        removed = asyncio.run(SqlCorrelationCache(db).cleanup_expired(user_id))
        print(f"Removed {removed} expired cache entries for {user_id}")

    finally:
        db.close()


def cache_stats(user_id: str) -> None:
    db: Session = SessionLocal()

    try:
        stats = asyncio.run(SqlCorrelationCache(db).stats(user_id))
        print(
            f"Cache for {user_id}: {stats['total']} total, "
            f"{stats['active']} active, {stats['expired']} expired"
        )

    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Symptom Correlator CLI")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("init-db", help="Create database tables")

    recalculate_parser = subparsers.add_parser(
        "recalculate", help="Recompute correlations for a user"
    )
    recalculate_parser.add_argument("--user", required=True, help="User ID")
    recalculate_parser.add_argument(
        "--force", action="store_true", help="Ignore fresh cache entries"
    )

    subparsers.add_parser("run-batch", help="Run the scheduled batch for all users")

    cleanup_parser = subparsers.add_parser(
        "cleanup", help="Remove expired cache entries for a user"
    )
    cleanup_parser.add_argument("--user", required=True, help="User ID")

    stats_parser = subparsers.add_parser("cache-stats", help="Show cache statistics")
    stats_parser.add_argument("--user", required=True, help="User ID")

    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "init-db":
        init_db()
    elif args.command == "recalculate":
        recalculate(args.user, args.force)
    elif args.command == "run-batch":
        run_batch()
    elif args.command == "cleanup":
        cleanup(args.user)
    elif args.command == "cache-stats":
        cache_stats(args.user)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
