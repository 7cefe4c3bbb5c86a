"""
Dramatiq actors for correlation recalculation.

Each actor opens its own database session and drives the async services
on a private event loop.
"""
import asyncio
import logging

import dramatiq

# Import broker setup (must be before actor definitions)
from correlator.workers import redis_broker  # noqa: F401
from correlator.database import SessionLocal
from correlator.services.correlation_cache import SqlCorrelationCache
from correlator.services.event_store import SqlEventStore
from correlator.services.recalculation_service import RecalculationService

logger = logging.getLogger(__name__)


def run_async(coro):
    """Helper to run async code in sync context."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _recalculation_service(db) -> RecalculationService:
    return RecalculationService(SqlEventStore(db), SqlCorrelationCache(db))


@dramatiq.actor(max_retries=2, min_backoff=5000, max_backoff=60000)
def recalculate_user_correlations(user_id: str, force: bool = False):
    """
    Recompute one user's candidate pairs over the trailing default range.

    Args:
        user_id: User whose correlations to refresh
        force: Bypass fresh cache entries (manual recalculation)
    """
    db = SessionLocal()
    try:
        result = run_async(
            _recalculation_service(db).recalculate_user(user_id, force=force)
        )
        logger.info(
            "Recalculated user %s: %d computed, %d cached, %d errors",
            user_id,
            result.computed,
            result.cache_hits,
            len(result.errors),
        )
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@dramatiq.actor(max_retries=0)
def run_scheduled_batch():
    """Run the full scheduled batch for every user (periodic trigger)."""
    db = SessionLocal()
    try:
        summary = run_async(_recalculation_service(db).run_scheduled_batch())
        logger.info(
            "Scheduled batch processed %d users in %dms",
            summary.users_processed,
            summary.duration,
        )
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@dramatiq.actor(max_retries=1)
def cleanup_expired_cache(user_id: str):
    """Sweep expired cache entries for one user."""
    db = SessionLocal()
    try:
        removed = run_async(SqlCorrelationCache(db).cleanup_expired(user_id))
        logger.info("Cleaned %d expired entries for user %s", removed, user_id)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
