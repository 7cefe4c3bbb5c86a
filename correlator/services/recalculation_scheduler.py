"""
Debounced scheduling of background recalculation.

Logging several events in quick succession should trigger one
recalculation, not one per event. The first call in a debounce window
claims a Redis key and enqueues a delayed job; later calls inside the
window are coalesced into it.
"""

import logging

import redis

from correlator.config import settings
from correlator.workers.correlation_worker import recalculate_user_correlations

logger = logging.getLogger(__name__)


class RecalculationScheduler:
    """Enqueues recalculation jobs via Dramatiq."""

    def __init__(self, redis_client=None, debounce_seconds: int | None = None):
        self.redis = redis_client or redis.from_url(settings.redis_url)
        if debounce_seconds is None:
            debounce_seconds = settings.recalculation_debounce_seconds
        self.debounce_ms = max(debounce_seconds, 0) * 1000

    def _debounce_key(self, user_id: str) -> str:
        return f"correlation:recalc:{user_id}"

    def schedule(self, user_id: str) -> bool:
        """
        Schedule an automatic recalculation after the debounce delay.

        Returns:
            True if a job was enqueued, False if one is already pending
        """
        if self.debounce_ms == 0:
            # Debounce disabled: no key to claim
            recalculate_user_correlations.send(user_id, False)
            return True

        claimed = self.redis.set(
            self._debounce_key(user_id), "1", nx=True, px=self.debounce_ms
        )
        if not claimed:
            logger.debug("Recalculation already pending for user %s", user_id)
            return False

        recalculate_user_correlations.send_with_options(
            args=(user_id,),
            kwargs={"force": False},
            delay=self.debounce_ms,
        )
        return True

    def schedule_now(self, user_id: str, force: bool = True) -> None:
        """Manual trigger: enqueue immediately, ignoring the debounce window."""
        recalculate_user_correlations.send(user_id, force)
