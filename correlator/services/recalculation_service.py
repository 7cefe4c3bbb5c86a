"""
Keeps cached correlations fresh.

Three triggers feed this module:
- the scheduled batch (cron endpoint / CLI), which sweeps expired entries
  and recomputes a capped candidate set for every user
- new data being logged, which invalidates affected entries and schedules
  a debounced recalculation for the user
- manual recalculation, which forces recomputation past the cache
"""

import logging

from correlator.config import settings
from correlator.services.clock import Clock, now_ms
from correlator.services.combination_service import distinct_foods
from correlator.services.correlation_cache import CorrelationCache, cause_key
from correlator.services.correlation_service import chronological
from correlator.services.event_store import EventStore
from correlator.services.orchestration_service import CorrelationOrchestrationService
from correlator.services.schemas import (
    BatchSummary,
    CauseKind,
    PairBatchResult,
    PairRequest,
    TimeRange,
)

logger = logging.getLogger(__name__)


class RecalculationService:
    """Decides what to recompute and drives the orchestration service."""

    def __init__(
        self,
        event_store: EventStore,
        cache: CorrelationCache,
        orchestrator: CorrelationOrchestrationService | None = None,
        clock: Clock | None = None,
    ):
        self.event_store = event_store
        self.cache = cache
        self.clock = clock or now_ms
        self.orchestrator = orchestrator or CorrelationOrchestrationService(
            event_store, cache, clock=self.clock
        )

    def default_range(self) -> TimeRange:
        return TimeRange.trailing(self.clock(), settings.correlation_default_range_days)

    async def candidate_pairs(
        self, user_id: str, time_range: TimeRange, max_pairs: int | None = None
    ) -> list[PairRequest]:
        """
        Every observed cause crossed with every observed symptom, in
        discovery order, truncated to `max_pairs`.
        """
        if max_pairs is None:
            max_pairs = settings.correlation_batch_max_pairs

        foods = chronological(
            await self.event_store.find_food_events(user_id, time_range.start, time_range.end)
        )
        triggers = chronological(
            await self.event_store.find_trigger_events(user_id, time_range.start, time_range.end)
        )
        medications = chronological(
            await self.event_store.find_medication_events(
                user_id, time_range.start, time_range.end
            )
        )
        symptoms = chronological(
            await self.event_store.find_symptom_events(user_id, time_range.start, time_range.end)
        )

        causes: dict[tuple[CauseKind, str], None] = {}
        for food_id in distinct_foods(foods):
            causes.setdefault((CauseKind.FOOD, food_id), None)
        for trigger in triggers:
            causes.setdefault((CauseKind.TRIGGER, trigger.trigger_id), None)
        for medication in medications:
            if medication.taken:
                causes.setdefault((CauseKind.MEDICATION, medication.medication_id), None)
        effects = list(dict.fromkeys(s.name for s in symptoms))

        pairs = []
        for kind, cause_id in causes:
            for effect_id in effects:
                if len(pairs) >= max_pairs:
                    return pairs
                pairs.append(PairRequest(cause_id=cause_id, effect_id=effect_id, cause_kind=kind))
        return pairs

    async def recalculate_user(
        self,
        user_id: str,
        time_range: TimeRange | None = None,
        force: bool = False,
        deadline: int | None = None,
    ) -> PairBatchResult:
        """
        Recompute the candidate pairs for one user.

        Without `force`, fresh cache entries are reused and only stale pairs
        are computed.
        """
        time_range = time_range or self.default_range()
        pairs = await self.candidate_pairs(user_id, time_range)
        logger.info(
            "Recalculating %d pairs for user %s (force=%s)", len(pairs), user_id, force
        )
        return await self.orchestrator.compute_multiple_pairs(
            user_id, pairs, time_range, bypass_cache=force, deadline=deadline
        )

    async def run_scheduled_batch(self, deadline: int | None = None) -> BatchSummary:
        """
        Cron path: sweep expired entries and refresh every user's correlations
        over the trailing default range. Failures are isolated per user.
        """
        started = self.clock()
        users_processed = 0
        pairs_computed = 0
        cache_entries_created = 0
        expired_entries_cleaned = 0
        errors: list[str] = []

        for user_id in await self.event_store.list_user_ids():
            try:
                expired_entries_cleaned += await self.cache.cleanup_expired(user_id)
                batch = await self.recalculate_user(user_id, deadline=deadline)
            except Exception as e:
                logger.exception("Scheduled recalculation failed for user %s", user_id)
                errors.append(f"{user_id}: {e}")
                continue

            users_processed += 1
            pairs_computed += batch.computed + batch.cache_hits
            cache_entries_created += batch.computed
            errors.extend(
                f"{user_id}: {err.cause_id} -> {err.effect_id}: {err.message}"
                for err in batch.errors
            )

        summary = BatchSummary(
            users_processed=users_processed,
            pairs_computed=pairs_computed,
            cache_entries_created=cache_entries_created,
            expired_entries_cleaned=expired_entries_cleaned,
            errors=errors,
            duration=self.clock() - started,
        )
        logger.info(
            "Scheduled batch done: %d users, %d pairs, %d new entries, %d cleaned, %d errors",
            summary.users_processed,
            summary.pairs_computed,
            summary.cache_entries_created,
            summary.expired_entries_cleaned,
            len(summary.errors),
        )
        return summary

    async def on_data_logged(
        self,
        user_id: str,
        cause_kind: CauseKind | None = None,
        cause_id: str | None = None,
        effect_id: str | None = None,
    ) -> int:
        """Invalidate cache entries touched by a newly logged event."""
        key = cause_key(cause_kind, cause_id) if cause_kind and cause_id else None
        removed = await self.cache.invalidate(user_id, cause_id=key, effect_id=effect_id)
        logger.info("Invalidated %d cache entries for user %s", removed, user_id)
        return removed
