"""
Cached, single-flight entry point to the correlation engine.

Every request for a (user, cause, effect, time range tag, options) key goes through
a SingleFlight map: if a computation for that key is already running, the
caller awaits the same task instead of starting another one. The map is
owned by whoever constructs the service (the app keeps one per process);
nothing is shared at module level.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Sequence, TypeVar

from correlator.config import settings
from correlator.services.clock import Clock, now_ms
from correlator.services.combination_service import CombinationService, distinct_foods
from correlator.services.correlation_cache import (
    CorrelationCache,
    combinations_from_entry,
    combinations_key,
    combinations_tag,
    correlation_key,
    correlation_tag,
    result_from_entry,
)
from correlator.services.correlation_service import (
    CorrelationService,
    chronological,
    effects_named,
)
from correlator.services.errors import CorrelationValidationError
from correlator.services.event_store import EventStore
from correlator.services.schemas import (
    CacheKey,
    CombinationEffect,
    CombinationOptions,
    CorrelationResult,
    EnhancedMetadata,
    EnhancedResult,
    PairBatchResult,
    PairError,
    PairRequest,
    TimeRange,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight:
    """
    At most one running computation per key.

    A caller asking for a key that is already being computed awaits the
    existing task. The entry is removed as soon as the task finishes,
    successfully or not, so a failure never wedges a key.
    """

    def __init__(self):
        self._tasks: dict[CacheKey, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._tasks

    async def run(self, key: CacheKey, factory: Callable[[], Awaitable[T]]) -> T:
        # Lookup and insert happen with no await in between, so two callers
        # can never both miss the map for the same key.
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(self._run_and_release(key, factory))
            self._tasks[key] = task
        return await asyncio.shield(task)

    async def _run_and_release(self, key: CacheKey, factory: Callable[[], Awaitable[T]]) -> T:
        try:
            return await factory()
        finally:
            # Cleared before the result or error reaches any waiter
            if self._tasks.get(key) is asyncio.current_task():
                del self._tasks[key]


class CorrelationOrchestrationService:
    """Fans pairs out to the correlation engine behind the cache."""

    def __init__(
        self,
        event_store: EventStore,
        cache: CorrelationCache,
        correlation_service: CorrelationService | None = None,
        combination_service: CombinationService | None = None,
        clock: Clock | None = None,
        single_flight: SingleFlight | None = None,
    ):
        self.event_store = event_store
        self.cache = cache
        self.clock = clock or now_ms
        self.correlation_service = correlation_service or CorrelationService(
            event_store, clock=self.clock
        )
        self.combination_service = combination_service or CombinationService()
        # Shared across request-scoped instances when the caller passes one in
        self.in_flight = single_flight if single_flight is not None else SingleFlight()

    async def get_or_compute(
        self,
        user_id: str,
        pair: PairRequest,
        time_range: TimeRange,
        min_sample_size: int,
        bypass_cache: bool = False,
    ) -> tuple[CorrelationResult, bool]:
        """
        Return the result for one pair and whether it came from the cache.
        """
        tag = correlation_tag(time_range.cache_tag, min_sample_size)
        key = correlation_key(user_id, pair.cause_kind, pair.cause_id, pair.effect_id, tag)

        async def load() -> tuple[CorrelationResult, bool]:
            if not bypass_cache:
                entry = await self.cache.get(key)
                if entry is not None:
                    return result_from_entry(entry), True

            result = await self.correlation_service.compute_correlation(
                user_id,
                pair.cause_id,
                pair.effect_id,
                time_range,
                cause_kind=pair.cause_kind,
                min_sample_size=min_sample_size,
            )
            await self.cache.set(result, user_id, tag)
            return result, False

        return await self.in_flight.run(key, load)

    async def compute_multiple_pairs(
        self,
        user_id: str,
        pairs: Sequence[PairRequest],
        time_range: TimeRange,
        min_sample_size: int | None = None,
        bypass_cache: bool = False,
        deadline: int | None = None,
    ) -> PairBatchResult:
        """
        Compute (or fetch from cache) every pair, isolating failures.

        A failing pair is logged and recorded in `errors`; the rest of the
        batch continues. The loop yields after each pair and stops starting
        new pairs once `deadline` (epoch ms) has passed, returning whatever
        was finished.

        Raises:
            InvalidTimeRangeError: If the range ends at or before its start
        """
        time_range.ensure_valid()
        if min_sample_size is None:
            min_sample_size = settings.correlation_min_sample_size

        results: list[CorrelationResult] = []
        errors: list[PairError] = []
        computed = 0
        cache_hits = 0
        skipped = 0

        for index, pair in enumerate(pairs):
            if deadline is not None and self.clock() >= deadline:
                skipped = len(pairs) - index
                logger.warning(
                    "Deadline reached for user %s; skipping %d of %d pairs",
                    user_id,
                    skipped,
                    len(pairs),
                )
                break

            try:
                result, from_cache = await self.get_or_compute(
                    user_id, pair, time_range, min_sample_size, bypass_cache
                )
            except Exception as e:
                logger.exception(
                    "Correlation failed for user %s: %s -> %s",
                    user_id,
                    pair.cause_id,
                    pair.effect_id,
                )
                errors.append(
                    PairError(cause_id=pair.cause_id, effect_id=pair.effect_id, message=str(e))
                )
            else:
                results.append(result)
                if from_cache:
                    cache_hits += 1
                else:
                    computed += 1

            # Cooperative checkpoint between pairs
            await asyncio.sleep(0)

        return PairBatchResult(
            results=results,
            errors=errors,
            computed=computed,
            cache_hits=cache_hits,
            skipped=skipped,
        )

    async def compute_with_combinations(
        self,
        user_id: str,
        effect_id: str,
        time_range: TimeRange,
        options: CombinationOptions | None = None,
        bypass_cache: bool = False,
    ) -> EnhancedResult:
        """
        Individual correlations for every food seen in range, plus the
        synergistic food combinations for `effect_id`.
        """
        time_range.ensure_valid()
        if not user_id or not user_id.strip():
            raise CorrelationValidationError("userId is required")
        if not effect_id or not effect_id.strip():
            raise CorrelationValidationError("symptomId is required")
        options = options or CombinationOptions()

        food_events = chronological(
            await self.event_store.find_food_events(user_id, time_range.start, time_range.end)
        )
        symptom_events = await self.event_store.find_symptom_events(
            user_id, time_range.start, time_range.end
        )
        effect_events = effects_named(symptom_events, effect_id)

        foods = distinct_foods(food_events)
        batch = await self.compute_multiple_pairs(
            user_id,
            [PairRequest(cause_id=food, effect_id=effect_id) for food in foods],
            time_range,
            min_sample_size=options.min_sample_size,
            bypass_cache=bypass_cache,
        )
        individual = {result.cause_id: result for result in batch.results}

        tag = combinations_tag(time_range.cache_tag, options)
        key = combinations_key(user_id, effect_id, tag)

        async def load() -> tuple[list[CombinationEffect], bool]:
            if not bypass_cache:
                entry = await self.cache.get(key)
                if entry is not None:
                    return combinations_from_entry(entry), True

            combinations = self.combination_service.detect(
                effect_id, food_events, effect_events, individual, time_range, options
            )
            await self.cache.set_combinations(
                combinations, user_id, effect_id, tag, self.clock()
            )
            return combinations, False

        combinations, from_cache = await self.in_flight.run(key, load)

        return EnhancedResult(
            individual=batch.results,
            combinations=combinations,
            errors=batch.errors,
            metadata=EnhancedMetadata(
                user_id=user_id,
                effect_id=effect_id,
                start=time_range.start,
                end=time_range.end,
                min_sample_size=options.min_sample_size,
                causes_analyzed=len(foods),
                combinations_from_cache=from_cache,
            ),
        )
