"""
Correlation computation for a single (cause, effect) pair.

Fetches events through the event store, scores every configured delay
window and picks the best one. No caching happens here; see
orchestration_service for the cached, single-flight entry point.
"""

import logging
from typing import Sequence

from correlator.config import settings
from correlator.services.clock import Clock, now_ms
from correlator.services.confidence import consistency_of, confidence_of
from correlator.services.errors import CorrelationValidationError
from correlator.services.event_store import EventStore
from correlator.services.schemas import (
    CauseKind,
    CorrelationResult,
    DelayWindow,
    FoodEvent,
    MedicationEvent,
    SymptomEvent,
    TimeRange,
    TriggerEvent,
    WindowScore,
)
from correlator.services.window_scorer import WINDOW_SET, compute_window_scores

logger = logging.getLogger(__name__)


def select_best_window(
    scores: Sequence[WindowScore], min_sample_size: int
) -> WindowScore:
    """
    Pick the best window from scores given in configuration order.

    Windows below `min_sample_size` are not eligible. Among eligible
    windows the highest score wins, then the larger sample size, then the
    earlier window. If nothing is eligible, the largest sample size wins
    (earlier window on ties) regardless of score.
    """
    if not scores:
        raise ValueError("select_best_window requires at least one window score")

    indexed = list(enumerate(scores))
    eligible = [(i, s) for i, s in indexed if s.sample_size >= min_sample_size]
    if eligible:
        _, best = max(eligible, key=lambda item: (item[1].score, item[1].sample_size, -item[0]))
    else:
        _, best = max(indexed, key=lambda item: (item[1].sample_size, -item[0]))
    return best


def chronological(events: Sequence) -> list:
    return sorted(events, key=lambda e: (e.timestamp, e.id))


def effects_named(events: Sequence[SymptomEvent], effect_id: str) -> list[SymptomEvent]:
    return chronological([e for e in events if e.name == effect_id])


def causes_matching(events: Sequence, cause_kind: CauseKind, cause_id: str) -> list:
    if cause_kind == CauseKind.FOOD:
        matched = [e for e in events if isinstance(e, FoodEvent) and cause_id in e.food_ids]
    elif cause_kind == CauseKind.TRIGGER:
        matched = [e for e in events if isinstance(e, TriggerEvent) and e.trigger_id == cause_id]
    else:
        # Skipped doses are not exposures
        matched = [
            e
            for e in events
            if isinstance(e, MedicationEvent) and e.medication_id == cause_id and e.taken
        ]
    return chronological(matched)


def build_result(
    cause_id: str,
    cause_kind: CauseKind,
    effect_id: str,
    cause_events: Sequence,
    effect_events: Sequence,
    time_range: TimeRange,
    min_sample_size: int,
    computed_at: int,
    windows: Sequence[DelayWindow] = WINDOW_SET,
) -> CorrelationResult:
    """Score pre-filtered, chronologically sorted events into a result."""
    window_scores = compute_window_scores(cause_events, effect_events, time_range, windows)
    best = select_best_window(window_scores, min_sample_size)
    return CorrelationResult(
        cause_id=cause_id,
        cause_kind=cause_kind,
        effect_id=effect_id,
        window_scores=window_scores,
        best_window=best,
        computed_at=computed_at,
        sample_size=best.sample_size,
        consistency=consistency_of(best),
        confidence=confidence_of(best),
    )


class CorrelationService:
    """Computes a CorrelationResult for one cause/effect pair."""

    def __init__(
        self,
        event_store: EventStore,
        clock: Clock | None = None,
        windows: Sequence[DelayWindow] = WINDOW_SET,
    ):
        self.event_store = event_store
        self.clock = clock or now_ms
        self.windows = tuple(windows)

    async def fetch_cause_events(
        self, user_id: str, cause_kind: CauseKind, time_range: TimeRange
    ) -> list:
        if cause_kind == CauseKind.FOOD:
            return await self.event_store.find_food_events(
                user_id, time_range.start, time_range.end
            )
        if cause_kind == CauseKind.TRIGGER:
            return await self.event_store.find_trigger_events(
                user_id, time_range.start, time_range.end
            )
        return await self.event_store.find_medication_events(
            user_id, time_range.start, time_range.end
        )

    async def compute_correlation(
        self,
        user_id: str,
        cause_id: str,
        effect_id: str,
        time_range: TimeRange,
        cause_kind: CauseKind = CauseKind.FOOD,
        min_sample_size: int | None = None,
    ) -> CorrelationResult:
        """
        Correlate one cause with one symptom over `time_range`.

        Raises:
            InvalidTimeRangeError: If the range ends at or before its start
            CorrelationValidationError: If an identifier is blank
        """
        time_range.ensure_valid()
        for name, value in (("userId", user_id), ("causeId", cause_id), ("effectId", effect_id)):
            if not value or not value.strip():
                raise CorrelationValidationError(f"{name} is required")
        if min_sample_size is None:
            min_sample_size = settings.correlation_min_sample_size

        raw_causes = await self.fetch_cause_events(user_id, cause_kind, time_range)
        raw_effects = await self.event_store.find_symptom_events(
            user_id, time_range.start, time_range.end
        )

        cause_events = causes_matching(raw_causes, cause_kind, cause_id)
        effect_events = effects_named(raw_effects, effect_id)
        logger.debug(
            "Correlating %s:%s -> %s for user %s (%d causes, %d effects)",
            cause_kind.value,
            cause_id,
            effect_id,
            user_id,
            len(cause_events),
            len(effect_events),
        )

        return build_result(
            cause_id,
            cause_kind,
            effect_id,
            cause_events,
            effect_events,
            time_range,
            min_sample_size,
            computed_at=self.clock(),
            windows=self.windows,
        )
