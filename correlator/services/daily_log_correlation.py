"""
Correlation between daily wellbeing logs and symptoms.

A log day counts as an event when its metric passes a threshold (e.g.
sleepHours < 6). Each such day is placed at a fixed marker time and then
scored with the same delay windows as food, trigger and medication
causes. "forward" asks whether the log state precedes the symptom;
"reverse" asks whether the symptom precedes the log state.
"""

import logging
import operator
from typing import NamedTuple, Sequence

from correlator.config import settings
from correlator.services.clock import Clock, now_ms
from correlator.services.confidence import consistency_of, confidence_of
from correlator.services.correlation_service import effects_named, select_best_window
from correlator.services.errors import CorrelationValidationError
from correlator.services.event_store import EventStore
from correlator.services.schemas import (
    CorrelationDirection,
    DailyLog,
    DailyLogCorrelationResult,
    DailyLogMetric,
    DelayWindow,
    ThresholdOperator,
    TimeRange,
)
from correlator.services.window_scorer import HOUR_MS, WINDOW_SET, compute_window_scores

logger = logging.getLogger(__name__)

METRIC_FIELDS: dict[str, str] = {
    "sleepHours": "sleep_hours",
    "sleepQuality": "sleep_quality",
    "mood": "mood",
    "stressLevel": "stress_level",
}

OPERATORS = {
    "<": operator.lt,
    ">": operator.gt,
    "<=": operator.le,
    ">=": operator.ge,
}

# Morning for a log as a cause, late evening for a log as an effect
FORWARD_MARKER_MS = 8 * HOUR_MS
REVERSE_MARKER_MS = 22 * HOUR_MS


class LogMarker(NamedTuple):
    timestamp: int
    id: str


def matching_logs(
    logs: Sequence[DailyLog], metric: DailyLogMetric, threshold: float, op: ThresholdOperator
) -> list[DailyLog]:
    """Logs whose metric is recorded and passes `<metric> <op> <threshold>`."""
    field = METRIC_FIELDS[metric]
    compare = OPERATORS[op]
    matched = []
    for log in logs:
        value = getattr(log, field)
        if value is not None and compare(value, threshold):
            matched.append(log)
    return matched


def log_markers(logs: Sequence[DailyLog], direction: CorrelationDirection) -> list[LogMarker]:
    offset = FORWARD_MARKER_MS if direction == "forward" else REVERSE_MARKER_MS
    return sorted(LogMarker(log.day_start + offset, log.id) for log in logs)


class DailyLogCorrelationService:
    """Scores a thresholded daily-log metric against one symptom."""

    def __init__(
        self,
        event_store: EventStore,
        clock: Clock | None = None,
        windows: Sequence[DelayWindow] = WINDOW_SET,
    ):
        self.event_store = event_store
        self.clock = clock or now_ms
        self.windows = tuple(windows)

    async def compute_correlation(
        self,
        user_id: str,
        metric: DailyLogMetric,
        effect_id: str,
        direction: CorrelationDirection,
        time_range: TimeRange,
        threshold: float,
        op: ThresholdOperator,
        min_sample_size: int | None = None,
    ) -> DailyLogCorrelationResult:
        """
        Raises:
            InvalidTimeRangeError: If the range ends at or before its start
            CorrelationValidationError: If the metric, direction or operator
                is unknown, or an identifier is blank
        """
        time_range.ensure_valid()
        for name, value in (("userId", user_id), ("symptomId", effect_id)):
            if not value or not value.strip():
                raise CorrelationValidationError(f"{name} is required")
        if metric not in METRIC_FIELDS:
            raise CorrelationValidationError(f"Unknown daily log metric: {metric}")
        if op not in OPERATORS:
            raise CorrelationValidationError(f"Unknown operator: {op}")
        if direction not in ("forward", "reverse"):
            raise CorrelationValidationError(f"Unknown direction: {direction}")
        if min_sample_size is None:
            min_sample_size = settings.correlation_min_sample_size

        logs = await self.event_store.find_daily_logs(user_id, time_range.start, time_range.end)
        symptoms = await self.event_store.find_symptom_events(
            user_id, time_range.start, time_range.end
        )

        markers = log_markers(matching_logs(logs, metric, threshold, op), direction)
        effects = effects_named(symptoms, effect_id)
        if direction == "forward":
            cause_events, effect_events = markers, effects
        else:
            cause_events, effect_events = effects, markers

        logger.debug(
            "Correlating daily log %s %s %s with %s (%s) for user %s: %d log days, %d symptoms",
            metric,
            op,
            threshold,
            effect_id,
            direction,
            user_id,
            len(markers),
            len(effects),
        )

        window_scores = compute_window_scores(
            cause_events, effect_events, time_range, self.windows
        )
        best = select_best_window(window_scores, min_sample_size)
        return DailyLogCorrelationResult(
            metric=metric,
            effect_id=effect_id,
            direction=direction,
            threshold=threshold,
            operator=op,
            window_scores=window_scores,
            best_window=best,
            computed_at=self.clock(),
            sample_size=len(cause_events),
            consistency=consistency_of(best),
            confidence=confidence_of(best),
        )
