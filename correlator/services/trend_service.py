"""
Symptom trend analytics: bucketed series, linear trend and regime shifts.
"""

import logging
import math
from typing import Sequence

from correlator.config import settings
from correlator.services.changepoint import default_penalty, mean_segments, pelt
from correlator.services.errors import CorrelationValidationError
from correlator.services.event_store import EventStore
from correlator.services.schemas import (
    FitStrength,
    Regression,
    TimeRange,
    TrendAnalysis,
    TrendDirection,
    TrendGranularity,
    TrendMetric,
    TrendPoint,
    TrendSegment,
)

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000
BUCKET_MS = {"daily": DAY_MS, "weekly": 7 * DAY_MS}

MIN_POINTS_FOR_DIRECTION = 14
SLOPE_THRESHOLD = 0.1


def fit_line(xs: Sequence[float], ys: Sequence[float]) -> Regression:
    """
    Least-squares line through (x, y) points.

    Raises:
        ValueError: With fewer than 2 points, mismatched lengths, or when
            every x is the same
    """
    n = len(xs)
    if n != len(ys):
        raise ValueError("x and y values must have the same length")
    if n < 2:
        raise ValueError("Linear regression requires at least 2 data points")

    x_mean = math.fsum(xs) / n
    y_mean = math.fsum(ys) / n
    sxx = math.fsum((x - x_mean) ** 2 for x in xs)
    if sxx == 0:
        raise ValueError("Cannot compute regression: all x values are identical")
    sxy = math.fsum((x - x_mean) * (y - y_mean) for x, y in zip(xs, ys))
    slope = sxy / sxx
    intercept = y_mean - slope * x_mean

    ss_total = math.fsum((y - y_mean) ** 2 for y in ys)
    if ss_total == 0:
        # Flat series: a flat line is a perfect fit
        return Regression(slope=slope, intercept=intercept, r_squared=1.0 if slope == 0 else 0.0)
    ss_residual = math.fsum(
        (y - (slope * x + intercept)) ** 2 for x, y in zip(xs, ys)
    )
    return Regression(slope=slope, intercept=intercept, r_squared=1 - ss_residual / ss_total)


def linear_regression(values: Sequence[float]) -> Regression:
    """Least-squares fit of values against their index."""
    return fit_line(range(len(values)), values)


def interpret(regression: Regression | None, sample_size: int) -> tuple[TrendDirection, FitStrength | None]:
    if regression is None or sample_size < MIN_POINTS_FOR_DIRECTION:
        return "insufficient_data", None

    direction: TrendDirection = "stable"
    if abs(regression.slope) > SLOPE_THRESHOLD:
        direction = "worsening" if regression.slope > 0 else "improving"

    if regression.r_squared >= 0.9:
        strength: FitStrength = "very-high"
    elif regression.r_squared >= 0.7:
        strength = "high"
    elif regression.r_squared >= 0.5:
        strength = "moderate"
    else:
        strength = "low"
    return direction, strength


class TrendAnalysisService:
    """Builds trend views for one symptom."""

    def __init__(self, event_store: EventStore):
        self.event_store = event_store

    async def symptom_series(
        self,
        user_id: str,
        symptom: str,
        time_range: TimeRange,
        metric: TrendMetric = "severity",
        granularity: TrendGranularity = "daily",
    ) -> list[TrendPoint]:
        """
        Bucket a symptom's occurrences over the whole range.

        Empty buckets are kept (value 0) so the series is evenly spaced.
        Severity buckets hold the mean severity; frequency buckets the count.

        Raises:
            InvalidTimeRangeError: If the range ends at or before its start
            CorrelationValidationError: If the range needs more than
                settings.trend_max_buckets buckets
        """
        time_range.ensure_valid()
        bucket_ms = BUCKET_MS[granularity]
        bucket_count = math.ceil(time_range.duration_ms / bucket_ms)
        if bucket_count > settings.trend_max_buckets:
            raise CorrelationValidationError(
                f"Range too long: {bucket_count} {granularity} buckets "
                f"(max {settings.trend_max_buckets})"
            )

        totals = [0.0] * bucket_count
        counts = [0] * bucket_count
        events = await self.event_store.find_symptom_events(
            user_id, time_range.start, time_range.end
        )
        for event in events:
            if event.name != symptom:
                continue
            index = (event.timestamp - time_range.start) // bucket_ms
            if 0 <= index < bucket_count:
                totals[index] += event.severity
                counts[index] += 1

        points = []
        for index in range(bucket_count):
            if metric == "frequency":
                value = float(counts[index])
            else:
                value = totals[index] / counts[index] if counts[index] else 0.0
            points.append(
                TrendPoint(
                    bucket_start=time_range.start + index * bucket_ms,
                    value=value,
                    count=counts[index],
                )
            )
        return points

    async def analyze(
        self,
        user_id: str,
        symptom: str,
        time_range: TimeRange,
        metric: TrendMetric = "severity",
        granularity: TrendGranularity = "daily",
        penalty: float | None = None,
    ) -> TrendAnalysis:
        points = await self.symptom_series(user_id, symptom, time_range, metric, granularity)
        values = [p.value for p in points]

        regression = linear_regression(values) if len(values) >= 2 else None
        direction, strength = interpret(regression, len(values))

        if penalty is None:
            penalty = default_penalty(values)
        change_points = pelt(values, penalty=penalty)
        segments = [
            TrendSegment(
                start_index=s.start,
                end_index=s.end,
                start_ms=points[s.start].bucket_start,
                mean=s.mean,
            )
            for s in mean_segments(values, change_points)
        ]
        logger.debug(
            "Trend for %s/%s: %d points, %d change points",
            user_id,
            symptom,
            len(points),
            len(change_points),
        )

        return TrendAnalysis(
            symptom=symptom,
            metric=metric,
            granularity=granularity,
            points=points,
            regression=regression,
            direction=direction,
            fit_strength=strength,
            penalty=penalty,
            change_points=change_points,
            segments=segments,
        )
