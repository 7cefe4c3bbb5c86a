"""
Dose-response analysis: does eating more of a food make a symptom worse?

Each meal that records a portion size for the food is paired with the
worst severity of the symptom in the following 24 hours, and a line is
fitted through (portion, severity).
"""

import logging
from typing import Sequence

from correlator.services.correlation_service import chronological, effects_named
from correlator.services.event_store import EventStore
from correlator.services.schemas import (
    DoseResponseConfidence,
    DoseResponseResult,
    PortionSeverity,
    Regression,
    TimeRange,
)
from correlator.services.trend_service import fit_line
from correlator.services.window_scorer import HOUR_MS

logger = logging.getLogger(__name__)

PORTION_SIZES = {"small": 1, "medium": 2, "large": 3}
DEFAULT_PORTION = 2

MIN_SAMPLE_SIZE = 5
HIGH_CONFIDENCE_SAMPLE_SIZE = 10
HIGH_R_SQUARED = 0.7
LOW_R_SQUARED = 0.4
FLAT_SLOPE = 0.1

SYMPTOM_WINDOW_MS = 24 * HOUR_MS


def normalize_portion(size: str) -> int:
    """Map "small"/"medium"/"large" to 1/2/3; anything else counts as medium."""
    portion = PORTION_SIZES.get(size.strip().lower())
    if portion is None:
        logger.warning("Unknown portion size %r, treating as medium", size)
        return DEFAULT_PORTION
    return portion


def dose_response_confidence(r_squared: float, sample_size: int) -> DoseResponseConfidence:
    if sample_size < MIN_SAMPLE_SIZE:
        return "insufficient"
    if r_squared >= HIGH_R_SQUARED and sample_size >= HIGH_CONFIDENCE_SAMPLE_SIZE:
        return "high"
    if r_squared < LOW_R_SQUARED:
        return "low"
    return "medium"


def _describe(regression: Regression, confidence: DoseResponseConfidence, sample_size: int) -> str:
    if abs(regression.slope) < FLAT_SLOPE:
        relationship = "No clear dose-response relationship detected"
    elif regression.slope > 0:
        relationship = "Larger portions correlate with more severe symptoms"
    else:
        relationship = "Larger portions correlate with less severe symptoms"

    r_squared = f"R² = {regression.r_squared:.2f}"
    if confidence == "low":
        detail = f"(Low confidence: {r_squared} < {LOW_R_SQUARED})"
    else:
        detail = f"({confidence.capitalize()} confidence: {r_squared})"
    return f"{relationship} {detail}. Based on {sample_size} observations."


def compute_dose_response(
    portions: Sequence[int], severities: Sequence[int]
) -> DoseResponseResult:
    """
    Fit severity against portion size.

    Fewer than MIN_SAMPLE_SIZE observations, or portions that never vary,
    give an "insufficient" result with an explanatory message rather than
    an error.

    Raises:
        ValueError: If the two sequences differ in length
    """
    if len(portions) != len(severities):
        raise ValueError("Portion sizes and severity scores must have the same length")

    sample_size = len(portions)
    if sample_size < MIN_SAMPLE_SIZE:
        return DoseResponseResult(
            sample_size=sample_size,
            message=(
                f"Insufficient data: minimum {MIN_SAMPLE_SIZE} events required "
                f"(found {sample_size})"
            ),
        )

    pairs = [PortionSeverity(portion=p, severity=s) for p, s in zip(portions, severities)]
    try:
        regression = fit_line(portions, severities)
    except ValueError as e:
        return DoseResponseResult(
            sample_size=sample_size, pairs=pairs, message=f"Analysis failed: {e}"
        )

    confidence = dose_response_confidence(regression.r_squared, sample_size)
    return DoseResponseResult(
        slope=regression.slope,
        intercept=regression.intercept,
        r_squared=regression.r_squared,
        confidence=confidence,
        sample_size=sample_size,
        pairs=pairs,
        message=_describe(regression, confidence, sample_size),
    )


class DoseResponseService:
    """Pairs logged portion sizes with the symptom severity that followed."""

    def __init__(self, event_store: EventStore):
        self.event_store = event_store

    async def analyze(
        self, user_id: str, food_id: str, effect_id: str, time_range: TimeRange
    ) -> DoseResponseResult:
        """
        Raises:
            InvalidTimeRangeError: If the range ends at or before its start
        """
        time_range.ensure_valid()
        food_events = await self.event_store.find_food_events(
            user_id, time_range.start, time_range.end
        )
        symptom_events = await self.event_store.find_symptom_events(
            user_id, time_range.start, time_range.end
        )
        effects = effects_named(symptom_events, effect_id)

        portions: list[int] = []
        severities: list[int] = []
        for event in chronological(food_events):
            size = event.portions.get(food_id)
            if food_id not in event.food_ids or size is None:
                continue
            following = [
                e.severity
                for e in effects
                if event.timestamp <= e.timestamp <= event.timestamp + SYMPTOM_WINDOW_MS
            ]
            if following:
                portions.append(normalize_portion(size))
                severities.append(max(following))

        logger.debug(
            "Dose-response for %s: %s -> %s has %d observations",
            user_id,
            food_id,
            effect_id,
            len(portions),
        )
        result = compute_dose_response(portions, severities)
        return result.model_copy(update={"food_id": food_id, "effect_id": effect_id})
