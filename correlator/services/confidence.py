"""
Confidence tiers for correlation results.

The overall level is the weakest of three independent factors, so a
result is only "high" when sample size, consistency and significance all
agree.
"""

from correlator.services.schemas import ConfidenceLevel, WindowScore

SAMPLE_SIZE_HIGH = 5
SAMPLE_SIZE_MEDIUM = 3
CONSISTENCY_HIGH = 0.70
CONSISTENCY_MEDIUM = 0.50
P_VALUE_HIGH = 0.01
P_VALUE_MEDIUM = 0.05

_RANK = {"low": 0, "medium": 1, "high": 2}


def _sample_size_level(sample_size: int) -> ConfidenceLevel:
    if sample_size >= SAMPLE_SIZE_HIGH:
        return "high"
    if sample_size >= SAMPLE_SIZE_MEDIUM:
        return "medium"
    return "low"


def _consistency_level(consistency: float) -> ConfidenceLevel:
    if consistency >= CONSISTENCY_HIGH:
        return "high"
    if consistency >= CONSISTENCY_MEDIUM:
        return "medium"
    return "low"


def _p_value_level(p_value: float | None) -> ConfidenceLevel:
    if p_value is None:
        return "low"
    if p_value < P_VALUE_HIGH:
        return "high"
    if p_value < P_VALUE_MEDIUM:
        return "medium"
    return "low"


def determine_confidence(
    sample_size: int, consistency: float, p_value: float | None
) -> ConfidenceLevel:
    levels = (
        _sample_size_level(sample_size),
        _consistency_level(consistency),
        _p_value_level(p_value),
    )
    return min(levels, key=lambda level: _RANK[level])


def consistency_of(window_score: WindowScore) -> float:
    """Fraction of cause events followed by the effect in this window."""
    if window_score.sample_size == 0:
        return 0.0
    return window_score.hit_count / window_score.sample_size


def confidence_of(window_score: WindowScore) -> ConfidenceLevel:
    return determine_confidence(
        window_score.sample_size, consistency_of(window_score), window_score.p_value
    )
