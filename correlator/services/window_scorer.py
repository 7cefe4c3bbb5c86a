"""
Association score for one (cause, effect) pair over one delay window.

A cause event "hits" when at least one effect event lands in
[cause + min_offset, cause + max_offset). The score is the observed hit
rate minus the chance that a window of the same length would contain an
effect anyway, given the effect's background rate over the whole range.
"""

import math
from bisect import bisect_left
from typing import Sequence

from correlator.services.schemas import DelayWindow, TimeRange, WindowScore

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS

# Fixed configuration order; earlier entries win score/sample ties.
WINDOW_SET: tuple[DelayWindow, ...] = (
    DelayWindow(label="15m", min_offset_ms=0, max_offset_ms=15 * MINUTE_MS),
    DelayWindow(label="30m", min_offset_ms=0, max_offset_ms=30 * MINUTE_MS),
    DelayWindow(label="1h", min_offset_ms=0, max_offset_ms=HOUR_MS),
    DelayWindow(label="2-4h", min_offset_ms=2 * HOUR_MS, max_offset_ms=4 * HOUR_MS),
    DelayWindow(label="4-8h", min_offset_ms=4 * HOUR_MS, max_offset_ms=8 * HOUR_MS),
    DelayWindow(label="6-12h", min_offset_ms=6 * HOUR_MS, max_offset_ms=12 * HOUR_MS),
    DelayWindow(label="24h", min_offset_ms=0, max_offset_ms=24 * HOUR_MS),
    DelayWindow(label="48h", min_offset_ms=0, max_offset_ms=48 * HOUR_MS),
    DelayWindow(label="72h", min_offset_ms=0, max_offset_ms=72 * HOUR_MS),
)


def baseline_probability(effect_count: int, range_ms: int, window_ms: int) -> float:
    """
    Probability that a window of `window_ms` contains at least one effect
    if effects arrived as a Poisson process at their observed average rate.
    """
    if effect_count == 0 or window_ms <= 0:
        return 0.0
    rate = effect_count / max(range_ms, 1)
    return 1.0 - math.exp(-rate * window_ms)


def binomial_tail(hits: int, n: int, p: float) -> float:
    """One-sided P(X >= hits) for X ~ Binomial(n, p), computed in log space."""
    if hits <= 0:
        return 1.0
    if p <= 0.0:
        return 0.0
    if p >= 1.0:
        return 1.0

    log_p = math.log(p)
    log_q = math.log1p(-p)
    log_n_fact = math.lgamma(n + 1)
    total = 0.0
    for i in range(hits, n + 1):
        log_term = (
            log_n_fact
            - math.lgamma(i + 1)
            - math.lgamma(n - i + 1)
            + i * log_p
            + (n - i) * log_q
        )
        total += math.exp(log_term)
    return min(total, 1.0)


def _has_effect_between(effect_times: Sequence[int], lo: int, hi: int) -> bool:
    i = bisect_left(effect_times, lo)
    return i < len(effect_times) and effect_times[i] < hi


def score_window(
    cause_events: Sequence,
    effect_events: Sequence,
    window: DelayWindow,
    time_range: TimeRange,
) -> WindowScore:
    """
    Score a single delay window.

    Both event lists must already be sorted by timestamp and restricted to
    the same user and time range. `time_range` is only used for the
    background effect rate.
    """
    sample_size = len(cause_events)
    if sample_size == 0:
        return WindowScore(window=window.label, score=0.0, sample_size=0)

    effect_times = [e.timestamp for e in effect_events]
    if not effect_times:
        return WindowScore(window=window.label, score=0.0, sample_size=sample_size)

    hits = sum(
        1
        for cause in cause_events
        if _has_effect_between(
            effect_times,
            cause.timestamp + window.min_offset_ms,
            cause.timestamp + window.max_offset_ms,
        )
    )

    baseline = baseline_probability(
        len(effect_times), time_range.duration_ms, window.duration_ms
    )
    return WindowScore(
        window=window.label,
        score=hits / sample_size - baseline,
        sample_size=sample_size,
        hit_count=hits,
        p_value=binomial_tail(hits, sample_size, baseline),
    )


def compute_window_scores(
    cause_events: Sequence,
    effect_events: Sequence,
    time_range: TimeRange,
    windows: Sequence[DelayWindow] = WINDOW_SET,
) -> tuple[WindowScore, ...]:
    """Score every window in configuration order."""
    return tuple(
        score_window(cause_events, effect_events, window, time_range)
        for window in windows
    )
