"""
PELT (Pruned Exact Linear Time) change-point detection.

Segments a numeric series into regimes by minimising total segment cost
plus a penalty per segment. Used by the trend views to find where a
symptom's severity or frequency shifted.
"""

import math
from dataclasses import dataclass
from typing import Callable, Sequence

CostFunction = Callable[[Sequence[float], int, int], float]


def squared_error_cost(data: Sequence[float], start: int, end: int) -> float:
    """Sum of squared deviations from the mean of data[start:end]."""
    if end - start <= 0:
        return 0.0
    segment = data[start:end]
    mean = math.fsum(segment) / len(segment)
    return math.fsum((x - mean) ** 2 for x in segment)


class PrefixSumCost:
    """
    `squared_error_cost` for one series in O(1) per segment.

    Built once per `pelt` call from running sums of x and x**2.
    """

    def __init__(self, data: Sequence[float]):
        self.sums = [0.0]
        self.squares = [0.0]
        for x in data:
            self.sums.append(self.sums[-1] + x)
            self.squares.append(self.squares[-1] + x * x)

    def __call__(self, data: Sequence[float], start: int, end: int) -> float:
        length = end - start
        if length <= 0:
            return 0.0
        total = self.sums[end] - self.sums[start]
        squares = self.squares[end] - self.squares[start]
        # Rounding can leave a tiny negative residual on flat stretches
        return max(squares - total * total / length, 0.0)


def default_penalty(data: Sequence[float]) -> float:
    """BIC-style penalty: 2 * variance * ln(n)."""
    n = len(data)
    if n < 2:
        return 0.0
    mean = math.fsum(data) / n
    variance = math.fsum((x - mean) ** 2 for x in data) / n
    return 2.0 * variance * math.log(n)


def pelt(
    data: Sequence[float],
    cost_function: CostFunction = squared_error_cost,
    penalty: float | None = None,
) -> list[int]:
    """
    Detect change points in `data`.

    Args:
        data: Ordered series
        cost_function: cost(data, start, end) for the half-open segment
        penalty: Cost of adding a segment (default_penalty if None)

    Returns:
        Ascending change-point indices; never 0 and never len(data)
    """
    data = tuple(data)
    n = len(data)
    if n == 0:
        return []
    if penalty is None:
        penalty = default_penalty(data)
    if penalty < 0:
        raise ValueError("penalty must be non-negative")
    if cost_function is squared_error_cost:
        if max(data) == min(data):
            # Every split of a flat series ties with one segment
            return []
        cost_function = PrefixSumCost(data)

    # best[t]: minimal cost of data[0:t]; last[t]: start of its final segment
    best = [0.0] * (n + 1)
    last = [0] * (n + 1)
    candidates = [0]

    for t in range(1, n + 1):
        segment_costs = [(tau, best[tau] + cost_function(data, tau, t)) for tau in candidates]

        best_tau, best_cost = segment_costs[0]
        for tau, cost in segment_costs[1:]:
            # Strict comparison: ties go to the earliest start, i.e. fewer segments
            if cost < best_cost:
                best_tau, best_cost = tau, cost
        best[t] = best_cost + penalty
        last[t] = best_tau

        if penalty > 0:
            # A start that already costs as much as best[t] can at most tie
            # with t from here on, so it is dropped
            candidates = [tau for tau, cost in segment_costs if cost < best[t]]
        else:
            candidates = [tau for tau, cost in segment_costs if cost <= best[t]]
        candidates.append(t)

    change_points = []
    t = last[n]
    while t > 0:
        change_points.append(t)
        t = last[t]
    change_points.reverse()
    return change_points


@dataclass
class Segment:
    start: int
    end: int
    mean: float


def mean_segments(data: Sequence[float], change_points: Sequence[int]) -> list[Segment]:
    """Split `data` at `change_points` and summarise each regime by its mean."""
    if not data:
        return []
    bounds = [0, *change_points, len(data)]
    return [
        Segment(start=start, end=end, mean=math.fsum(data[start:end]) / (end - start))
        for start, end in zip(bounds, bounds[1:])
        if end > start
    ]
