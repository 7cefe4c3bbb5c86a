"""
Synergy detection for foods eaten together.

A combination is a pair (or triple) of foods logged in the same meal. Its
joint score treats "every food of the combination present" as the cause;
synergy is how much the joint score exceeds the strongest individual food.
"""

import itertools
import logging
from typing import Mapping, Sequence

from correlator.services.confidence import confidence_of
from correlator.services.correlation_service import select_best_window
from correlator.services.schemas import (
    CombinationEffect,
    CombinationOptions,
    CorrelationResult,
    DelayWindow,
    FoodEvent,
    TimeRange,
)
from correlator.services.window_scorer import WINDOW_SET, compute_window_scores

logger = logging.getLogger(__name__)


def distinct_foods(food_events: Sequence[FoodEvent]) -> list[str]:
    """Distinct food ids in discovery order (chronological, then meal order)."""
    seen: dict[str, None] = {}
    for event in food_events:
        for food_id in event.food_ids:
            seen.setdefault(food_id, None)
    return list(seen)


def candidate_combinations(
    food_events: Sequence[FoodEvent], max_size: int, max_pairs: int
) -> list[tuple[str, ...]]:
    """
    Unordered food tuples that co-occur in a single food event.

    Tuples are keyed in sorted order and kept in discovery order. Once
    `max_pairs` candidates are found, later discoveries are dropped.
    """
    found: dict[tuple[str, ...], None] = {}
    if max_pairs <= 0:
        return []
    for event in food_events:
        foods = list(dict.fromkeys(event.food_ids))
        for size in range(2, max_size + 1):
            for combo in itertools.combinations(foods, size):
                key = tuple(sorted(combo))
                if key in found:
                    continue
                found[key] = None
                if len(found) >= max_pairs:
                    return list(found)
    return list(found)


class CombinationService:
    """Scores co-occurring food combinations against a symptom."""

    def __init__(self, windows: Sequence[DelayWindow] = WINDOW_SET):
        self.windows = tuple(windows)

    def detect(
        self,
        effect_id: str,
        food_events: Sequence[FoodEvent],
        effect_events: Sequence,
        individual: Mapping[str, CorrelationResult],
        time_range: TimeRange,
        options: CombinationOptions,
    ) -> list[CombinationEffect]:
        """
        Find synergistic combinations.

        Args:
            effect_id: Symptom name the effects were filtered by
            food_events: Chronologically sorted food events in range
            effect_events: Chronologically sorted events for `effect_id`
            individual: Individual result per food id
            time_range: Range the events were fetched for
            options: Thresholds and caps

        Returns:
            Combinations whose synergy exceeds the threshold and whose joint
            sample size meets the minimum, strongest synergy first
        """
        candidates = candidate_combinations(
            food_events, options.max_combination_size, options.max_pairs
        )
        logger.debug(
            "Testing %d food combinations against %s", len(candidates), effect_id
        )

        effects: list[CombinationEffect] = []
        for combo in candidates:
            joint_events = [
                e for e in food_events if all(food in e.food_ids for food in combo)
            ]
            scores = compute_window_scores(
                joint_events, effect_events, time_range, self.windows
            )
            best = select_best_window(scores, options.min_sample_size)
            individual_scores = tuple(
                individual[food].best_window.score if food in individual else 0.0
                for food in combo
            )
            synergy = best.score - max(individual_scores)

            if synergy <= options.synergy_threshold:
                continue
            if best.sample_size < options.min_sample_size:
                continue

            effects.append(
                CombinationEffect(
                    cause_ids=combo,
                    effect_id=effect_id,
                    synergy_score=synergy,
                    individual_scores=individual_scores,
                    joint_score=best.score,
                    best_window=best,
                    sample_size=best.sample_size,
                    confidence=confidence_of(best),
                )
            )

        # Stable sort keeps discovery order among equal synergies
        effects.sort(key=lambda c: c.synergy_score, reverse=True)
        return effects
