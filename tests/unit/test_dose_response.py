"""
Unit tests for dose-response analysis (portion size vs. symptom severity).
"""

import logging

import pytest

from correlator.services.dose_response import (
    DoseResponseService,
    compute_dose_response,
    dose_response_confidence,
    normalize_portion,
)
from correlator.services.errors import InvalidTimeRangeError
from correlator.services.schemas import TimeRange
from tests.fixtures.mocks import DAY, HOUR, CountingEventStore, food, symptom

SIZES = ("small", "medium", "large")
MONTH = TimeRange(start=0, end=30 * DAY)


def portion_store(days: int = 12) -> CountingEventStore:
    """Rice at noon every day, cycling small/medium/large; bloating 3h later at 3 x portion - 1."""
    store = CountingEventStore()
    for day in range(days):
        noon = day * DAY + 12 * HOUR
        size = SIZES[day % 3]
        store.add(
            food(noon, "rice", portions={"rice": size}),
            symptom(noon + 3 * HOUR, "bloating", severity=3 * (day % 3 + 1) - 1),
        )
    return store


# =============================================================================
# Pure helpers
# =============================================================================


class TestNormalizePortion:
    """Tests for mapping portion labels to numbers."""

    @pytest.mark.parametrize(
        "size,expected", [("small", 1), ("medium", 2), ("large", 3), (" Large ", 3)]
    )
    def test_known_sizes(self, size, expected):
        assert normalize_portion(size) == expected

    def test_unknown_size_counts_as_medium(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert normalize_portion("huge") == 2

        assert "huge" in caplog.text


class TestConfidence:
    """Tests for the dose-response confidence tiers."""

    @pytest.mark.parametrize(
        "r_squared,sample_size,expected",
        [
            (0.9, 4, "insufficient"),
            (0.9, 10, "high"),
            (0.9, 9, "medium"),
            (0.7, 10, "high"),
            (0.5, 20, "medium"),
            (0.39, 20, "low"),
        ],
    )
    def test_tiers(self, r_squared, sample_size, expected):
        assert dose_response_confidence(r_squared, sample_size) == expected


class TestComputeDoseResponse:
    """Tests for fitting severity against portion."""

    def test_perfect_positive_relationship_with_few_points(self):
        result = compute_dose_response([1, 2, 3, 1, 2, 3], [2, 5, 8, 2, 5, 8])

        assert result.slope == pytest.approx(3.0)
        assert result.intercept == pytest.approx(-1.0)
        assert result.r_squared == pytest.approx(1.0)
        assert result.confidence == "medium"
        assert result.message == (
            "Larger portions correlate with more severe symptoms "
            "(Medium confidence: R² = 1.00). Based on 6 observations."
        )
        assert [p.portion for p in result.pairs] == [1, 2, 3, 1, 2, 3]

    def test_negative_relationship(self):
        result = compute_dose_response([1, 2, 3, 1, 2, 3], [8, 5, 2, 8, 5, 2])

        assert result.slope == pytest.approx(-3.0)
        assert result.message.startswith("Larger portions correlate with less severe symptoms")

    def test_weak_relationship_is_low_confidence(self):
        result = compute_dose_response([1, 2, 3, 1, 2, 3], [5, 1, 5, 1, 5, 3])

        assert result.slope == pytest.approx(0.5)
        assert result.confidence == "low"
        assert "(Low confidence: R² = 0.05 < 0.4)" in result.message

    def test_flat_severity_reports_no_relationship(self):
        result = compute_dose_response([1, 2, 3, 1, 2], [4, 4, 4, 4, 4])

        assert result.slope == 0
        assert result.message.startswith("No clear dose-response relationship detected")

    def test_too_few_observations(self):
        result = compute_dose_response([1, 2, 3, 1], [2, 5, 8, 2])

        assert result.confidence == "insufficient"
        assert result.sample_size == 4
        assert result.message == "Insufficient data: minimum 5 events required (found 4)"
        assert result.pairs == []

    def test_single_portion_size_cannot_be_fitted(self):
        result = compute_dose_response([2, 2, 2, 2, 2], [1, 3, 5, 7, 9])

        assert result.confidence == "insufficient"
        assert result.message == (
            "Analysis failed: Cannot compute regression: all x values are identical"
        )
        assert len(result.pairs) == 5

    def test_length_mismatch_rejected(self):
        with pytest.raises(ValueError):
            compute_dose_response([1, 2, 3], [1, 2])


# =============================================================================
# DoseResponseService Tests
# =============================================================================


class TestDoseResponseService:
    """Tests for pairing logged portions with the symptoms that followed."""

    @pytest.mark.asyncio
    async def test_high_confidence_relationship(self):
        service = DoseResponseService(portion_store())

        result = await service.analyze("user-1", "rice", "bloating", MONTH)

        assert result.food_id == "rice"
        assert result.effect_id == "bloating"
        assert result.sample_size == 12
        assert result.slope == pytest.approx(3.0)
        assert result.confidence == "high"

    @pytest.mark.asyncio
    async def test_worst_symptom_within_a_day_is_used(self):
        store = CountingEventStore()
        for day in range(5):
            noon = day * DAY + 12 * HOUR
            store.add(
                food(noon, "rice", portions={"rice": SIZES[day % 3]}),
                symptom(noon + HOUR, "bloating", severity=1),
                symptom(noon + 20 * HOUR, "bloating", severity=day + 3),
            )

        result = await DoseResponseService(store).analyze("user-1", "rice", "bloating", MONTH)

        assert [p.severity for p in result.pairs] == [3, 4, 5, 6, 7]

    @pytest.mark.asyncio
    async def test_symptom_after_a_day_not_paired(self):
        store = portion_store(days=6)
        store.add(food(20 * DAY, "rice", portions={"rice": "large"}))
        store.add(symptom(21 * DAY + 1, "bloating", severity=10))

        result = await DoseResponseService(store).analyze("user-1", "rice", "bloating", MONTH)

        assert result.sample_size == 6
        assert 10 not in [p.severity for p in result.pairs]

    @pytest.mark.asyncio
    async def test_meals_without_portion_for_food_skipped(self):
        store = portion_store(days=6)
        store.add(
            food(25 * DAY, "rice"),
            food(26 * DAY, "rice", "egg", portions={"egg": "large"}),
            symptom(25 * DAY + HOUR, "bloating", severity=9),
            symptom(26 * DAY + HOUR, "bloating", severity=9),
        )

        result = await DoseResponseService(store).analyze("user-1", "rice", "bloating", MONTH)

        assert result.sample_size == 6

    @pytest.mark.asyncio
    async def test_other_symptoms_ignored(self):
        service = DoseResponseService(portion_store())

        result = await service.analyze("user-1", "rice", "headache", MONTH)

        assert result.sample_size == 0
        assert result.confidence == "insufficient"
        assert result.food_id == "rice"

    @pytest.mark.asyncio
    async def test_invalid_range_rejected(self):
        store = portion_store()

        with pytest.raises(InvalidTimeRangeError):
            await DoseResponseService(store).analyze(
                "user-1", "rice", "bloating", TimeRange(start=DAY, end=DAY)
            )

        assert store.total_calls() == 0
