"""
Unit tests for correlating daily wellbeing logs with symptoms.
"""

import pytest

from correlator.services.clock import utc_date
from correlator.services.daily_log_correlation import (
    DailyLogCorrelationService,
    log_markers,
    matching_logs,
)
from correlator.services.errors import CorrelationValidationError, InvalidTimeRangeError
from correlator.services.schemas import TimeRange
from tests.fixtures.mocks import DAY, HOUR, CountingEventStore, FakeClock, daily_log, symptom

TWENTY_DAYS = TimeRange(start=0, end=20 * DAY)


def log_on(day: int, **metrics):
    return daily_log(utc_date(day * DAY), **metrics)


def short_sleep_store() -> CountingEventStore:
    """Sleep alternates 5h/8h; a headache follows each short night by late morning."""
    store = CountingEventStore()
    for day in range(20):
        short = day % 2 == 0
        store.add(log_on(day, sleep_hours=5.0 if short else 8.0, mood=3))
        if short:
            store.add(symptom(day * DAY + 11 * HOUR, "headache"))
    return store


# =============================================================================
# Log filtering
# =============================================================================


class TestMatchingLogs:
    """Tests for thresholding a metric."""

    def test_operators(self):
        logs = [log_on(0, mood=1), log_on(1, mood=3), log_on(2, mood=5)]

        assert [log.mood for log in matching_logs(logs, "mood", 3, "<")] == [1]
        assert [log.mood for log in matching_logs(logs, "mood", 3, "<=")] == [1, 3]
        assert [log.mood for log in matching_logs(logs, "mood", 3, ">")] == [5]
        assert [log.mood for log in matching_logs(logs, "mood", 3, ">=")] == [3, 5]

    def test_missing_metric_never_matches(self):
        logs = [log_on(0, sleep_hours=None, mood=1), log_on(1, stress_level=9)]

        assert matching_logs(logs, "sleepHours", 100, "<") == []
        assert len(matching_logs(logs, "stressLevel", 5, ">")) == 1

    def test_marker_times(self):
        logs = [log_on(2)]

        assert log_markers(logs, "forward")[0].timestamp == 2 * DAY + 8 * HOUR
        assert log_markers(logs, "reverse")[0].timestamp == 2 * DAY + 22 * HOUR


# =============================================================================
# DailyLogCorrelationService Tests
# =============================================================================


class TestComputeCorrelation:
    """Tests for DailyLogCorrelationService.compute_correlation."""

    @pytest.mark.asyncio
    async def test_short_sleep_precedes_headache(self):
        service = DailyLogCorrelationService(short_sleep_store(), clock=FakeClock(7))

        result = await service.compute_correlation(
            "user-1", "sleepHours", "headache", "forward", TWENTY_DAYS, 6, "<"
        )

        assert result.best_window.window == "2-4h"
        assert result.sample_size == 10
        assert result.best_window.hit_count == 10
        assert result.consistency == 1.0
        assert result.confidence == "high"
        assert result.computed_at == 7
        assert (result.metric, result.operator, result.threshold) == ("sleepHours", "<", 6)

    @pytest.mark.asyncio
    async def test_good_sleep_has_no_hits(self):
        service = DailyLogCorrelationService(short_sleep_store())

        result = await service.compute_correlation(
            "user-1", "sleepHours", "headache", "forward", TWENTY_DAYS, 7, ">="
        )

        assert result.sample_size == 10
        assert result.best_window.window != "2-4h"
        assert result.window_scores[3].hit_count == 0

    @pytest.mark.asyncio
    async def test_reverse_symptom_precedes_low_mood(self):
        store = CountingEventStore()
        for day in range(12):
            headache = day % 3 != 0
            store.add(log_on(day, mood=1 if headache else 4))
            if headache:
                store.add(symptom(day * DAY + 19 * HOUR, "headache"))
        service = DailyLogCorrelationService(store)

        result = await service.compute_correlation(
            "user-1", "mood", "headache", "reverse", TimeRange(start=0, end=12 * DAY), 2, "<="
        )

        assert result.direction == "reverse"
        assert result.sample_size == 8
        assert result.best_window.window == "2-4h"
        assert result.best_window.hit_count == 8

    @pytest.mark.asyncio
    async def test_fetches_logs_and_symptoms_once(self):
        store = short_sleep_store()

        await DailyLogCorrelationService(store).compute_correlation(
            "user-1", "sleepHours", "headache", "forward", TWENTY_DAYS, 6, "<"
        )

        assert store.calls == {"find_daily_logs": 1, "find_symptom_events": 1}

    @pytest.mark.asyncio
    async def test_no_logs_returns_zero_result(self):
        service = DailyLogCorrelationService(CountingEventStore())

        result = await service.compute_correlation(
            "user-1", "stressLevel", "headache", "forward", TWENTY_DAYS, 7, ">"
        )

        assert result.sample_size == 0
        assert result.confidence == "low"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "metric,operator,direction",
        [("steps", "<", "forward"), ("mood", "==", "forward"), ("mood", "<", "sideways")],
    )
    async def test_unknown_arguments_rejected(self, metric, operator, direction):
        store = short_sleep_store()

        with pytest.raises(CorrelationValidationError):
            await DailyLogCorrelationService(store).compute_correlation(
                "user-1", metric, "headache", direction, TWENTY_DAYS, 3, operator
            )

        assert store.total_calls() == 0

    @pytest.mark.asyncio
    async def test_blank_symptom_rejected(self):
        with pytest.raises(CorrelationValidationError, match="symptomId"):
            await DailyLogCorrelationService(CountingEventStore()).compute_correlation(
                "user-1", "mood", " ", "forward", TWENTY_DAYS, 3, "<"
            )

    @pytest.mark.asyncio
    async def test_invalid_range_rejected(self):
        with pytest.raises(InvalidTimeRangeError):
            await DailyLogCorrelationService(CountingEventStore()).compute_correlation(
                "user-1", "mood", "headache", "forward", TimeRange(start=5, end=5), 3, "<"
            )
