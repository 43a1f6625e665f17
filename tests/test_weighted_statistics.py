"""Tests for weighted median, confidence and outlier filtering."""

import uuid

import pytest

from reminder_scheduler.models.glucose import MeasurementType
from reminder_scheduler.services.lookback_strategy import strategy_for_weeks
from reminder_scheduler.services.reading_context import DataQuality, ReadingWithWeight
from reminder_scheduler.services.weighted_statistics import (
    calculate_confidence,
    calculate_weighted_median,
    filter_outliers_by_weight,
)

USER_ID = uuid.uuid4()


def weighted(
    minute: int,
    weight: float = 1.0,
    quality: DataQuality = DataQuality.HISTORICAL,
) -> ReadingWithWeight:
    return ReadingWithWeight(
        user_id=USER_ID,
        measurement_type=MeasurementType.FASTING,
        day_of_week=1,
        minute_of_day=minute,
        local_date="2026-01-05",
        data_quality=quality,
        weight=weight,
    )


def scheduled(minute: int) -> ReadingWithWeight:
    return weighted(minute, 1.0, DataQuality.SCHEDULED_WEEK)


class TestWeightedMedian:
    """Tests for calculate_weighted_median."""

    def test_cumulative_weight_reaches_half(self):
        """Half of 2.4 is first reached at the second reading."""
        readings = [weighted(420, 0.4), weighted(480, 1.0), weighted(540, 1.0)]
        assert calculate_weighted_median(readings) == 480

    def test_input_order_does_not_matter(self):
        readings = [weighted(540, 1.0), weighted(420, 0.4), weighted(480, 1.0)]
        assert calculate_weighted_median(readings) == 480

    def test_exact_half_ties_to_earlier_minute(self):
        """Equal weights split evenly resolve to the earlier time."""
        readings = [weighted(420, 1.0), weighted(480, 1.0)]
        assert calculate_weighted_median(readings) == 420

    def test_heavy_reading_dominates(self):
        readings = [weighted(420, 0.1), weighted(430, 0.1), weighted(600, 1.0)]
        assert calculate_weighted_median(readings) == 600

    def test_empty_returns_zero(self):
        assert calculate_weighted_median([]) == 0


class TestConfidence:
    """Tests for calculate_confidence."""

    def test_fewer_than_three_readings_is_fallback(self):
        strategy = strategy_for_weeks(6)
        assert calculate_confidence([], strategy) == 0.5
        assert calculate_confidence([scheduled(480), scheduled(481)], strategy) == 0.5

    def test_bootstrap_history_only(self):
        """40 organic readings at full weight: 0.7 + 0.1."""
        readings = [weighted(480) for _ in range(40)]
        confidence = calculate_confidence(readings, strategy_for_weeks(0))
        assert confidence == pytest.approx(0.8)

    def test_mature_scheduled_only(self):
        """Five or more prompted readings max out the volume bonus."""
        readings = [scheduled(480) for _ in range(20)]
        assert calculate_confidence(readings, strategy_for_weeks(6)) == pytest.approx(1.0)

    def test_historical_bonus_scaled_by_strategy_weight(self):
        """Week-3 transition weight 0.1 makes organic volume nearly worthless."""
        readings = [weighted(480, 0.1) for _ in range(5)]
        confidence = calculate_confidence(readings, strategy_for_weeks(3))
        assert confidence == pytest.approx(0.7 + 5 * 0.02 * 0.1)

    def test_monotonic_in_scheduled_readings(self):
        """Adding prompted readings never lowers confidence."""
        strategy = strategy_for_weeks(2)
        base = [weighted(480, strategy.historical_weight) for _ in range(3)]
        previous = calculate_confidence(base, strategy)
        for count in range(1, 15):
            current = calculate_confidence(base + [scheduled(480)] * count, strategy)
            assert current >= previous
            previous = current

    def test_clamped_to_one(self):
        readings = [weighted(480) for _ in range(30)] + [scheduled(480) for _ in range(30)]
        assert calculate_confidence(readings, strategy_for_weeks(0)) == 1.0

    def test_always_within_bounds(self):
        for weeks in range(7):
            strategy = strategy_for_weeks(weeks)
            for n_scheduled in range(0, 12, 3):
                for n_historical in range(0, 12, 3):
                    readings = [scheduled(480)] * n_scheduled + [weighted(480)] * n_historical
                    assert 0.0 <= calculate_confidence(readings, strategy) <= 1.0


class TestFilterOutliersByWeight:
    """Tests for filter_outliers_by_weight."""

    def test_removes_far_reading(self):
        """A reading at 23:00 among 08:00 readings is dropped."""
        minutes = [475, 480, 485, 490, 478, 482, 1380]
        result = filter_outliers_by_weight([weighted(m) for m in minutes])
        assert [r.minute_of_day for r in result] == [475, 480, 485, 490, 478, 482]

    def test_identical_minutes_are_kept(self):
        """Zero deviation falls back to 1 instead of dividing by zero."""
        readings = [weighted(480) for _ in range(5)]
        assert filter_outliers_by_weight(readings) == readings

    def test_small_sets_pass_through(self):
        readings = [weighted(100), weighted(1000)]
        assert filter_outliers_by_weight(readings) == readings

    def test_weight_does_not_protect_outlier(self):
        """A fully trusted reading far from the cluster is still removed."""
        readings = [weighted(m, 0.1) for m in (478, 480, 482, 484, 486)] + [scheduled(1200)]
        result = filter_outliers_by_weight(readings)
        assert all(r.minute_of_day < 500 for r in result)
        assert len(result) == 5

    def test_custom_threshold(self):
        """A tighter threshold removes more."""
        readings = [weighted(m) for m in (470, 480, 480, 480, 490)]
        assert len(filter_outliers_by_weight(readings, threshold=2)) == 5
        assert len(filter_outliers_by_weight(readings, threshold=1)) == 3
