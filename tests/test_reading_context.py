"""Tests for reading context fetching and the adaptive fallback."""

from datetime import datetime, time, timedelta

import pytest

from reminder_scheduler.models.glucose import MeasurementType, ReadingContext
from reminder_scheduler.services.lookback_strategy import strategy_for_weeks
from reminder_scheduler.services.reading_context import (
    FALLBACK_WEIGHT,
    DataQuality,
    ReadingWithWeight,
    apply_adaptive_fallback,
    fetch_readings_with_context,
)
from reminder_scheduler.services.reminder_store import ReadingContextFilter
from tests.fakes import RUN_NOW, WARSAW, make_reading, make_window


def monday_reading(user_id, days_back_weeks: int, hour: int, minute: int = 0, **kwargs):
    """Reading on a Monday before RUN_NOW (2026-01-05 minus N weeks)."""
    local = datetime(2026, 1, 5, hour, minute, tzinfo=WARSAW) - timedelta(weeks=days_back_weeks)
    return make_reading(user_id, local, **kwargs)


class TestFetchReadingsWithContext:
    """Tests for fetch_readings_with_context."""

    @pytest.mark.asyncio
    async def test_bootstrap_fetches_organic_only(self, store, user_id):
        """A new user gets organic history at full weight."""
        store.readings = [monday_reading(user_id, 0, 8), monday_reading(user_id, 1, 8, 15)]

        readings = await fetch_readings_with_context(
            store, user_id, strategy_for_weeks(0), now=RUN_NOW, tz=WARSAW
        )

        assert len(store.fetch_calls) == 1
        call = store.fetch_calls[0]
        assert call["context"] == ReadingContextFilter.NOT_SCHEDULED_PROMPT
        assert call["since"] == RUN_NOW - timedelta(days=60)
        assert {r.data_quality for r in readings} == {DataQuality.HISTORICAL}
        assert all(r.weight == 1.0 for r in readings)

    @pytest.mark.asyncio
    async def test_readings_are_in_local_time(self, store, user_id):
        store.readings = [monday_reading(user_id, 0, 8, 30)]

        readings = await fetch_readings_with_context(
            store, user_id, strategy_for_weeks(0), now=RUN_NOW, tz=WARSAW
        )

        assert readings[0].day_of_week == 1
        assert readings[0].minute_of_day == 510
        assert readings[0].local_date == "2026-01-05"

    @pytest.mark.asyncio
    async def test_transition_tags_both_sources(self, store, user_id):
        """Prompted readings count once, at full weight."""
        store.readings = [
            monday_reading(user_id, 0, 8, context=ReadingContext.SCHEDULED_PROMPT),
            monday_reading(user_id, 1, 8, context=ReadingContext.SCHEDULED_PROMPT),
            monday_reading(user_id, 2, 7, 45),
            monday_reading(user_id, 3, 8, 10, context=None),
        ]

        readings = await fetch_readings_with_context(
            store, user_id, strategy_for_weeks(1), now=RUN_NOW, tz=WARSAW
        )

        scheduled = [r for r in readings if r.data_quality == DataQuality.SCHEDULED_WEEK]
        historical = [r for r in readings if r.data_quality == DataQuality.HISTORICAL]
        assert len(readings) == 4
        assert len(scheduled) == 2
        assert all(r.weight == 1.0 for r in scheduled)
        assert len(historical) == 2
        assert all(r.weight == pytest.approx(0.7) for r in historical)

    @pytest.mark.asyncio
    async def test_transition_lookback_shrinks(self, store, user_id):
        await fetch_readings_with_context(
            store, user_id, strategy_for_weeks(2), now=RUN_NOW, tz=WARSAW
        )

        since_by_context = {c["context"]: c["since"] for c in store.fetch_calls}
        assert since_by_context[ReadingContextFilter.SCHEDULED_PROMPT] == RUN_NOW - timedelta(days=90)
        assert since_by_context[ReadingContextFilter.NOT_SCHEDULED_PROMPT] == RUN_NOW - timedelta(
            days=46
        )

    @pytest.mark.asyncio
    async def test_mature_ignores_organic(self, store, user_id):
        store.readings = [
            monday_reading(user_id, 0, 8, context=ReadingContext.SCHEDULED_PROMPT),
            monday_reading(user_id, 1, 8),
        ]

        readings = await fetch_readings_with_context(
            store, user_id, strategy_for_weeks(5), now=RUN_NOW, tz=WARSAW
        )

        assert [c["context"] for c in store.fetch_calls] == [
            ReadingContextFilter.SCHEDULED_PROMPT
        ]
        assert len(readings) == 1
        assert readings[0].data_quality == DataQuality.SCHEDULED_WEEK


class TestApplyAdaptiveFallback:
    """Tests for apply_adaptive_fallback."""

    def window(self, user_id):
        return make_window(user_id, 1, time(6, 0), time(10, 0))

    def existing(self, user_id) -> list[ReadingWithWeight]:
        return [
            ReadingWithWeight.from_record(
                monday_reading(user_id, 0, 8, context=ReadingContext.SCHEDULED_PROMPT),
                DataQuality.SCHEDULED_WEEK,
                1.0,
                WARSAW,
            )
        ]

    @pytest.mark.asyncio
    async def test_not_applied_outside_mature_mode(self, store, user_id):
        readings = self.existing(user_id)

        result = await apply_adaptive_fallback(
            store, readings, strategy_for_weeks(2), self.window(user_id), now=RUN_NOW, tz=WARSAW
        )

        assert result == readings
        assert store.fetch_calls == []

    @pytest.mark.asyncio
    async def test_not_applied_with_enough_readings(self, store, user_id):
        readings = self.existing(user_id) * 3

        result = await apply_adaptive_fallback(
            store, readings, strategy_for_weeks(6), self.window(user_id), now=RUN_NOW, tz=WARSAW
        )

        assert result == readings
        assert store.fetch_calls == []

    @pytest.mark.asyncio
    async def test_tops_up_quiet_mature_user(self, store, user_id):
        """Every recent organic reading of the window's type is added at weight 0.5."""
        tuesday = datetime(2026, 1, 6, 8, 0, tzinfo=WARSAW)
        store.readings = [
            monday_reading(user_id, 0, 8, 20),
            monday_reading(user_id, 1, 8, 40),
            # Outside the window's hours
            monday_reading(user_id, 2, 13, 0),
            # Another day of the week
            make_reading(user_id, tuesday),
            # Too old for the 30-day re-fetch
            monday_reading(user_id, 6, 8, 0),
            # Other measurement type
            monday_reading(user_id, 0, 9, 0, measurement_type=MeasurementType.AFTER_MEAL),
            # Prompted readings are already in the window's set
            make_reading(user_id, tuesday, context=ReadingContext.SCHEDULED_PROMPT),
        ]
        readings = self.existing(user_id)

        result = await apply_adaptive_fallback(
            store, readings, strategy_for_weeks(6), self.window(user_id), now=RUN_NOW, tz=WARSAW
        )

        call = store.fetch_calls[0]
        assert call["measurement_type"] == MeasurementType.FASTING
        assert call["since"] == RUN_NOW - timedelta(days=30)
        assert call["context"] == ReadingContextFilter.NOT_SCHEDULED_PROMPT

        added = result[len(readings):]
        assert result[: len(readings)] == readings
        assert sorted((r.day_of_week, r.minute_of_day) for r in added) == [
            (1, 500),
            (1, 520),
            (1, 780),
            (2, 480),
        ]
        assert all(r.weight == FALLBACK_WEIGHT for r in added)
        assert all(r.data_quality == DataQuality.HISTORICAL for r in added)
