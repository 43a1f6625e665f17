"""Tests for prompted-reading classification."""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from reminder_scheduler.models.glucose import MeasurementType, ReadingContext
from reminder_scheduler.services.prompt_classification import classify_reading_context
from tests.fakes import RUN_NOW


@dataclass
class Reminder:
    measurement_type: MeasurementType
    scheduled_at: datetime


class TestClassifyReadingContext:
    """Tests for classify_reading_context."""

    def test_near_reminder_is_prompted(self):
        scheduled_at = datetime(2026, 1, 10, 7, 5, tzinfo=UTC)
        result = classify_reading_context(
            datetime(2026, 1, 10, 7, 30, tzinfo=UTC),
            MeasurementType.FASTING,
            [Reminder(MeasurementType.FASTING, scheduled_at)],
            RUN_NOW,
        )
        assert result == ReadingContext.SCHEDULED_PROMPT

    def test_boundary_is_inclusive(self):
        scheduled_at = datetime(2026, 1, 10, 7, 0, tzinfo=UTC)
        result = classify_reading_context(
            scheduled_at - timedelta(minutes=30),
            MeasurementType.FASTING,
            [Reminder(MeasurementType.FASTING, scheduled_at)],
            RUN_NOW,
        )
        assert result == ReadingContext.SCHEDULED_PROMPT

    def test_far_from_reminder_is_organic(self):
        scheduled_at = datetime(2026, 1, 10, 7, 0, tzinfo=UTC)
        result = classify_reading_context(
            scheduled_at + timedelta(minutes=31),
            MeasurementType.FASTING,
            [Reminder(MeasurementType.FASTING, scheduled_at)],
            RUN_NOW,
        )
        assert result == ReadingContext.ORGANIC

    def test_other_measurement_type_is_organic(self):
        scheduled_at = datetime(2026, 1, 10, 7, 0, tzinfo=UTC)
        result = classify_reading_context(
            scheduled_at,
            MeasurementType.AFTER_MEAL,
            [Reminder(MeasurementType.FASTING, scheduled_at)],
            RUN_NOW,
        )
        assert result == ReadingContext.ORGANIC

    def test_stale_reminders_are_ignored(self):
        scheduled_at = RUN_NOW - timedelta(days=8)
        result = classify_reading_context(
            scheduled_at,
            MeasurementType.FASTING,
            [Reminder(MeasurementType.FASTING, scheduled_at)],
            RUN_NOW,
        )
        assert result == ReadingContext.ORGANIC

    def test_no_reminders(self):
        assert (
            classify_reading_context(RUN_NOW, MeasurementType.FASTING, [], RUN_NOW)
            == ReadingContext.ORGANIC
        )

    def test_defaults_to_reading_time(self):
        """Without `now`, recency is judged from when the reading was taken."""
        scheduled_at = datetime(2025, 12, 1, 7, 0, tzinfo=UTC)
        reminders = [Reminder(MeasurementType.FASTING, scheduled_at)]

        assert (
            classify_reading_context(scheduled_at, MeasurementType.FASTING, reminders)
            == ReadingContext.SCHEDULED_PROMPT
        )
        # The same reading classified at run time finds the reminder stale
        assert (
            classify_reading_context(scheduled_at, MeasurementType.FASTING, reminders, RUN_NOW)
            == ReadingContext.ORGANIC
        )
