"""Prompted-reading classification.

A reading taken close to one of the user's reminders is treated as a
response to that reminder. The weekly run trusts such readings fully, so
this classification decides which readings count as scheduled-week data.
"""

from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import Protocol

from reminder_scheduler.models.glucose import MeasurementType, ReadingContext

# A reading within this distance of a reminder counts as prompted
PROMPT_PROXIMITY_MINUTES = 30

# Only reminders this recent are considered when classifying
PROMPT_RECENCY_DAYS = 7


class ScheduledReminder(Protocol):
    measurement_type: MeasurementType
    scheduled_at: datetime


def classify_reading_context(
    measured_at: datetime,
    measurement_type: MeasurementType,
    schedules: Iterable[ScheduledReminder],
    now: datetime | None = None,
) -> ReadingContext:
    """Classify a reading as prompted or organic.

    A reading is prompted when a reminder of the same measurement type was
    scheduled within 30 minutes either side of it, considering reminders
    scheduled in the 7 days before `now` only. `now` defaults to the
    reading's own time, the moment it was recorded.
    """
    if measured_at.tzinfo is None:
        measured_at = measured_at.replace(tzinfo=UTC)
    if now is None:
        now = measured_at

    proximity = timedelta(minutes=PROMPT_PROXIMITY_MINUTES)
    recent_since = now - timedelta(days=PROMPT_RECENCY_DAYS)

    for schedule in schedules:
        if schedule.measurement_type != measurement_type:
            continue
        if schedule.scheduled_at < recent_since:
            continue
        if abs(schedule.scheduled_at - measured_at) <= proximity:
            return ReadingContext.SCHEDULED_PROMPT

    return ReadingContext.ORGANIC
