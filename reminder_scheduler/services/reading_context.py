"""Reading context fetching.

Loads a user's readings according to their lookback strategy and tags each
one with its data quality and trust weight. Prompted readings (taken near
an earlier reminder) are trusted fully; organic readings carry the
strategy's decayed weight.
"""

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from reminder_scheduler.logging_config import get_logger
from reminder_scheduler.models.glucose import MeasurementType
from reminder_scheduler.schemas.reminders import GlucoseReadingRecord, MealWindowRecord
from reminder_scheduler.services.lookback_strategy import LookbackMode, LookbackStrategy
from reminder_scheduler.services.reminder_store import ReadingContextFilter, ReminderStore
from reminder_scheduler.services.time_windows import to_local_parts

logger = get_logger(__name__)

# Recency bound on prompted readings
SCHEDULED_READINGS_LOOKBACK_DAYS = 90
SCHEDULED_READING_WEIGHT = 1.0

# Re-fetch of organic readings for a mature user who stopped following prompts
FALLBACK_LOOKBACK_DAYS = 30
FALLBACK_WEIGHT = 0.5
FALLBACK_MIN_READINGS = 3


class DataQuality(str, enum.Enum):
    """Trust class of a reading."""

    SCHEDULED_WEEK = "scheduled_week"
    HISTORICAL = "historical"


@dataclass(frozen=True)
class ReadingWithWeight:
    """A reading in local time, tagged with its trust class and weight."""

    user_id: uuid.UUID
    measurement_type: MeasurementType
    day_of_week: int  # 0=Sunday .. 6=Saturday
    minute_of_day: int
    local_date: str
    data_quality: DataQuality
    weight: float  # (0, 1]

    @classmethod
    def from_record(
        cls,
        record: GlucoseReadingRecord,
        data_quality: DataQuality,
        weight: float,
        tz: ZoneInfo,
    ) -> "ReadingWithWeight":
        parts = to_local_parts(record.measured_at, tz)
        return cls(
            user_id=record.user_id,
            measurement_type=record.measurement_type,
            day_of_week=parts.day_of_week,
            minute_of_day=parts.minute_of_day,
            local_date=parts.local_date,
            data_quality=data_quality,
            weight=weight,
        )


async def fetch_readings_with_context(
    store: ReminderStore,
    user_id: uuid.UUID,
    strategy: LookbackStrategy,
    *,
    now: datetime,
    tz: ZoneInfo,
) -> list[ReadingWithWeight]:
    """Fetch the readings the strategy allows, tagged and converted to local time.

    Prompted readings come from the last 90 days at weight 1.0. Organic
    readings come from the strategy's lookback window at its historical
    weight; prompted ones are excluded there so nothing is counted twice.

    Raises:
        ReminderStoreError: If a fetch fails.
    """
    readings: list[ReadingWithWeight] = []

    if strategy.use_scheduled_weeks:
        records = await store.fetch_readings(
            user_id,
            since=now - timedelta(days=SCHEDULED_READINGS_LOOKBACK_DAYS),
            context=ReadingContextFilter.SCHEDULED_PROMPT,
        )
        readings.extend(
            ReadingWithWeight.from_record(
                r, DataQuality.SCHEDULED_WEEK, SCHEDULED_READING_WEIGHT, tz
            )
            for r in records
        )

    if strategy.use_historical_weeks and strategy.historical_lookback_days > 0:
        records = await store.fetch_readings(
            user_id,
            since=now - timedelta(days=strategy.historical_lookback_days),
            context=ReadingContextFilter.NOT_SCHEDULED_PROMPT,
        )
        readings.extend(
            ReadingWithWeight.from_record(
                r, DataQuality.HISTORICAL, strategy.historical_weight, tz
            )
            for r in records
        )

    logger.debug(
        "Fetched readings with context",
        user_id=str(user_id),
        mode=strategy.mode.value,
        scheduled=sum(1 for r in readings if r.data_quality == DataQuality.SCHEDULED_WEEK),
        historical=sum(1 for r in readings if r.data_quality == DataQuality.HISTORICAL),
    )
    return readings


async def apply_adaptive_fallback(
    store: ReminderStore,
    readings: list[ReadingWithWeight],
    strategy: LookbackStrategy,
    window: MealWindowRecord,
    *,
    now: datetime,
    tz: ZoneInfo,
) -> list[ReadingWithWeight]:
    """Top up a mature user's window with recent organic readings.

    Applies only in mature mode when the window has fewer than 3 readings.
    Every organic reading of the window's measurement type from the last
    30 days is appended as historical at weight 0.5, whatever its day or
    time of day.

    Returns:
        The window's readings, possibly extended.

    Raises:
        ReminderStoreError: If the re-fetch fails.
    """
    if strategy.mode != LookbackMode.MATURE or len(readings) >= FALLBACK_MIN_READINGS:
        return readings

    records = await store.fetch_readings(
        window.user_id,
        measurement_type=window.measurement_type,
        since=now - timedelta(days=FALLBACK_LOOKBACK_DAYS),
        context=ReadingContextFilter.NOT_SCHEDULED_PROMPT,
    )
    fallback = [
        ReadingWithWeight.from_record(record, DataQuality.HISTORICAL, FALLBACK_WEIGHT, tz)
        for record in records
    ]

    if fallback:
        logger.info(
            "Applied adaptive fallback",
            user_id=str(window.user_id),
            meal_window_id=str(window.id),
            measurement_type=window.measurement_type.value,
            window_readings=len(readings),
            fallback_readings=len(fallback),
        )
    return [*readings, *fallback]

