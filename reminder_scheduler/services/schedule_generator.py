"""Per-window schedule generation and conflict resolution.

Each meal window yields exactly one candidate reminder: at the weighted
median of the user's readings in that window plus five minutes when there
is enough data, otherwise at a default point inside the window. The
candidates of one user are then thinned so that no two fire within the
minimum spacing, keeping the better-evidenced one of any conflicting pair.
"""

import math
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from reminder_scheduler.logging_config import get_logger
from reminder_scheduler.models.glucose import MeasurementType
from reminder_scheduler.models.notification_schedule import ScheduleSource
from reminder_scheduler.schemas.reminders import MealWindowRecord
from reminder_scheduler.services.lookback_strategy import LookbackStrategy
from reminder_scheduler.services.reading_context import (
    DataQuality,
    ReadingWithWeight,
    apply_adaptive_fallback,
)
from reminder_scheduler.services.reminder_store import ReminderStore
from reminder_scheduler.services.time_windows import in_window, to_absolute
from reminder_scheduler.services.weighted_statistics import (
    MIN_READINGS_FOR_STATISTICS,
    calculate_confidence,
    calculate_weighted_median,
    filter_outliers_by_weight,
)

logger = get_logger(__name__)

# Reminders fire slightly after the usual measurement time
HISTORY_OFFSET_MINUTES = 5

# Default post-meal reminder sits this long before the window closes
POST_MEAL_DEFAULT_OFFSET_MINUTES = 30

DEFAULT_CONFIDENCE = 0.5
DEFAULT_MIN_SPACING_MINUTES = 90


@dataclass(frozen=True)
class DataQualityBreakdown:
    """Counts of readings used, by trust class."""

    scheduled: int = 0
    historical: int = 0


@dataclass
class ScheduleCandidate:
    """A proposed reminder for one meal window."""

    user_id: uuid.UUID
    meal_window_id: uuid.UUID
    measurement_type: MeasurementType
    day_of_week: int
    minute_of_day: int  # may exceed the window end for history-based times
    scheduled_at: datetime
    confidence: float
    source: ScheduleSource
    readings_count: int = 0
    data_quality_breakdown: DataQualityBreakdown = field(
        default_factory=DataQualityBreakdown
    )


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def default_target_minute(window: MealWindowRecord) -> int:
    """Default reminder minute for a window with too little data.

    Fasting reminders go to the window midpoint, post-meal reminders 30
    minutes before the window closes; both are kept inside the window.
    """
    start, end = window.start_minute, window.end_minute
    if window.measurement_type == MeasurementType.FASTING:
        target = _round_half_up((start + end) / 2)
    else:
        target = end - POST_MEAL_DEFAULT_OFFSET_MINUTES
    return max(start, min(end, target))


def select_window_readings(
    readings: list[ReadingWithWeight], window: MealWindowRecord
) -> list[ReadingWithWeight]:
    """Readings of the window's type taken on its day inside its time range."""
    return [
        r
        for r in readings
        if r.measurement_type == window.measurement_type
        and r.day_of_week == window.day_of_week
        and in_window(r.minute_of_day, window.start_minute, window.end_minute)
    ]


async def generate_schedule_for_window(
    store: ReminderStore,
    window: MealWindowRecord,
    all_readings: list[ReadingWithWeight],
    strategy: LookbackStrategy,
    target_monday: date,
    *,
    tz: ZoneInfo,
    now: datetime,
) -> ScheduleCandidate:
    """Produce the reminder candidate for one meal window.

    With 3 or more readings left after outlier removal and the adaptive
    fallback, the reminder goes to the weighted median plus 5 minutes. That
    time is not clamped to the window, so a window whose readings cluster at
    its end can get a reminder a few minutes past it.

    Args:
        store: Store used by the adaptive fallback.
        window: The meal window.
        all_readings: The user's weighted readings for this run.
        strategy: The user's lookback strategy.
        target_monday: Local date of the Monday starting the target week.
        tz: Local civil timezone.
        now: Reference instant for the fallback's recency bound.

    Returns:
        ScheduleCandidate for the window.

    Raises:
        ReminderStoreError: If the adaptive fallback fetch fails.
    """
    window_readings = select_window_readings(all_readings, window)
    window_readings = filter_outliers_by_weight(window_readings)
    window_readings = await apply_adaptive_fallback(
        store, window_readings, strategy, window, now=now, tz=tz
    )

    if len(window_readings) >= MIN_READINGS_FOR_STATISTICS:
        median = calculate_weighted_median(window_readings)
        target_minute = _round_half_up(median) + HISTORY_OFFSET_MINUTES
        confidence = calculate_confidence(window_readings, strategy)
        source = ScheduleSource.HISTORY
    else:
        target_minute = default_target_minute(window)
        confidence = DEFAULT_CONFIDENCE
        source = ScheduleSource.DEFAULT_WINDOW

    scheduled = sum(
        1 for r in window_readings if r.data_quality == DataQuality.SCHEDULED_WEEK
    )

    return ScheduleCandidate(
        user_id=window.user_id,
        meal_window_id=window.id,
        measurement_type=window.measurement_type,
        day_of_week=window.day_of_week,
        minute_of_day=target_minute,
        scheduled_at=to_absolute(target_monday, window.day_of_week, target_minute, tz),
        confidence=confidence,
        source=source,
        readings_count=len(window_readings),
        data_quality_breakdown=DataQualityBreakdown(
            scheduled=scheduled,
            historical=len(window_readings) - scheduled,
        ),
    )


def enforce_spacing_by_confidence(
    candidates: list[ScheduleCandidate],
    min_spacing_minutes: int = DEFAULT_MIN_SPACING_MINUTES,
) -> list[ScheduleCandidate]:
    """Greedily keep the most confident candidates that are far enough apart.

    Candidates are taken in descending confidence (equal confidences keep
    their input order). Each accepted candidate removes every remaining one
    scheduled less than `min_spacing_minutes` away from it. Conflicting
    candidates are dropped, never moved.

    Returns:
        Accepted candidates in chronological order.
    """
    spacing = timedelta(minutes=min_spacing_minutes)
    pool = sorted(candidates, key=lambda c: -c.confidence)
    accepted: list[ScheduleCandidate] = []

    while pool:
        best = pool.pop(0)
        accepted.append(best)
        pool = [c for c in pool if abs(c.scheduled_at - best.scheduled_at) >= spacing]

    dropped = len(candidates) - len(accepted)
    if dropped:
        logger.debug(
            "Dropped conflicting candidates",
            candidates=len(candidates),
            dropped=dropped,
        )

    return sorted(accepted, key=lambda c: c.scheduled_at)
