"""Unweighted meal-window filtering pipeline.

The simpler scheduling path: readings are filtered to the user's meal
windows, cleared of outliers, clustered into 15-minute bins, and the most
frequent bins become reminders. Reminders are then spaced, snapped to
nearby window edges, and windows left uncovered get a default reminder.

Selected with REMINDER_PIPELINE=legacy; the functions are also usable on
their own.
"""

import math
import statistics
import uuid
import warnings
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from reminder_scheduler.logging_config import get_logger
from reminder_scheduler.models.glucose import MeasurementType
from reminder_scheduler.schemas.reminders import GlucoseReadingRecord, MealWindowRecord
from reminder_scheduler.services.time_windows import (
    in_window,
    to_absolute,
    to_local_parts,
)

logger = get_logger(__name__)

CLUSTER_BIN_MINUTES = 15
MAX_REMINDERS_PER_DAY = 6
LEGACY_OFFSET_MINUTES = 5

# Reminders this close outside a window are moved onto its edge
SNAP_PROXIMITY_MINUTES = 30

# Gap-filling reminders sit this long before the window closes
GAP_FILL_OFFSET_MINUTES = 20


@dataclass(frozen=True)
class Reading:
    """A reading in local time, without trust weighting."""

    user_id: uuid.UUID
    measurement_type: MeasurementType
    day_of_week: int
    minute_of_day: int
    local_date: str

    @classmethod
    def from_record(cls, record: GlucoseReadingRecord, tz: ZoneInfo) -> "Reading":
        parts = to_local_parts(record.measured_at, tz)
        return cls(
            user_id=record.user_id,
            measurement_type=record.measurement_type,
            day_of_week=parts.day_of_week,
            minute_of_day=parts.minute_of_day,
            local_date=parts.local_date,
        )


@dataclass(frozen=True)
class Schedule:
    """A reminder produced by this pipeline."""

    user_id: uuid.UUID
    measurement_type: MeasurementType
    scheduled_at: datetime
    minute_of_day: int | None = None
    frequency: int = 0
    is_default_reminder: bool = False


def _matching_windows(
    windows: list[MealWindowRecord],
    day_of_week: int,
    measurement_type: MeasurementType,
) -> list[MealWindowRecord]:
    return [
        w
        for w in windows
        if w.day_of_week == day_of_week and w.measurement_type == measurement_type
    ]


def _local_position(scheduled_at: datetime, tz: ZoneInfo) -> tuple[int, int]:
    parts = to_local_parts(scheduled_at, tz)
    return parts.day_of_week, parts.minute_of_day


def _at_local_minute(scheduled_at: datetime, minute_of_day: int, tz: ZoneInfo) -> datetime:
    """Same local day as scheduled_at, at minute_of_day."""
    local_day = scheduled_at.astimezone(tz).date()
    wall_clock = datetime.combine(
        local_day, time(minute_of_day // 60, minute_of_day % 60), tzinfo=tz
    )
    return wall_clock.astimezone(UTC)


def filter_readings_by_meal_windows(
    readings: list[Reading], meal_windows: list[MealWindowRecord]
) -> list[Reading]:
    """Keep readings that fall inside a window of their day and type.

    With no windows at all every reading is kept. A reading whose day and
    type have no window is dropped.
    """
    if not meal_windows:
        return list(readings)

    return [
        r
        for r in readings
        if any(
            in_window(r.minute_of_day, w.start_minute, w.end_minute)
            for w in _matching_windows(meal_windows, r.day_of_week, r.measurement_type)
        )
    ]


def detect_statistical_outliers(values: list[int], threshold: float = 2) -> list[int]:
    """Drop values more than `threshold` deviations from the median.

    Needs at least 3 values; fewer are returned unchanged.
    """
    if len(values) < 3:
        return list(values)

    median = statistics.median(values)
    deviation = math.sqrt(sum((v - median) ** 2 for v in values) / len(values))

    return [v for v in values if abs(v - median) / (deviation or 1) <= threshold]


def filter_outliers(readings: list[Reading], threshold: float = 2) -> list[Reading]:
    """Apply outlier detection per (user, day, measurement type) group."""
    groups: dict[tuple, list[Reading]] = defaultdict(list)
    for reading in readings:
        groups[(reading.user_id, reading.day_of_week, reading.measurement_type)].append(
            reading
        )

    filtered: list[Reading] = []
    for group in groups.values():
        valid = set(detect_statistical_outliers([r.minute_of_day for r in group], threshold))
        filtered.extend(r for r in group if r.minute_of_day in valid)
    return filtered


def compute_schedule_times(
    readings: list[Reading], target_monday: date, tz: ZoneInfo
) -> list[Schedule]:
    """Turn reading clusters into reminders for the target week.

    For each (user, measurement type, day) group, readings are binned into
    15-minute slots. The most frequent slots (ties to the earlier slot) are
    kept, as many as the average readings per day with data, at most 6.
    Each kept slot becomes a reminder at its median minute plus 5, with
    `frequency` set to the number of readings in the slot.
    """
    groups: dict[tuple, list[Reading]] = defaultdict(list)
    for reading in readings:
        groups[(reading.user_id, reading.measurement_type, reading.day_of_week)].append(
            reading
        )

    schedules: list[Schedule] = []
    for (user_id, measurement_type, day_of_week), group in groups.items():
        bins: dict[int, list[int]] = defaultdict(list)
        for r in group:
            bins[(r.minute_of_day // CLUSTER_BIN_MINUTES) * CLUSTER_BIN_MINUTES].append(
                r.minute_of_day
            )
        top_bins = sorted(bins, key=lambda b: (-len(bins[b]), b))

        days_with_readings = len({r.local_date for r in group}) or 1
        avg_per_day = math.floor(len(group) / days_with_readings + 0.5)
        reminder_count = min(max(1, avg_per_day), MAX_REMINDERS_PER_DAY, len(top_bins))

        for bin_start in top_bins[:reminder_count]:
            minutes = bins[bin_start]
            target_minute = (
                math.floor(statistics.median(minutes) + 0.5) + LEGACY_OFFSET_MINUTES
            )
            schedules.append(
                Schedule(
                    user_id=user_id,
                    measurement_type=measurement_type,
                    scheduled_at=to_absolute(target_monday, day_of_week, target_minute, tz),
                    minute_of_day=target_minute,
                    frequency=len(minutes),
                )
            )

    return sorted(schedules, key=lambda s: s.scheduled_at)


def enforce_minimum_spacing(
    schedules: list[Schedule], min_spacing_minutes: int = 90
) -> list[Schedule]:
    """Chronological sweep keeping reminders at least min_spacing apart.

    A reminder too close to the last kept one replaces it only when its
    frequency is strictly higher; otherwise it is dropped.
    """
    spacing = timedelta(minutes=min_spacing_minutes)
    kept: list[Schedule] = []

    for schedule in sorted(schedules, key=lambda s: s.scheduled_at):
        if not kept or schedule.scheduled_at - kept[-1].scheduled_at >= spacing:
            kept.append(schedule)
        elif schedule.frequency > kept[-1].frequency:
            kept[-1] = schedule

    return kept


def adjust_schedules_to_meal_windows(
    schedules: list[Schedule], meal_windows: list[MealWindowRecord], tz: ZoneInfo
) -> list[Schedule]:
    """Fit reminders into the user's windows.

    Reminders inside a window of their day and type are kept. Those at most
    30 minutes outside the nearest such window are moved onto its edge.
    The rest are discarded. With no windows at all nothing changes.
    """
    if not meal_windows:
        return list(schedules)

    adjusted: list[Schedule] = []
    for schedule in schedules:
        day_of_week, minute = _local_position(schedule.scheduled_at, tz)
        windows = _matching_windows(meal_windows, day_of_week, schedule.measurement_type)
        if not windows:
            continue

        if any(in_window(minute, w.start_minute, w.end_minute) for w in windows):
            adjusted.append(schedule)
            continue

        best_distance, best_minute = min(
            (w.start_minute - minute, w.start_minute)
            if minute < w.start_minute
            else (minute - w.end_minute, w.end_minute)
            for w in windows
        )
        if best_distance <= SNAP_PROXIMITY_MINUTES:
            adjusted.append(
                replace(
                    schedule,
                    scheduled_at=_at_local_minute(schedule.scheduled_at, best_minute, tz),
                    minute_of_day=best_minute,
                )
            )

    return adjusted


def fill_missing_meal_window_reminders(
    adjusted_schedules: list[Schedule],
    meal_windows: list[MealWindowRecord],
    user_measurement_types: dict[uuid.UUID, set[MeasurementType]],
    target_monday: date,
    tz: ZoneInfo,
) -> list[Schedule]:
    """Default reminders for windows left without one.

    Only windows of measurement types the user has readings for are
    filled. A window is covered when a reminder of its type falls on its
    day inside its range. The default sits 20 minutes before the window
    closes, but never before it opens.

    Returns:
        The gap-filling reminders only.
    """
    covered = [
        (s.user_id, s.measurement_type, *_local_position(s.scheduled_at, tz))
        for s in adjusted_schedules
    ]

    fillers: list[Schedule] = []
    for window in meal_windows:
        if window.measurement_type not in user_measurement_types.get(window.user_id, set()):
            continue

        if any(
            user_id == window.user_id
            and measurement_type == window.measurement_type
            and day_of_week == window.day_of_week
            and in_window(minute, window.start_minute, window.end_minute)
            for user_id, measurement_type, day_of_week, minute in covered
        ):
            continue

        minute = max(window.start_minute, window.end_minute - GAP_FILL_OFFSET_MINUTES)
        filler = Schedule(
            user_id=window.user_id,
            measurement_type=window.measurement_type,
            scheduled_at=to_absolute(target_monday, window.day_of_week, minute, tz),
            minute_of_day=minute,
            frequency=0,
            is_default_reminder=True,
        )
        fillers.append(filler)
        covered.append(
            (window.user_id, window.measurement_type, window.day_of_week, minute)
        )

    return fillers


def validate_schedules_against_windows(
    schedules: list[Schedule], meal_windows: list[MealWindowRecord], tz: ZoneInfo
) -> list[Schedule]:
    """Drop reminders outside every window of their day and type.

    Deprecated: adjust_schedules_to_meal_windows snaps near misses instead
    of dropping them.
    """
    warnings.warn(
        "validate_schedules_against_windows is deprecated; "
        "use adjust_schedules_to_meal_windows",
        DeprecationWarning,
        stacklevel=2,
    )
    if not meal_windows:
        return list(schedules)

    kept = []
    for schedule in schedules:
        day_of_week, minute = _local_position(schedule.scheduled_at, tz)
        if any(
            in_window(minute, w.start_minute, w.end_minute)
            for w in _matching_windows(meal_windows, day_of_week, schedule.measurement_type)
        ):
            kept.append(schedule)
    return kept


def build_legacy_schedules(
    readings: list[Reading],
    meal_windows: list[MealWindowRecord],
    target_monday: date,
    tz: ZoneInfo,
    min_spacing_minutes: int = 90,
) -> list[Schedule]:
    """Run the whole unweighted pipeline for one user's readings.

    Returns:
        Final reminders in chronological order.
    """
    user_measurement_types: dict[uuid.UUID, set[MeasurementType]] = defaultdict(set)
    for reading in readings:
        user_measurement_types[reading.user_id].add(reading.measurement_type)

    in_windows = filter_readings_by_meal_windows(readings, meal_windows)
    cleaned = filter_outliers(in_windows)
    computed = compute_schedule_times(cleaned, target_monday, tz)
    spaced = enforce_minimum_spacing(computed, min_spacing_minutes)
    adjusted = adjust_schedules_to_meal_windows(spaced, meal_windows, tz)
    fillers = fill_missing_meal_window_reminders(
        adjusted, meal_windows, user_measurement_types, target_monday, tz
    )

    logger.debug(
        "Built legacy schedules",
        readings=len(readings),
        in_windows=len(in_windows),
        computed=len(computed),
        adjusted=len(adjusted),
        gap_fillers=len(fillers),
    )
    return sorted([*adjusted, *fillers], key=lambda s: s.scheduled_at)
