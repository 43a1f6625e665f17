"""Local civil time helpers for reminder scheduling.

All day-of-week / minute-of-day values are in the configured IANA zone
(Europe/Warsaw in production), with day_of_week 0=Sunday .. 6=Saturday.
The zone is always passed in explicitly; nothing here depends on the
host's locale or TZ environment.
"""

from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True)
class LocalParts:
    """A UTC instant expressed in local civil time."""

    day_of_week: int  # 0=Sunday .. 6=Saturday
    minute_of_day: int  # 0..1439
    local_date: str  # YYYY-MM-DD


def _ensure_aware(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts


def sunday_based_day_of_week(d: date) -> int:
    """Convert Python's Monday=0 weekday to Sunday=0."""
    return (d.weekday() + 1) % 7


def to_local_parts(utc_timestamp: datetime, tz: ZoneInfo) -> LocalParts:
    """Extract local day-of-week, minute-of-day and date from a UTC instant.

    Naive timestamps are interpreted as UTC.
    """
    local = _ensure_aware(utc_timestamp).astimezone(tz)
    return LocalParts(
        day_of_week=sunday_based_day_of_week(local.date()),
        minute_of_day=local.hour * 60 + local.minute,
        local_date=local.date().isoformat(),
    )


def day_offset_from_monday(day_of_week: int) -> int:
    """Days after Monday for a Sunday-based day_of_week (Sunday -> 6)."""
    return 6 if day_of_week == 0 else day_of_week - 1


def to_absolute(
    target_monday: date,
    day_of_week: int,
    minute_of_day: int,
    tz: ZoneInfo,
) -> datetime:
    """Build the UTC instant for a local wall-clock time in the target week.

    minute_of_day may exceed 1439 (e.g. a late median plus offset); the
    excess rolls into the following day.

    Args:
        target_monday: Local date of the Monday starting the week.
        day_of_week: 0=Sunday .. 6=Saturday.
        minute_of_day: Minutes after local midnight.
        tz: Local civil timezone.

    Returns:
        Timezone-aware UTC datetime.
    """
    local_day = target_monday + timedelta(days=day_offset_from_monday(day_of_week))
    extra_days, minute = divmod(minute_of_day, MINUTES_PER_DAY)
    local_day += timedelta(days=extra_days)
    wall_clock = datetime.combine(local_day, time(minute // 60, minute % 60), tzinfo=tz)
    return wall_clock.astimezone(UTC)


def in_window(minute_of_day: int, start: int, end: int) -> bool:
    """Inclusive range test for a minute-of-day."""
    return start <= minute_of_day <= end


def time_to_minutes(value: time) -> int:
    """Minutes since midnight for a time-of-day."""
    return value.hour * 60 + value.minute


def get_next_monday(now: datetime, tz: ZoneInfo) -> date:
    """Local date of the Monday after `now` (Sunday -> tomorrow)."""
    local_today = _ensure_aware(now).astimezone(tz).date()
    return local_today + timedelta(days=7 - local_today.weekday())


def get_current_monday(now: datetime, tz: ZoneInfo) -> date:
    """Local date of the Monday starting the week that contains `now`."""
    local_today = _ensure_aware(now).astimezone(tz).date()
    return local_today - timedelta(days=local_today.weekday())


def week_bounds(target_monday: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """UTC instants of local Monday 00:00 and the following Monday 00:00.

    The week is not always exactly 168 hours long across a DST change.
    """
    start = datetime.combine(target_monday, time(0, 0), tzinfo=tz)
    end = datetime.combine(target_monday + timedelta(days=7), time(0, 0), tzinfo=tz)
    return start.astimezone(UTC), end.astimezone(UTC)
