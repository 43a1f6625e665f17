"""In-memory reminder store and record builders for tests."""

import uuid
from datetime import UTC, date, datetime, time
from zoneinfo import ZoneInfo

from reminder_scheduler.models.glucose import MeasurementType, ReadingContext
from reminder_scheduler.models.notification_schedule import (
    NotificationSchedule,
    NotificationScheduleRun,
    RunStatus,
)
from reminder_scheduler.schemas.reminders import GlucoseReadingRecord, MealWindowRecord
from reminder_scheduler.services.prompt_classification import classify_reading_context
from reminder_scheduler.services.reminder_store import (
    ReadingContextFilter,
    ReminderStoreError,
)

WARSAW = ZoneInfo("Europe/Warsaw")

# A winter week (Warsaw is UTC+1): Monday 2026-01-12 .. Sunday 2026-01-18
TARGET_MONDAY = date(2026, 1, 12)
# The weekly job runs early on the Sunday before
RUN_NOW = datetime(2026, 1, 11, 1, 0, tzinfo=UTC)


def make_reading(
    user_id: uuid.UUID,
    local: datetime,
    measurement_type: MeasurementType = MeasurementType.FASTING,
    context: ReadingContext | None = ReadingContext.ORGANIC,
) -> GlucoseReadingRecord:
    """Reading taken at a local Warsaw wall-clock time."""
    if local.tzinfo is None:
        local = local.replace(tzinfo=WARSAW)
    return GlucoseReadingRecord(
        user_id=user_id,
        measurement_type=measurement_type,
        measured_at=local.astimezone(UTC),
        reading_context=context,
    )


def make_window(
    user_id: uuid.UUID,
    day_of_week: int,
    start: time,
    end: time,
    measurement_type: MeasurementType = MeasurementType.FASTING,
    meal_number: int | None = None,
) -> MealWindowRecord:
    return MealWindowRecord(
        user_id=user_id,
        day_of_week=day_of_week,
        measurement_type=measurement_type,
        meal_number=meal_number,
        time_start=start,
        time_end=end,
    )


class FakeReminderStore:
    """ReminderStore kept in memory, with per-user failure injection."""

    def __init__(self):
        self.readings: list[GlucoseReadingRecord] = []
        self.meal_windows: dict[uuid.UUID, list[MealWindowRecord]] = {}
        self.completed_weeks: dict[uuid.UUID, int] = {}
        self.eligible_user_ids: list[uuid.UUID] = []
        self.schedules: dict[uuid.UUID, list[NotificationSchedule]] = {}
        self.runs: dict[date, NotificationScheduleRun] = {}
        self.fail_fetch_for: set[uuid.UUID] = set()
        self.fail_write_for: set[uuid.UUID] = set()
        self.fail_listing_users = False
        self.fetch_calls: list[dict] = []

    def add_user(
        self,
        user_id: uuid.UUID,
        windows: list[MealWindowRecord],
        readings: list[GlucoseReadingRecord] | None = None,
        completed_weeks: int = 0,
    ) -> None:
        self.eligible_user_ids.append(user_id)
        self.meal_windows[user_id] = list(windows)
        self.readings.extend(readings or [])
        self.completed_weeks[user_id] = completed_weeks

    async def fetch_readings(
        self,
        user_id: uuid.UUID,
        measurement_type: MeasurementType | None = None,
        since: datetime | None = None,
        context: ReadingContextFilter | None = None,
    ) -> list[GlucoseReadingRecord]:
        self.fetch_calls.append(
            {
                "user_id": user_id,
                "measurement_type": measurement_type,
                "since": since,
                "context": context,
            }
        )
        if user_id in self.fail_fetch_for:
            raise ReminderStoreError("Failed to fetch readings: connection reset")

        records = [r for r in self.readings if r.user_id == user_id]
        if measurement_type is not None:
            records = [r for r in records if r.measurement_type == measurement_type]
        if since is not None:
            records = [r for r in records if r.measured_at >= since]
        if context == ReadingContextFilter.SCHEDULED_PROMPT:
            records = [
                r for r in records if r.reading_context == ReadingContext.SCHEDULED_PROMPT
            ]
        elif context == ReadingContextFilter.NOT_SCHEDULED_PROMPT:
            records = [
                r for r in records if r.reading_context != ReadingContext.SCHEDULED_PROMPT
            ]
        return sorted(records, key=lambda r: r.measured_at)

    async def tag_prompted_readings(self, user_id: uuid.UUID, since: datetime) -> int:
        if user_id in self.fail_fetch_for:
            raise ReminderStoreError("Failed to fetch readings to classify: connection reset")

        schedules = self.schedules.get(user_id, [])
        tagged = 0
        for i, reading in enumerate(self.readings):
            if reading.user_id != user_id or reading.measured_at < since:
                continue
            if reading.reading_context not in (None, ReadingContext.ORGANIC):
                continue
            context = classify_reading_context(
                reading.measured_at, reading.measurement_type, schedules
            )
            if context == ReadingContext.SCHEDULED_PROMPT:
                self.readings[i] = reading.model_copy(update={"reading_context": context})
                tagged += 1
        return tagged

    async def fetch_meal_windows(self, user_id: uuid.UUID) -> list[MealWindowRecord]:
        if user_id in self.fail_fetch_for:
            raise ReminderStoreError("Failed to fetch meal windows: connection reset")
        return list(self.meal_windows.get(user_id, []))

    async def count_completed_weeks_before(
        self, user_id: uuid.UUID, target_monday: date
    ) -> int:
        return self.completed_weeks.get(user_id, 0)

    async def replace_week_schedules(
        self,
        user_id: uuid.UUID,
        week_start: datetime,
        week_end: datetime,
        rows: list[NotificationSchedule],
    ) -> int:
        if user_id in self.fail_write_for:
            raise ReminderStoreError("Failed to write schedules: deadlock detected")

        kept = [
            r
            for r in self.schedules.get(user_id, [])
            if not (week_start <= r.scheduled_at < week_end)
        ]
        self.schedules[user_id] = kept + list(rows)
        return len(rows)

    async def fetch_eligible_user_ids(self) -> list[uuid.UUID]:
        if self.fail_listing_users:
            raise ReminderStoreError("Failed to list eligible users: timeout")
        return list(self.eligible_user_ids)

    async def get_run(self, week: date) -> NotificationScheduleRun | None:
        return self.runs.get(week)

    async def start_run(self, week: date) -> NotificationScheduleRun:
        run = self.runs.get(week)
        if run is None:
            run = NotificationScheduleRun(id=uuid.uuid4(), run_week_start_date=week)
            self.runs[week] = run
        run.status = RunStatus.RUNNING
        run.started_at = datetime.now(UTC)
        run.finished_at = None
        run.error = None
        return run

    async def finish_run(
        self,
        run: NotificationScheduleRun,
        status: RunStatus,
        *,
        users_processed: int = 0,
        schedules_created: int = 0,
        error: str | None = None,
    ) -> None:
        run.status = status
        run.finished_at = datetime.now(UTC)
        run.users_processed = users_processed
        run.schedules_created = schedules_created
        run.error = error
