"""Data access for the reminder scheduler.

ReminderStore is the interface the scheduling algorithm depends on;
SqlReminderStore implements it over an async SQLAlchemy session. Rows are
converted to validated pydantic records here, so the algorithm never sees
a malformed reading or an inverted meal window.
"""

import enum
import uuid
from datetime import UTC, date, datetime, timedelta
from typing import Protocol
from zoneinfo import ZoneInfo

from pydantic import ValidationError
from sqlalchemy import delete, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from reminder_scheduler.logging_config import get_logger
from reminder_scheduler.models.glucose import (
    GlucoseReading,
    MeasurementType,
    ReadingContext,
)
from reminder_scheduler.models.meal_window import UserMealWindow
from reminder_scheduler.models.notification_schedule import (
    NotificationSchedule,
    NotificationScheduleRun,
    RunStatus,
)
from reminder_scheduler.models.user_settings import UserSettings
from reminder_scheduler.schemas.reminders import GlucoseReadingRecord, MealWindowRecord
from reminder_scheduler.services.meal_windows import build_default_meal_windows
from reminder_scheduler.services.prompt_classification import (
    PROMPT_PROXIMITY_MINUTES,
    classify_reading_context,
)
from reminder_scheduler.services.time_windows import get_current_monday, week_bounds

logger = get_logger(__name__)


class ReminderStoreError(Exception):
    """Raised when the store cannot fetch or write scheduler data."""


class ReadingContextFilter(str, enum.Enum):
    """Which readings to fetch by their prompt classification."""

    SCHEDULED_PROMPT = "scheduled_prompt"
    NOT_SCHEDULED_PROMPT = "not_scheduled_prompt"


class ReminderStore(Protocol):
    """Storage operations consumed and produced by the weekly run."""

    async def fetch_readings(
        self,
        user_id: uuid.UUID,
        measurement_type: MeasurementType | None = None,
        since: datetime | None = None,
        context: ReadingContextFilter | None = None,
    ) -> list[GlucoseReadingRecord]: ...

    async def tag_prompted_readings(self, user_id: uuid.UUID, since: datetime) -> int: ...

    async def fetch_meal_windows(self, user_id: uuid.UUID) -> list[MealWindowRecord]: ...

    async def count_completed_weeks_before(
        self, user_id: uuid.UUID, target_monday: date
    ) -> int: ...

    async def replace_week_schedules(
        self,
        user_id: uuid.UUID,
        week_start: datetime,
        week_end: datetime,
        rows: list[NotificationSchedule],
    ) -> int: ...

    async def fetch_eligible_user_ids(self) -> list[uuid.UUID]: ...

    async def get_run(self, week: date) -> NotificationScheduleRun | None: ...

    async def start_run(self, week: date) -> NotificationScheduleRun: ...

    async def finish_run(
        self,
        run: NotificationScheduleRun,
        status: RunStatus,
        *,
        users_processed: int = 0,
        schedules_created: int = 0,
        error: str | None = None,
    ) -> None: ...


class SqlReminderStore:
    """ReminderStore backed by PostgreSQL through SQLAlchemy."""

    def __init__(self, db: AsyncSession, tz: ZoneInfo):
        self.db = db
        self.tz = tz

    async def _execute(self, statement, action: str):
        try:
            return await self.db.execute(statement)
        except SQLAlchemyError as e:
            # Leave the session usable for the next user
            await self.db.rollback()
            raise ReminderStoreError(f"Failed to {action}: {e}") from e

    async def fetch_readings(
        self,
        user_id: uuid.UUID,
        measurement_type: MeasurementType | None = None,
        since: datetime | None = None,
        context: ReadingContextFilter | None = None,
    ) -> list[GlucoseReadingRecord]:
        """Fetch a user's readings, oldest first.

        Args:
            user_id: User's UUID.
            measurement_type: Restrict to one measurement type.
            since: Only readings measured at or after this instant.
            context: Restrict by scheduled-prompt classification. Readings
                with no recorded context count as organic.

        Returns:
            Validated reading records.
        """
        query = select(GlucoseReading).where(GlucoseReading.user_id == user_id)

        if measurement_type is not None:
            query = query.where(GlucoseReading.measurement_type == measurement_type)
        if since is not None:
            query = query.where(GlucoseReading.measured_at >= since)
        if context == ReadingContextFilter.SCHEDULED_PROMPT:
            query = query.where(
                GlucoseReading.reading_context == ReadingContext.SCHEDULED_PROMPT
            )
        elif context == ReadingContextFilter.NOT_SCHEDULED_PROMPT:
            query = query.where(
                or_(
                    GlucoseReading.reading_context.is_(None),
                    GlucoseReading.reading_context != ReadingContext.SCHEDULED_PROMPT,
                )
            )

        result = await self._execute(
            query.order_by(GlucoseReading.measured_at), "fetch readings"
        )
        try:
            return [
                GlucoseReadingRecord.model_validate(row)
                for row in result.scalars().all()
            ]
        except ValidationError as e:
            raise ReminderStoreError(f"Malformed reading row: {e}") from e

    async def tag_prompted_readings(self, user_id: uuid.UUID, since: datetime) -> int:
        """Mark the user's organic readings taken near a reminder as prompted.

        Covers readings measured at or after `since` whose context is
        organic or unset. Each is classified against the reminders that
        were recent when it was taken. Manual entries are left alone.

        Returns:
            Number of readings newly marked as prompted.
        """
        result = await self._execute(
            select(GlucoseReading).where(
                GlucoseReading.user_id == user_id,
                GlucoseReading.measured_at >= since,
                or_(
                    GlucoseReading.reading_context.is_(None),
                    GlucoseReading.reading_context == ReadingContext.ORGANIC,
                ),
            ),
            "fetch readings to classify",
        )
        readings = list(result.scalars().all())
        if not readings:
            return 0

        result = await self._execute(
            select(NotificationSchedule).where(
                NotificationSchedule.user_id == user_id,
                NotificationSchedule.scheduled_at
                >= since - timedelta(minutes=PROMPT_PROXIMITY_MINUTES),
            ),
            "fetch reminders to classify against",
        )
        schedules = list(result.scalars().all())
        if not schedules:
            return 0

        tagged = 0
        for reading in readings:
            context = classify_reading_context(
                reading.measured_at, reading.measurement_type, schedules
            )
            if context == ReadingContext.SCHEDULED_PROMPT:
                reading.reading_context = context
                tagged += 1

        if not tagged:
            return 0
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise ReminderStoreError(f"Failed to tag prompted readings: {e}") from e

        logger.debug("Tagged prompted readings", user_id=str(user_id), tagged=tagged)
        return tagged

    async def fetch_meal_windows(self, user_id: uuid.UUID) -> list[MealWindowRecord]:
        """Fetch a user's meal windows in (day, type, meal) order."""
        result = await self._execute(
            select(UserMealWindow)
            .where(UserMealWindow.user_id == user_id)
            .order_by(
                UserMealWindow.day_of_week,
                UserMealWindow.measurement_type,
                UserMealWindow.meal_number,
            ),
            "fetch meal windows",
        )
        try:
            return [
                MealWindowRecord.model_validate(row) for row in result.scalars().all()
            ]
        except ValidationError as e:
            raise ReminderStoreError(f"Malformed meal window row: {e}") from e

    async def count_completed_weeks_before(
        self, user_id: uuid.UUID, target_monday: date
    ) -> int:
        """Count completed run weeks before target_monday with schedules for the user.

        A week counts when the user has at least one schedule between its
        local Monday 00:00 and the following Monday 00:00.
        """
        result = await self._execute(
            select(NotificationScheduleRun.run_week_start_date).where(
                NotificationScheduleRun.status == RunStatus.COMPLETED,
                NotificationScheduleRun.run_week_start_date < target_monday,
            ),
            "list completed runs",
        )
        completed_weeks = set(result.scalars().all())
        if not completed_weeks:
            return 0

        range_start, _ = week_bounds(min(completed_weeks), self.tz)
        range_end, _ = week_bounds(target_monday, self.tz)

        result = await self._execute(
            select(NotificationSchedule.scheduled_at).where(
                NotificationSchedule.user_id == user_id,
                NotificationSchedule.scheduled_at >= range_start,
                NotificationSchedule.scheduled_at < range_end,
            ),
            "list past schedules",
        )
        weeks_with_schedules = {
            get_current_monday(scheduled_at, self.tz)
            for scheduled_at in result.scalars().all()
        }
        return len(completed_weeks & weeks_with_schedules)

    async def replace_week_schedules(
        self,
        user_id: uuid.UUID,
        week_start: datetime,
        week_end: datetime,
        rows: list[NotificationSchedule],
    ) -> int:
        """Replace the user's schedules in [week_start, week_end) in one transaction.

        Returns:
            Number of rows inserted.

        Raises:
            ReminderStoreError: After rolling back, if the write fails.
        """
        try:
            await self.db.execute(
                delete(NotificationSchedule).where(
                    NotificationSchedule.user_id == user_id,
                    NotificationSchedule.scheduled_at >= week_start,
                    NotificationSchedule.scheduled_at < week_end,
                )
            )
            self.db.add_all(rows)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise ReminderStoreError(f"Failed to write schedules: {e}") from e

        return len(rows)

    async def fetch_eligible_user_ids(self) -> list[uuid.UUID]:
        """Users with push notifications enabled."""
        result = await self._execute(
            select(UserSettings.user_id)
            .where(UserSettings.push_notifications_enabled.is_(True))
            .order_by(UserSettings.user_id),
            "list eligible users",
        )
        return list(result.scalars().all())

    async def get_run(self, week: date) -> NotificationScheduleRun | None:
        result = await self._execute(
            select(NotificationScheduleRun).where(
                NotificationScheduleRun.run_week_start_date == week
            ),
            "fetch run record",
        )
        return result.scalar_one_or_none()

    async def start_run(self, week: date) -> NotificationScheduleRun:
        """Create the run record, or re-open a failed/abandoned one."""
        run = await self.get_run(week)
        now = datetime.now(UTC)
        if run is None:
            run = NotificationScheduleRun(
                run_week_start_date=week,
                started_at=now,
                status=RunStatus.RUNNING,
            )
            self.db.add(run)
        else:
            run.status = RunStatus.RUNNING
            run.started_at = now
            run.finished_at = None
            run.error = None

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise ReminderStoreError(f"Failed to start run: {e}") from e
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
        run.error = error[:1000] if error else None
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise ReminderStoreError(f"Failed to finish run: {e}") from e

    async def seed_default_meal_windows(self, user_id: uuid.UUID) -> int:
        """Insert the default windows the user does not already have.

        Returns:
            Number of windows created.
        """
        existing = {
            (w.day_of_week, w.measurement_type, w.meal_number)
            for w in await self.fetch_meal_windows(user_id)
        }
        rows = [
            UserMealWindow(
                id=window.id,
                user_id=user_id,
                day_of_week=window.day_of_week,
                measurement_type=window.measurement_type,
                meal_number=window.meal_number,
                time_start=window.time_start,
                time_end=window.time_end,
            )
            for window in build_default_meal_windows(user_id)
            if (window.day_of_week, window.measurement_type, window.meal_number)
            not in existing
        ]
        if not rows:
            return 0

        try:
            self.db.add_all(rows)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise ReminderStoreError(f"Failed to seed meal windows: {e}") from e

        logger.info(
            "Seeded default meal windows",
            user_id=str(user_id),
            windows_created=len(rows),
        )
        return len(rows)
