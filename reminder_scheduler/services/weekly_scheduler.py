"""Weekly reminder scheduling run.

Computes every eligible user's reminders for one target week and replaces
their rows for that week. The run ledger makes the run idempotent: a week
that already completed is skipped, a failed or abandoned one is redone.

Users are isolated from each other. A store failure for one user skips
that user and the run continues; only failures outside the per-user loop
(configuration, listing users) fail the whole run.
"""

import uuid
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from time import monotonic
from zoneinfo import ZoneInfo

from reminder_scheduler.config import settings, validate_scheduler_settings
from reminder_scheduler.database import get_db_session
from reminder_scheduler.logging_config import correlation_scope, get_logger
from reminder_scheduler.models.notification_schedule import (
    NotificationSchedule,
    RunStatus,
    ScheduleSource,
    ScheduleStatus,
)
from reminder_scheduler.schemas.reminders import MealWindowRecord
from reminder_scheduler.services.lookback_strategy import (
    BOOTSTRAP_LOOKBACK_DAYS,
    determine_lookback_strategy,
)
from reminder_scheduler.services.meal_window_filtering import (
    Reading,
    Schedule,
    build_legacy_schedules,
)
from reminder_scheduler.services.reading_context import (
    SCHEDULED_READINGS_LOOKBACK_DAYS,
    fetch_readings_with_context,
)
from reminder_scheduler.services.reminder_store import (
    ReminderStore,
    ReminderStoreError,
    SqlReminderStore,
)
from reminder_scheduler.services.schedule_generator import (
    ScheduleCandidate,
    enforce_spacing_by_confidence,
    generate_schedule_for_window,
)
from reminder_scheduler.services.time_windows import (
    get_current_monday,
    get_next_monday,
    week_bounds,
)

logger = get_logger(__name__)

PIPELINE_ADAPTIVE = "adaptive"
PIPELINE_LEGACY = "legacy"

BUDGET_EXHAUSTED_ERROR = "time budget exhausted"


@dataclass
class ScheduleRunResult:
    """Outcome of one weekly run."""

    week: date
    status: str  # "completed", "skipped" or "failed"
    users_processed: int = 0
    schedules_created: int = 0
    users_failed: int = 0


def candidate_to_row(candidate: ScheduleCandidate) -> NotificationSchedule:
    """Map an accepted candidate to a schedule row."""
    breakdown = candidate.data_quality_breakdown
    return NotificationSchedule(
        user_id=candidate.user_id,
        measurement_type=candidate.measurement_type,
        scheduled_at=candidate.scheduled_at,
        status=ScheduleStatus.SCHEDULED,
        meal_window_id=candidate.meal_window_id,
        confidence=round(candidate.confidence, 4),
        source=candidate.source,
        readings_count=candidate.readings_count,
        decision_reason=(
            f"{candidate.source.value}: {candidate.readings_count} readings "
            f"({breakdown.scheduled} scheduled, {breakdown.historical} historical), "
            f"confidence {candidate.confidence:.2f}"
        ),
    )


def legacy_schedule_to_row(schedule: Schedule) -> NotificationSchedule:
    """Map a legacy pipeline reminder to a schedule row."""
    if schedule.is_default_reminder:
        source = ScheduleSource.DEFAULT_WINDOW
        reason = "default_window: no covering reminder for meal window"
    else:
        source = ScheduleSource.HISTORY
        reason = f"history: {schedule.frequency} readings in cluster"

    return NotificationSchedule(
        user_id=schedule.user_id,
        measurement_type=schedule.measurement_type,
        scheduled_at=schedule.scheduled_at,
        status=ScheduleStatus.SCHEDULED,
        source=source,
        readings_count=schedule.frequency,
        decision_reason=reason,
    )


async def _build_adaptive_rows(
    store: ReminderStore,
    user_id: uuid.UUID,
    windows: list[MealWindowRecord],
    target_monday: date,
    *,
    tz: ZoneInfo,
    min_spacing_minutes: int,
    now: datetime,
) -> list[NotificationSchedule]:
    # Readings taken since the last run have not been matched to reminders yet
    await store.tag_prompted_readings(
        user_id, since=now - timedelta(days=SCHEDULED_READINGS_LOOKBACK_DAYS)
    )
    strategy = await determine_lookback_strategy(store, user_id, target_monday)
    readings = await fetch_readings_with_context(store, user_id, strategy, now=now, tz=tz)

    candidates = [
        await generate_schedule_for_window(
            store, window, readings, strategy, target_monday, tz=tz, now=now
        )
        for window in windows
    ]
    accepted = enforce_spacing_by_confidence(candidates, min_spacing_minutes)

    logger.debug(
        "Generated candidates",
        user_id=str(user_id),
        mode=strategy.mode.value,
        readings=len(readings),
        candidates=len(candidates),
        accepted=len(accepted),
    )
    return [candidate_to_row(c) for c in accepted]


async def _build_legacy_rows(
    store: ReminderStore,
    user_id: uuid.UUID,
    windows: list[MealWindowRecord],
    target_monday: date,
    *,
    tz: ZoneInfo,
    min_spacing_minutes: int,
    now: datetime,
) -> list[NotificationSchedule]:
    records = await store.fetch_readings(
        user_id, since=now - timedelta(days=BOOTSTRAP_LOOKBACK_DAYS)
    )
    readings = [Reading.from_record(r, tz) for r in records]
    schedules = build_legacy_schedules(
        readings, windows, target_monday, tz, min_spacing_minutes
    )
    return [legacy_schedule_to_row(s) for s in schedules]


async def schedule_user_week(
    store: ReminderStore,
    user_id: uuid.UUID,
    target_monday: date,
    *,
    tz: ZoneInfo,
    min_spacing_minutes: int = 90,
    pipeline: str = PIPELINE_ADAPTIVE,
    now: datetime,
) -> int | None:
    """Compute and store one user's reminders for the target week.

    Args:
        store: Reminder store.
        user_id: User's UUID.
        target_monday: Local date of the Monday starting the week.
        tz: Local civil timezone.
        min_spacing_minutes: Minimum distance between two reminders.
        pipeline: "adaptive" or "legacy".
        now: Reference instant for lookback windows.

    Returns:
        Number of schedules written, or None when the user has no meal
        windows and was skipped.

    Raises:
        ReminderStoreError: If a fetch or the write fails. Nothing is
            written for the user in that case.
    """
    windows = await store.fetch_meal_windows(user_id)
    if not windows:
        logger.info("Skipping user without meal windows", user_id=str(user_id))
        return None

    windows = sorted(
        windows,
        key=lambda w: (w.day_of_week, w.measurement_type.value, w.meal_number or 0),
    )

    build_rows = _build_legacy_rows if pipeline == PIPELINE_LEGACY else _build_adaptive_rows
    rows = await build_rows(
        store,
        user_id,
        windows,
        target_monday,
        tz=tz,
        min_spacing_minutes=min_spacing_minutes,
        now=now,
    )

    # Rows pushed past Sunday midnight would escape the next rerun's delete
    week_start, week_end = week_bounds(target_monday, tz)
    in_week = [r for r in rows if week_start <= r.scheduled_at < week_end]
    if len(in_week) != len(rows):
        logger.debug(
            "Dropped schedules outside target week",
            user_id=str(user_id),
            dropped=len(rows) - len(in_week),
        )

    try:
        written = await store.replace_week_schedules(user_id, week_start, week_end, in_week)
    except ReminderStoreError as e:
        logger.error(
            "Failed to write user schedules",
            user_id=str(user_id),
            error=str(e),
        )
        raise

    logger.info(
        "Scheduled user week",
        user_id=str(user_id),
        week=target_monday.isoformat(),
        schedules=written,
    )
    return written


async def run_weekly_schedule(
    store: ReminderStore,
    target_monday: date,
    *,
    tz: ZoneInfo,
    min_spacing_minutes: int = 90,
    pipeline: str = PIPELINE_ADAPTIVE,
    now: datetime | None = None,
    budget_seconds: float = 0,
) -> ScheduleRunResult:
    """Schedule every eligible user for the week starting target_monday.

    Args:
        store: Reminder store.
        target_monday: Local date of the Monday starting the week.
        tz: Local civil timezone.
        min_spacing_minutes: Minimum distance between two reminders.
        pipeline: "adaptive" or "legacy".
        now: Reference instant; defaults to the current time.
        budget_seconds: Wall-clock budget for the user loop; 0 disables it.
            Users left when it runs out are not processed and the run is
            marked failed so the next invocation redoes the week.

    Returns:
        ScheduleRunResult for the week.

    Raises:
        Exception: Whatever failed outside the per-user loop, after the run
            record has been marked failed.
    """
    now = now or datetime.now(UTC)

    existing = await store.get_run(target_monday)
    if existing is not None and existing.status == RunStatus.COMPLETED:
        logger.info(
            "Week already scheduled, skipping",
            week=target_monday.isoformat(),
        )
        return ScheduleRunResult(
            week=target_monday,
            status="skipped",
            users_processed=existing.users_processed or 0,
            schedules_created=existing.schedules_created or 0,
        )

    run = await store.start_run(target_monday)
    deadline = monotonic() + budget_seconds if budget_seconds > 0 else None

    users_processed = 0
    users_failed = 0
    schedules_created = 0
    budget_exhausted = False

    with correlation_scope(str(run.id)):
        logger.info(
            "Starting weekly reminder scheduling",
            week=target_monday.isoformat(),
            pipeline=pipeline,
        )

        try:
            user_ids = await store.fetch_eligible_user_ids()

            for user_id in user_ids:
                if deadline is not None and monotonic() >= deadline:
                    budget_exhausted = True
                    logger.warning(
                        "Run time budget exhausted",
                        remaining_users=len(user_ids) - users_processed - users_failed,
                    )
                    break

                try:
                    written = await schedule_user_week(
                        store,
                        user_id,
                        target_monday,
                        tz=tz,
                        min_spacing_minutes=min_spacing_minutes,
                        pipeline=pipeline,
                        now=now,
                    )
                except ReminderStoreError as e:
                    logger.warning(
                        "Skipped user after store failure",
                        user_id=str(user_id),
                        error=str(e),
                    )
                    users_failed += 1
                    continue
                except Exception as e:
                    logger.error(
                        "Unexpected error scheduling user",
                        exc_info=True,
                        user_id=str(user_id),
                        error=str(e),
                    )
                    users_failed += 1
                    continue

                if written is not None:
                    users_processed += 1
                    schedules_created += written

        except Exception as e:
            logger.error(
                "Weekly reminder scheduling failed",
                exc_info=True,
                week=target_monday.isoformat(),
                error=str(e),
            )
            await store.finish_run(
                run,
                RunStatus.FAILED,
                users_processed=users_processed,
                schedules_created=schedules_created,
                error=str(e),
            )
            raise

        status = RunStatus.FAILED if budget_exhausted else RunStatus.COMPLETED
        await store.finish_run(
            run,
            status,
            users_processed=users_processed,
            schedules_created=schedules_created,
            error=BUDGET_EXHAUSTED_ERROR if budget_exhausted else None,
        )

        logger.info(
            "Weekly reminder scheduling finished",
            week=target_monday.isoformat(),
            status=status.value,
            users_processed=users_processed,
            users_failed=users_failed,
            schedules_created=schedules_created,
        )

    return ScheduleRunResult(
        week=target_monday,
        status=status.value,
        users_processed=users_processed,
        schedules_created=schedules_created,
        users_failed=users_failed,
    )


def resolve_target_monday(week: str, now: datetime, tz: ZoneInfo) -> date:
    """Map "next" / "current" to the local Monday of that week."""
    if week == "next":
        return get_next_monday(now, tz)
    if week == "current":
        return get_current_monday(now, tz)
    raise ValueError(f"Unknown week selector: {week!r} (expected 'next' or 'current')")


async def schedule_weekly_reminders(week: str = "next") -> ScheduleRunResult:
    """Entry point for the cron job and the HTTP trigger.

    Raises:
        SchedulerConfigurationError: Before anything is written, if the
            configuration is invalid.
    """
    tz = validate_scheduler_settings()
    now = datetime.now(UTC)
    target_monday = resolve_target_monday(week, now, tz)

    async with get_db_session() as db:
        store = SqlReminderStore(db, tz)
        return await run_weekly_schedule(
            store,
            target_monday,
            tz=tz,
            min_spacing_minutes=settings.reminder_min_spacing_minutes,
            pipeline=settings.reminder_pipeline,
            now=now,
            budget_seconds=settings.reminder_run_budget_seconds,
        )
