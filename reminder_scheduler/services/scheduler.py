"""APScheduler wiring for the weekly reminder run."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from reminder_scheduler.config import SchedulerConfigurationError, settings
from reminder_scheduler.logging_config import get_logger
from reminder_scheduler.services.weekly_scheduler import schedule_weekly_reminders

logger = get_logger(__name__)

WEEKLY_JOB_ID = "weekly_reminder_schedule"

scheduler: AsyncIOScheduler | None = None


async def schedule_reminders_job() -> None:
    """Generate next week's reminders for all eligible users.

    Failures are logged; the job runs again at its next trigger time.
    """
    try:
        result = await schedule_weekly_reminders("next")
    except SchedulerConfigurationError as e:
        logger.error("Weekly reminder job misconfigured", error=str(e))
        return
    except Exception as e:
        logger.error("Weekly reminder job failed", exc_info=True, error=str(e))
        return

    logger.info(
        "Weekly reminder job completed",
        week=result.week.isoformat(),
        status=result.status,
        users_processed=result.users_processed,
        users_failed=result.users_failed,
        schedules_created=result.schedules_created,
    )


def _weekly_trigger() -> CronTrigger:
    return CronTrigger(
        day_of_week=settings.weekly_schedule_day_of_week,
        hour=settings.weekly_schedule_hour,
        minute=settings.weekly_schedule_minute,
        timezone=settings.reminder_timezone,
    )


def start_scheduler() -> AsyncIOScheduler:
    """Create and start the process-wide scheduler.

    Calling it again while a scheduler is running returns that instance.
    The weekly job is only registered when weekly_schedule_enabled is set.
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already running")
        return scheduler

    scheduler = AsyncIOScheduler(timezone=settings.reminder_timezone)
    if settings.weekly_schedule_enabled:
        job = scheduler.add_job(
            schedule_reminders_job,
            trigger=_weekly_trigger(),
            id=WEEKLY_JOB_ID,
            name="Weekly reminder scheduling",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(
            "Registered weekly reminder job",
            job_id=job.id,
            cron=f"{settings.weekly_schedule_day_of_week} "
            f"{settings.weekly_schedule_hour:02d}:{settings.weekly_schedule_minute:02d}",
            timezone=settings.reminder_timezone,
        )

    scheduler.start()
    logger.info("Background scheduler started")
    return scheduler


def stop_scheduler() -> None:
    global scheduler

    if scheduler is None:
        return
    scheduler.shutdown(wait=False)
    scheduler = None
    logger.info("Background scheduler stopped")


def get_scheduler() -> AsyncIOScheduler | None:
    """Return the running scheduler, or None before start or after stop."""
    return scheduler


@asynccontextmanager
async def scheduler_lifespan() -> AsyncGenerator[None, None]:
    """Run the scheduler for the duration of the block."""
    start_scheduler()
    try:
        yield
    finally:
        stop_scheduler()
