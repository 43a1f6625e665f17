"""Reminder scheduling endpoints.

Triggered by an external cron (or an operator) with a shared secret,
presented either as an X-Cron-Secret header or as a bearer token.
"""

import hmac
import uuid
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from reminder_scheduler.config import (
    SchedulerConfigurationError,
    get_reminder_timezone,
    settings,
)
from reminder_scheduler.database import get_db
from reminder_scheduler.logging_config import get_logger
from reminder_scheduler.schemas.reminders import (
    ScheduleRunResponse,
    SeedMealWindowsResponse,
)
from reminder_scheduler.services.reminder_store import (
    ReminderStoreError,
    SqlReminderStore,
)
from reminder_scheduler.services.weekly_scheduler import schedule_weekly_reminders

logger = get_logger(__name__)

router = APIRouter(prefix="/api/reminders", tags=["reminders"])

_RUN_MESSAGES = {
    "completed": "Weekly reminders scheduled",
    "skipped": "Week already scheduled",
    "failed": "Scheduling stopped before all users were processed",
}


async def verify_cron_secret(
    x_cron_secret: Annotated[str | None, Header()] = None,
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Require the configured cron secret.

    Raises:
        HTTPException: 500 if no secret is configured, 401 if the presented
            one is missing or wrong.
    """
    if not settings.cron_secret:
        logger.error("Cron secret is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Cron secret is not configured",
        )

    presented = x_cron_secret
    if presented is None and authorization and authorization.startswith("Bearer "):
        presented = authorization.removeprefix("Bearer ").strip()

    if not presented or not hmac.compare_digest(
        presented.encode(), settings.cron_secret.encode()
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron secret",
        )


async def get_reminder_store(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SqlReminderStore:
    """FastAPI dependency providing a store bound to the request session."""
    try:
        tz = get_reminder_timezone()
    except SchedulerConfigurationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        ) from e
    return SqlReminderStore(db, tz)


@router.post(
    "/schedule",
    response_model=ScheduleRunResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def trigger_weekly_schedule(
    week: Annotated[Literal["next", "current"], Query()] = "next",
) -> ScheduleRunResponse:
    """Run weekly reminder scheduling for the next (default) or current week."""
    try:
        result = await schedule_weekly_reminders(week)
    except SchedulerConfigurationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        ) from e
    except Exception as e:
        logger.error("Scheduling run failed", exc_info=True, week=week, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Scheduling run failed",
        ) from e

    return ScheduleRunResponse(
        message=_RUN_MESSAGES[result.status],
        week=result.week,
        status=result.status,
        users_processed=result.users_processed,
        users_failed=result.users_failed,
        schedules_created=result.schedules_created,
    )


@router.post(
    "/users/{user_id}/meal-windows/seed",
    response_model=SeedMealWindowsResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def seed_meal_windows(
    user_id: uuid.UUID,
    store: Annotated[SqlReminderStore, Depends(get_reminder_store)],
) -> SeedMealWindowsResponse:
    """Create the default meal windows a user does not have yet."""
    try:
        created = await store.seed_default_meal_windows(user_id)
    except ReminderStoreError as e:
        logger.error("Failed to seed meal windows", user_id=str(user_id), error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not seed meal windows",
        ) from e

    return SeedMealWindowsResponse(user_id=user_id, windows_created=created)
