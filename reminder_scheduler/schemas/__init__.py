# Pydantic schemas
from reminder_scheduler.schemas.reminders import (
    GlucoseReadingRecord,
    MealWindowRecord,
    ScheduleRunResponse,
    SeedMealWindowsResponse,
)

__all__ = [
    "GlucoseReadingRecord",
    "MealWindowRecord",
    "ScheduleRunResponse",
    "SeedMealWindowsResponse",
]
