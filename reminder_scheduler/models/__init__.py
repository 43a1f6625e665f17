# Database Models
from reminder_scheduler.models.base import Base, TimestampMixin
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
    ScheduleSource,
    ScheduleStatus,
)
from reminder_scheduler.models.user_settings import UserSettings

__all__ = [
    "Base",
    "GlucoseReading",
    "MeasurementType",
    "NotificationSchedule",
    "NotificationScheduleRun",
    "ReadingContext",
    "RunStatus",
    "ScheduleSource",
    "ScheduleStatus",
    "TimestampMixin",
    "UserMealWindow",
    "UserSettings",
]
