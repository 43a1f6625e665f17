"""Reminder scheduling schemas.

Records validated at the store boundary (readings and meal windows) and the
response shapes of the scheduling API.
"""

import uuid
from datetime import UTC, date, datetime, time
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from reminder_scheduler.models.glucose import MeasurementType, ReadingContext


class GlucoseReadingRecord(BaseModel):
    """A stored reading as seen by the scheduler."""

    model_config = {"from_attributes": True, "frozen": True}

    user_id: uuid.UUID
    measurement_type: MeasurementType
    measured_at: datetime
    reading_context: ReadingContext | None = None

    @field_validator("measured_at")
    @classmethod
    def ensure_aware(cls, v: datetime) -> datetime:
        # Naive timestamps from the store are UTC
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v


class MealWindowRecord(BaseModel):
    """A user-defined acceptable time range for one measurement type."""

    model_config = {"from_attributes": True, "frozen": True}

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    user_id: uuid.UUID
    day_of_week: int = Field(ge=0, le=6, description="0=Sunday .. 6=Saturday")
    measurement_type: MeasurementType
    meal_number: int | None = Field(default=None, ge=1, le=6)
    time_start: time
    time_end: time

    @model_validator(mode="after")
    def check_range(self) -> "MealWindowRecord":
        if self.time_start > self.time_end:
            msg = (
                f"Meal window starts after it ends: "
                f"{self.time_start.isoformat()} > {self.time_end.isoformat()}"
            )
            raise ValueError(msg)
        return self

    @property
    def start_minute(self) -> int:
        return self.time_start.hour * 60 + self.time_start.minute

    @property
    def end_minute(self) -> int:
        return self.time_end.hour * 60 + self.time_end.minute


class ScheduleRunResponse(BaseModel):
    """Result of a weekly scheduling run."""

    message: str
    week: date
    status: Literal["completed", "skipped", "failed"]
    users_processed: int = 0
    users_failed: int = 0
    schedules_created: int = 0


class SeedMealWindowsResponse(BaseModel):
    """Result of seeding the default meal windows for a user."""

    user_id: uuid.UUID
    windows_created: int
