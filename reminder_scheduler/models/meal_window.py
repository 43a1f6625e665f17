"""User meal window model.

A meal window is the acceptable local time-of-day range in which a user
expects to take a given measurement on a given day of the week.
"""

import datetime
import uuid

from sqlalchemy import (
    CheckConstraint,
    Enum,
    Integer,
    SmallInteger,
    Time,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from reminder_scheduler.models.base import Base, TimestampMixin, enum_values
from reminder_scheduler.models.glucose import MeasurementType


class UserMealWindow(Base, TimestampMixin):
    """One window per (user, day_of_week, measurement_type, meal_number).

    day_of_week uses 0=Sunday .. 6=Saturday.
    """

    __tablename__ = "user_meal_windows"

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "day_of_week",
            "measurement_type",
            "meal_number",
            name="uq_user_meal_windows_user_day_type_meal",
        ),
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_meal_window_dow"),
        CheckConstraint("meal_number BETWEEN 1 AND 6", name="ck_meal_window_meal"),
        CheckConstraint("time_start <= time_end", name="ck_meal_window_range"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        index=True,
    )

    day_of_week: Mapped[int] = mapped_column(
        SmallInteger,
        nullable=False,
    )

    measurement_type: Mapped[MeasurementType] = mapped_column(
        Enum(
            MeasurementType,
            name="measurementtype",
            create_type=False,
            values_callable=enum_values,
        ),
        nullable=False,
    )

    # Distinguishes multiple post-meal windows on the same day
    meal_number: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )

    time_start: Mapped[datetime.time] = mapped_column(
        Time,
        nullable=False,
    )

    time_end: Mapped[datetime.time] = mapped_column(
        Time,
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<UserMealWindow(user_id={self.user_id}, dow={self.day_of_week}, "
            f"type={self.measurement_type.value}, meal={self.meal_number}, "
            f"{self.time_start}-{self.time_end})>"
        )
