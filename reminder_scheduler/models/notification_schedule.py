"""Notification schedule and schedule run models.

NotificationSchedule rows are the output of the weekly run: "at time T,
remind user U to take measurement type M". NotificationScheduleRun is the
run ledger that makes weekly runs idempotent.
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import (
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from reminder_scheduler.models.base import Base, TimestampMixin, enum_values
from reminder_scheduler.models.glucose import MeasurementType


class ScheduleStatus(str, enum.Enum):
    """Delivery status of a scheduled reminder."""

    SCHEDULED = "scheduled"
    SENT = "sent"
    CANCELLED = "cancelled"
    FAILED = "failed"


class ScheduleSource(str, enum.Enum):
    """Where a reminder time came from."""

    HISTORY = "history"  # Data-driven from past readings
    DEFAULT_WINDOW = "default_window"  # Fallback inside the meal window
    MANUAL = "manual"  # User-created


class RunStatus(str, enum.Enum):
    """Outcome of a weekly scheduling run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class NotificationSchedule(Base, TimestampMixin):
    """A single reminder for one user at one absolute time."""

    __tablename__ = "notification_schedules"

    __table_args__ = (
        Index(
            "ix_notification_schedules_user_type_time",
            "user_id",
            "measurement_type",
            "scheduled_at",
            unique=True,
        ),
        Index("ix_notification_schedules_user_time", "user_id", "scheduled_at"),
        Index("ix_notification_schedules_status_time", "status", "scheduled_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
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

    # Stored in UTC, computed from local civil time
    scheduled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    status: Mapped[ScheduleStatus] = mapped_column(
        Enum(
            ScheduleStatus,
            name="schedulestatus",
            create_type=False,
            values_callable=enum_values,
        ),
        nullable=False,
        default=ScheduleStatus.SCHEDULED,
    )

    decision_reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    meal_window_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("user_meal_windows.id", ondelete="SET NULL"),
        nullable=True,
    )

    confidence: Mapped[float | None] = mapped_column(
        Float,
        nullable=True,
    )

    source: Mapped[ScheduleSource | None] = mapped_column(
        Enum(
            ScheduleSource,
            name="schedulesource",
            create_type=False,
            values_callable=enum_values,
        ),
        nullable=True,
    )

    readings_count: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<NotificationSchedule(user_id={self.user_id}, "
            f"type={self.measurement_type.value}, at={self.scheduled_at}, "
            f"status={self.status.value})>"
        )


class NotificationScheduleRun(Base):
    """Ledger entry for one weekly scheduling run.

    run_week_start_date is unique: one run record per target week.
    """

    __tablename__ = "notification_schedule_runs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # Local Monday of the week being scheduled
    run_week_start_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        unique=True,
    )

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    finished_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    status: Mapped[RunStatus] = mapped_column(
        Enum(
            RunStatus,
            name="runstatus",
            create_type=False,
            values_callable=enum_values,
        ),
        nullable=False,
        default=RunStatus.RUNNING,
    )

    error: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    users_processed: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )

    schedules_created: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<NotificationScheduleRun(week={self.run_week_start_date}, "
            f"status={self.status.value})>"
        )
