"""Glucose reading model.

Readings are captured by the client application; the scheduler only reads
them to learn when each user actually measures.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, Index, Integer, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from reminder_scheduler.models.base import Base, TimestampMixin, enum_values


class MeasurementType(str, enum.Enum):
    """Kind of glucose measurement."""

    FASTING = "fasting"
    AFTER_MEAL = "1hr_after_meal"


class ReadingContext(str, enum.Enum):
    """How a reading came to be taken."""

    ORGANIC = "organic"  # Unprompted
    SCHEDULED_PROMPT = "scheduled_prompt"  # Within 30 min of a scheduled reminder
    MANUAL_ENTRY = "manual_entry"


class GlucoseReading(Base, TimestampMixin):
    """A single timestamped glucose measurement tagged by type."""

    __tablename__ = "glucose_readings"

    __table_args__ = (
        Index("ix_glucose_readings_user_measured", "user_id", "measured_at"),
        # Quick filtering by context for the lookback fetches
        Index(
            "ix_glucose_readings_user_context",
            "user_id",
            "reading_context",
            "measured_at",
        ),
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

    measured_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
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

    # Glucose value in mg/dL
    value: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    note: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    reading_context: Mapped[ReadingContext | None] = mapped_column(
        Enum(
            ReadingContext,
            name="readingcontext",
            create_type=False,
            values_callable=enum_values,
        ),
        nullable=True,
        default=ReadingContext.ORGANIC,
    )

    def __repr__(self) -> str:
        return (
            f"<GlucoseReading(user_id={self.user_id}, "
            f"type={self.measurement_type.value}, measured_at={self.measured_at})>"
        )
