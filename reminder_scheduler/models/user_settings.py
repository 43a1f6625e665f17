"""Per-user notification preferences."""

import uuid

from sqlalchemy import Boolean, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from reminder_scheduler.models.base import Base, TimestampMixin


class UserSettings(Base, TimestampMixin):
    """Only users with push notifications enabled receive reminders."""

    __tablename__ = "user_settings"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
    )

    push_notifications_enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    language: Mapped[str] = mapped_column(
        String(8),
        nullable=False,
        default="en",
    )

    def __repr__(self) -> str:
        return (
            f"<UserSettings(user_id={self.user_id}, "
            f"push={self.push_notifications_enabled})>"
        )
