"""
Calendar Infrastructure Models
==============================

SQLAlchemy ORM models for business calendars.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON, Boolean, DateTime, ForeignKey, Index, String, Uuid, text
)
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.infrastructure.database import Base


class BusinessCalendarModel(Base):
    """
    Database model for BusinessCalendar entity.

    Maps to the 'business_calendars' table.
    """
    __tablename__ = "business_calendars"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    timezone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # {"monday": {"open": "09:00", "close": "18:00", "enabled": true}, ...}
    schedule: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        # At most one default calendar
        Index(
            "uq_business_calendars_single_default",
            "is_default",
            unique=True,
            postgresql_where=text("is_default"),
            sqlite_where=text("is_default"),
        ),
    )


class BusinessCalendarExceptionModel(Base):
    """
    Database model for CalendarException entity.

    Maps to the 'business_calendar_exceptions' table.
    """
    __tablename__ = "business_calendar_exceptions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    calendar_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("business_calendars.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_holiday: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
