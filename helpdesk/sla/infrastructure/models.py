"""
SLA Infrastructure Models
=========================

SQLAlchemy ORM models for the SLA clock.

`tickets` and `ticket_status_history` are owned by the ticketing workflow;
they are mapped here so the clock can read them.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON, Boolean, BigInteger, DateTime, ForeignKey, Index, Integer, String, Text, Uuid, text
)
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.infrastructure.database import Base
from helpdesk.config import TicketStatus, SLAInstanceStatus


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TicketModel(Base):
    """
    Database model for the ticket projection.

    Maps to the 'tickets' table.
    """
    __tablename__ = "tickets"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    status: Mapped[str] = mapped_column(String(50), nullable=False, default=TicketStatus.OPEN)

    # Policy matching attributes
    team_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    category_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    priority: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    ticket_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    requester_team_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)


class TicketStatusHistoryModel(Base):
    """
    Database model for ticket status transitions.

    Maps to the 'ticket_status_history' table.
    """
    __tablename__ = "ticket_status_history"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    ticket_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )
    old_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    new_status: Mapped[str] = mapped_column(String(50), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        Index("ix_ticket_status_history_ticket_changed", "ticket_id", "changed_at"),
    )


class SLAPolicyModel(Base):
    """
    Database model for SLAPolicy value object.

    Maps to the 'sla_policies' table.
    """
    __tablename__ = "sla_policies"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # {"team_id": ..., "priority": ...}; absent keys match any ticket
    applies_to: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    # Targets in business minutes
    target_first_response_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    target_resolution_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    calendar_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("business_calendars.id", ondelete="SET NULL"), nullable=True
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)


class SLAInstanceModel(Base):
    """
    Database model for SLAInstance entity.

    Maps to the 'ticket_sla_instances' table.
    """
    __tablename__ = "ticket_sla_instances"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    ticket_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    policy_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("sla_policies.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SLAInstanceStatus.RUNNING)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    paused_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    breached_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # At most one RUNNING/PAUSED instance per ticket
        Index(
            "uq_ticket_sla_instances_one_active",
            "ticket_id",
            unique=True,
            postgresql_where=text("status IN ('RUNNING', 'PAUSED')"),
            sqlite_where=text("status IN ('RUNNING', 'PAUSED')"),
        ),
    )


class SLAStatsModel(Base):
    """
    Database model for SLAStats entity.

    Maps to the 'ticket_sla_stats' table. One row per ticket.
    """
    __tablename__ = "ticket_sla_stats"

    ticket_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), primary_key=True
    )
    policy_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("sla_policies.id"), nullable=False
    )

    first_response_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    business_first_response_time_ms: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    business_resolution_time_ms: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    breached: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    breach_reason: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
