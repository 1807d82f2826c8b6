"""
SLA Domain Entities
===================

Pure Python domain entities for the SLA clock.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from helpdesk.config import (
    TicketStatus, SLAInstanceStatus,
    COUNTED_STATUSES, ACTIVE_SLA_STATUSES, TERMINAL_SLA_STATUSES
)
from helpdesk.calendar.domain import BusinessSchedule, business_minutes_between
from helpdesk.calendar.domain.business_time import to_utc


@dataclass(frozen=True)
class TicketSnapshot:
    """Read-only projection of a ticket, as far as the SLA clock needs it."""

    id: str
    created_at: datetime
    status: str
    team_id: Optional[str] = None
    category_id: Optional[str] = None
    priority: Optional[str] = None
    ticket_type: Optional[str] = None
    requester_team_id: Optional[str] = None


@dataclass(frozen=True)
class StatusHistoryEntry:
    """One status transition of a ticket."""

    ticket_id: str
    old_status: Optional[str]
    new_status: str
    changed_at: datetime


@dataclass
class SLAInstance:
    """
    A ticket's SLA clock.

    RUNNING and PAUSED are active; MET and BREACHED are terminal.
    A ticket has at most one active instance.
    """

    id: Optional[str]
    ticket_id: str
    policy_id: str
    status: str = SLAInstanceStatus.RUNNING
    started_at: Optional[datetime] = None
    paused_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    breached_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_SLA_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_SLA_STATUSES


@dataclass
class SLAStats:
    """Per-ticket SLA outcome. `breached` never goes back to False."""

    ticket_id: str
    policy_id: str
    first_response_at: Optional[datetime] = None
    business_first_response_time_ms: Optional[int] = None
    resolved_at: Optional[datetime] = None
    business_resolution_time_ms: Optional[int] = None
    breached: bool = False
    breach_reason: Optional[str] = None

    def mark_breached(self, reason: str) -> None:
        self.breached = True
        self.breach_reason = reason


@dataclass(frozen=True)
class SLAEvent:
    """Notification emitted on SLA transitions."""

    type: str
    ticket_id: str
    policy_id: Optional[str]
    occurred_at: datetime
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SLAStatusSnapshot:
    """Point-in-time view of a ticket's SLA, recalculated from history."""

    ticket_id: str
    policy_id: str
    policy_name: str
    instance_status: Optional[str]
    elapsed_business_minutes: int
    target_resolution_minutes: int
    remaining_business_minutes: int
    target_first_response_minutes: Optional[int]
    first_response_at: Optional[datetime]
    business_first_response_minutes: Optional[int]
    breached: bool
    breach_reason: Optional[str]
    evaluated_at: datetime

    @property
    def resolution_overdue(self) -> bool:
        return self.elapsed_business_minutes > self.target_resolution_minutes


def minutes_to_ms(minutes: int) -> int:
    return minutes * 60 * 1000


def initial_status_from_history(history: Sequence[StatusHistoryEntry]) -> str:
    """
    Status the ticket had when it was created.

    The first transition's `old_status`, falling back to its `new_status`;
    OPEN for a ticket that never changed status.
    """
    if not history:
        return TicketStatus.OPEN
    first = min(history, key=lambda entry: to_utc(entry.changed_at))
    return first.old_status or first.new_status


def calculate_elapsed_business_minutes(
    created_at: datetime,
    initial_status: str,
    history: Sequence[StatusHistoryEntry],
    end_at: datetime,
    schedule: BusinessSchedule,
) -> int:
    """
    Replay a ticket's status history and count the business minutes spent
    in counted statuses (OPEN, IN_PROGRESS) between creation and `end_at`.

    Transitions at or before `created_at`, or after `end_at`, are ignored.
    Waiting and resolved statuses stop the clock.

    Args:
        created_at: Ticket creation instant
        initial_status: Status at creation
        history: Status transitions, in any order
        end_at: Instant the replay stops at
        schedule: Business calendar to count against

    Returns:
        Elapsed business minutes
    """
    start = to_utc(created_at)
    end = to_utc(end_at)
    if end <= start:
        return 0

    events: List[Tuple[datetime, str]] = [(start, initial_status)]
    for entry in history:
        changed_at = to_utc(entry.changed_at)
        if start < changed_at <= end:
            events.append((changed_at, entry.new_status))

    # Stable: same-instant transitions keep their recorded order
    events.sort(key=lambda event: event[0])

    total = 0
    for index, (segment_start, status) in enumerate(events):
        segment_end = events[index + 1][0] if index + 1 < len(events) else end
        if status not in COUNTED_STATUSES or segment_end <= segment_start:
            continue
        total += business_minutes_between(segment_start, segment_end, schedule)

    return total
