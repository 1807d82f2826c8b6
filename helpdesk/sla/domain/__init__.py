"""
SLA Domain Layer
================

Domain layer for the SLA clock.

Contains:
- Entities: SLAInstance, SLAStats, ticket projections, events
- Value Objects: SLAPolicy, AppliesTo, PolicySelector
- Domain Services: status-history replay

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from helpdesk.sla.domain.entities import (
    TicketSnapshot,
    StatusHistoryEntry,
    SLAInstance,
    SLAStats,
    SLAEvent,
    SLAStatusSnapshot,
    calculate_elapsed_business_minutes,
    initial_status_from_history,
    minutes_to_ms,
)
from helpdesk.sla.domain.value_objects import (
    AppliesTo,
    SLAPolicy,
    PolicySelector,
)

__all__ = [
    # Entities
    "TicketSnapshot",
    "StatusHistoryEntry",
    "SLAInstance",
    "SLAStats",
    "SLAEvent",
    "SLAStatusSnapshot",
    # Replay
    "calculate_elapsed_business_minutes",
    "initial_status_from_history",
    "minutes_to_ms",
    # Value Objects
    "AppliesTo",
    "SLAPolicy",
    "PolicySelector",
]
