"""
SLA Application Layer
=====================

Application layer for the SLA clock.

Contains:
- Services: policy administration and the SLA clock state machine
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from helpdesk.sla.application.dto import (
    AppliesToDTO,
    PolicyCreateDTO,
    PolicyUpdateDTO,
    ClockEventRequest,
    StatusChangeRequest,
    BreachRequest,
    PolicyResponse,
    SLAInstanceResponse,
    TicketSLAStatusResponse,
)
from helpdesk.sla.application.services import (
    SLAPolicyService,
    SLAClockService,
    ITicketReader,
    ISLAPolicyRepository,
    ISLAInstanceRepository,
    ISLAStatsRepository,
    ISLAEventPublisher,
    utc_now,
)

__all__ = [
    # DTOs
    "AppliesToDTO",
    "PolicyCreateDTO",
    "PolicyUpdateDTO",
    "ClockEventRequest",
    "StatusChangeRequest",
    "BreachRequest",
    "PolicyResponse",
    "SLAInstanceResponse",
    "TicketSLAStatusResponse",
    # Services
    "SLAPolicyService",
    "SLAClockService",
    "utc_now",
    # Repository Interfaces
    "ITicketReader",
    "ISLAPolicyRepository",
    "ISLAInstanceRepository",
    "ISLAStatsRepository",
    "ISLAEventPublisher",
]
