"""
Calendar Application Layer
==========================

Application layer for the business calendar module.

Contains:
- Services: schedule resolution (with TTL cache) and calendar administration
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from helpdesk.calendar.application.dto import (
    DayConfigDTO,
    WeeklyConfigDTO,
    CalendarCreateDTO,
    CalendarUpdateDTO,
    CalendarExceptionCreateDTO,
    ScheduleDTO,
    BusinessMinutesRequest,
    CalendarResponse,
    CalendarExceptionResponse,
    BusinessMinutesResponse,
)
from helpdesk.calendar.application.services import (
    BusinessCalendarService,
    ScheduleCache,
    ICalendarRepository,
)

__all__ = [
    # DTOs
    "DayConfigDTO",
    "WeeklyConfigDTO",
    "CalendarCreateDTO",
    "CalendarUpdateDTO",
    "CalendarExceptionCreateDTO",
    "ScheduleDTO",
    "BusinessMinutesRequest",
    "CalendarResponse",
    "CalendarExceptionResponse",
    "BusinessMinutesResponse",
    # Services
    "BusinessCalendarService",
    "ScheduleCache",
    # Repository Interfaces
    "ICalendarRepository",
]
