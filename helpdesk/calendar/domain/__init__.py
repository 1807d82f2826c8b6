"""
Calendar Domain Layer
=====================

Domain layer for the business calendar module.

Contains:
- Entities: BusinessCalendar, CalendarException
- Value Objects: BusinessSchedule, DayWindow
- Domain Services: the business-time calculator

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from helpdesk.calendar.domain.entities import (
    BusinessCalendar,
    CalendarException,
    DEFAULT_CALENDAR_NAME,
    default_weekly_config,
)
from helpdesk.calendar.domain.value_objects import (
    BusinessSchedule,
    DayWindow,
    parse_time,
)
from helpdesk.calendar.domain.business_time import (
    business_minutes_between,
    business_minutes_to_hours,
    diff_in_calendar_minutes,
    format_business_minutes,
    zoned_time_to_utc,
)

__all__ = [
    # Entities
    "BusinessCalendar",
    "CalendarException",
    "DEFAULT_CALENDAR_NAME",
    "default_weekly_config",
    # Value Objects
    "BusinessSchedule",
    "DayWindow",
    "parse_time",
    # Calculator
    "business_minutes_between",
    "business_minutes_to_hours",
    "diff_in_calendar_minutes",
    "format_business_minutes",
    "zoned_time_to_utc",
]
