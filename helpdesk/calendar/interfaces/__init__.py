"""
Calendar Interfaces Layer
=========================

HTTP routes for business calendars.
"""

from helpdesk.calendar.interfaces.controllers import (
    router,
    get_calendar_service,
    get_schedule_cache,
)

__all__ = ["router", "get_calendar_service", "get_schedule_cache"]
