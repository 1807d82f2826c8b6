"""
SLA Interfaces Layer
====================

HTTP routes for SLA policies and ticket clocks.
"""

from helpdesk.sla.interfaces.controllers import (
    router,
    get_clock_service,
    get_policy_service,
    get_event_publisher,
)

__all__ = ["router", "get_clock_service", "get_policy_service", "get_event_publisher"]
