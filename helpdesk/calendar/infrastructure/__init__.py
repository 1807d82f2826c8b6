"""
Calendar Infrastructure Layer
=============================

Infrastructure layer for the business calendar module.

Contains:
- Models: SQLAlchemy ORM models
- Repositories: Concrete repository implementations
"""

from helpdesk.calendar.infrastructure.models import (
    BusinessCalendarModel,
    BusinessCalendarExceptionModel,
)
from helpdesk.calendar.infrastructure.repositories import SQLAlchemyCalendarRepository

__all__ = [
    "BusinessCalendarModel",
    "BusinessCalendarExceptionModel",
    "SQLAlchemyCalendarRepository",
]
