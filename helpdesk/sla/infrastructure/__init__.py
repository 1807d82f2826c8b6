"""
SLA Infrastructure Layer
========================

Infrastructure layer for the SLA clock.

Contains:
- Models: SQLAlchemy ORM models
- Repositories: Concrete repository implementations
- External: event publisher and background scheduler
- Seed: YAML loader for calendars and policies
"""

from helpdesk.sla.infrastructure.models import (
    TicketModel,
    TicketStatusHistoryModel,
    SLAPolicyModel,
    SLAInstanceModel,
    SLAStatsModel,
)
from helpdesk.sla.infrastructure.repositories import (
    SQLAlchemyTicketReader,
    SQLAlchemyPolicyRepository,
    SQLAlchemyInstanceRepository,
    SQLAlchemyStatsRepository,
)
from helpdesk.sla.infrastructure.external import LoggingEventPublisher, SLAScheduler
from helpdesk.sla.infrastructure.seed import SeedData, load_seed_file, apply_seed

__all__ = [
    # Models
    "TicketModel",
    "TicketStatusHistoryModel",
    "SLAPolicyModel",
    "SLAInstanceModel",
    "SLAStatsModel",
    # Repositories
    "SQLAlchemyTicketReader",
    "SQLAlchemyPolicyRepository",
    "SQLAlchemyInstanceRepository",
    "SQLAlchemyStatsRepository",
    # External
    "LoggingEventPublisher",
    "SLAScheduler",
    # Seed
    "SeedData",
    "load_seed_file",
    "apply_seed",
]
