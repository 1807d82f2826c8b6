"""
SLA Services
============

Background evaluation of running SLA clocks.

The clock service only reacts to ticket lifecycle events; a ticket that sits
untouched past its resolution target would never be marked breached. The
evaluator sweeps every active instance and breaches the overdue ones.
"""

import time
from contextlib import nullcontext
from datetime import datetime
from typing import AsyncContextManager, Callable, Dict, Optional

from helpdesk.config import BreachReason
from helpdesk.infrastructure.database import get_session_context
from helpdesk.calendar.application import BusinessCalendarService, ScheduleCache
from helpdesk.calendar.infrastructure import SQLAlchemyCalendarRepository
from helpdesk.sla.application import (
    ISLAInstanceRepository,
    SLAClockService,
    utc_now,
)
from helpdesk.sla.infrastructure import (
    LoggingEventPublisher,
    SQLAlchemyInstanceRepository,
    SQLAlchemyPolicyRepository,
    SQLAlchemyStatsRepository,
    SQLAlchemyTicketReader,
)
from helpdesk.shared.infrastructure.logging import correlation_scope, get_logger, log_latency

logger = get_logger(__name__)


class SLAEvaluator:
    """
    Breaches active SLA instances whose resolution target has passed.

    This service:
    1. Lists all RUNNING and PAUSED instances
    2. Recalculates elapsed business time by replaying status history
    3. Breaches the instances over their resolution target

    Each ticket runs inside `isolate()` (a SAVEPOINT in production); a ticket
    that fails is logged and skipped without undoing the others.
    """

    def __init__(
        self,
        clock_service: SLAClockService,
        instance_repository: ISLAInstanceRepository,
        isolate: Callable[[], AsyncContextManager] = nullcontext
    ):
        self._clock_service = clock_service
        self._instance_repo = instance_repository
        self._isolate = isolate

    async def _evaluate(self, ticket_id: str, at: datetime) -> bool:
        snapshot = await self._clock_service.get_status(ticket_id, at)
        if snapshot is None or not snapshot.resolution_overdue:
            return False

        result = await self._clock_service.breach(
            ticket_id, BreachReason.RESOLUTION_EXCEEDED, at
        )
        return result is not None

    async def check_breaches(self, at: Optional[datetime] = None) -> Dict[str, int]:
        """
        Evaluate all active instances.

        Returns:
            Summary of evaluation results
        """
        at = at or utc_now()
        start_time = time.perf_counter()

        instances = await self._instance_repo.list_active()
        breached = 0
        failed = 0

        for instance in instances:
            try:
                async with self._isolate():
                    if await self._evaluate(instance.ticket_id, at):
                        breached += 1
            except Exception as e:
                failed += 1
                logger.error(
                    f"SLA evaluation failed for ticket: {e}",
                    extra={"ticket_id": instance.ticket_id},
                    exc_info=True
                )

        summary = {
            "evaluated": len(instances),
            "breached": breached,
            "failed": failed,
            "duration_ms": int((time.perf_counter() - start_time) * 1000),
        }
        logger.info("SLA breach sweep complete", extra=summary)
        return summary


def build_clock_service(session, cache: Optional[ScheduleCache] = None) -> SLAClockService:
    """Wire an SLAClockService to SQLAlchemy repositories on `session`."""
    return SLAClockService(
        ticket_reader=SQLAlchemyTicketReader(session),
        policy_repository=SQLAlchemyPolicyRepository(session),
        instance_repository=SQLAlchemyInstanceRepository(session),
        stats_repository=SQLAlchemyStatsRepository(session),
        calendar_service=BusinessCalendarService(SQLAlchemyCalendarRepository(session), cache),
        event_publisher=LoggingEventPublisher(),
    )


def make_breach_sweep_job(cache: Optional[ScheduleCache] = None):
    """Create the scheduler job: one sweep per run, in its own transaction."""

    async def run_breach_sweep() -> None:
        try:
            with correlation_scope(), log_latency(logger, "sla_breach_sweep"):
                async with get_session_context() as session:
                    evaluator = SLAEvaluator(
                        build_clock_service(session, cache),
                        SQLAlchemyInstanceRepository(session),
                        isolate=session.begin_nested
                    )
                    await evaluator.check_breaches()
        except Exception as e:
            logger.error(f"SLA breach sweep failed: {e}", exc_info=True)

    return run_breach_sweep
