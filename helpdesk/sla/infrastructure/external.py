"""
SLA External Service Integrations
=================================

External services for the SLA clock:
- Event publisher writing SLA events to the structured log
- APScheduler for the periodic breach sweep
"""

from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.sla.application import ISLAEventPublisher
from helpdesk.sla.domain import SLAEvent

logger = get_logger(__name__)


class LoggingEventPublisher(ISLAEventPublisher):
    """
    Publishes SLA events as structured log records.

    Timeline and notification consumers read them from the log pipeline.
    """

    def __init__(self, logger_name: str = "helpdesk.sla.events"):
        self._logger = get_logger(logger_name)

    async def publish(self, event: SLAEvent) -> None:
        self._logger.info(
            event.type,
            extra={
                "event_type": event.type,
                "ticket_id": event.ticket_id,
                "policy_id": event.policy_id,
                "occurred_at": event.occurred_at.isoformat(),
                "payload": event.payload,
            }
        )


class SLAScheduler:
    """
    Wrapper for APScheduler for the background breach sweep.

    Manages the lifecycle of the scheduler and jobs.
    """

    def __init__(self, interval_seconds: int = 60):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func) -> None:
        """Start the scheduler with the given job function."""
        if self._running:
            logger.warning("SLA scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()

        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id="sla_breach_sweep",
            name="SLA Breach Sweep",
            misfire_grace_time=self.interval_seconds,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        self._scheduler.start()
        self._running = True

        logger.info(
            "SLA scheduler started",
            extra={"interval_seconds": self.interval_seconds}
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running
