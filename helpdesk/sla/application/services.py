"""
SLA Application Services
========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

import dataclasses
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple

from helpdesk.config import (
    SLAInstanceStatus, SLAEventType, BreachReason,
    VALID_STATUSES, COUNTED_STATUSES, WAITING_STATUSES, RESOLVED_STATUSES,
    ACTIVE_SLA_STATUSES
)
from helpdesk.core import DomainException, ResourceNotFoundException, ValidationException
from helpdesk.calendar.application import BusinessCalendarService
from helpdesk.calendar.domain import business_minutes_between
from helpdesk.calendar.domain.business_time import to_utc
from helpdesk.sla.domain import (
    TicketSnapshot,
    StatusHistoryEntry,
    SLAInstance,
    SLAStats,
    SLAEvent,
    SLAPolicy,
    SLAStatusSnapshot,
    PolicySelector,
    calculate_elapsed_business_minutes,
    initial_status_from_history,
    minutes_to_ms,
)
from helpdesk.sla.application.dto import PolicyCreateDTO, PolicyUpdateDTO
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ITicketReader(ABC):
    """Read-only access to tickets and their status history."""

    @abstractmethod
    async def get_ticket(self, ticket_id: str) -> Optional[TicketSnapshot]:
        """Get ticket projection by ID."""

    @abstractmethod
    async def get_status_history(self, ticket_id: str) -> List[StatusHistoryEntry]:
        """Get status transitions, ascending by changed_at."""


class ISLAPolicyRepository(ABC):
    """Interface for SLA policy data access."""

    @abstractmethod
    async def list_active(self) -> List[SLAPolicy]:
        """List active policies ordered by name, then id."""

    @abstractmethod
    async def list_all(self, active_only: bool = False) -> List[SLAPolicy]:
        """List policies ordered by name, then id."""

    @abstractmethod
    async def get_by_id(self, policy_id: str) -> Optional[SLAPolicy]:
        """Get policy by ID."""

    @abstractmethod
    async def create(self, policy: SLAPolicy) -> SLAPolicy:
        """Create policy."""

    @abstractmethod
    async def update(self, policy: SLAPolicy) -> SLAPolicy:
        """Update policy."""

    @abstractmethod
    async def delete(self, policy_id: str) -> None:
        """Delete policy."""

    @abstractmethod
    async def is_referenced(self, policy_id: str) -> bool:
        """Whether any SLA instance or stats row points at the policy."""


class ISLAInstanceRepository(ABC):
    """Interface for SLA instance data access."""

    @abstractmethod
    async def get_active(self, ticket_id: str) -> Optional[SLAInstance]:
        """Get the ticket's RUNNING or PAUSED instance."""

    @abstractmethod
    async def get_latest(self, ticket_id: str) -> Optional[SLAInstance]:
        """Get the ticket's most recently started instance, in any status."""

    @abstractmethod
    async def list_active(self) -> List[SLAInstance]:
        """List every RUNNING or PAUSED instance."""

    @abstractmethod
    async def create_if_no_active(self, instance: SLAInstance) -> Tuple[SLAInstance, bool]:
        """
        Create the instance unless the ticket already has an active one.

        Returns:
            (instance, created). When another caller won the race, the
            existing active instance and False.
        """

    @abstractmethod
    async def transition(
        self,
        instance_id: str,
        expected_statuses: Sequence[str],
        new_status: str,
        **changes
    ) -> Optional[SLAInstance]:
        """
        Compare-and-set status change.

        Applies `new_status` and `changes` only while the stored status is
        one of `expected_statuses`.

        Returns:
            The updated instance, or None when the status had already moved on
        """


class ISLAStatsRepository(ABC):
    """Interface for per-ticket SLA stats."""

    @abstractmethod
    async def get(self, ticket_id: str, for_update: bool = False) -> Optional[SLAStats]:
        """Get stats; `for_update` locks the row until the transaction ends."""

    @abstractmethod
    async def create_if_absent(self, stats: SLAStats) -> SLAStats:
        """Create stats unless the ticket already has them; return the stored row."""

    @abstractmethod
    async def save(self, stats: SLAStats) -> SLAStats:
        """Persist changes to existing stats."""


class ISLAEventPublisher(ABC):
    """Outlet for SLA events (ticket timeline, notifications)."""

    @abstractmethod
    async def publish(self, event: SLAEvent) -> None:
        """Publish one event."""


# ========== Application Services ==========

class SLAPolicyService:
    """Service for SLA policy administration."""

    def __init__(
        self,
        policy_repository: ISLAPolicyRepository,
        calendar_service: BusinessCalendarService
    ):
        self._policy_repo = policy_repository
        self._calendar_service = calendar_service

    async def create_policy(self, dto: PolicyCreateDTO) -> SLAPolicy:
        if dto.calendar_id:
            await self._calendar_service.get_calendar(dto.calendar_id)

        policy = await self._policy_repo.create(
            SLAPolicy(
                id=None,
                name=dto.name,
                description=dto.description,
                applies_to=dto.applies_to.to_domain(),
                target_first_response_minutes=dto.target_first_response_minutes,
                target_resolution_minutes=dto.target_resolution_minutes,
                calendar_id=dto.calendar_id,
                active=dto.active,
            )
        )
        logger.info("SLA policy created", extra={"policy_id": policy.id, "policy_name": policy.name})
        return policy

    async def list_policies(self, active_only: bool = False) -> List[SLAPolicy]:
        return await self._policy_repo.list_all(active_only=active_only)

    async def get_policy(self, policy_id: str) -> SLAPolicy:
        policy = await self._policy_repo.get_by_id(policy_id)
        if policy is None:
            raise ResourceNotFoundException("SLAPolicy", policy_id)
        return policy

    async def update_policy(self, policy_id: str, dto: PolicyUpdateDTO) -> SLAPolicy:
        policy = await self.get_policy(policy_id)
        sent = dto.model_fields_set
        changes = {}

        if dto.name is not None:
            changes["name"] = dto.name
        if "description" in sent:
            changes["description"] = dto.description
        if dto.applies_to is not None:
            changes["applies_to"] = dto.applies_to.to_domain()
        if "target_first_response_minutes" in sent:
            changes["target_first_response_minutes"] = dto.target_first_response_minutes
        if dto.target_resolution_minutes is not None:
            changes["target_resolution_minutes"] = dto.target_resolution_minutes
        if "calendar_id" in sent:
            if dto.calendar_id:
                await self._calendar_service.get_calendar(dto.calendar_id)
            changes["calendar_id"] = dto.calendar_id
        if dto.active is not None:
            changes["active"] = dto.active

        updated = await self._policy_repo.update(dataclasses.replace(policy, **changes))
        logger.info("SLA policy updated", extra={"policy_id": policy_id})
        return updated

    async def delete_policy(self, policy_id: str) -> None:
        """Delete a policy. Policies already applied to tickets can only be deactivated."""
        await self.get_policy(policy_id)

        if await self._policy_repo.is_referenced(policy_id):
            raise DomainException(
                "SLA policy is in use by tickets; deactivate it instead",
                {"policy_id": policy_id}
            )

        await self._policy_repo.delete(policy_id)
        logger.info("SLA policy deleted", extra={"policy_id": policy_id})


class SLAClockService:
    """
    Drives a ticket's SLA clock through its lifecycle.

    RUNNING <-> PAUSED -> MET | BREACHED. Elapsed time is always recomputed
    by replaying the ticket's status history, so the PAUSED flag is a view
    of the clock, not an input to it.

    Missing tickets, stats or active instances are soft no-ops: the caller
    is a ticket workflow that must not fail because SLA tracking is absent.
    """

    def __init__(
        self,
        ticket_reader: ITicketReader,
        policy_repository: ISLAPolicyRepository,
        instance_repository: ISLAInstanceRepository,
        stats_repository: ISLAStatsRepository,
        calendar_service: BusinessCalendarService,
        event_publisher: ISLAEventPublisher,
        clock: Callable[[], datetime] = utc_now
    ):
        self._ticket_reader = ticket_reader
        self._policy_repo = policy_repository
        self._instance_repo = instance_repository
        self._stats_repo = stats_repository
        self._calendar_service = calendar_service
        self._publisher = event_publisher
        self._clock = clock

    def _now(self, at: Optional[datetime]) -> datetime:
        return to_utc(at) if at is not None else self._clock()

    async def _publish(
        self,
        event_type: str,
        ticket_id: str,
        policy_id: Optional[str],
        occurred_at: datetime,
        **payload
    ) -> None:
        await self._publisher.publish(
            SLAEvent(
                type=event_type,
                ticket_id=ticket_id,
                policy_id=policy_id,
                occurred_at=occurred_at,
                payload=payload,
            )
        )

    async def start(self, ticket_id: str, at: Optional[datetime] = None) -> Optional[SLAInstance]:
        """
        Start the SLA clock for a ticket.

        Idempotent: a ticket with an active instance gets that instance back.

        Returns:
            The active instance, or None when the ticket is unknown or no
            policy applies
        """
        at = self._now(at)

        ticket = await self._ticket_reader.get_ticket(ticket_id)
        if ticket is None:
            logger.warning("Cannot start SLA, ticket not found", extra={"ticket_id": ticket_id})
            return None

        existing = await self._instance_repo.get_active(ticket_id)
        if existing is not None:
            logger.debug("SLA already running for ticket", extra={"ticket_id": ticket_id})
            return existing

        policy = PolicySelector.select(await self._policy_repo.list_active(), ticket)
        if policy is None:
            logger.warning("No SLA policy applies to ticket", extra={"ticket_id": ticket_id})
            return None

        instance, created = await self._instance_repo.create_if_no_active(
            SLAInstance(
                id=None,
                ticket_id=ticket_id,
                policy_id=policy.id,
                status=SLAInstanceStatus.RUNNING,
                started_at=at,
            )
        )
        if not created:
            return instance

        stats = await self._stats_repo.create_if_absent(
            SLAStats(ticket_id=ticket_id, policy_id=policy.id, breached=False)
        )
        if stats.resolved_at is not None or stats.policy_id != policy.id:
            # Reopened ticket: the new attempt is tracked under the new policy
            stats.policy_id = policy.id
            stats.resolved_at = None
            stats.business_resolution_time_ms = None
            await self._stats_repo.save(stats)

        await self._publish(
            SLAEventType.SLA_STARTED, ticket_id, policy.id, at,
            policy_name=policy.name
        )
        logger.info(
            "SLA started for ticket",
            extra={"ticket_id": ticket_id, "policy_id": policy.id}
        )
        return instance

    async def _load(
        self,
        ticket_id: str
    ) -> Optional[Tuple[SLAStats, TicketSnapshot, SLAPolicy]]:
        stats = await self._stats_repo.get(ticket_id, for_update=True)
        if stats is None:
            logger.debug("No SLA stats for ticket", extra={"ticket_id": ticket_id})
            return None

        ticket = await self._ticket_reader.get_ticket(ticket_id)
        if ticket is None:
            logger.warning("SLA stats exist but ticket not found", extra={"ticket_id": ticket_id})
            return None

        policy = await self._policy_repo.get_by_id(stats.policy_id)
        if policy is None:
            logger.warning(
                "SLA policy of ticket not found",
                extra={"ticket_id": ticket_id, "policy_id": stats.policy_id}
            )
            return None

        return stats, ticket, policy

    async def record_first_response(
        self,
        ticket_id: str,
        at: Optional[datetime] = None
    ) -> Optional[SLAStats]:
        """
        Record the first agent response.

        Only the first call counts. Exceeding the first-response target marks
        the stats as breached but leaves the instance running: the resolution
        target is still being tracked.
        """
        at = self._now(at)

        loaded = await self._load(ticket_id)
        if loaded is None:
            return None
        stats, ticket, policy = loaded

        if stats.first_response_at is not None:
            logger.debug("First response already recorded", extra={"ticket_id": ticket_id})
            return stats

        schedule = await self._calendar_service.get_schedule(policy.calendar_id)
        minutes = business_minutes_between(ticket.created_at, at, schedule)

        stats.first_response_at = at
        stats.business_first_response_time_ms = minutes_to_ms(minutes)

        target = policy.target_first_response_minutes
        if target is not None and minutes > target:
            stats.mark_breached(BreachReason.FIRST_RESPONSE_EXCEEDED)
            await self._publish(
                SLAEventType.SLA_FIRST_RESPONSE_BREACHED, ticket_id, policy.id, at,
                business_first_response_minutes=minutes,
                target_first_response_minutes=target
            )
            logger.warning(
                "SLA first response target exceeded",
                extra={"ticket_id": ticket_id, "business_minutes": minutes, "target_minutes": target}
            )

        stats = await self._stats_repo.save(stats)
        logger.debug(
            "First response recorded",
            extra={"ticket_id": ticket_id, "business_minutes": minutes}
        )
        return stats

    async def _elapsed_minutes(
        self,
        ticket: TicketSnapshot,
        policy: SLAPolicy,
        end_at: datetime
    ) -> int:
        schedule = await self._calendar_service.get_schedule(policy.calendar_id)
        history = await self._ticket_reader.get_status_history(ticket.id)
        return calculate_elapsed_business_minutes(
            ticket.created_at,
            initial_status_from_history(history),
            history,
            end_at,
            schedule,
        )

    async def record_resolution(
        self,
        ticket_id: str,
        at: Optional[datetime] = None
    ) -> Optional[SLAStats]:
        """
        Record the ticket's resolution and close the SLA clock as MET or BREACHED.

        Time spent in waiting statuses is excluded. A breach recorded earlier
        (e.g. on first response) is kept even when resolution is on time.
        """
        at = self._now(at)

        loaded = await self._load(ticket_id)
        if loaded is None:
            return None
        stats, ticket, policy = loaded

        minutes = await self._elapsed_minutes(ticket, policy, at)
        breached = minutes > policy.target_resolution_minutes

        instance = await self._instance_repo.get_active(ticket_id)
        if instance is not None:
            new_status = SLAInstanceStatus.BREACHED if breached else SLAInstanceStatus.MET
            changes = {"resolved_at": at, "paused_at": None}
            if breached:
                changes["breached_at"] = at

            transitioned = await self._instance_repo.transition(
                instance.id, ACTIVE_SLA_STATUSES, new_status, **changes
            )
            if transitioned is not None:
                await self._publish(
                    SLAEventType.SLA_BREACHED if breached else SLAEventType.SLA_MET,
                    ticket_id, policy.id, at,
                    business_resolution_time_ms=minutes_to_ms(minutes),
                    target_resolution_time_ms=minutes_to_ms(policy.target_resolution_minutes),
                    breached=breached
                )
            else:
                logger.debug("SLA instance already closed", extra={"ticket_id": ticket_id})

        stats.resolved_at = at
        stats.business_resolution_time_ms = minutes_to_ms(minutes)
        if breached:
            stats.mark_breached(BreachReason.RESOLUTION_EXCEEDED)

        stats = await self._stats_repo.save(stats)
        logger.info(
            "Resolution recorded in SLA",
            extra={"ticket_id": ticket_id, "business_minutes": minutes, "breached": breached}
        )
        return stats

    async def breach(
        self,
        ticket_id: str,
        reason: str,
        at: Optional[datetime] = None
    ) -> Optional[SLAInstance]:
        """Mark the ticket's active SLA as breached."""
        at = self._now(at)

        # Stats row first, then the instance: same lock order as record_resolution
        stats = await self._stats_repo.get(ticket_id, for_update=True)

        instance = await self._instance_repo.get_active(ticket_id)
        if instance is None:
            logger.debug("No active SLA to breach", extra={"ticket_id": ticket_id})
            return None

        breached = await self._instance_repo.transition(
            instance.id, ACTIVE_SLA_STATUSES, SLAInstanceStatus.BREACHED,
            breached_at=at, paused_at=None
        )
        if breached is None:
            logger.debug("SLA instance already closed", extra={"ticket_id": ticket_id})
            return None

        if stats is not None:
            stats.mark_breached(reason)
            await self._stats_repo.save(stats)

        await self._publish(
            SLAEventType.SLA_BREACHED, ticket_id, instance.policy_id, at,
            reason=reason
        )
        logger.warning("SLA breached", extra={"ticket_id": ticket_id, "reason": reason})
        return breached

    async def record_status_change(
        self,
        ticket_id: str,
        new_status: str,
        at: Optional[datetime] = None
    ) -> Optional[SLAInstance]:
        """
        Keep the instance state in step with the ticket status.

        Waiting statuses pause, counted statuses resume, and RESOLVED/CLOSED
        record the resolution.
        """
        if new_status not in VALID_STATUSES:
            raise ValidationException(
                f"Unknown ticket status: {new_status!r}",
                {"status": new_status}
            )
        at = self._now(at)

        if new_status in RESOLVED_STATUSES:
            await self.record_resolution(ticket_id, at)
            return await self._instance_repo.get_latest(ticket_id)

        instance = await self._instance_repo.get_active(ticket_id)
        if instance is None:
            return None

        if new_status in WAITING_STATUSES and instance.status == SLAInstanceStatus.RUNNING:
            paused = await self._instance_repo.transition(
                instance.id, [SLAInstanceStatus.RUNNING], SLAInstanceStatus.PAUSED,
                paused_at=at
            )
            if paused is not None:
                await self._publish(
                    SLAEventType.SLA_PAUSED, ticket_id, instance.policy_id, at,
                    status=new_status
                )
                logger.info("SLA paused", extra={"ticket_id": ticket_id, "status": new_status})
                return paused

        elif new_status in COUNTED_STATUSES and instance.status == SLAInstanceStatus.PAUSED:
            resumed = await self._instance_repo.transition(
                instance.id, [SLAInstanceStatus.PAUSED], SLAInstanceStatus.RUNNING,
                paused_at=None
            )
            if resumed is not None:
                await self._publish(
                    SLAEventType.SLA_RESUMED, ticket_id, instance.policy_id, at,
                    status=new_status
                )
                logger.info("SLA resumed", extra={"ticket_id": ticket_id, "status": new_status})
                return resumed

        return await self._instance_repo.get_active(ticket_id)

    async def get_status(
        self,
        ticket_id: str,
        at: Optional[datetime] = None
    ) -> Optional[SLAStatusSnapshot]:
        """Recalculate a ticket's SLA position without changing anything."""
        at = self._now(at)

        stats = await self._stats_repo.get(ticket_id)
        if stats is None:
            return None
        ticket = await self._ticket_reader.get_ticket(ticket_id)
        if ticket is None:
            return None
        policy = await self._policy_repo.get_by_id(stats.policy_id)
        if policy is None:
            return None

        instance = await self._instance_repo.get_latest(ticket_id)

        end_at = at
        # Only a closed attempt stops at its resolution; a reopened ticket keeps counting
        if instance is not None and instance.is_terminal and instance.resolved_at is not None:
            end_at = min(end_at, to_utc(instance.resolved_at))

        elapsed = await self._elapsed_minutes(ticket, policy, end_at)
        first_response_minutes = None
        if stats.business_first_response_time_ms is not None:
            first_response_minutes = stats.business_first_response_time_ms // 60000

        return SLAStatusSnapshot(
            ticket_id=ticket_id,
            policy_id=policy.id,
            policy_name=policy.name,
            instance_status=instance.status if instance else None,
            elapsed_business_minutes=elapsed,
            target_resolution_minutes=policy.target_resolution_minutes,
            remaining_business_minutes=max(0, policy.target_resolution_minutes - elapsed),
            target_first_response_minutes=policy.target_first_response_minutes,
            first_response_at=stats.first_response_at,
            business_first_response_minutes=first_response_minutes,
            breached=stats.breached,
            breach_reason=stats.breach_reason,
            evaluated_at=at,
        )
