"""
SLA Infrastructure Repositories
===============================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database.
"""

from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple
from uuid import UUID, uuid4

from sqlalchemy import select, update, delete, exists, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.config import ACTIVE_SLA_STATUSES
from helpdesk.core import RepositoryException
from helpdesk.sla.application import (
    ITicketReader,
    ISLAPolicyRepository,
    ISLAInstanceRepository,
    ISLAStatsRepository,
)
from helpdesk.sla.domain import (
    AppliesTo,
    SLAInstance,
    SLAPolicy,
    SLAStats,
    StatusHistoryEntry,
    TicketSnapshot,
)
from helpdesk.sla.infrastructure.models import (
    TicketModel,
    TicketStatusHistoryModel,
    SLAPolicyModel,
    SLAInstanceModel,
    SLAStatsModel,
)
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def _parse_uuid(value: Optional[str]) -> Optional[UUID]:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _str_or_none(value: Optional[UUID]) -> Optional[str]:
    return str(value) if value is not None else None


class SQLAlchemyTicketReader(ITicketReader):
    """Reads the ticket projection and status history."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_ticket(self, ticket_id: str) -> Optional[TicketSnapshot]:
        ticket_uuid = _parse_uuid(ticket_id)
        if ticket_uuid is None:
            return None

        stmt = select(TicketModel).where(TicketModel.id == ticket_uuid)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            return None

        return TicketSnapshot(
            id=str(model.id),
            created_at=model.created_at,
            status=model.status,
            team_id=model.team_id,
            category_id=model.category_id,
            priority=model.priority,
            ticket_type=model.ticket_type,
            requester_team_id=model.requester_team_id,
        )

    async def get_status_history(self, ticket_id: str) -> List[StatusHistoryEntry]:
        ticket_uuid = _parse_uuid(ticket_id)
        if ticket_uuid is None:
            return []

        stmt = (
            select(TicketStatusHistoryModel)
            .where(TicketStatusHistoryModel.ticket_id == ticket_uuid)
            .order_by(TicketStatusHistoryModel.changed_at.asc())
        )
        result = await self._session.execute(stmt)
        return [
            StatusHistoryEntry(
                ticket_id=str(model.ticket_id),
                old_status=model.old_status,
                new_status=model.new_status,
                changed_at=model.changed_at,
            )
            for model in result.scalars().all()
        ]


def _policy_to_domain(model: SLAPolicyModel) -> SLAPolicy:
    return SLAPolicy(
        id=str(model.id),
        name=model.name,
        description=model.description,
        applies_to=AppliesTo.from_dict(model.applies_to),
        target_first_response_minutes=model.target_first_response_minutes,
        target_resolution_minutes=model.target_resolution_minutes,
        calendar_id=_str_or_none(model.calendar_id),
        active=model.active,
    )


class SQLAlchemyPolicyRepository(ISLAPolicyRepository):
    """
    SQLAlchemy implementation of SLA policy repository.

    Policies are always listed by name, then id, so selection ties resolve
    the same way on every call.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model(self, policy_id: str) -> Optional[SLAPolicyModel]:
        policy_uuid = _parse_uuid(policy_id)
        if policy_uuid is None:
            return None
        stmt = select(SLAPolicyModel).where(SLAPolicyModel.id == policy_uuid)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_active(self) -> List[SLAPolicy]:
        return await self.list_all(active_only=True)

    async def list_all(self, active_only: bool = False) -> List[SLAPolicy]:
        stmt = select(SLAPolicyModel)
        if active_only:
            stmt = stmt.where(SLAPolicyModel.active.is_(True))
        stmt = stmt.order_by(SLAPolicyModel.name.asc(), SLAPolicyModel.id.asc())

        result = await self._session.execute(stmt)
        return [_policy_to_domain(m) for m in result.scalars().all()]

    async def get_by_id(self, policy_id: str) -> Optional[SLAPolicy]:
        model = await self._get_model(policy_id)
        return _policy_to_domain(model) if model else None

    async def create(self, policy: SLAPolicy) -> SLAPolicy:
        now = datetime.now(timezone.utc)
        model = SLAPolicyModel(
            id=uuid4(),
            name=policy.name,
            description=policy.description,
            applies_to=policy.applies_to.to_dict(),
            target_first_response_minutes=policy.target_first_response_minutes,
            target_resolution_minutes=policy.target_resolution_minutes,
            calendar_id=_parse_uuid(policy.calendar_id),
            active=policy.active,
            created_at=now,
            updated_at=now,
        )
        self._session.add(model)
        await self._session.flush()
        return _policy_to_domain(model)

    async def update(self, policy: SLAPolicy) -> SLAPolicy:
        model = await self._get_model(policy.id)
        if model is None:
            raise RepositoryException(f"SLA policy {policy.id} not found")

        model.name = policy.name
        model.description = policy.description
        model.applies_to = policy.applies_to.to_dict()
        model.target_first_response_minutes = policy.target_first_response_minutes
        model.target_resolution_minutes = policy.target_resolution_minutes
        model.calendar_id = _parse_uuid(policy.calendar_id)
        model.active = policy.active
        model.updated_at = datetime.now(timezone.utc)

        await self._session.flush()
        return _policy_to_domain(model)

    async def delete(self, policy_id: str) -> None:
        policy_uuid = _parse_uuid(policy_id)
        if policy_uuid is None:
            raise RepositoryException(f"Invalid policy ID: {policy_id}")
        await self._session.execute(delete(SLAPolicyModel).where(SLAPolicyModel.id == policy_uuid))

    async def is_referenced(self, policy_id: str) -> bool:
        policy_uuid = _parse_uuid(policy_id)
        if policy_uuid is None:
            return False

        stmt = select(
            or_(
                exists().where(SLAInstanceModel.policy_id == policy_uuid),
                exists().where(SLAStatsModel.policy_id == policy_uuid),
            )
        )
        result = await self._session.execute(stmt)
        return bool(result.scalar())


def _instance_to_domain(model: SLAInstanceModel) -> SLAInstance:
    return SLAInstance(
        id=str(model.id),
        ticket_id=str(model.ticket_id),
        policy_id=str(model.policy_id),
        status=model.status,
        started_at=model.started_at,
        paused_at=model.paused_at,
        resolved_at=model.resolved_at,
        breached_at=model.breached_at,
    )


class SQLAlchemyInstanceRepository(ISLAInstanceRepository):
    """
    SQLAlchemy implementation of SLA instance repository.

    Status changes are conditional UPDATEs, so two requests racing to close
    the same instance produce exactly one transition.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _select_one(self, stmt) -> Optional[SLAInstance]:
        result = await self._session.execute(stmt.execution_options(populate_existing=True))
        model = result.scalars().first()
        return _instance_to_domain(model) if model else None

    async def get_active(self, ticket_id: str) -> Optional[SLAInstance]:
        ticket_uuid = _parse_uuid(ticket_id)
        if ticket_uuid is None:
            return None
        stmt = select(SLAInstanceModel).where(
            SLAInstanceModel.ticket_id == ticket_uuid,
            SLAInstanceModel.status.in_(ACTIVE_SLA_STATUSES)
        )
        return await self._select_one(stmt)

    async def get_latest(self, ticket_id: str) -> Optional[SLAInstance]:
        ticket_uuid = _parse_uuid(ticket_id)
        if ticket_uuid is None:
            return None
        stmt = (
            select(SLAInstanceModel)
            .where(SLAInstanceModel.ticket_id == ticket_uuid)
            .order_by(SLAInstanceModel.started_at.desc())
            .limit(1)
        )
        return await self._select_one(stmt)

    async def list_active(self) -> List[SLAInstance]:
        stmt = (
            select(SLAInstanceModel)
            .where(SLAInstanceModel.status.in_(ACTIVE_SLA_STATUSES))
            .order_by(SLAInstanceModel.started_at.asc())
        )
        result = await self._session.execute(stmt)
        return [_instance_to_domain(m) for m in result.scalars().all()]

    async def create_if_no_active(self, instance: SLAInstance) -> Tuple[SLAInstance, bool]:
        model = SLAInstanceModel(
            id=uuid4(),
            ticket_id=_parse_uuid(instance.ticket_id),
            policy_id=_parse_uuid(instance.policy_id),
            status=instance.status,
            started_at=instance.started_at,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(model)
                await self._session.flush()
        except IntegrityError as e:
            winner = await self.get_active(instance.ticket_id)
            if winner is None:
                raise RepositoryException(
                    "Failed to create SLA instance",
                    details={"ticket_id": instance.ticket_id, "error": str(e.orig)}
                ) from e
            logger.info(
                "SLA instance created concurrently, using existing",
                extra={"ticket_id": instance.ticket_id}
            )
            return winner, False

        return _instance_to_domain(model), True

    async def transition(
        self,
        instance_id: str,
        expected_statuses: Sequence[str],
        new_status: str,
        **changes
    ) -> Optional[SLAInstance]:
        instance_uuid = _parse_uuid(instance_id)
        if instance_uuid is None:
            raise RepositoryException(f"Invalid SLA instance ID: {instance_id}")

        stmt = (
            update(SLAInstanceModel)
            .where(
                SLAInstanceModel.id == instance_uuid,
                SLAInstanceModel.status.in_(list(expected_statuses))
            )
            .values(status=new_status, **changes)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            return None

        return await self._select_one(
            select(SLAInstanceModel).where(SLAInstanceModel.id == instance_uuid)
        )


def _stats_to_domain(model: SLAStatsModel) -> SLAStats:
    return SLAStats(
        ticket_id=str(model.ticket_id),
        policy_id=str(model.policy_id),
        first_response_at=model.first_response_at,
        business_first_response_time_ms=model.business_first_response_time_ms,
        resolved_at=model.resolved_at,
        business_resolution_time_ms=model.business_resolution_time_ms,
        breached=model.breached,
        breach_reason=model.breach_reason,
    )


class SQLAlchemyStatsRepository(ISLAStatsRepository):
    """SQLAlchemy implementation of SLA stats repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model(self, ticket_id: str, for_update: bool = False) -> Optional[SLAStatsModel]:
        ticket_uuid = _parse_uuid(ticket_id)
        if ticket_uuid is None:
            return None

        stmt = select(SLAStatsModel).where(SLAStatsModel.ticket_id == ticket_uuid)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def get(self, ticket_id: str, for_update: bool = False) -> Optional[SLAStats]:
        model = await self._get_model(ticket_id, for_update=for_update)
        return _stats_to_domain(model) if model else None

    async def create_if_absent(self, stats: SLAStats) -> SLAStats:
        existing = await self._get_model(stats.ticket_id)
        if existing is not None:
            return _stats_to_domain(existing)

        model = SLAStatsModel(
            ticket_id=_parse_uuid(stats.ticket_id),
            policy_id=_parse_uuid(stats.policy_id),
            breached=stats.breached,
            breach_reason=stats.breach_reason,
            updated_at=datetime.now(timezone.utc),
        )
        try:
            async with self._session.begin_nested():
                self._session.add(model)
                await self._session.flush()
        except IntegrityError:
            existing = await self._get_model(stats.ticket_id)
            if existing is None:
                raise
            return _stats_to_domain(existing)

        return _stats_to_domain(model)

    async def save(self, stats: SLAStats) -> SLAStats:
        model = await self._get_model(stats.ticket_id)
        if model is None:
            raise RepositoryException(f"SLA stats for ticket {stats.ticket_id} not found")

        model.first_response_at = stats.first_response_at
        model.business_first_response_time_ms = stats.business_first_response_time_ms
        model.resolved_at = stats.resolved_at
        model.business_resolution_time_ms = stats.business_resolution_time_ms
        model.breached = stats.breached
        model.breach_reason = stats.breach_reason
        model.updated_at = datetime.now(timezone.utc)

        await self._session.flush()
        return _stats_to_domain(model)
