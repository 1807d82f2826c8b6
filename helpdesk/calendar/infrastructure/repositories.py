"""
Calendar Infrastructure Repositories
====================================

SQLAlchemy implementation of the calendar repository interface.
"""

from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import select, update, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core import RepositoryException
from helpdesk.calendar.application.services import ICalendarRepository
from helpdesk.calendar.domain import BusinessCalendar, CalendarException
from helpdesk.calendar.infrastructure.models import (
    BusinessCalendarModel,
    BusinessCalendarExceptionModel,
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


def _exception_to_domain(model: BusinessCalendarExceptionModel) -> CalendarException:
    return CalendarException(
        id=str(model.id),
        calendar_id=str(model.calendar_id),
        date=model.date,
        is_holiday=model.is_holiday,
        description=model.description,
    )


def _calendar_to_domain(
    model: BusinessCalendarModel,
    exceptions: List[BusinessCalendarExceptionModel]
) -> BusinessCalendar:
    return BusinessCalendar(
        id=str(model.id),
        name=model.name,
        timezone=model.timezone,
        schedule=dict(model.schedule or {}),
        is_default=model.is_default,
        exceptions=[_exception_to_domain(e) for e in exceptions],
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class SQLAlchemyCalendarRepository(ICalendarRepository):
    """
    SQLAlchemy implementation of calendar repository.

    The single-default invariant is kept two ways: marking a calendar
    default unsets the others in the same transaction, and the partial
    unique index rejects a concurrent second default.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model(self, calendar_id: str) -> Optional[BusinessCalendarModel]:
        calendar_uuid = _parse_uuid(calendar_id)
        if calendar_uuid is None:
            return None

        stmt = select(BusinessCalendarModel).where(BusinessCalendarModel.id == calendar_uuid)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def _load_exceptions(
        self,
        calendar_ids: List[UUID]
    ) -> Dict[UUID, List[BusinessCalendarExceptionModel]]:
        grouped: Dict[UUID, List[BusinessCalendarExceptionModel]] = defaultdict(list)
        if not calendar_ids:
            return grouped

        stmt = (
            select(BusinessCalendarExceptionModel)
            .where(BusinessCalendarExceptionModel.calendar_id.in_(calendar_ids))
            .order_by(BusinessCalendarExceptionModel.date.asc())
        )
        result = await self._session.execute(stmt)
        for model in result.scalars().all():
            grouped[model.calendar_id].append(model)
        return grouped

    async def _with_exceptions(self, model: BusinessCalendarModel) -> BusinessCalendar:
        exceptions = await self._load_exceptions([model.id])
        return _calendar_to_domain(model, exceptions[model.id])

    async def _unset_other_defaults(self, keep_id: Optional[UUID] = None) -> None:
        stmt = (
            update(BusinessCalendarModel)
            .where(BusinessCalendarModel.is_default.is_(True))
            .values(is_default=False, updated_at=datetime.now(timezone.utc))
        )
        if keep_id is not None:
            stmt = stmt.where(BusinessCalendarModel.id != keep_id)
        await self._session.execute(stmt)

    async def get_by_id(self, calendar_id: str) -> Optional[BusinessCalendar]:
        """Get calendar with its exceptions."""
        model = await self._get_model(calendar_id)
        if model is None:
            return None
        return await self._with_exceptions(model)

    async def get_default(self) -> Optional[BusinessCalendar]:
        """Get the default calendar with its exceptions."""
        stmt = (
            select(BusinessCalendarModel)
            .where(BusinessCalendarModel.is_default.is_(True))
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return await self._with_exceptions(model)

    async def list_all(self) -> List[BusinessCalendar]:
        """List calendars, default first, then by name."""
        stmt = select(BusinessCalendarModel).order_by(
            BusinessCalendarModel.is_default.desc(),
            BusinessCalendarModel.name.asc()
        )
        result = await self._session.execute(stmt)
        models = result.scalars().all()

        exceptions = await self._load_exceptions([m.id for m in models])
        return [_calendar_to_domain(m, exceptions[m.id]) for m in models]

    def _new_model(self, calendar: BusinessCalendar) -> BusinessCalendarModel:
        now = datetime.now(timezone.utc)
        return BusinessCalendarModel(
            id=uuid4(),
            name=calendar.name,
            timezone=calendar.timezone,
            schedule=calendar.schedule,
            is_default=calendar.is_default,
            created_at=now,
            updated_at=now,
        )

    async def create(self, calendar: BusinessCalendar) -> BusinessCalendar:
        """Create calendar. A default calendar unsets every other default."""
        if calendar.is_default:
            await self._unset_other_defaults()

        model = self._new_model(calendar)
        try:
            async with self._session.begin_nested():
                self._session.add(model)
                await self._session.flush()
        except IntegrityError as e:
            raise RepositoryException(
                "Failed to create business calendar",
                details={"name": calendar.name, "error": str(e.orig)}
            ) from e

        return _calendar_to_domain(model, [])

    async def create_default_if_absent(self, calendar: BusinessCalendar) -> BusinessCalendar:
        """Create the default calendar unless one exists; return the default."""
        existing = await self.get_default()
        if existing is not None:
            return existing

        calendar.is_default = True
        model = self._new_model(calendar)
        try:
            async with self._session.begin_nested():
                self._session.add(model)
                await self._session.flush()
        except IntegrityError:
            # Another request created the default between our read and insert
            winner = await self.get_default()
            if winner is None:
                raise RepositoryException("Failed to create default business calendar")
            logger.info(
                "Default calendar created concurrently, using existing",
                extra={"calendar_id": winner.id}
            )
            return winner

        return _calendar_to_domain(model, [])

    async def update(self, calendar: BusinessCalendar) -> BusinessCalendar:
        """Update calendar. A default calendar unsets every other default."""
        model = await self._get_model(calendar.id)
        if model is None:
            raise RepositoryException(f"Business calendar {calendar.id} not found")

        if calendar.is_default and not model.is_default:
            await self._unset_other_defaults(keep_id=model.id)

        model.name = calendar.name
        model.timezone = calendar.timezone
        model.schedule = calendar.schedule
        model.is_default = calendar.is_default
        model.updated_at = datetime.now(timezone.utc)

        try:
            async with self._session.begin_nested():
                await self._session.flush()
        except IntegrityError as e:
            raise RepositoryException(
                "Failed to update business calendar",
                details={"calendar_id": calendar.id, "error": str(e.orig)}
            ) from e

        return await self._with_exceptions(model)

    async def add_exception(self, exception: CalendarException) -> CalendarException:
        """Add a dated exception to a calendar."""
        calendar_uuid = _parse_uuid(exception.calendar_id)
        if calendar_uuid is None:
            raise RepositoryException(f"Invalid calendar ID: {exception.calendar_id}")

        model = BusinessCalendarExceptionModel(
            id=uuid4(),
            calendar_id=calendar_uuid,
            date=exception.date,
            is_holiday=exception.is_holiday,
            description=exception.description,
        )
        self._session.add(model)
        await self._session.flush()

        exception.id = str(model.id)
        return exception

    async def get_exception(self, exception_id: str) -> Optional[CalendarException]:
        exception_uuid = _parse_uuid(exception_id)
        if exception_uuid is None:
            return None

        stmt = select(BusinessCalendarExceptionModel).where(
            BusinessCalendarExceptionModel.id == exception_uuid
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return _exception_to_domain(model) if model else None

    async def delete_exception(self, exception_id: str) -> None:
        exception_uuid = _parse_uuid(exception_id)
        if exception_uuid is None:
            raise RepositoryException(f"Invalid exception ID: {exception_id}")

        stmt = delete(BusinessCalendarExceptionModel).where(
            BusinessCalendarExceptionModel.id == exception_uuid
        )
        await self._session.execute(stmt)
