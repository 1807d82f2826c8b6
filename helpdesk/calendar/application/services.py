"""
Calendar Application Services
=============================

Resolves business calendars into `BusinessSchedule` objects and manages
calendar configuration.

Following SOLID principles:
- Single Responsibility: the cache only caches, the service only orchestrates
- Dependency Inversion: depends on ICalendarRepository, not on SQLAlchemy
"""

import threading
from time import monotonic
from abc import ABC, abstractmethod
from datetime import datetime, time
from typing import Callable, Dict, List, Optional, Tuple

from helpdesk.config import settings
from helpdesk.core import ResourceNotFoundException
from helpdesk.calendar.domain import (
    BusinessCalendar,
    BusinessSchedule,
    CalendarException,
    DEFAULT_CALENDAR_NAME,
    default_weekly_config,
)
from helpdesk.calendar.domain.value_objects import get_zone
from helpdesk.calendar.application.dto import (
    CalendarCreateDTO,
    CalendarUpdateDTO,
    CalendarExceptionCreateDTO,
)
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ICalendarRepository(ABC):
    """Interface for business calendar data access."""

    @abstractmethod
    async def get_by_id(self, calendar_id: str) -> Optional[BusinessCalendar]:
        """Get calendar with its exceptions."""

    @abstractmethod
    async def get_default(self) -> Optional[BusinessCalendar]:
        """Get the calendar flagged as default, with its exceptions."""

    @abstractmethod
    async def list_all(self) -> List[BusinessCalendar]:
        """List calendars, default first, then by name."""

    @abstractmethod
    async def create(self, calendar: BusinessCalendar) -> BusinessCalendar:
        """Create calendar. A default calendar unsets every other default."""

    @abstractmethod
    async def create_default_if_absent(self, calendar: BusinessCalendar) -> BusinessCalendar:
        """
        Create `calendar` as the default unless a default already exists.

        Returns whichever calendar is the default afterwards, including when a
        concurrent caller created it first.
        """

    @abstractmethod
    async def update(self, calendar: BusinessCalendar) -> BusinessCalendar:
        """Update calendar. A default calendar unsets every other default."""

    @abstractmethod
    async def add_exception(self, exception: CalendarException) -> CalendarException:
        """Add a dated exception to a calendar."""

    @abstractmethod
    async def get_exception(self, exception_id: str) -> Optional[CalendarException]:
        """Get exception by ID."""

    @abstractmethod
    async def delete_exception(self, exception_id: str) -> None:
        """Delete exception by ID."""


# ========== Schedule Cache ==========

class ScheduleCache:
    """
    Thread-safe TTL cache of resolved schedules, keyed by calendar id.

    Created once per process and shared by every BusinessCalendarService.
    Entries older than the TTL are treated as misses; calendars change
    rarely, so serving a schedule up to `ttl_seconds` stale is acceptable.
    """

    DEFAULT_KEY = "__default__"

    def __init__(
        self,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = monotonic
    ):
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, BusinessSchedule]] = {}
        self._lock = threading.Lock()

    def _key(self, calendar_id: Optional[str]) -> str:
        return calendar_id or self.DEFAULT_KEY

    def get(self, calendar_id: Optional[str]) -> Optional[BusinessSchedule]:
        key = self._key(calendar_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, schedule = entry
            if self._clock() - stored_at >= self._ttl:
                del self._entries[key]
                return None
            return schedule

    def put(self, calendar_id: Optional[str], schedule: BusinessSchedule) -> None:
        with self._lock:
            self._entries[self._key(calendar_id)] = (self._clock(), schedule)

    def invalidate(self, calendar_id: Optional[str] = None) -> None:
        """Drop a calendar's entry. The default entry is always dropped too."""
        with self._lock:
            self._entries.pop(self.DEFAULT_KEY, None)
            if calendar_id:
                self._entries.pop(calendar_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# ========== Application Services ==========

class BusinessCalendarService:
    """
    Service for business calendar resolution and administration.

    `get_schedule(None)` never fails: a missing default calendar is created
    on the spot. An explicit calendar id that does not exist is an
    administrator error and raises ResourceNotFoundException.
    """

    def __init__(
        self,
        calendar_repository: ICalendarRepository,
        cache: Optional[ScheduleCache] = None,
        default_timezone: Optional[str] = None
    ):
        self._calendar_repo = calendar_repository
        self._cache = cache
        self._default_timezone = default_timezone or settings.default_calendar_timezone

    async def get_schedule(self, calendar_id: Optional[str] = None) -> BusinessSchedule:
        """
        Resolve a calendar into the model used by the business-time calculator.

        Args:
            calendar_id: Calendar ID, or None for the default calendar

        Returns:
            BusinessSchedule with holidays in the calendar's own timezone
        """
        if self._cache is not None:
            cached = self._cache.get(calendar_id)
            if cached is not None:
                return cached

        if calendar_id:
            calendar = await self._calendar_repo.get_by_id(calendar_id)
            if calendar is None:
                raise ResourceNotFoundException("BusinessCalendar", calendar_id)
        else:
            calendar = await self.get_default_calendar()

        schedule = calendar.to_schedule(self._default_timezone)

        if self._cache is not None:
            self._cache.put(calendar_id, schedule)

        return schedule

    async def get_default_calendar(self) -> BusinessCalendar:
        """Get the default calendar, creating the 8x5 default when none exists."""
        calendar = await self._calendar_repo.get_default()
        if calendar is not None:
            return calendar

        logger.warning("Default business calendar not found, creating 8x5 default")
        return await self.create_default_calendar()

    async def create_default_calendar(self) -> BusinessCalendar:
        """Create the Monday-Friday 09:00-18:00 default calendar."""
        calendar = await self._calendar_repo.create_default_if_absent(
            BusinessCalendar(
                id=None,
                name=DEFAULT_CALENDAR_NAME,
                timezone=self._default_timezone,
                schedule=default_weekly_config(),
                is_default=True,
            )
        )
        self._invalidate(calendar.id)
        logger.info("Default business calendar ready", extra={"calendar_id": calendar.id})
        return calendar

    async def create_calendar(self, dto: CalendarCreateDTO) -> BusinessCalendar:
        """Create a calendar. Marking it default unsets the previous default."""
        calendar = await self._calendar_repo.create(
            BusinessCalendar(
                id=None,
                name=dto.name,
                timezone=dto.timezone or self._default_timezone,
                schedule=dto.schedule.to_storage(),
                is_default=dto.is_default,
            )
        )
        self._invalidate(calendar.id)
        logger.info(
            "Business calendar created",
            extra={"calendar_id": calendar.id, "calendar_name": calendar.name}
        )
        return calendar

    async def list_calendars(self) -> List[BusinessCalendar]:
        return await self._calendar_repo.list_all()

    async def get_calendar(self, calendar_id: str) -> BusinessCalendar:
        calendar = await self._calendar_repo.get_by_id(calendar_id)
        if calendar is None:
            raise ResourceNotFoundException("BusinessCalendar", calendar_id)
        return calendar

    async def update_calendar(self, calendar_id: str, dto: CalendarUpdateDTO) -> BusinessCalendar:
        calendar = await self.get_calendar(calendar_id)

        if dto.name is not None:
            calendar.name = dto.name
        if dto.timezone is not None:
            calendar.timezone = dto.timezone
        if dto.schedule is not None:
            calendar.schedule = dto.schedule.to_storage()
        if dto.is_default is not None:
            calendar.is_default = dto.is_default

        updated = await self._calendar_repo.update(calendar)
        self._invalidate(calendar_id)
        logger.info("Business calendar updated", extra={"calendar_id": calendar_id})
        return updated

    async def add_exception(
        self,
        calendar_id: str,
        dto: CalendarExceptionCreateDTO
    ) -> CalendarException:
        """
        Add a holiday to a calendar.

        A date without a timezone is a day in the calendar's own timezone.
        """
        calendar = await self.get_calendar(calendar_id)

        holiday_at = dto.date
        if holiday_at.tzinfo is None:
            # Local noon stays on the same date whatever the DST rules
            zone = get_zone(calendar.timezone or self._default_timezone)
            holiday_at = datetime.combine(holiday_at.date(), time(12, 0), tzinfo=zone)

        exception = await self._calendar_repo.add_exception(
            CalendarException(
                id=None,
                calendar_id=calendar_id,
                date=holiday_at,
                is_holiday=True,
                description=dto.description,
            )
        )
        self._invalidate(calendar_id)
        logger.info(
            "Calendar exception added",
            extra={"calendar_id": calendar_id, "date": dto.date.isoformat()}
        )
        return exception

    async def remove_exception(self, exception_id: str) -> None:
        exception = await self._calendar_repo.get_exception(exception_id)
        if exception is None:
            raise ResourceNotFoundException("CalendarException", exception_id)

        await self._calendar_repo.delete_exception(exception_id)
        self._invalidate(exception.calendar_id)
        logger.info("Calendar exception removed", extra={"exception_id": exception_id})

    def _invalidate(self, calendar_id: Optional[str]) -> None:
        if self._cache is not None:
            self._cache.invalidate(calendar_id)
