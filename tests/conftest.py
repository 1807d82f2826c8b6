"""Shared test fixtures with in-memory fake repositories."""

import asyncio
import copy
import dataclasses
import uuid
from datetime import datetime, timezone
from typing import AsyncGenerator, Dict, List, Optional, Sequence, Tuple

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from helpdesk.config import SLAInstanceStatus, ACTIVE_SLA_STATUSES, TicketStatus
from helpdesk.calendar.application import (
    BusinessCalendarService,
    ICalendarRepository,
    ScheduleCache,
)
from helpdesk.calendar.domain import BusinessCalendar, CalendarException
from helpdesk.sla.application import (
    ISLAEventPublisher,
    ISLAInstanceRepository,
    ISLAPolicyRepository,
    ISLAStatsRepository,
    ITicketReader,
    SLAClockService,
    SLAPolicyService,
)
from helpdesk.sla.domain import (
    AppliesTo,
    SLAEvent,
    SLAInstance,
    SLAPolicy,
    SLAStats,
    StatusHistoryEntry,
    TicketSnapshot,
)

SAO_PAULO = "America/Sao_Paulo"


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# ─── Clock ────────────────────────────────────────────────


class ManualClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ─── In-memory fake repositories ─────────────────────────


class FakeCalendarRepository(ICalendarRepository):
    def __init__(self) -> None:
        self._calendars: Dict[str, BusinessCalendar] = {}
        self._exceptions: Dict[str, CalendarException] = {}
        self.reads = 0

    def _with_exceptions(self, calendar: BusinessCalendar) -> BusinessCalendar:
        result = copy.deepcopy(calendar)
        result.exceptions = [
            copy.deepcopy(e) for e in self._exceptions.values() if e.calendar_id == calendar.id
        ]
        return result

    def _unset_defaults(self, keep_id: Optional[str] = None) -> None:
        for calendar in self._calendars.values():
            if calendar.id != keep_id:
                calendar.is_default = False

    async def get_by_id(self, calendar_id: str) -> Optional[BusinessCalendar]:
        await asyncio.sleep(0)
        self.reads += 1
        calendar = self._calendars.get(calendar_id)
        return self._with_exceptions(calendar) if calendar else None

    async def get_default(self) -> Optional[BusinessCalendar]:
        await asyncio.sleep(0)
        self.reads += 1
        for calendar in self._calendars.values():
            if calendar.is_default:
                return self._with_exceptions(calendar)
        return None

    async def list_all(self) -> List[BusinessCalendar]:
        await asyncio.sleep(0)
        ordered = sorted(self._calendars.values(), key=lambda c: (not c.is_default, c.name))
        return [self._with_exceptions(c) for c in ordered]

    async def create(self, calendar: BusinessCalendar) -> BusinessCalendar:
        await asyncio.sleep(0)
        if calendar.is_default:
            self._unset_defaults()
        stored = copy.deepcopy(calendar)
        stored.id = new_id()
        stored.exceptions = []
        stored.created_at = stored.updated_at = datetime.now(timezone.utc)
        self._calendars[stored.id] = stored
        return self._with_exceptions(stored)

    async def create_default_if_absent(self, calendar: BusinessCalendar) -> BusinessCalendar:
        existing = await self.get_default()
        if existing is not None:
            return existing
        calendar.is_default = True
        return await self.create(calendar)

    async def update(self, calendar: BusinessCalendar) -> BusinessCalendar:
        await asyncio.sleep(0)
        if calendar.is_default:
            self._unset_defaults(keep_id=calendar.id)
        stored = copy.deepcopy(calendar)
        stored.exceptions = []
        stored.updated_at = datetime.now(timezone.utc)
        self._calendars[stored.id] = stored
        return self._with_exceptions(stored)

    async def add_exception(self, exception: CalendarException) -> CalendarException:
        await asyncio.sleep(0)
        exception.id = new_id()
        self._exceptions[exception.id] = copy.deepcopy(exception)
        return exception

    async def get_exception(self, exception_id: str) -> Optional[CalendarException]:
        await asyncio.sleep(0)
        exception = self._exceptions.get(exception_id)
        return copy.deepcopy(exception) if exception else None

    async def delete_exception(self, exception_id: str) -> None:
        await asyncio.sleep(0)
        self._exceptions.pop(exception_id, None)


class FakeTicketReader(ITicketReader):
    def __init__(self) -> None:
        self.tickets: Dict[str, TicketSnapshot] = {}
        self.history: Dict[str, List[StatusHistoryEntry]] = {}

    def add_ticket(self, created_at: datetime, ticket_id: Optional[str] = None, **attributes) -> str:
        ticket_id = ticket_id or new_id()
        attributes.setdefault("status", TicketStatus.OPEN)
        self.tickets[ticket_id] = TicketSnapshot(id=ticket_id, created_at=created_at, **attributes)
        self.history[ticket_id] = []
        return ticket_id

    def change_status(self, ticket_id: str, old: str, new: str, at: datetime) -> None:
        self.history[ticket_id].append(
            StatusHistoryEntry(ticket_id=ticket_id, old_status=old, new_status=new, changed_at=at)
        )

    async def get_ticket(self, ticket_id: str) -> Optional[TicketSnapshot]:
        await asyncio.sleep(0)
        return self.tickets.get(ticket_id)

    async def get_status_history(self, ticket_id: str) -> List[StatusHistoryEntry]:
        await asyncio.sleep(0)
        return sorted(self.history.get(ticket_id, []), key=lambda e: e.changed_at)


class FakePolicyRepository(ISLAPolicyRepository):
    def __init__(self) -> None:
        self._policies: Dict[str, SLAPolicy] = {}
        self.referenced: set = set()

    def add(self, **fields) -> SLAPolicy:
        policy = SLAPolicy(id=fields.pop("id", None) or new_id(), **fields)
        self._policies[policy.id] = policy
        return policy

    async def list_active(self) -> List[SLAPolicy]:
        return await self.list_all(active_only=True)

    async def list_all(self, active_only: bool = False) -> List[SLAPolicy]:
        await asyncio.sleep(0)
        policies = sorted(self._policies.values(), key=lambda p: (p.name, p.id))
        return [p for p in policies if p.active or not active_only]

    async def get_by_id(self, policy_id: str) -> Optional[SLAPolicy]:
        await asyncio.sleep(0)
        return self._policies.get(policy_id)

    async def create(self, policy: SLAPolicy) -> SLAPolicy:
        await asyncio.sleep(0)
        stored = dataclasses.replace(policy, id=new_id())
        self._policies[stored.id] = stored
        return stored

    async def update(self, policy: SLAPolicy) -> SLAPolicy:
        await asyncio.sleep(0)
        self._policies[policy.id] = policy
        return policy

    async def delete(self, policy_id: str) -> None:
        await asyncio.sleep(0)
        self._policies.pop(policy_id, None)

    async def is_referenced(self, policy_id: str) -> bool:
        await asyncio.sleep(0)
        return policy_id in self.referenced


class FakeInstanceRepository(ISLAInstanceRepository):
    def __init__(self) -> None:
        self.instances: Dict[str, SLAInstance] = {}

    def _active(self, ticket_id: str) -> Optional[SLAInstance]:
        for instance in self.instances.values():
            if instance.ticket_id == ticket_id and instance.status in ACTIVE_SLA_STATUSES:
                return instance
        return None

    async def get_active(self, ticket_id: str) -> Optional[SLAInstance]:
        await asyncio.sleep(0)
        instance = self._active(ticket_id)
        return dataclasses.replace(instance) if instance else None

    async def get_latest(self, ticket_id: str) -> Optional[SLAInstance]:
        await asyncio.sleep(0)
        mine = [i for i in self.instances.values() if i.ticket_id == ticket_id]
        if not mine:
            return None
        return dataclasses.replace(max(mine, key=lambda i: i.started_at))

    async def list_active(self) -> List[SLAInstance]:
        await asyncio.sleep(0)
        return [
            dataclasses.replace(i) for i in self.instances.values()
            if i.status in ACTIVE_SLA_STATUSES
        ]

    async def create_if_no_active(self, instance: SLAInstance) -> Tuple[SLAInstance, bool]:
        await asyncio.sleep(0)
        # Check and insert without yielding, like the unique index
        existing = self._active(instance.ticket_id)
        if existing is not None:
            return dataclasses.replace(existing), False
        stored = dataclasses.replace(instance, id=new_id())
        self.instances[stored.id] = stored
        return dataclasses.replace(stored), True

    async def transition(
        self,
        instance_id: str,
        expected_statuses: Sequence[str],
        new_status: str,
        **changes
    ) -> Optional[SLAInstance]:
        await asyncio.sleep(0)
        instance = self.instances.get(instance_id)
        if instance is None or instance.status not in expected_statuses:
            return None
        updated = dataclasses.replace(instance, status=new_status, **changes)
        self.instances[instance_id] = updated
        return dataclasses.replace(updated)


class FakeStatsRepository(ISLAStatsRepository):
    def __init__(self) -> None:
        self.stats: Dict[str, SLAStats] = {}

    async def get(self, ticket_id: str, for_update: bool = False) -> Optional[SLAStats]:
        await asyncio.sleep(0)
        stats = self.stats.get(ticket_id)
        return dataclasses.replace(stats) if stats else None

    async def create_if_absent(self, stats: SLAStats) -> SLAStats:
        await asyncio.sleep(0)
        if stats.ticket_id not in self.stats:
            self.stats[stats.ticket_id] = dataclasses.replace(stats)
        return dataclasses.replace(self.stats[stats.ticket_id])

    async def save(self, stats: SLAStats) -> SLAStats:
        await asyncio.sleep(0)
        self.stats[stats.ticket_id] = dataclasses.replace(stats)
        return dataclasses.replace(stats)


class RecordingPublisher(ISLAEventPublisher):
    def __init__(self) -> None:
        self.events: List[SLAEvent] = []

    async def publish(self, event: SLAEvent) -> None:
        self.events.append(event)

    def types(self) -> List[str]:
        return [e.type for e in self.events]


# ─── Fixtures ─────────────────────────────────────────────


@pytest.fixture
def manual_clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def schedule_cache(manual_clock: ManualClock) -> ScheduleCache:
    return ScheduleCache(ttl_seconds=60, clock=manual_clock)


@pytest.fixture
def calendar_repo() -> FakeCalendarRepository:
    return FakeCalendarRepository()


@pytest.fixture
def calendar_service(
    calendar_repo: FakeCalendarRepository,
    schedule_cache: ScheduleCache,
) -> BusinessCalendarService:
    return BusinessCalendarService(calendar_repo, schedule_cache, default_timezone=SAO_PAULO)


@pytest.fixture
def ticket_reader() -> FakeTicketReader:
    return FakeTicketReader()


@pytest.fixture
def policy_repo() -> FakePolicyRepository:
    return FakePolicyRepository()


@pytest.fixture
def instance_repo() -> FakeInstanceRepository:
    return FakeInstanceRepository()


@pytest.fixture
def stats_repo() -> FakeStatsRepository:
    return FakeStatsRepository()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def clock_service(
    ticket_reader: FakeTicketReader,
    policy_repo: FakePolicyRepository,
    instance_repo: FakeInstanceRepository,
    stats_repo: FakeStatsRepository,
    calendar_service: BusinessCalendarService,
    publisher: RecordingPublisher,
) -> SLAClockService:
    return SLAClockService(
        ticket_reader=ticket_reader,
        policy_repository=policy_repo,
        instance_repository=instance_repo,
        stats_repository=stats_repo,
        calendar_service=calendar_service,
        event_publisher=publisher,
        clock=lambda: utc(2024, 1, 15, 21, 0),
    )


@pytest.fixture
def policy_service(
    policy_repo: FakePolicyRepository,
    calendar_service: BusinessCalendarService,
) -> SLAPolicyService:
    return SLAPolicyService(policy_repo, calendar_service)


@pytest.fixture
def general_policy(policy_repo: FakePolicyRepository) -> SLAPolicy:
    """Catch-all policy: 180 business minutes to resolve, on the default calendar."""
    return policy_repo.add(
        name="General",
        target_resolution_minutes=180,
        target_first_response_minutes=30,
        applies_to=AppliesTo(),
    )


@pytest.fixture
def app(
    calendar_service: BusinessCalendarService,
    policy_service: SLAPolicyService,
    clock_service: SLAClockService,
) -> FastAPI:
    """FastAPI app with services wired to the in-memory fakes."""
    from helpdesk.calendar.interfaces import get_calendar_service
    from helpdesk.sla.interfaces import get_clock_service, get_policy_service
    from helpdesk.main import app as main_app

    main_app.dependency_overrides[get_calendar_service] = lambda: calendar_service
    main_app.dependency_overrides[get_policy_service] = lambda: policy_service
    main_app.dependency_overrides[get_clock_service] = lambda: clock_service

    yield main_app

    main_app.dependency_overrides.clear()


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
