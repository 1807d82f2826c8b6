"""Tests for calendar resolution, administration and the schedule cache."""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

import pytest

from helpdesk.core import ResourceNotFoundException
from helpdesk.calendar.application import (
    CalendarCreateDTO,
    CalendarExceptionCreateDTO,
    CalendarUpdateDTO,
    ScheduleCache,
)
from helpdesk.calendar.domain import BusinessSchedule, DayWindow, DEFAULT_CALENDAR_NAME

from tests.conftest import SAO_PAULO, utc


def _schedule(timezone: str = "UTC") -> BusinessSchedule:
    return BusinessSchedule(timezone=timezone, weekly={1: DayWindow("09:00", "18:00")})


class TestScheduleCache:

    def test_get_returns_stored_schedule(self, schedule_cache):
        schedule = _schedule()
        schedule_cache.put("c1", schedule)

        assert schedule_cache.get("c1") is schedule
        assert schedule_cache.get("c2") is None

    def test_entries_expire_after_ttl(self, schedule_cache, manual_clock):
        schedule_cache.put("c1", _schedule())

        manual_clock.advance(59)
        assert schedule_cache.get("c1") is not None

        manual_clock.advance(1)
        assert schedule_cache.get("c1") is None
        assert len(schedule_cache) == 0

    def test_none_is_the_default_calendar(self, schedule_cache):
        schedule = _schedule()
        schedule_cache.put(None, schedule)

        assert schedule_cache.get(None) is schedule
        assert schedule_cache.get(ScheduleCache.DEFAULT_KEY) is schedule

    def test_invalidate_also_drops_default(self, schedule_cache):
        schedule_cache.put(None, _schedule())
        schedule_cache.put("c1", _schedule())
        schedule_cache.put("c2", _schedule())

        schedule_cache.invalidate("c1")

        assert schedule_cache.get(None) is None
        assert schedule_cache.get("c1") is None
        assert schedule_cache.get("c2") is not None

    def test_clear(self, schedule_cache):
        schedule_cache.put("c1", _schedule())
        schedule_cache.put("c2", _schedule())

        schedule_cache.clear()

        assert len(schedule_cache) == 0

    def test_concurrent_access(self):
        cache = ScheduleCache(ttl_seconds=60)
        schedule = _schedule()

        def worker(index: int) -> bool:
            key = f"c{index % 5}"
            cache.put(key, schedule)
            cache.invalidate(f"c{(index + 1) % 5}")
            cached = cache.get(key)
            return cached is None or cached is schedule

        with ThreadPoolExecutor(max_workers=8) as pool:
            assert all(pool.map(worker, range(500)))


class TestGetSchedule:

    async def test_missing_default_is_created(self, calendar_service, calendar_repo):
        schedule = await calendar_service.get_schedule()

        assert schedule.timezone == SAO_PAULO
        assert schedule.window_for(1) == DayWindow("09:00", "18:00", True)
        assert schedule.window_for(0) is None
        assert schedule.window_for(6) is None

        calendars = await calendar_repo.list_all()
        assert len(calendars) == 1
        assert calendars[0].name == DEFAULT_CALENDAR_NAME
        assert calendars[0].is_default is True

    async def test_default_is_created_once(self, calendar_service, calendar_repo, schedule_cache):
        await calendar_service.get_schedule()
        schedule_cache.clear()
        await calendar_service.get_schedule()

        assert len(await calendar_repo.list_all()) == 1

    async def test_schedule_is_cached(self, calendar_service, calendar_repo):
        calendar = await calendar_service.create_calendar(CalendarCreateDTO(name="Support"))

        await calendar_service.get_schedule(calendar.id)
        reads = calendar_repo.reads
        await calendar_service.get_schedule(calendar.id)

        assert calendar_repo.reads == reads

    async def test_cache_expires(self, calendar_service, calendar_repo, manual_clock):
        calendar = await calendar_service.create_calendar(CalendarCreateDTO(name="Support"))

        await calendar_service.get_schedule(calendar.id)
        reads = calendar_repo.reads
        manual_clock.advance(61)
        await calendar_service.get_schedule(calendar.id)

        assert calendar_repo.reads == reads + 1

    async def test_unknown_calendar_raises(self, calendar_service):
        with pytest.raises(ResourceNotFoundException) as exc_info:
            await calendar_service.get_schedule("missing")
        assert exc_info.value.status_code == 404

    async def test_holiday_invalidates_cached_schedule(self, calendar_service):
        calendar = await calendar_service.create_calendar(
            CalendarCreateDTO(name="Support", timezone=SAO_PAULO)
        )
        assert (await calendar_service.get_schedule(calendar.id)).holidays == frozenset()

        await calendar_service.add_exception(
            calendar.id,
            CalendarExceptionCreateDTO(date=utc(2024, 1, 15, 15, 0), description="Holiday"),
        )

        assert (await calendar_service.get_schedule(calendar.id)).holidays == {"2024-01-15"}

    async def test_naive_holiday_date_is_a_local_day(self, calendar_service):
        calendar = await calendar_service.create_calendar(
            CalendarCreateDTO(name="Support", timezone=SAO_PAULO)
        )

        exception = await calendar_service.add_exception(
            calendar.id, CalendarExceptionCreateDTO(date=datetime(2024, 1, 15))
        )

        assert exception.date.tzinfo is not None
        assert (await calendar_service.get_schedule(calendar.id)).holidays == {"2024-01-15"}

    async def test_removing_holiday(self, calendar_service):
        calendar = await calendar_service.create_calendar(CalendarCreateDTO(name="Support"))
        exception = await calendar_service.add_exception(
            calendar.id, CalendarExceptionCreateDTO(date=utc(2024, 12, 25, 15, 0))
        )
        await calendar_service.get_schedule(calendar.id)

        await calendar_service.remove_exception(exception.id)

        assert (await calendar_service.get_schedule(calendar.id)).holidays == frozenset()

    async def test_remove_unknown_exception_raises(self, calendar_service):
        with pytest.raises(ResourceNotFoundException):
            await calendar_service.remove_exception("missing")


class TestCalendarAdministration:

    async def test_create_uses_default_timezone(self, calendar_service):
        calendar = await calendar_service.create_calendar(CalendarCreateDTO(name="Support"))
        assert calendar.timezone == SAO_PAULO

    async def test_new_default_unsets_previous(self, calendar_service, calendar_repo):
        first = await calendar_service.create_calendar(
            CalendarCreateDTO(name="First", is_default=True)
        )
        second = await calendar_service.create_calendar(
            CalendarCreateDTO(name="Second", is_default=True)
        )

        assert (await calendar_repo.get_by_id(first.id)).is_default is False
        assert (await calendar_repo.get_default()).id == second.id

    async def test_default_schedule_follows_new_default(self, calendar_service):
        await calendar_service.create_calendar(
            CalendarCreateDTO(name="Sao Paulo", timezone=SAO_PAULO, is_default=True)
        )
        assert (await calendar_service.get_schedule()).timezone == SAO_PAULO

        await calendar_service.create_calendar(
            CalendarCreateDTO(name="UTC", timezone="UTC", is_default=True)
        )
        assert (await calendar_service.get_schedule()).timezone == "UTC"

    async def test_list_puts_default_first(self, calendar_service):
        await calendar_service.create_calendar(CalendarCreateDTO(name="Alpha"))
        await calendar_service.create_calendar(CalendarCreateDTO(name="Zulu", is_default=True))
        await calendar_service.create_calendar(CalendarCreateDTO(name="Bravo"))

        names = [c.name for c in await calendar_service.list_calendars()]

        assert names == ["Zulu", "Alpha", "Bravo"]

    async def test_update_keeps_omitted_fields(self, calendar_service):
        calendar = await calendar_service.create_calendar(
            CalendarCreateDTO(
                name="Support",
                timezone="UTC",
                schedule={"saturday": {"open": "10:00", "close": "14:00", "enabled": True}},
            )
        )

        updated = await calendar_service.update_calendar(
            calendar.id, CalendarUpdateDTO(name="Weekend support")
        )

        assert updated.name == "Weekend support"
        assert updated.timezone == "UTC"
        assert updated.schedule["saturday"]["open"] == "10:00"

    async def test_update_invalidates_cache(self, calendar_service):
        calendar = await calendar_service.create_calendar(
            CalendarCreateDTO(name="Support", timezone="UTC")
        )
        await calendar_service.get_schedule(calendar.id)

        await calendar_service.update_calendar(
            calendar.id, CalendarUpdateDTO(timezone=SAO_PAULO)
        )

        assert (await calendar_service.get_schedule(calendar.id)).timezone == SAO_PAULO

    async def test_update_unknown_raises(self, calendar_service):
        with pytest.raises(ResourceNotFoundException):
            await calendar_service.update_calendar("missing", CalendarUpdateDTO(name="x"))


class TestCalendarDTOs:

    def test_invalid_time_rejected(self):
        with pytest.raises(ValueError):
            CalendarCreateDTO(name="x", schedule={"monday": {"open": "9h", "close": "18:00"}})

    def test_invalid_timezone_rejected(self):
        with pytest.raises(ValueError):
            CalendarCreateDTO(name="x", timezone="Mars/Olympus_Mons")

    def test_storage_omits_unset_days(self):
        dto = CalendarCreateDTO(name="x", schedule={"monday": {"open": "08:00"}})
        assert dto.schedule.to_storage() == {
            "monday": {"open": "08:00", "close": "18:00", "enabled": True}
        }
