"""
Calendar Controllers (API Routes)
=================================

FastAPI routes for business calendar administration and the
business-minutes calculator.

Controllers are thin - they delegate to application services.
"""

from typing import List

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.config import settings
from helpdesk.infrastructure.database import get_session
from helpdesk.calendar.application import (
    BusinessCalendarService,
    ScheduleCache,
    CalendarCreateDTO,
    CalendarUpdateDTO,
    CalendarExceptionCreateDTO,
    CalendarResponse,
    CalendarExceptionResponse,
    BusinessMinutesRequest,
    BusinessMinutesResponse,
)
from helpdesk.calendar.domain import (
    BusinessSchedule,
    business_minutes_between,
    business_minutes_to_hours,
    diff_in_calendar_minutes,
    format_business_minutes,
)
from helpdesk.calendar.infrastructure import SQLAlchemyCalendarRepository
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["Business Calendars"])


# ========== Example payloads for Swagger ==========

CALENDAR_CREATE_EXAMPLE = {
    "name": "Support Brazil",
    "timezone": "America/Sao_Paulo",
    "schedule": {
        "monday": {"open": "09:00", "close": "18:00", "enabled": True},
        "friday": {"open": "09:00", "close": "16:00", "enabled": True},
        "saturday": {"open": "09:00", "close": "13:00", "enabled": False}
    },
    "is_default": False
}

SCHEDULE_RESPONSE_EXAMPLE = {
    "timezone": "America/Sao_Paulo",
    "weekly": {
        "0": {"start": "09:00", "end": "18:00", "enabled": False},
        "1": {"start": "09:00", "end": "18:00", "enabled": True}
    },
    "holidays": ["2024-01-15"]
}

BUSINESS_MINUTES_RESPONSE_EXAMPLE = {
    "business_minutes": 180,
    "business_hours": 3.0,
    "formatted": "3h",
    "calendar_minutes": 540
}


# ========== Dependencies ==========

def get_schedule_cache(request: Request) -> ScheduleCache:
    """Get the process-wide schedule cache stored on app.state."""
    cache = getattr(request.app.state, "schedule_cache", None)
    if cache is None:
        cache = ScheduleCache(ttl_seconds=settings.calendar_cache_ttl_seconds)
        request.app.state.schedule_cache = cache
    return cache


async def get_calendar_service(
    session: AsyncSession = Depends(get_session),
    cache: ScheduleCache = Depends(get_schedule_cache)
) -> BusinessCalendarService:
    """Get business calendar service instance."""
    return BusinessCalendarService(SQLAlchemyCalendarRepository(session), cache)


# ========== Route Handlers ==========

@router.get(
    "/calendars",
    response_model=List[CalendarResponse],
    summary="List business calendars",
    description="List all business calendars, the default calendar first."
)
async def list_calendars(
    service: BusinessCalendarService = Depends(get_calendar_service)
):
    calendars = await service.list_calendars()
    return [CalendarResponse.from_domain(c) for c in calendars]


@router.post(
    "/calendars",
    response_model=CalendarResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create business calendar",
    description="""
    Create a business calendar.

    The schedule is keyed by weekday name with `open`/`close` times in `HH:MM`.
    Days left out fall back to 09:00-18:00, enabled Monday to Friday.
    Setting `is_default` unsets the previous default calendar.
    """,
    responses={
        422: {"description": "Invalid time format or unknown timezone"}
    },
    openapi_extra={
        "requestBody": {
            "content": {"application/json": {"example": CALENDAR_CREATE_EXAMPLE}}
        }
    }
)
async def create_calendar(
    dto: CalendarCreateDTO,
    service: BusinessCalendarService = Depends(get_calendar_service)
):
    calendar = await service.create_calendar(dto)
    return CalendarResponse.from_domain(calendar)


@router.get(
    "/calendars/{calendar_id}",
    response_model=CalendarResponse,
    summary="Get business calendar",
    responses={404: {"description": "Calendar not found"}}
)
async def get_calendar(
    calendar_id: str,
    service: BusinessCalendarService = Depends(get_calendar_service)
):
    calendar = await service.get_calendar(calendar_id)
    return CalendarResponse.from_domain(calendar)


@router.put(
    "/calendars/{calendar_id}",
    response_model=CalendarResponse,
    summary="Update business calendar",
    description="Update a calendar. Omitted fields are left unchanged.",
    responses={404: {"description": "Calendar not found"}}
)
async def update_calendar(
    calendar_id: str,
    dto: CalendarUpdateDTO,
    service: BusinessCalendarService = Depends(get_calendar_service)
):
    calendar = await service.update_calendar(calendar_id, dto)
    return CalendarResponse.from_domain(calendar)


@router.post(
    "/calendars/{calendar_id}/exceptions",
    response_model=CalendarExceptionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add holiday",
    description="Add a holiday. The date is read in the calendar's own timezone.",
    responses={404: {"description": "Calendar not found"}}
)
async def add_exception(
    calendar_id: str,
    dto: CalendarExceptionCreateDTO,
    service: BusinessCalendarService = Depends(get_calendar_service)
):
    exception = await service.add_exception(calendar_id, dto)
    return CalendarExceptionResponse(
        id=exception.id,
        calendar_id=exception.calendar_id,
        date=exception.date,
        is_holiday=exception.is_holiday,
        description=exception.description,
    )


@router.delete(
    "/calendars/exceptions/{exception_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove holiday",
    responses={404: {"description": "Exception not found"}}
)
async def remove_exception(
    exception_id: str,
    service: BusinessCalendarService = Depends(get_calendar_service)
):
    await service.remove_exception(exception_id)


@router.get(
    "/calendars/{calendar_id}/schedule",
    summary="Get resolved schedule",
    description="Get the calendar as consumed by the business-time calculator.",
    responses={
        200: {
            "description": "Resolved schedule",
            "content": {"application/json": {"example": SCHEDULE_RESPONSE_EXAMPLE}}
        },
        404: {"description": "Calendar not found"}
    }
)
async def get_schedule(
    calendar_id: str,
    service: BusinessCalendarService = Depends(get_calendar_service)
):
    schedule = await service.get_schedule(calendar_id)
    return schedule.to_dict()


@router.post(
    "/business-minutes",
    response_model=BusinessMinutesResponse,
    summary="Calculate business minutes",
    description="""
    Count the business minutes between two instants.

    Uses the inline `schedule` when given, otherwise the calendar named by
    `calendar_id`, otherwise the default calendar.
    """,
    responses={
        200: {
            "description": "Business minutes",
            "content": {"application/json": {"example": BUSINESS_MINUTES_RESPONSE_EXAMPLE}}
        },
        404: {"description": "Calendar not found"},
        422: {"description": "Invalid time format or unknown timezone"}
    }
)
async def calculate_business_minutes(
    request: BusinessMinutesRequest,
    service: BusinessCalendarService = Depends(get_calendar_service)
):
    if request.schedule is not None:
        schedule = BusinessSchedule.from_dict(request.schedule.model_dump())
    else:
        schedule = await service.get_schedule(request.calendar_id)

    minutes = business_minutes_between(request.start, request.end, schedule)

    return BusinessMinutesResponse(
        business_minutes=minutes,
        business_hours=business_minutes_to_hours(minutes),
        formatted=format_business_minutes(minutes),
        calendar_minutes=diff_in_calendar_minutes(request.start, request.end),
    )
