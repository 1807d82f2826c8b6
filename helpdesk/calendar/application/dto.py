"""
Calendar Application DTOs
=========================

Pydantic models for the calendar admin API and the business-minutes
calculator endpoint.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from helpdesk.core import ApplicationException
from helpdesk.calendar.domain.value_objects import parse_time, get_zone
from helpdesk.calendar.domain.business_time import to_utc

# The calculator walks the interval day by day
MAX_BUSINESS_MINUTES_SPAN = timedelta(days=366 * 5)


def _check_time(value: str) -> str:
    try:
        parse_time(value)
    except ApplicationException as e:
        raise ValueError(e.message) from e
    return value


def _check_timezone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    try:
        get_zone(value)
    except ApplicationException as e:
        raise ValueError(e.message) from e
    return value


# ========== Request DTOs ==========

class DayConfigDTO(BaseModel):
    """Open/close times of one weekday, as edited in the admin UI."""
    open: str = Field(default="09:00", description="Opening time (HH:MM)")
    close: str = Field(default="18:00", description="Closing time (HH:MM)")
    enabled: bool = Field(default=True, description="Whether the day has business hours")

    @field_validator("open", "close")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return _check_time(v)


class WeeklyConfigDTO(BaseModel):
    """Weekly configuration keyed by weekday name."""
    monday: Optional[DayConfigDTO] = None
    tuesday: Optional[DayConfigDTO] = None
    wednesday: Optional[DayConfigDTO] = None
    thursday: Optional[DayConfigDTO] = None
    friday: Optional[DayConfigDTO] = None
    saturday: Optional[DayConfigDTO] = None
    sunday: Optional[DayConfigDTO] = None

    def to_storage(self) -> Dict[str, Dict]:
        return self.model_dump(exclude_none=True)


class CalendarCreateDTO(BaseModel):
    """DTO for creating a business calendar."""
    name: str = Field(..., min_length=1, description="Calendar name")
    timezone: Optional[str] = Field(None, description="IANA timezone, defaults to the service default")
    schedule: WeeklyConfigDTO = Field(default_factory=WeeklyConfigDTO)
    is_default: bool = Field(default=False, description="Mark as the tenant default calendar")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        return _check_timezone(v)


class CalendarUpdateDTO(BaseModel):
    """DTO for updating a business calendar. Omitted fields are kept."""
    name: Optional[str] = Field(None, min_length=1)
    timezone: Optional[str] = None
    schedule: Optional[WeeklyConfigDTO] = None
    is_default: Optional[bool] = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        return _check_timezone(v)


class CalendarExceptionCreateDTO(BaseModel):
    """DTO for adding a holiday to a calendar."""
    date: datetime = Field(..., description="Holiday date (interpreted in the calendar timezone)")
    description: Optional[str] = Field(None, max_length=255)


class DayWindowDTO(BaseModel):
    start: str
    end: str
    enabled: bool = True


class ScheduleDTO(BaseModel):
    """Calendar model wire format."""
    timezone: str
    weekly: Dict[int, DayWindowDTO]
    holidays: List[str] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        return _check_timezone(v)


class BusinessMinutesRequest(BaseModel):
    """
    Request for the business-minutes calculator.

    Either a stored calendar (by id, or the default when both are omitted)
    or an inline schedule.
    """
    start: datetime
    end: datetime
    calendar_id: Optional[str] = None
    schedule: Optional[ScheduleDTO] = None

    @model_validator(mode="after")
    def validate_source(self) -> "BusinessMinutesRequest":
        if self.calendar_id and self.schedule:
            raise ValueError("Provide either calendar_id or schedule, not both")
        if to_utc(self.end) - to_utc(self.start) > MAX_BUSINESS_MINUTES_SPAN:
            raise ValueError(
                f"Interval longer than {MAX_BUSINESS_MINUTES_SPAN.days} days"
            )
        return self


# ========== Response DTOs ==========

class CalendarExceptionResponse(BaseModel):
    id: str
    calendar_id: str
    date: datetime
    is_holiday: bool
    description: Optional[str] = None


class CalendarResponse(BaseModel):
    id: str
    name: str
    timezone: Optional[str]
    schedule: Dict[str, Dict]
    is_default: bool
    exceptions: List[CalendarExceptionResponse] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, calendar) -> "CalendarResponse":
        return cls(
            id=calendar.id,
            name=calendar.name,
            timezone=calendar.timezone,
            schedule=calendar.schedule or {},
            is_default=calendar.is_default,
            exceptions=[
                CalendarExceptionResponse(
                    id=exc.id,
                    calendar_id=exc.calendar_id,
                    date=exc.date,
                    is_holiday=exc.is_holiday,
                    description=exc.description,
                )
                for exc in calendar.exceptions
            ],
            created_at=calendar.created_at,
            updated_at=calendar.updated_at,
        )


class BusinessMinutesResponse(BaseModel):
    business_minutes: int = Field(..., description="Business minutes in the interval")
    business_hours: float = Field(..., description="Business minutes as hours")
    formatted: str = Field(..., description="Human readable duration")
    calendar_minutes: int = Field(..., description="Wall-clock minutes in the interval")
