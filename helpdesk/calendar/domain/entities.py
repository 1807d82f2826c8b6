"""
Calendar Domain Entities
========================

Business calendars as configured by administrators.

The stored weekly configuration is keyed by weekday name with "open"/"close"
times (the admin UI format). `BusinessCalendar.to_schedule()` turns it into
the `BusinessSchedule` value object used by the calculator.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from helpdesk.config import WEEKDAY_NAMES, DEFAULT_DAY_START, DEFAULT_DAY_END
from helpdesk.calendar.domain.value_objects import BusinessSchedule, DayWindow, get_zone

DEFAULT_CALENDAR_NAME = "Default 8x5 Calendar"

# Sunday and Saturday are closed unless configured otherwise
_ENABLED_BY_DEFAULT = {name: name not in ("saturday", "sunday") for name in WEEKDAY_NAMES}


def default_weekly_config() -> Dict[str, Dict[str, Any]]:
    """Monday to Friday, 09:00-18:00."""
    return {
        name: {
            "open": DEFAULT_DAY_START,
            "close": DEFAULT_DAY_END,
            "enabled": _ENABLED_BY_DEFAULT[name],
        }
        for name in WEEKDAY_NAMES
    }


@dataclass
class CalendarException:
    """A dated exception on a calendar. Only holidays close the day."""

    id: Optional[str]
    calendar_id: str
    date: datetime
    is_holiday: bool = True
    description: Optional[str] = None

    def local_date_key(self, timezone: str) -> str:
        """The exception's date as "YYYY-MM-DD" in the calendar's timezone."""
        moment = self.date
        if moment.tzinfo is None:
            return moment.date().isoformat()
        return moment.astimezone(get_zone(timezone)).date().isoformat()


@dataclass
class BusinessCalendar:
    """Business calendar entity."""

    id: Optional[str]
    name: str
    timezone: Optional[str]
    schedule: Dict[str, Dict[str, Any]]
    is_default: bool = False
    exceptions: List[CalendarException] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_schedule(self, fallback_timezone: str) -> BusinessSchedule:
        """
        Build the calendar model.

        Days missing from the stored configuration fall back to 09:00-18:00,
        enabled on weekdays and disabled at the weekend.
        """
        timezone = self.timezone or fallback_timezone
        stored = self.schedule or {}

        weekly = {}
        for weekday, name in enumerate(WEEKDAY_NAMES):
            day = stored.get(name) or {}
            enabled = day.get("enabled")
            weekly[weekday] = DayWindow(
                start=day.get("open") or DEFAULT_DAY_START,
                end=day.get("close") or DEFAULT_DAY_END,
                enabled=_ENABLED_BY_DEFAULT[name] if enabled is None else bool(enabled),
            )

        holidays = frozenset(
            exception.local_date_key(timezone)
            for exception in self.exceptions
            if exception.is_holiday
        )

        return BusinessSchedule(timezone=timezone, weekly=weekly, holidays=holidays)
