"""
Calendar Value Objects
======================

Immutable value objects describing a business calendar.

`BusinessSchedule` is the calendar model consumed by the business-time
calculator. Its dictionary form is the wire format shared with the calendar
admin UI and the reporting code:

    {
        "timezone": "America/Sao_Paulo",
        "weekly": {"1": {"start": "09:00", "end": "18:00", "enabled": true}, ...},
        "holidays": ["2024-01-15"]
    }
"""

from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from helpdesk.core import InvalidTimeFormatException, ValidationException


def parse_time(value: str) -> Tuple[int, int]:
    """
    Parse an "HH:MM" window boundary into (hour, minute).

    "24:00" is accepted as the end of the day.

    Raises:
        InvalidTimeFormatException: If either component is not numeric
            or out of range.
    """
    if not isinstance(value, str):
        raise InvalidTimeFormatException(str(value))

    parts = value.strip().split(":")
    if len(parts) != 2 or not all(part.strip().isdigit() for part in parts):
        raise InvalidTimeFormatException(value)

    hour, minute = int(parts[0]), int(parts[1])
    if hour > 24 or minute > 59 or (hour == 24 and minute != 0):
        raise InvalidTimeFormatException(value)

    return hour, minute


def get_zone(name: str) -> ZoneInfo:
    """Resolve an IANA timezone identifier."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationException(
            f"Unknown timezone: {name!r}",
            {"timezone": name}
        ) from e


@dataclass(frozen=True)
class DayWindow:
    """Open/close window of a single weekday, in calendar-local wall-clock time."""

    start: str
    end: str
    enabled: bool = True

    @property
    def opens_at(self) -> Tuple[int, int]:
        return parse_time(self.start)

    @property
    def closes_at(self) -> Tuple[int, int]:
        return parse_time(self.end)

    def to_dict(self) -> Dict[str, Any]:
        return {"start": self.start, "end": self.end, "enabled": self.enabled}


@dataclass(frozen=True)
class BusinessSchedule:
    """
    Weekly business hours in an IANA timezone, plus holiday dates.

    Weekdays are numbered 0=Sunday .. 6=Saturday. A weekday absent from
    `weekly` is closed. Holidays are calendar-local "YYYY-MM-DD" strings.
    """

    timezone: str
    weekly: Mapping[int, DayWindow]
    holidays: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self):
        object.__setattr__(self, "weekly", MappingProxyType(dict(self.weekly)))
        object.__setattr__(self, "holidays", frozenset(self.holidays))

    @property
    def zone(self) -> ZoneInfo:
        return get_zone(self.timezone)

    def window_for(self, weekday: int) -> Optional[DayWindow]:
        """Get the window for a weekday, or None when the day is closed."""
        window = self.weekly.get(weekday)
        if window is None or not window.enabled:
            return None
        return window

    def is_holiday(self, local_date: date) -> bool:
        return local_date.isoformat() in self.holidays

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire format."""
        return {
            "timezone": self.timezone,
            "weekly": {
                str(weekday): window.to_dict()
                for weekday, window in sorted(self.weekly.items())
            },
            "holidays": sorted(self.holidays),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BusinessSchedule":
        """Create from the wire format."""
        weekly = {
            int(weekday): DayWindow(
                start=window["start"],
                end=window["end"],
                enabled=bool(window.get("enabled", True)),
            )
            for weekday, window in (data.get("weekly") or {}).items()
        }
        return cls(
            timezone=data["timezone"],
            weekly=weekly,
            holidays=frozenset(data.get("holidays") or ()),
        )
