"""
Business Time Calculator
========================

Pure functions converting wall-clock intervals into business minutes.

Day boundaries, weekdays and holidays are evaluated in the schedule's
timezone, never in UTC: a local day can start on a different UTC day and DST
shifts the UTC offset between days. Window boundaries are converted from local
wall-clock time to absolute instants by reading back what a provisional
instant looks like in the zone and correcting by the observed delta.

No I/O and no shared state - safe to call from any thread.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from helpdesk.calendar.domain.value_objects import BusinessSchedule

_ONE_MINUTE = timedelta(minutes=1)


def to_utc(value: datetime) -> datetime:
    """Normalize an instant to aware UTC. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _wall_clock(instant: datetime, zone: ZoneInfo) -> datetime:
    return instant.astimezone(zone).replace(tzinfo=None)


def zoned_time_to_utc(local: datetime, zone: ZoneInfo) -> datetime:
    """
    Convert a naive local wall-clock time in `zone` to an aware UTC instant.

    The local time is first read as if it were UTC; the wall clock that guess
    produces in the zone tells us the offset, which is subtracted. When the
    offset at the corrected instant differs (the guess landed on the other
    side of a DST transition) the correction is applied once more, provided
    it lands exactly on the requested wall clock. Times inside a spring-forward
    gap resolve to the later offset.
    """
    guess = local.replace(tzinfo=timezone.utc)
    candidate = guess - (_wall_clock(guess, zone) - local)

    drift = _wall_clock(candidate, zone) - local
    if drift:
        refined = candidate - drift
        if _wall_clock(refined, zone) == local:
            return refined
    return candidate


def to_local_date(instant: datetime, zone: ZoneInfo) -> date:
    """Calendar date of an instant as seen in `zone`."""
    return to_utc(instant).astimezone(zone).date()


def local_weekday(local_date: date, zone: ZoneInfo) -> int:
    """
    Weekday of a local date, 0=Sunday .. 6=Saturday.

    Read from local noon so a DST transition at midnight cannot move the
    instant onto a neighbouring day.
    """
    noon = zoned_time_to_utc(datetime.combine(local_date, time(12, 0)), zone)
    return (noon.astimezone(zone).weekday() + 1) % 7


def _local_instant(local_date: date, hour: int, minute: int, zone: ZoneInfo) -> datetime:
    # timedelta arithmetic lets "24:00" roll over to the next midnight
    wall_clock = datetime.combine(local_date, time(0, 0)) + timedelta(hours=hour, minutes=minute)
    return zoned_time_to_utc(wall_clock, zone)


def business_minutes_between(
    start: Optional[datetime],
    end: Optional[datetime],
    schedule: BusinessSchedule
) -> int:
    """
    Count business minutes between two instants.

    Each local day's open window is clipped to [start, end] and floored to
    whole minutes before being added, so the result is monotonic in `end`.

    Args:
        start: Interval start (aware, or naive UTC)
        end: Interval end (aware, or naive UTC)
        schedule: Calendar to count against

    Returns:
        Business minutes, 0 when either bound is missing or end <= start

    Raises:
        InvalidTimeFormatException: If an enabled window has a malformed time
    """
    if start is None or end is None:
        return 0

    start = to_utc(start)
    end = to_utc(end)
    if end <= start:
        return 0

    zone = schedule.zone
    current = to_local_date(start, zone)
    last = to_local_date(end, zone)

    total_minutes = 0
    while current <= last:
        window = schedule.window_for(local_weekday(current, zone))

        if window is not None and not schedule.is_holiday(current):
            open_hour, open_minute = window.opens_at
            close_hour, close_minute = window.closes_at
            day_open = _local_instant(current, open_hour, open_minute, zone)
            day_close = _local_instant(current, close_hour, close_minute, zone)

            effective_start = max(start, day_open)
            effective_end = min(end, day_close)

            if effective_end > effective_start:
                total_minutes += (effective_end - effective_start) // _ONE_MINUTE

        current += timedelta(days=1)

    return total_minutes


def diff_in_calendar_minutes(start: Optional[datetime], end: Optional[datetime]) -> int:
    """Wall-clock minutes between two instants, floored, 0 when end <= start."""
    if start is None or end is None:
        return 0
    start, end = to_utc(start), to_utc(end)
    if end <= start:
        return 0
    return (end - start) // _ONE_MINUTE


def business_minutes_to_hours(minutes: int) -> float:
    """Convert business minutes to hours with two decimals."""
    return round(minutes / 60, 2)


def format_business_minutes(minutes: int) -> str:
    """
    Human readable duration.

    Example:
        >>> format_business_minutes(125)
        '2h 5min'
    """
    if minutes == 0:
        return "0 min"

    hours, mins = divmod(minutes, 60)
    if hours == 0:
        return f"{mins} min"
    if mins == 0:
        return f"{hours}h"
    return f"{hours}h {mins}min"
