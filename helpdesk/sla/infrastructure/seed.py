"""
SLA Seed Loader
===============

Loads business calendars and SLA policies from a YAML file.

Example:

    calendars:
      - name: Support Brazil
        timezone: America/Sao_Paulo
        is_default: true
        schedule:
          friday: {open: "09:00", close: "16:00", enabled: true}
        holidays:
          - date: 2024-12-25
            description: Christmas

    policies:
      - name: Critical incidents
        calendar: Support Brazil
        applies_to: {priority: CRITICAL}
        target_first_response_minutes: 30
        target_resolution_minutes: 240

Entries whose name already exists are left untouched, so the file can be
applied on every startup.
"""

from datetime import date, datetime, time
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from helpdesk.core import ConfigurationException
from helpdesk.calendar.application import (
    BusinessCalendarService,
    CalendarCreateDTO,
    CalendarExceptionCreateDTO,
)
from helpdesk.sla.application import AppliesToDTO, PolicyCreateDTO, SLAPolicyService
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class HolidaySeed(BaseModel):
    date: date
    description: Optional[str] = None


class CalendarSeed(CalendarCreateDTO):
    holidays: List[HolidaySeed] = Field(default_factory=list)


class PolicySeed(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    calendar: Optional[str] = Field(None, description="Calendar name")
    applies_to: AppliesToDTO = Field(default_factory=AppliesToDTO)
    target_first_response_minutes: Optional[int] = Field(None, ge=1)
    target_resolution_minutes: int = Field(..., ge=1)
    active: bool = True


class SeedData(BaseModel):
    calendars: List[CalendarSeed] = Field(default_factory=list)
    policies: List[PolicySeed] = Field(default_factory=list)


def load_seed_file(path: Path) -> SeedData:
    """
    Parse and validate a seed file.

    Raises:
        ConfigurationException: If the file is missing, is not valid YAML or
            does not match the seed format
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationException(f"Seed file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return SeedData.model_validate(data)
    except yaml.YAMLError as e:
        raise ConfigurationException(f"Invalid YAML in seed file {path}", {"error": str(e)}) from e
    except ValidationError as e:
        raise ConfigurationException(
            f"Invalid seed file {path}",
            {"errors": e.errors(include_url=False, include_context=False)}
        ) from e


async def apply_seed(
    seed: SeedData,
    calendar_service: BusinessCalendarService,
    policy_service: SLAPolicyService
) -> Dict[str, int]:
    """
    Create the calendars and policies of `seed` that do not exist yet.

    Returns:
        Counts of created calendars, holidays and policies
    """
    summary = {"calendars_created": 0, "holidays_created": 0, "policies_created": 0}

    calendars = {c.name: c for c in await calendar_service.list_calendars()}

    for entry in seed.calendars:
        if entry.name in calendars:
            logger.debug("Seed calendar exists, skipping", extra={"calendar_name": entry.name})
            continue

        calendar = await calendar_service.create_calendar(
            CalendarCreateDTO(
                name=entry.name,
                timezone=entry.timezone,
                schedule=entry.schedule,
                is_default=entry.is_default,
            )
        )
        for holiday in entry.holidays:
            await calendar_service.add_exception(
                calendar.id,
                CalendarExceptionCreateDTO(
                    date=datetime.combine(holiday.date, time()),
                    description=holiday.description,
                )
            )
            summary["holidays_created"] += 1

        calendars[calendar.name] = calendar
        summary["calendars_created"] += 1

    existing_policies = {p.name for p in await policy_service.list_policies()}

    for entry in seed.policies:
        if entry.name in existing_policies:
            logger.debug("Seed policy exists, skipping", extra={"policy_name": entry.name})
            continue

        calendar_id = None
        if entry.calendar:
            if entry.calendar not in calendars:
                raise ConfigurationException(
                    f"Seed policy {entry.name!r} references unknown calendar {entry.calendar!r}"
                )
            calendar_id = calendars[entry.calendar].id

        await policy_service.create_policy(
            PolicyCreateDTO(
                name=entry.name,
                description=entry.description,
                applies_to=entry.applies_to,
                target_first_response_minutes=entry.target_first_response_minutes,
                target_resolution_minutes=entry.target_resolution_minutes,
                calendar_id=calendar_id,
                active=entry.active,
            )
        )
        existing_policies.add(entry.name)
        summary["policies_created"] += 1

    logger.info("SLA seed applied", extra=summary)
    return summary
