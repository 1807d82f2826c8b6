"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="helpdesk-sla", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/helpdesk",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Business Calendars ==========
    calendar_cache_ttl_seconds: float = Field(
        default=60.0,
        description="Seconds a resolved business schedule stays cached",
        ge=0
    )
    default_calendar_timezone: str = Field(
        default="America/Sao_Paulo",
        description="IANA timezone used when a calendar has none"
    )

    # ========== SLA Evaluation ==========
    sla_evaluation_interval: int = Field(
        default=60,
        description="Seconds between breach sweeps (0 disables the scheduler)",
        ge=0
    )
    sla_seed_path: Optional[Path] = Field(
        default=None,
        description="Optional YAML file with calendars and policies to seed at startup"
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "test", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class TicketStatus(str):
    """Ticket lifecycle statuses."""
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    WAITING_REQUESTER = "WAITING_REQUESTER"
    WAITING_THIRD_PARTY = "WAITING_THIRD_PARTY"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


class SLAInstanceStatus(str):
    """States of a ticket's SLA clock."""
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    MET = "MET"
    BREACHED = "BREACHED"


class BreachReason(str):
    """Reasons recorded on SLA stats when a target is exceeded."""
    FIRST_RESPONSE_EXCEEDED = "FIRST_RESPONSE_EXCEEDED"
    RESOLUTION_EXCEEDED = "RESOLUTION_EXCEEDED"


class SLAEventType(str):
    """Events emitted to collaborators on SLA transitions."""
    SLA_STARTED = "SLA_STARTED"
    SLA_PAUSED = "SLA_PAUSED"
    SLA_RESUMED = "SLA_RESUMED"
    SLA_FIRST_RESPONSE_BREACHED = "SLA_FIRST_RESPONSE_BREACHED"
    SLA_MET = "SLA_MET"
    SLA_BREACHED = "SLA_BREACHED"


# ========== Lists for validation ==========

VALID_STATUSES = [
    TicketStatus.OPEN, TicketStatus.IN_PROGRESS,
    TicketStatus.WAITING_REQUESTER, TicketStatus.WAITING_THIRD_PARTY,
    TicketStatus.RESOLVED, TicketStatus.CLOSED
]
# Statuses during which the SLA clock accrues time
COUNTED_STATUSES = frozenset([TicketStatus.OPEN, TicketStatus.IN_PROGRESS])
WAITING_STATUSES = frozenset([TicketStatus.WAITING_REQUESTER, TicketStatus.WAITING_THIRD_PARTY])
RESOLVED_STATUSES = frozenset([TicketStatus.RESOLVED, TicketStatus.CLOSED])

ACTIVE_SLA_STATUSES = [SLAInstanceStatus.RUNNING, SLAInstanceStatus.PAUSED]
TERMINAL_SLA_STATUSES = [SLAInstanceStatus.MET, SLAInstanceStatus.BREACHED]

# Weekday numbering used by calendars: 0=Sunday .. 6=Saturday
WEEKDAY_NAMES = [
    "sunday", "monday", "tuesday", "wednesday",
    "thursday", "friday", "saturday"
]

DEFAULT_DAY_START = "09:00"
DEFAULT_DAY_END = "18:00"
