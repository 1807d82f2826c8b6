"""
Helpdesk SLA - Main Application
===============================

Business-time and SLA clock service for the helpdesk platform.

Modules:
- Business Calendars: weekly hours, holidays, business-minute calculator
- SLA Clock: policy selection, running/paused/met/breached clocks

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities, value objects, business-time calculator
- Infrastructure: Database, scheduler, seed loader
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from helpdesk.config import settings
from helpdesk.core import ApplicationException

# Infrastructure
from helpdesk.infrastructure.database import (
    init_database, close_database, create_tables, get_session_context
)

# Calendar Module
from helpdesk.calendar.application import BusinessCalendarService, ScheduleCache
from helpdesk.calendar.infrastructure import SQLAlchemyCalendarRepository
from helpdesk.calendar.interfaces import router as calendar_router

# SLA Module
from helpdesk.sla.application import SLAPolicyService
from helpdesk.sla.infrastructure import (
    LoggingEventPublisher,
    SLAScheduler,
    SQLAlchemyPolicyRepository,
    load_seed_file,
    apply_seed,
)
from helpdesk.sla.services import make_breach_sweep_job
from helpdesk.sla.interfaces import router as sla_router

# Shared
from helpdesk.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler
)
from helpdesk.shared.infrastructure.logging import setup_logging, get_logger

logger = get_logger(__name__)


async def seed_from_file(cache: ScheduleCache) -> None:
    """Apply the configured YAML seed, if any."""
    path = settings.sla_seed_path
    if path is None:
        return
    if not path.exists():
        logger.warning("SLA seed file not found, skipping", extra={"path": str(path)})
        return

    seed = load_seed_file(path)
    async with get_session_context() as session:
        calendar_service = BusinessCalendarService(SQLAlchemyCalendarRepository(session), cache)
        policy_service = SLAPolicyService(SQLAlchemyPolicyRepository(session), calendar_service)
        await apply_seed(seed, calendar_service, policy_service)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Create the shared schedule cache and event publisher
    4. Apply the YAML seed
    5. Start the breach sweep scheduler

    SHUTDOWN:
    1. Stop the scheduler
    2. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Helpdesk SLA service", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()

    # Create tables (for development - use Alembic in production)
    database_ready = True
    try:
        await create_tables()
    except Exception as e:
        database_ready = False
        logger.warning(f"Database not available - running in degraded mode: {e}")

    schedule_cache = ScheduleCache(ttl_seconds=settings.calendar_cache_ttl_seconds)
    app.state.schedule_cache = schedule_cache
    app.state.event_publisher = LoggingEventPublisher()
    app.state.settings = settings

    if database_ready:
        try:
            await seed_from_file(schedule_cache)
        except ApplicationException as e:
            logger.error(f"SLA seed not applied: {e.message}", extra={"details": e.details})

    sla_scheduler = None
    if settings.sla_evaluation_interval > 0:
        sla_scheduler = SLAScheduler(interval_seconds=settings.sla_evaluation_interval)
        await sla_scheduler.start(make_breach_sweep_job(schedule_cache))
    else:
        logger.info("SLA breach sweep disabled")
    app.state.sla_scheduler = sla_scheduler

    logger.info("Helpdesk SLA service started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Helpdesk SLA service")

    if sla_scheduler:
        await sla_scheduler.stop()

    await close_database()

    logger.info("Helpdesk SLA service shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Helpdesk SLA API",
    description="""
    ## Business-time and SLA clock service

    ### Business Calendars

    - `GET/POST /sla/calendars` - List / create calendars
    - `GET/PUT /sla/calendars/{id}` - Read / update a calendar
    - `POST /sla/calendars/{id}/exceptions` - Add a holiday
    - `DELETE /sla/calendars/exceptions/{id}` - Remove a holiday
    - `GET /sla/calendars/{id}/schedule` - Resolved weekly schedule
    - `POST /sla/business-minutes` - Business minutes between two instants

    ### SLA Policies and Clocks

    - `GET/POST /sla/policies`, `GET/PUT/DELETE /sla/policies/{id}`
    - `POST /sla/tickets/{id}/start | first-response | resolution | status-changes | breach`
    - `GET /sla/tickets/{id}` - Recalculated SLA status

    SLA targets are measured in business minutes. Time spent waiting on the
    requester or a third party does not count.
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Custom Middleware (from shared) ===
app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIDMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# === Include Module Routers ===
app.include_router(calendar_router)
app.include_router(sla_router)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"], responses={
    200: {
        "description": "Service is healthy",
        "content": {
            "application/json": {
                "example": {
                    "status": "healthy",
                    "version": "1.0.0",
                    "environment": "development",
                    "checks": {
                        "sla_scheduler": "running",
                        "schedule_cache_entries": 2
                    }
                }
            }
        }
    }
})
async def health_check(request: Request):
    """Health check endpoint for load balancers and orchestrators."""
    scheduler = getattr(request.app.state, "sla_scheduler", None)
    cache = getattr(request.app.state, "schedule_cache", None)

    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": {
            "sla_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
            "schedule_cache_entries": len(cache) if cache is not None else 0
        }
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "calendars": {
                "prefix": "/sla",
                "endpoints": [
                    "GET /sla/calendars - List calendars",
                    "GET /sla/calendars/{id}/schedule - Resolved schedule",
                    "POST /sla/business-minutes - Business-minute calculator"
                ]
            },
            "sla": {
                "prefix": "/sla",
                "endpoints": [
                    "GET /sla/policies - List policies",
                    "POST /sla/tickets/{id}/start - Start ticket SLA",
                    "GET /sla/tickets/{id} - Get ticket SLA status"
                ]
            }
        }
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "helpdesk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower()
    )
