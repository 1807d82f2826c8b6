"""
SLA Controllers (API Routes)
============================

FastAPI routes for SLA policies and ticket SLA clocks.

Controllers are thin - they delegate to application services.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core import ResourceNotFoundException
from helpdesk.infrastructure.database import get_session
from helpdesk.calendar.application import BusinessCalendarService, ScheduleCache
from helpdesk.calendar.infrastructure import SQLAlchemyCalendarRepository
from helpdesk.calendar.interfaces import get_schedule_cache
from helpdesk.sla.application import (
    SLAClockService,
    SLAPolicyService,
    ISLAEventPublisher,
    PolicyCreateDTO,
    PolicyUpdateDTO,
    PolicyResponse,
    ClockEventRequest,
    StatusChangeRequest,
    BreachRequest,
    TicketSLAStatusResponse,
)
from helpdesk.sla.infrastructure import (
    LoggingEventPublisher,
    SQLAlchemyTicketReader,
    SQLAlchemyPolicyRepository,
    SQLAlchemyInstanceRepository,
    SQLAlchemyStatsRepository,
)
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA Clock"])


# ========== Example payloads for Swagger ==========

POLICY_CREATE_EXAMPLE = {
    "name": "Infra - critical",
    "description": "Critical incidents for the infrastructure team",
    "applies_to": {"team_id": "infra", "priority": "CRITICAL"},
    "target_first_response_minutes": 30,
    "target_resolution_minutes": 240,
    "calendar_id": None,
    "active": True
}

TICKET_SLA_RESPONSE_EXAMPLE = {
    "ticket_id": "123e4567-e89b-12d3-a456-426614174000",
    "policy_id": "0b6f3c9e-8a59-4d4b-9c1a-2f1f5f0d8e11",
    "policy_name": "Infra - critical",
    "instance_status": "RUNNING",
    "elapsed_business_minutes": 95,
    "target_resolution_minutes": 240,
    "remaining_business_minutes": 145,
    "target_first_response_minutes": 30,
    "first_response_at": "2024-01-15T12:20:00Z",
    "business_first_response_minutes": 20,
    "breached": False,
    "breach_reason": None,
    "evaluated_at": "2024-01-15T13:35:00Z"
}


# ========== Dependencies ==========

def get_event_publisher(request: Request) -> ISLAEventPublisher:
    """Get the event publisher stored on app.state."""
    publisher = getattr(request.app.state, "event_publisher", None)
    if publisher is None:
        publisher = LoggingEventPublisher()
        request.app.state.event_publisher = publisher
    return publisher


async def get_policy_service(
    session: AsyncSession = Depends(get_session),
    cache: ScheduleCache = Depends(get_schedule_cache)
) -> SLAPolicyService:
    """Get SLA policy service instance."""
    return SLAPolicyService(
        SQLAlchemyPolicyRepository(session),
        BusinessCalendarService(SQLAlchemyCalendarRepository(session), cache)
    )


async def get_clock_service(
    session: AsyncSession = Depends(get_session),
    cache: ScheduleCache = Depends(get_schedule_cache),
    publisher: ISLAEventPublisher = Depends(get_event_publisher)
) -> SLAClockService:
    """Get SLA clock service instance."""
    return SLAClockService(
        ticket_reader=SQLAlchemyTicketReader(session),
        policy_repository=SQLAlchemyPolicyRepository(session),
        instance_repository=SQLAlchemyInstanceRepository(session),
        stats_repository=SQLAlchemyStatsRepository(session),
        calendar_service=BusinessCalendarService(SQLAlchemyCalendarRepository(session), cache),
        event_publisher=publisher,
    )


async def _status_response(
    service: SLAClockService,
    ticket_id: str,
    at: Optional[datetime] = None
) -> TicketSLAStatusResponse:
    snapshot = await service.get_status(ticket_id, at)
    if snapshot is None:
        raise ResourceNotFoundException("TicketSLA", ticket_id)
    return TicketSLAStatusResponse.from_domain(snapshot)


# ========== Policy Routes ==========

@router.get(
    "/policies",
    response_model=List[PolicyResponse],
    summary="List SLA policies",
    description="List SLA policies ordered by name."
)
async def list_policies(
    active_only: bool = Query(False, description="Only return active policies"),
    service: SLAPolicyService = Depends(get_policy_service)
):
    policies = await service.list_policies(active_only=active_only)
    return [PolicyResponse.from_domain(p) for p in policies]


@router.post(
    "/policies",
    response_model=PolicyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create SLA policy",
    description="""
    Create an SLA policy.

    Targets are in **business minutes** of the policy calendar (the default
    calendar when `calendar_id` is omitted).

    **Selection**: the most specific matching policy wins. Matching weights:
    team 10, category 8, priority 6, ticket type 4, requester team 2.
    """,
    responses={404: {"description": "Calendar not found"}},
    openapi_extra={
        "requestBody": {
            "content": {"application/json": {"example": POLICY_CREATE_EXAMPLE}}
        }
    }
)
async def create_policy(
    dto: PolicyCreateDTO,
    service: SLAPolicyService = Depends(get_policy_service)
):
    policy = await service.create_policy(dto)
    return PolicyResponse.from_domain(policy)


@router.get(
    "/policies/{policy_id}",
    response_model=PolicyResponse,
    summary="Get SLA policy",
    responses={404: {"description": "Policy not found"}}
)
async def get_policy(
    policy_id: str,
    service: SLAPolicyService = Depends(get_policy_service)
):
    policy = await service.get_policy(policy_id)
    return PolicyResponse.from_domain(policy)


@router.put(
    "/policies/{policy_id}",
    response_model=PolicyResponse,
    summary="Update SLA policy",
    description="Update a policy. Only the fields sent are changed.",
    responses={404: {"description": "Policy or calendar not found"}}
)
async def update_policy(
    policy_id: str,
    dto: PolicyUpdateDTO,
    service: SLAPolicyService = Depends(get_policy_service)
):
    policy = await service.update_policy(policy_id, dto)
    return PolicyResponse.from_domain(policy)


@router.delete(
    "/policies/{policy_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete SLA policy",
    description="Delete a policy. Policies already applied to tickets must be deactivated instead.",
    responses={
        400: {"description": "Policy in use"},
        404: {"description": "Policy not found"}
    }
)
async def delete_policy(
    policy_id: str,
    service: SLAPolicyService = Depends(get_policy_service)
):
    await service.delete_policy(policy_id)


# ========== Ticket Clock Routes ==========

TICKET_RESPONSES = {
    200: {
        "description": "Ticket SLA status",
        "content": {"application/json": {"example": TICKET_SLA_RESPONSE_EXAMPLE}}
    },
    404: {"description": "Ticket has no SLA"}
}


@router.post(
    "/tickets/{ticket_id}/start",
    response_model=TicketSLAStatusResponse,
    summary="Start ticket SLA",
    description="Select the policy for the ticket and start its clock. Idempotent.",
    responses=TICKET_RESPONSES
)
async def start_sla(
    ticket_id: str,
    request: Optional[ClockEventRequest] = None,
    service: SLAClockService = Depends(get_clock_service)
):
    at = request.at if request else None
    await service.start(ticket_id, at)
    return await _status_response(service, ticket_id, at)


@router.post(
    "/tickets/{ticket_id}/first-response",
    response_model=TicketSLAStatusResponse,
    summary="Record first response",
    description="Record the first agent response. Later calls are ignored.",
    responses=TICKET_RESPONSES
)
async def record_first_response(
    ticket_id: str,
    request: Optional[ClockEventRequest] = None,
    service: SLAClockService = Depends(get_clock_service)
):
    at = request.at if request else None
    await service.record_first_response(ticket_id, at)
    return await _status_response(service, ticket_id, at)


@router.post(
    "/tickets/{ticket_id}/resolution",
    response_model=TicketSLAStatusResponse,
    summary="Record resolution",
    description="Close the ticket's SLA clock as MET or BREACHED.",
    responses=TICKET_RESPONSES
)
async def record_resolution(
    ticket_id: str,
    request: Optional[ClockEventRequest] = None,
    service: SLAClockService = Depends(get_clock_service)
):
    at = request.at if request else None
    await service.record_resolution(ticket_id, at)
    return await _status_response(service, ticket_id, at)


@router.post(
    "/tickets/{ticket_id}/status-changes",
    response_model=TicketSLAStatusResponse,
    summary="Record status change",
    description="""
    Keep the SLA clock in step with the ticket status.

    - `WAITING_REQUESTER`, `WAITING_THIRD_PARTY`: pause
    - `OPEN`, `IN_PROGRESS`: resume
    - `RESOLVED`, `CLOSED`: record resolution
    """,
    responses=TICKET_RESPONSES
)
async def record_status_change(
    ticket_id: str,
    request: StatusChangeRequest,
    service: SLAClockService = Depends(get_clock_service)
):
    await service.record_status_change(ticket_id, request.new_status, request.at)
    return await _status_response(service, ticket_id, request.at)


@router.post(
    "/tickets/{ticket_id}/breach",
    response_model=TicketSLAStatusResponse,
    summary="Breach ticket SLA",
    responses=TICKET_RESPONSES
)
async def breach_sla(
    ticket_id: str,
    request: BreachRequest,
    service: SLAClockService = Depends(get_clock_service)
):
    await service.breach(ticket_id, request.reason, request.at)
    return await _status_response(service, ticket_id, request.at)


@router.get(
    "/tickets/{ticket_id}",
    response_model=TicketSLAStatusResponse,
    summary="Get ticket SLA status",
    description="Recalculate the ticket's SLA from its status history.",
    responses=TICKET_RESPONSES
)
async def get_ticket_sla(
    ticket_id: str,
    at: Optional[datetime] = Query(None, description="Evaluate at this instant instead of now"),
    service: SLAClockService = Depends(get_clock_service)
):
    return await _status_response(service, ticket_id, at)
