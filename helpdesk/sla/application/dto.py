"""
SLA Application DTOs
====================

Data Transfer Objects for SLA API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from helpdesk.sla.domain import AppliesTo, SLAInstance, SLAPolicy, SLAStatusSnapshot


# ========== Type Aliases for Literals ==========
TicketStatusStr = Literal[
    "OPEN", "IN_PROGRESS", "WAITING_REQUESTER", "WAITING_THIRD_PARTY", "RESOLVED", "CLOSED"
]


# ========== Request DTOs ==========

class AppliesToDTO(BaseModel):
    """Ticket attributes a policy is restricted to. Unset means any."""
    model_config = ConfigDict(extra="forbid")

    team_id: Optional[str] = None
    category_id: Optional[str] = None
    priority: Optional[str] = None
    ticket_type: Optional[str] = None
    requester_team_id: Optional[str] = None

    def to_domain(self) -> AppliesTo:
        return AppliesTo(**self.model_dump())


class PolicyCreateDTO(BaseModel):
    """DTO for creating an SLA policy."""
    name: str = Field(..., min_length=1, max_length=255, description="Policy name")
    description: Optional[str] = Field(None, description="Free-text description")
    applies_to: AppliesToDTO = Field(default_factory=AppliesToDTO)
    target_first_response_minutes: Optional[int] = Field(
        None, ge=1, description="First response target in business minutes"
    )
    target_resolution_minutes: int = Field(
        ..., ge=1, description="Resolution target in business minutes"
    )
    calendar_id: Optional[str] = Field(None, description="Business calendar, default calendar when omitted")
    active: bool = Field(default=True)


class PolicyUpdateDTO(BaseModel):
    """DTO for updating an SLA policy. Only the fields sent are changed."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    applies_to: Optional[AppliesToDTO] = None
    target_first_response_minutes: Optional[int] = Field(None, ge=1)
    target_resolution_minutes: Optional[int] = Field(None, ge=1)
    calendar_id: Optional[str] = None
    active: Optional[bool] = None


class ClockEventRequest(BaseModel):
    """Request carrying the instant of a lifecycle event (now when omitted)."""
    at: Optional[datetime] = Field(None, description="When the event happened")


class StatusChangeRequest(ClockEventRequest):
    new_status: TicketStatusStr = Field(..., description="Status the ticket moved to")


class BreachRequest(ClockEventRequest):
    reason: str = Field(..., min_length=1, max_length=100, description="Breach reason")


# ========== Response DTOs ==========

class PolicyResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    applies_to: AppliesToDTO
    target_first_response_minutes: Optional[int] = None
    target_resolution_minutes: int
    calendar_id: Optional[str] = None
    active: bool

    @classmethod
    def from_domain(cls, policy: SLAPolicy) -> "PolicyResponse":
        return cls(
            id=policy.id,
            name=policy.name,
            description=policy.description,
            applies_to=AppliesToDTO(**policy.applies_to.to_dict()),
            target_first_response_minutes=policy.target_first_response_minutes,
            target_resolution_minutes=policy.target_resolution_minutes,
            calendar_id=policy.calendar_id,
            active=policy.active,
        )


class SLAInstanceResponse(BaseModel):
    id: str
    ticket_id: str
    policy_id: str
    status: str
    started_at: Optional[datetime] = None
    paused_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    breached_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, instance: SLAInstance) -> "SLAInstanceResponse":
        return cls(
            id=instance.id,
            ticket_id=instance.ticket_id,
            policy_id=instance.policy_id,
            status=instance.status,
            started_at=instance.started_at,
            paused_at=instance.paused_at,
            resolved_at=instance.resolved_at,
            breached_at=instance.breached_at,
        )


class TicketSLAStatusResponse(BaseModel):
    """SLA status of a ticket, recalculated from its status history."""
    ticket_id: str
    policy_id: str
    policy_name: str
    instance_status: Optional[str] = None
    elapsed_business_minutes: int
    target_resolution_minutes: int
    remaining_business_minutes: int
    target_first_response_minutes: Optional[int] = None
    first_response_at: Optional[datetime] = None
    business_first_response_minutes: Optional[int] = None
    breached: bool
    breach_reason: Optional[str] = None
    evaluated_at: datetime

    @classmethod
    def from_domain(cls, snapshot: SLAStatusSnapshot) -> "TicketSLAStatusResponse":
        return cls(
            ticket_id=snapshot.ticket_id,
            policy_id=snapshot.policy_id,
            policy_name=snapshot.policy_name,
            instance_status=snapshot.instance_status,
            elapsed_business_minutes=snapshot.elapsed_business_minutes,
            target_resolution_minutes=snapshot.target_resolution_minutes,
            remaining_business_minutes=snapshot.remaining_business_minutes,
            target_first_response_minutes=snapshot.target_first_response_minutes,
            first_response_at=snapshot.first_response_at,
            business_first_response_minutes=snapshot.business_first_response_minutes,
            breached=snapshot.breached,
            breach_reason=snapshot.breach_reason,
            evaluated_at=snapshot.evaluated_at,
        )
