"""
SLA Value Objects
=================

Immutable value objects for SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from dataclasses import dataclass, field, fields, asdict
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from helpdesk.sla.domain.entities import TicketSnapshot


@dataclass(frozen=True)
class AppliesTo:
    """
    Ticket attributes a policy is restricted to.

    An unset attribute matches any ticket.
    """

    team_id: Optional[str] = None
    category_id: Optional[str] = None
    priority: Optional[str] = None
    ticket_type: Optional[str] = None
    requester_team_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "AppliesTo":
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known and v is not None})

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class SLAPolicy:
    """SLA targets, in business minutes, and the tickets they apply to."""

    id: Optional[str]
    name: str
    target_resolution_minutes: int
    target_first_response_minutes: Optional[int] = None
    applies_to: AppliesTo = field(default_factory=AppliesTo)
    calendar_id: Optional[str] = None
    description: Optional[str] = None
    active: bool = True


class PolicySelector:
    """
    Picks the most specific active policy for a ticket.

    Each attribute that the policy specifies and the ticket matches adds
    its weight; the highest score wins. A policy restricted to nothing
    scores 0 and is a valid fallback. Ties go to the earliest policy in
    the order given, so callers must list policies in a stable order.
    """

    WEIGHTS: Tuple[Tuple[str, int], ...] = (
        ("team_id", 10),
        ("category_id", 8),
        ("priority", 6),
        ("ticket_type", 4),
        ("requester_team_id", 2),
    )

    @classmethod
    def score(cls, policy: SLAPolicy, ticket: TicketSnapshot) -> int:
        total = 0
        for attribute, weight in cls.WEIGHTS:
            wanted = getattr(policy.applies_to, attribute)
            if wanted is not None and wanted == getattr(ticket, attribute):
                total += weight
        return total

    @classmethod
    def select(
        cls,
        policies: Iterable[SLAPolicy],
        ticket: TicketSnapshot
    ) -> Optional[SLAPolicy]:
        best: Optional[SLAPolicy] = None
        best_score = -1
        for policy in policies:
            if not policy.active:
                continue
            current = cls.score(policy, ticket)
            if current > best_score:
                best, best_score = policy, current
        return best
