"""
SLA Domain Entities
====================

Pure Python domain entities for the ticket SLA engine.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from frontdesk.config import TicketStatus, TicketType
from frontdesk.core import DomainException, InvalidStatusTransitionException


# Forward-only lifecycle. BREACHED is only entered from OPEN/PENDING.
ALLOWED_TRANSITIONS: Dict[str, frozenset] = {
    TicketStatus.OPEN: frozenset({
        TicketStatus.PENDING, TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED,
        TicketStatus.CLOSED, TicketStatus.BREACHED,
    }),
    TicketStatus.PENDING: frozenset({
        TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED,
        TicketStatus.CLOSED, TicketStatus.BREACHED,
    }),
    TicketStatus.IN_PROGRESS: frozenset({
        TicketStatus.PENDING, TicketStatus.RESOLVED, TicketStatus.CLOSED,
    }),
    TicketStatus.BREACHED: frozenset({
        TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED, TicketStatus.CLOSED,
    }),
    TicketStatus.RESOLVED: frozenset({TicketStatus.CLOSED}),
    TicketStatus.CLOSED: frozenset(),
}

SWEEPABLE_STATUSES = (TicketStatus.OPEN, TicketStatus.PENDING)

# Statuses a first staff reply moves to IN_PROGRESS
FIRST_RESPONSE_STATUSES = tuple(
    status for status, targets in ALLOWED_TRANSITIONS.items()
    if TicketStatus.IN_PROGRESS in targets
)


@dataclass
class Ticket:
    """
    Support ticket raised from a guest conversation.

    `escalated_level` only ever grows and `first_response_at` is written
    once. The methods below check this against the loaded copy; the
    repository re-checks it against the stored row on sweep and
    first-response writes.
    """

    id: Optional[str]
    hotel_id: str
    conversation_id: str
    type: str
    category: str
    department: str
    priority: str
    status: str
    created_at: datetime
    updated_at: datetime

    response_due_at: Optional[datetime] = None
    resolution_due_at: Optional[datetime] = None
    first_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    escalated_level: int = 0
    last_escalation_at: Optional[datetime] = None
    assigned_to_id: Optional[str] = None

    @property
    def is_awaiting_response(self) -> bool:
        """Open or pending and nobody has answered yet."""
        return self.status in SWEEPABLE_STATUSES and self.first_response_at is None

    def age_minutes(self, now: datetime) -> float:
        return (now - self.created_at).total_seconds() / 60

    def is_response_overdue(self, now: datetime) -> bool:
        return (
            self.first_response_at is None
            and self.response_due_at is not None
            and now > self.response_due_at
        )

    @property
    def responded_within_sla(self) -> Optional[bool]:
        if self.first_response_at is None:
            return None
        if self.response_due_at is None:
            return True
        return self.first_response_at <= self.response_due_at

    def can_transition_to(self, status: str) -> bool:
        if status == self.status:
            return True
        return status in ALLOWED_TRANSITIONS.get(self.status, frozenset())

    def change_status(self, status: str, at: datetime) -> None:
        """Move the lifecycle forward; RESOLVED stamps resolved_at."""
        if status == TicketStatus.BREACHED:
            self.mark_breached(at)
            return
        if not self.can_transition_to(status):
            raise InvalidStatusTransitionException(self.id or "", self.status, status)
        if status == TicketStatus.RESOLVED and self.status != TicketStatus.RESOLVED:
            self.resolved_at = at
        self.status = status
        self.updated_at = at

    def mark_first_response(self, at: datetime) -> bool:
        """
        Record the first staff reply.

        Returns False, leaving the ticket untouched, when a first response
        is already on record.
        """
        if self.first_response_at is not None:
            return False
        self.first_response_at = at
        if self.status != TicketStatus.IN_PROGRESS and self.can_transition_to(TicketStatus.IN_PROGRESS):
            self.status = TicketStatus.IN_PROGRESS
        self.updated_at = at
        return True

    def mark_breached(self, at: datetime) -> None:
        if self.first_response_at is not None:
            raise DomainException(
                f"Ticket {self.id} already has a first response and cannot breach",
                {"ticket_id": self.id}
            )
        if self.status not in SWEEPABLE_STATUSES:
            raise InvalidStatusTransitionException(self.id or "", self.status, TicketStatus.BREACHED)
        self.status = TicketStatus.BREACHED
        self.updated_at = at

    def escalate_to(self, level: int, at: datetime) -> None:
        if level <= self.escalated_level:
            raise DomainException(
                f"Escalation level for ticket {self.id} cannot go from "
                f"{self.escalated_level} to {level}",
                {"ticket_id": self.id, "current": self.escalated_level, "requested": level}
            )
        self.escalated_level = level
        self.last_escalation_at = at
        self.updated_at = at


@dataclass
class ConversationMessage:
    """A single message in a guest conversation."""
    body: str
    created_at: datetime


@dataclass
class Conversation:
    """
    Read model of a guest conversation.

    Owned by the messaging subsystem; the SLA engine only reads it.
    `messages` holds the most recent messages, newest first.
    """
    id: str
    hotel_id: str
    subject: Optional[str] = None
    booking_id: Optional[str] = None
    messages: List[ConversationMessage] = field(default_factory=list)

    @property
    def has_booking(self) -> bool:
        return self.booking_id is not None

    @property
    def ticket_type(self) -> str:
        return TicketType.BOOKING_RELATED if self.has_booking else TicketType.GENERAL_INQUIRY

    @property
    def message_text(self) -> str:
        return " ".join(m.body for m in self.messages if m.body)


@dataclass(frozen=True)
class EscalationStep:
    """Roles to notify when a ticket reaches `level`."""
    level: int
    notify_roles: List[str]


@dataclass
class SLAPolicy:
    """Per-hotel, per-category override of SLA minutes and escalation roles."""
    id: Optional[str]
    hotel_id: str
    category: str
    department: str
    response_minutes: int
    resolution_minutes: int
    escalation_steps: List[EscalationStep] = field(default_factory=list)
    is_active: bool = True

    def __post_init__(self):
        if self.response_minutes <= 0 or self.resolution_minutes <= 0:
            raise ValueError("SLA minutes must be positive")
        if self.resolution_minutes <= self.response_minutes:
            raise ValueError("resolution_minutes must exceed response_minutes")

    def step_for_level(self, level: int) -> Optional[EscalationStep]:
        for step in self.escalation_steps:
            if step.level == level:
                return step
        return None


@dataclass
class AuditEntry:
    """Append-only audit record."""
    actor_id: str
    action: str
    entity: str
    entity_id: str
    details: Dict[str, Any]
    created_at: datetime
    id: Optional[str] = None
