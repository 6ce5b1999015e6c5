"""
SLA Application DTOs
=====================

Data Transfer Objects for the SLA API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from frontdesk.triage.application.dto import CategoryStr, DepartmentStr, PriorityStr


# ========== Type Aliases for Literals ==========
TicketStatusStr = Literal["OPEN", "PENDING", "IN_PROGRESS", "RESOLVED", "CLOSED", "BREACHED"]
TicketTypeStr = Literal["BOOKING_RELATED", "GENERAL_INQUIRY"]


# ========== Request DTOs ==========

class TicketUpdateDTO(BaseModel):
    """
    Partial ticket update.

    Only fields present in the request body are applied, so an explicit
    `"assigned_to_id": null` unassigns the ticket.
    """
    status: Optional[TicketStatusStr] = None
    priority: Optional[PriorityStr] = None
    department: Optional[DepartmentStr] = None
    category: Optional[CategoryStr] = None
    assigned_to_id: Optional[str] = None

    @model_validator(mode="after")
    def validate_not_empty(self) -> "TicketUpdateDTO":
        if not self.model_fields_set:
            raise ValueError("at least one field must be provided")
        for name in ("status", "priority", "department", "category"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def to_patch(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class AssignTicketRequest(BaseModel):
    """Assign (or with null, unassign) a ticket."""
    assigned_to_id: Optional[str] = Field(None, description="Staff user ID")


# ========== Response DTOs ==========

class TicketResponse(BaseModel):
    """Ticket as returned by the API."""
    id: str
    hotel_id: str
    conversation_id: str
    type: TicketTypeStr
    category: CategoryStr
    department: DepartmentStr
    priority: PriorityStr
    status: TicketStatusStr
    assigned_to_id: Optional[str] = None
    response_due_at: Optional[datetime] = None
    resolution_due_at: Optional[datetime] = None
    first_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    escalated_level: int = 0
    last_escalation_at: Optional[datetime] = None
    responded_within_sla: Optional[bool] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, ticket: Any) -> "TicketResponse":
        """Create from domain entity."""
        return cls(
            id=ticket.id,
            hotel_id=ticket.hotel_id,
            conversation_id=ticket.conversation_id,
            type=ticket.type,
            category=ticket.category,
            department=ticket.department,
            priority=ticket.priority,
            status=ticket.status,
            assigned_to_id=ticket.assigned_to_id,
            response_due_at=ticket.response_due_at,
            resolution_due_at=ticket.resolution_due_at,
            first_response_at=ticket.first_response_at,
            resolved_at=ticket.resolved_at,
            escalated_level=ticket.escalated_level,
            last_escalation_at=ticket.last_escalation_at,
            responded_within_sla=ticket.responded_within_sla,
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
        )


class PaginationDTO(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_more: bool


class PaginatedTicketsResponse(BaseModel):
    """One page of tickets plus pagination metadata."""
    data: List[TicketResponse]
    pagination: PaginationDTO

    @classmethod
    def from_page(cls, page: Any) -> "PaginatedTicketsResponse":
        return cls(
            data=[TicketResponse.from_domain(t) for t in page.data],
            pagination=PaginationDTO(
                page=page.page,
                limit=page.limit,
                total=page.total,
                total_pages=page.total_pages,
                has_more=page.has_more,
            ),
        )


class AuditEntryResponse(BaseModel):
    id: Optional[str] = None
    actor_id: str
    action: str
    entity: str
    entity_id: str
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class SLADeadlineResponse(BaseModel):
    """Resolved SLA deadlines for a (hotel, category)."""
    response_due_at: datetime
    resolution_due_at: datetime
    response_minutes: int
    resolution_minutes: int
    policy_id: Optional[str] = Field(None, description="Matching policy, null when defaults applied")


class SweepErrorDTO(BaseModel):
    ticket_id: str
    error: str


class SweepResultResponse(BaseModel):
    """Outcome of one escalation sweep run."""
    processed: int = Field(..., description="Candidate tickets examined")
    escalated: int = Field(..., description="Tickets whose escalation level was raised")
    breached: int = Field(..., description="Tickets marked BREACHED")
    errors: List[SweepErrorDTO] = Field(default_factory=list)
    run_at: datetime
    duration_ms: float


class BackfillResponse(BaseModel):
    """Response model for conversation backfill."""
    total: int = Field(..., description="Conversations without a ticket")
    created: int = Field(..., description="Tickets created")
    skipped: int = Field(default=0, description="Conversations that failed")
    errors: List[str] = Field(default_factory=list, description="Error messages")
