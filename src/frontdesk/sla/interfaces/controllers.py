"""
SLA Controllers (API Routes)
=============================

FastAPI routes for tickets, SLA policies and the escalation job trigger.

Controllers are thin - they delegate to application services. Domain and
application errors are mapped to HTTP responses by the shared exception
handlers.
"""

import hmac
import time
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from frontdesk.config import Settings, get_settings
from frontdesk.infrastructure.database import get_session
from frontdesk.sla.application import (
    AssignTicketRequest,
    AuditEntryResponse,
    BackfillResponse,
    EscalationSweepService,
    PaginatedTicketsResponse,
    SLADeadlineResponse,
    SLAPolicyResolver,
    SweepResultResponse,
    TicketFilters,
    TicketResponse,
    TicketService,
    TicketUpdateDTO,
)
from frontdesk.sla.infrastructure import (
    SQLAlchemyAuditLogRepository,
    SQLAlchemyConversationRepository,
    SQLAlchemySLAPolicyRepository,
    SQLAlchemyTicketRepository,
    SQLAlchemyUnitOfWork,
)
from frontdesk.shared.infrastructure.logging import get_logger
from frontdesk.sla.application.dto import TicketStatusStr
from frontdesk.triage.application import ClassificationService
from frontdesk.triage.application.dto import CategoryStr, DepartmentStr, PriorityStr

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA Tickets"])
jobs_router = APIRouter(prefix="/jobs", tags=["Jobs"])


# ========== Example payloads for Swagger ==========

TICKET_RESPONSE_EXAMPLE = {
    "id": "6b0f3c4e-1d2a-4f7e-9a51-0d8c2f1e7b34",
    "hotel_id": "hotel-lisbon-01",
    "conversation_id": "3f9a7c10-55e2-4b8d-8d0e-2a61f4c9e012",
    "type": "BOOKING_RELATED",
    "category": "HOUSEKEEPING",
    "department": "HOUSEKEEPING",
    "priority": "MEDIUM",
    "status": "OPEN",
    "assigned_to_id": None,
    "response_due_at": "2026-03-02T11:00:00Z",
    "resolution_due_at": "2026-03-02T18:00:00Z",
    "first_response_at": None,
    "resolved_at": None,
    "escalated_level": 0,
    "last_escalation_at": None,
    "responded_within_sla": None,
    "created_at": "2026-03-02T10:00:00Z",
    "updated_at": "2026-03-02T10:00:00Z"
}

SWEEP_RESPONSE_EXAMPLE = {
    "processed": 12,
    "escalated": 2,
    "breached": 1,
    "errors": [],
    "run_at": "2026-03-02T11:15:00Z",
    "duration_ms": 84.2
}


# ========== Dependencies ==========

def get_actor_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """Acting staff user; authentication happens upstream."""
    return x_user_id or None


def get_policy_resolver(
    request: Request,
    session: AsyncSession = Depends(get_session)
) -> SLAPolicyResolver:
    return SLAPolicyResolver(
        SQLAlchemySLAPolicyRepository(session),
        request.app.state.sla_config_manager
    )


def get_ticket_service(
    request: Request,
    session: AsyncSession = Depends(get_session),
    policy_resolver: SLAPolicyResolver = Depends(get_policy_resolver)
) -> TicketService:
    config_manager = request.app.state.sla_config_manager
    return TicketService(
        ticket_repository=SQLAlchemyTicketRepository(session),
        conversation_repository=SQLAlchemyConversationRepository(session),
        audit_repository=SQLAlchemyAuditLogRepository(session),
        unit_of_work=SQLAlchemyUnitOfWork(session),
        classification_service=ClassificationService(config_manager),
        policy_resolver=policy_resolver,
    )


def get_sweep_service(
    request: Request,
    session: AsyncSession = Depends(get_session)
) -> EscalationSweepService:
    return EscalationSweepService(
        ticket_repository=SQLAlchemyTicketRepository(session),
        policy_repository=SQLAlchemySLAPolicyRepository(session),
        audit_repository=SQLAlchemyAuditLogRepository(session),
        notification_dispatcher=request.app.state.notification_dispatcher,
        unit_of_work=SQLAlchemyUnitOfWork(session),
        config_provider=request.app.state.sla_config_manager,
    )


def verify_job_secret(
    x_job_secret: Optional[str] = Header(None),
    app_settings: Settings = Depends(get_settings)
) -> None:
    """503 when no secret is configured, 401 when the header does not match."""
    expected = app_settings.sla_job_secret
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Job secret not configured"
        )
    if not x_job_secret or not hmac.compare_digest(x_job_secret.encode(), expected.encode()):
        logger.warning("Rejected job trigger with invalid secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid job secret"
        )


# ========== Ticket Routes ==========

@router.get(
    "/tickets",
    response_model=PaginatedTicketsResponse,
    summary="List a hotel's tickets",
    description="""
    Paginated ticket listing for one hotel, ordered by priority (URGENT first)
    then newest first.

    **Filters:** `status`, `priority`, `department`, `category`, `assigned_to_id`

    **Pagination:** `page` (default 1), `limit` (default 20, max 100)
    """
)
async def list_tickets(
    hotel_id: str = Query(..., min_length=1),
    status_filter: Optional[TicketStatusStr] = Query(None, alias="status"),
    priority: Optional[PriorityStr] = Query(None),
    department: Optional[DepartmentStr] = Query(None),
    category: Optional[CategoryStr] = Query(None),
    assigned_to_id: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: TicketService = Depends(get_ticket_service)
):
    result = await service.list_tickets(
        hotel_id=hotel_id,
        filters=TicketFilters(
            status=status_filter,
            priority=priority,
            department=department,
            category=category,
            assigned_to_id=assigned_to_id,
        ),
        page=page,
        limit=limit,
    )
    return PaginatedTicketsResponse.from_page(result)


@router.post(
    "/tickets/backfill",
    response_model=BackfillResponse,
    summary="Create tickets for conversations that have none"
)
async def backfill_tickets(service: TicketService = Depends(get_ticket_service)):
    result = await service.backfill_tickets_for_conversations()
    return BackfillResponse(
        total=result.total,
        created=result.created,
        skipped=result.skipped,
        errors=result.errors
    )


@router.get(
    "/tickets/conversation/{conversation_id}",
    response_model=TicketResponse,
    summary="Get the ticket for a conversation",
    responses={404: {"description": "Conversation has no ticket"}}
)
async def get_ticket_for_conversation(
    conversation_id: str,
    service: TicketService = Depends(get_ticket_service)
):
    return TicketResponse.from_domain(await service.get_ticket_by_conversation(conversation_id))


@router.post(
    "/tickets/conversation/{conversation_id}",
    response_model=TicketResponse,
    summary="Ensure a ticket exists for a conversation",
    description="""
    Idempotent create-or-fetch. The first call classifies the conversation's
    subject and five most recent messages and stamps SLA deadlines from the
    hotel's policy (or the defaults); later calls return the same ticket.
    """,
    responses={
        200: {
            "description": "Ticket for the conversation",
            "content": {"application/json": {"example": TICKET_RESPONSE_EXAMPLE}}
        },
        404: {"description": "Conversation not found"}
    }
)
async def ensure_ticket_for_conversation(
    conversation_id: str,
    actor_id: Optional[str] = Depends(get_actor_id),
    service: TicketService = Depends(get_ticket_service)
):
    ticket = await service.ensure_ticket_for_conversation(conversation_id, actor_id=actor_id)
    return TicketResponse.from_domain(ticket)


@router.get(
    "/tickets/{ticket_id}",
    response_model=TicketResponse,
    summary="Get a ticket",
    responses={404: {"description": "Ticket not found"}}
)
async def get_ticket(ticket_id: str, service: TicketService = Depends(get_ticket_service)):
    return TicketResponse.from_domain(await service.get_ticket(ticket_id))


@router.get(
    "/tickets/{ticket_id}/audit",
    response_model=List[AuditEntryResponse],
    summary="Audit trail of a ticket"
)
async def get_ticket_audit(ticket_id: str, service: TicketService = Depends(get_ticket_service)):
    entries = await service.audit_trail(ticket_id)
    return [
        AuditEntryResponse(
            id=e.id,
            actor_id=e.actor_id,
            action=e.action,
            entity=e.entity,
            entity_id=e.entity_id,
            details=e.details,
            created_at=e.created_at,
        )
        for e in entries
    ]


@router.patch(
    "/tickets/{ticket_id}",
    response_model=TicketResponse,
    summary="Update a ticket",
    description="""
    Partial update of status, priority, department, category or assignee.

    Status only moves forward (e.g. a RESOLVED ticket can be CLOSED but not
    reopened); a backwards move returns 409. Setting RESOLVED stamps
    `resolved_at`.
    """,
    responses={
        404: {"description": "Ticket not found"},
        409: {"description": "Status transition not allowed"}
    }
)
async def update_ticket(
    ticket_id: str,
    payload: TicketUpdateDTO,
    actor_id: Optional[str] = Depends(get_actor_id),
    service: TicketService = Depends(get_ticket_service)
):
    ticket = await service.update_ticket(ticket_id, payload.to_patch(), actor_id=actor_id)
    return TicketResponse.from_domain(ticket)


@router.post("/tickets/{ticket_id}/assign", response_model=TicketResponse, summary="Assign a ticket")
async def assign_ticket(
    ticket_id: str,
    payload: AssignTicketRequest,
    actor_id: Optional[str] = Depends(get_actor_id),
    service: TicketService = Depends(get_ticket_service)
):
    ticket = await service.assign_ticket(ticket_id, payload.assigned_to_id, actor_id=actor_id)
    return TicketResponse.from_domain(ticket)


@router.post(
    "/tickets/{ticket_id}/first-response",
    response_model=TicketResponse,
    summary="Record the first staff response",
    description="Idempotent: only the first call stamps `first_response_at`."
)
async def record_first_response(
    ticket_id: str,
    actor_id: Optional[str] = Depends(get_actor_id),
    service: TicketService = Depends(get_ticket_service)
):
    ticket = await service.record_first_response(ticket_id, actor_id=actor_id)
    return TicketResponse.from_domain(ticket)


@router.post("/tickets/{ticket_id}/resolve", response_model=TicketResponse, summary="Resolve a ticket")
async def resolve_ticket(
    ticket_id: str,
    actor_id: Optional[str] = Depends(get_actor_id),
    service: TicketService = Depends(get_ticket_service)
):
    return TicketResponse.from_domain(await service.resolve_ticket(ticket_id, actor_id=actor_id))


@router.post("/tickets/{ticket_id}/close", response_model=TicketResponse, summary="Close a ticket")
async def close_ticket(
    ticket_id: str,
    actor_id: Optional[str] = Depends(get_actor_id),
    service: TicketService = Depends(get_ticket_service)
):
    return TicketResponse.from_domain(await service.close_ticket(ticket_id, actor_id=actor_id))


# ========== Policy Routes ==========

@router.get(
    "/policies/resolve",
    response_model=SLADeadlineResponse,
    summary="Resolve SLA deadlines",
    description="""
    Deadlines a ticket of `category` in `hotel_id` would get if created now.
    Uses the first active matching policy, else the configured defaults
    (60 / 480 minutes out of the box).
    """
)
async def resolve_policy(
    hotel_id: str = Query(..., min_length=1),
    category: CategoryStr = Query(...),
    resolver: SLAPolicyResolver = Depends(get_policy_resolver)
):
    deadline = await resolver.resolve(hotel_id, category)
    return SLADeadlineResponse(
        response_due_at=deadline.response_due_at,
        resolution_due_at=deadline.resolution_due_at,
        response_minutes=deadline.response_minutes,
        resolution_minutes=deadline.resolution_minutes,
        policy_id=deadline.policy_id,
    )


# ========== Job Routes ==========

@jobs_router.post(
    "/sla-escalation/run",
    response_model=SweepResultResponse,
    summary="Run the SLA escalation sweep",
    description="""
    Breach and escalation sweep over every unanswered OPEN/PENDING ticket.
    Intended for an external cron runner.

    Requires the `X-Job-Secret` header. Returns 503 when the service has no
    secret configured and 401 when the header does not match.
    """,
    dependencies=[Depends(verify_job_secret)],
    responses={
        200: {
            "description": "Sweep result",
            "content": {"application/json": {"example": SWEEP_RESPONSE_EXAMPLE}}
        },
        401: {"description": "Invalid job secret"},
        503: {"description": "Job secret not configured"}
    }
)
async def run_sla_escalation(service: EscalationSweepService = Depends(get_sweep_service)):
    run_at = datetime.now(timezone.utc)
    start_time = time.perf_counter()

    result = await service.run_escalation_sweep(now=run_at)

    duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
    logger.info(
        "SLA escalation job finished",
        extra={**result.to_dict(), "errors": len(result.errors), "duration_ms": duration_ms}
    )
    return SweepResultResponse(**result.to_dict(), run_at=run_at, duration_ms=duration_ms)


@jobs_router.get("/health", summary="Job trigger health")
async def jobs_health(app_settings: Settings = Depends(get_settings)):
    return {
        "status": "ok",
        "job_secret_configured": bool(app_settings.sla_job_secret),
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


# Export routers for inclusion in main app
sla_router = router
