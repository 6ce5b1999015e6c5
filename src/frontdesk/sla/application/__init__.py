"""
SLA Application Layer
======================

Application layer for the ticket SLA engine.

Contains:
- Services: ticket lifecycle, SLA policy resolution and the escalation sweep
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from frontdesk.sla.application.dto import (
    AssignTicketRequest,
    AuditEntryResponse,
    BackfillResponse,
    PaginatedTicketsResponse,
    SLADeadlineResponse,
    SweepResultResponse,
    TicketResponse,
    TicketUpdateDTO,
)
from frontdesk.sla.application.escalation import (
    EscalationSweepService,
    SweepError,
    SweepResult,
)
from frontdesk.sla.application.services import (
    BackfillResult,
    IAuditLogRepository,
    IConversationRepository,
    INotificationDispatcher,
    ISLAConfigProvider,
    ISLAPolicyRepository,
    ITicketRepository,
    IUnitOfWork,
    SLAPolicyResolver,
    TicketFilters,
    TicketPage,
    TicketService,
    utc_now,
)

__all__ = [
    # DTOs
    "AssignTicketRequest",
    "AuditEntryResponse",
    "BackfillResponse",
    "PaginatedTicketsResponse",
    "SLADeadlineResponse",
    "SweepResultResponse",
    "TicketResponse",
    "TicketUpdateDTO",
    # Services
    "EscalationSweepService",
    "SLAPolicyResolver",
    "TicketService",
    # Results
    "BackfillResult",
    "SweepError",
    "SweepResult",
    "TicketFilters",
    "TicketPage",
    "utc_now",
    # Repository Interfaces
    "IAuditLogRepository",
    "IConversationRepository",
    "INotificationDispatcher",
    "ISLAConfigProvider",
    "ISLAPolicyRepository",
    "ITicketRepository",
    "IUnitOfWork",
]
