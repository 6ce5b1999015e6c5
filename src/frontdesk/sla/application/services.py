"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from math import ceil
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from frontdesk.config import (
    AuditAction, TicketStatus,
    VALID_CATEGORIES, VALID_DEPARTMENTS, VALID_PRIORITIES, VALID_STATUSES
)
from frontdesk.core import (
    DuplicateResourceException,
    RepositoryException,
    ResourceNotFoundException,
    ValidationException,
)
from frontdesk.sla.domain import (
    AuditEntry, Conversation, SLACalculator, SLAConfig, SLADeadline, SLAPolicy, Ticket
)
from frontdesk.triage.application import ClassificationService
from frontdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ========== Repository Interfaces (Dependency Inversion) ==========

@dataclass
class TicketFilters:
    """Optional equality filters for ticket listings."""
    status: Optional[str] = None
    priority: Optional[str] = None
    department: Optional[str] = None
    category: Optional[str] = None
    assigned_to_id: Optional[str] = None


class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by ID."""

    @abstractmethod
    async def get_by_conversation_id(self, conversation_id: str) -> Optional[Ticket]:
        """Get the ticket linked to a conversation."""

    @abstractmethod
    async def create(self, ticket: Ticket) -> Ticket:
        """
        Persist a new ticket.

        Raises:
            DuplicateResourceException: the conversation already has a ticket
        """

    @abstractmethod
    async def update(self, ticket: Ticket, fields: Iterable[str]) -> Ticket:
        """
        Persist `fields` (plus updated_at) of an existing ticket.

        Columns not named are left as stored.
        """

    @abstractmethod
    async def mark_breached(self, ticket_id: str, at: datetime) -> bool:
        """
        Move the stored ticket to BREACHED if it is still unanswered and
        OPEN/PENDING. Returns False, changing nothing, otherwise.
        """

    @abstractmethod
    async def raise_escalation_level(self, ticket_id: str, level: int, at: datetime) -> bool:
        """
        Set the stored escalated_level to `level` if it is lower and the
        ticket is still unanswered and OPEN/PENDING. Returns False,
        changing nothing, otherwise.
        """

    @abstractmethod
    async def record_first_response(self, ticket_id: str, at: datetime) -> bool:
        """
        Stamp first_response_at unless one is stored, moving OPEN, PENDING
        and BREACHED tickets to IN_PROGRESS. Returns False when a first
        response was already on record.
        """

    @abstractmethod
    async def list_awaiting_response(self) -> List[Ticket]:
        """Tickets in OPEN/PENDING with no first response recorded."""

    @abstractmethod
    async def list(
        self,
        hotel_id: str,
        filters: TicketFilters,
        limit: int = 20,
        offset: int = 0
    ) -> Tuple[List[Ticket], int]:
        """
        Page of a hotel's tickets, priority desc then newest first, plus
        the total count matching the filters.
        """


class ISLAPolicyRepository(ABC):
    """Interface for SLA policy data access."""

    @abstractmethod
    async def find_active(self, hotel_id: str, category: str) -> Optional[SLAPolicy]:
        """First active policy for (hotel, category)."""

    @abstractmethod
    async def find_active_for_escalation(self, category: str, department: str) -> Optional[SLAPolicy]:
        """First active policy for (category, department), used for role lookups."""

    @abstractmethod
    async def create(self, policy: SLAPolicy) -> SLAPolicy:
        """Persist a new policy."""


class IAuditLogRepository(ABC):
    """Append-only audit sink."""

    @abstractmethod
    async def append(self, entry: AuditEntry) -> AuditEntry:
        """Append an audit entry."""

    @abstractmethod
    async def list_for_entity(self, entity: str, entity_id: str) -> List[AuditEntry]:
        """Entries for one entity, oldest first."""


class IConversationRepository(ABC):
    """Read access to the messaging subsystem's conversations."""

    @abstractmethod
    async def get_with_recent_messages(self, conversation_id: str, limit: int = 5) -> Optional[Conversation]:
        """Conversation with its `limit` most recent messages, newest first."""

    @abstractmethod
    async def list_ids_without_ticket(self) -> List[str]:
        """IDs of conversations that have no ticket yet."""


class INotificationDispatcher(ABC):
    """Delivers breach and escalation alerts to staff roles."""

    @abstractmethod
    async def notify_sla_breach(
        self,
        ticket_id: str,
        conversation_id: str,
        hotel_id: str,
        kind: str,
        category: str
    ) -> None:
        """Alert that a ticket's `kind` ("response"/"resolution") SLA was missed."""

    @abstractmethod
    async def notify_ticket_escalated(
        self,
        ticket_id: str,
        conversation_id: str,
        hotel_id: str,
        level: int,
        category: str,
        roles: List[str]
    ) -> None:
        """Alert `roles` that a ticket reached escalation `level`."""


class IUnitOfWork(ABC):
    """Transaction boundary used to make state durable before side effects."""

    @abstractmethod
    async def commit(self) -> None:
        """Commit pending changes."""

    @abstractmethod
    async def rollback(self) -> None:
        """Discard pending changes."""


class ISLAConfigProvider(ABC):
    """Interface for SLA configuration access."""

    @abstractmethod
    def get_config(self) -> SLAConfig:
        """Get current SLA configuration."""


# ========== Result Objects ==========

@dataclass
class TicketPage:
    """One page of a ticket listing."""
    data: List[Ticket]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return ceil(self.total / self.limit) if self.limit else 0

    @property
    def has_more(self) -> bool:
        return self.page * self.limit < self.total


@dataclass
class BackfillResult:
    """Summary of a conversation backfill run."""
    total: int = 0
    created: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)


# ========== Application Services ==========

class SLAPolicyResolver:
    """
    Resolves response/resolution deadlines for a (hotel, category).

    A missing policy is the normal path and falls back to the configured
    defaults; store failures propagate.
    """

    def __init__(
        self,
        policy_repository: ISLAPolicyRepository,
        config_provider: ISLAConfigProvider,
        clock: Clock = utc_now
    ):
        self._policy_repo = policy_repository
        self._config_provider = config_provider
        self._clock = clock

    async def resolve(
        self,
        hotel_id: str,
        category: str,
        now: Optional[datetime] = None
    ) -> SLADeadline:
        now = now or self._clock()
        policy = await self._policy_repo.find_active(hotel_id, category)
        deadline = SLACalculator.calculate_deadlines(now, self._config_provider.get_config(), policy)

        logger.debug(
            "SLA deadlines resolved",
            extra={
                "hotel_id": hotel_id,
                "category": category,
                "policy_id": deadline.policy_id,
                "response_minutes": deadline.response_minutes,
                "resolution_minutes": deadline.resolution_minutes
            }
        )
        return deadline


TICKET_PATCH_FIELDS = {
    "status": VALID_STATUSES,
    "priority": VALID_PRIORITIES,
    "department": VALID_DEPARTMENTS,
    "category": VALID_CATEGORIES,
    "assigned_to_id": None,
}


class TicketService:
    """
    Ticket lifecycle manager.

    Creates tickets lazily from conversations and applies lifecycle
    changes, writing an audit entry for every change made by a known actor.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        conversation_repository: IConversationRepository,
        audit_repository: IAuditLogRepository,
        unit_of_work: IUnitOfWork,
        classification_service: ClassificationService,
        policy_resolver: SLAPolicyResolver,
        clock: Clock = utc_now,
        recent_message_limit: int = 5
    ):
        self._ticket_repo = ticket_repository
        self._conversation_repo = conversation_repository
        self._audit_repo = audit_repository
        self._uow = unit_of_work
        self._classifier = classification_service
        self._policy_resolver = policy_resolver
        self._clock = clock
        self._recent_message_limit = recent_message_limit

    # ----- creation -----

    async def ensure_ticket_for_conversation(
        self,
        conversation_id: str,
        actor_id: Optional[str] = None
    ) -> Ticket:
        """
        Return the conversation's ticket, creating it on first use.

        Safe under concurrent calls: a uniqueness violation from the store
        means another caller won the race, so the winner's ticket is
        fetched and returned.

        Raises:
            ResourceNotFoundException: the conversation does not exist
        """
        existing = await self._ticket_repo.get_by_conversation_id(conversation_id)
        if existing is not None:
            return existing

        conversation = await self._conversation_repo.get_with_recent_messages(
            conversation_id, limit=self._recent_message_limit
        )
        if conversation is None:
            raise ResourceNotFoundException("Conversation", conversation_id)

        classification = self._classifier.classify(conversation.subject or "", conversation.message_text)
        now = self._clock()
        deadline = await self._policy_resolver.resolve(conversation.hotel_id, classification.category, now)

        ticket = Ticket(
            id=None,
            hotel_id=conversation.hotel_id,
            conversation_id=conversation_id,
            type=conversation.ticket_type,
            category=classification.category,
            department=classification.department,
            priority=classification.priority,
            status=TicketStatus.OPEN,
            created_at=now,
            updated_at=now,
            response_due_at=deadline.response_due_at,
            resolution_due_at=deadline.resolution_due_at,
            escalated_level=0,
        )

        try:
            ticket = await self._ticket_repo.create(ticket)
        except DuplicateResourceException:
            await self._uow.rollback()
            winner = await self._ticket_repo.get_by_conversation_id(conversation_id)
            if winner is None:
                raise RepositoryException(
                    f"Ticket for conversation {conversation_id} rejected as duplicate but not found"
                )
            logger.info(
                "Concurrent ticket creation resolved to existing ticket",
                extra={"conversation_id": conversation_id, "ticket_id": winner.id}
            )
            return winner

        if actor_id:
            await self._audit(actor_id, AuditAction.TICKET_CREATED, ticket, {
                "conversation_id": conversation_id,
                "category": ticket.category,
                "priority": ticket.priority,
                "department": ticket.department,
            })

        await self._uow.commit()

        logger.info(
            "Ticket created",
            extra={
                "ticket_id": ticket.id,
                "conversation_id": conversation_id,
                "hotel_id": ticket.hotel_id,
                "category": ticket.category,
                "priority": ticket.priority,
                "sla_source": "policy" if deadline.from_policy else "default"
            }
        )
        return ticket

    async def backfill_tickets_for_conversations(self) -> BackfillResult:
        """Create tickets for every conversation that does not have one."""
        result = BackfillResult()
        conversation_ids = await self._conversation_repo.list_ids_without_ticket()
        result.total = len(conversation_ids)

        for conversation_id in conversation_ids:
            try:
                await self.ensure_ticket_for_conversation(conversation_id)
                result.created += 1
            except Exception as e:
                await self._uow.rollback()
                result.skipped += 1
                result.errors.append(f"Conversation {conversation_id}: {e}")
                logger.warning(
                    "Backfill skipped conversation",
                    extra={"conversation_id": conversation_id, "error": str(e)}
                )

        logger.info(
            "Ticket backfill complete",
            extra={"total": result.total, "created": result.created, "skipped": result.skipped}
        )
        return result

    # ----- reads -----

    async def get_ticket(self, ticket_id: str) -> Ticket:
        ticket = await self._ticket_repo.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return ticket

    async def get_ticket_by_conversation(self, conversation_id: str) -> Ticket:
        ticket = await self._ticket_repo.get_by_conversation_id(conversation_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", details={"conversation_id": conversation_id})
        return ticket

    async def list_tickets(
        self,
        hotel_id: str,
        filters: Optional[TicketFilters] = None,
        page: int = 1,
        limit: int = 20
    ) -> TicketPage:
        if page < 1 or limit < 1:
            raise ValidationException("page and limit must be positive", {"page": page, "limit": limit})
        tickets, total = await self._ticket_repo.list(
            hotel_id, filters or TicketFilters(), limit=limit, offset=(page - 1) * limit
        )
        return TicketPage(data=tickets, page=page, limit=limit, total=total)

    async def audit_trail(self, ticket_id: str) -> List[AuditEntry]:
        ticket = await self.get_ticket(ticket_id)
        return await self._audit_repo.list_for_entity("ticket", ticket.id)

    # ----- lifecycle -----

    async def update_ticket(
        self,
        ticket_id: str,
        patch: Dict[str, Any],
        actor_id: Optional[str] = None
    ) -> Ticket:
        """
        Apply a partial update.

        Accepts status, priority, department, category and assigned_to_id.
        Setting status to RESOLVED stamps resolved_at.

        Raises:
            ResourceNotFoundException: unknown ticket
            ValidationException: unknown field or value
            InvalidStatusTransitionException: status would move backwards
        """
        self._validate_patch(patch)
        ticket = await self.get_ticket(ticket_id)
        now = self._clock()

        for name, value in patch.items():
            if name == "status":
                ticket.change_status(value, now)
            else:
                setattr(ticket, name, value)
        ticket.updated_at = now

        fields = set(patch)
        if "status" in patch:
            fields.add("resolved_at")
        ticket = await self._ticket_repo.update(ticket, fields)

        if actor_id:
            await self._audit(actor_id, AuditAction.TICKET_UPDATED, ticket, dict(patch))

        await self._uow.commit()
        logger.info("Ticket updated", extra={"ticket_id": ticket.id, "fields": sorted(patch)})
        return ticket

    async def assign_ticket(
        self,
        ticket_id: str,
        assigned_to_id: Optional[str],
        actor_id: Optional[str] = None
    ) -> Ticket:
        return await self.update_ticket(ticket_id, {"assigned_to_id": assigned_to_id}, actor_id)

    async def resolve_ticket(self, ticket_id: str, actor_id: Optional[str] = None) -> Ticket:
        return await self.update_ticket(ticket_id, {"status": TicketStatus.RESOLVED}, actor_id)

    async def close_ticket(self, ticket_id: str, actor_id: Optional[str] = None) -> Ticket:
        return await self.update_ticket(ticket_id, {"status": TicketStatus.CLOSED}, actor_id)

    async def record_first_response(self, ticket_id: str, actor_id: Optional[str] = None) -> Ticket:
        """
        Stamp the first staff reply; later calls return the ticket unchanged.

        The stamp is conditional at the store, so a reply racing another
        reply or the sweep never replaces one already recorded.
        """
        ticket = await self.get_ticket(ticket_id)
        now = self._clock()
        if not ticket.mark_first_response(now):
            return ticket

        if not await self._ticket_repo.record_first_response(ticket.id, now):
            await self._uow.rollback()
            logger.info("First response already recorded", extra={"ticket_id": ticket.id})
            return await self.get_ticket(ticket_id)

        ticket = await self.get_ticket(ticket_id)
        within_sla = ticket.responded_within_sla

        if actor_id:
            await self._audit(actor_id, AuditAction.TICKET_FIRST_RESPONSE, ticket, {
                "response_due_at": _iso(ticket.response_due_at),
                "first_response_at": _iso(ticket.first_response_at),
                "within_sla": within_sla,
            })

        await self._uow.commit()

        logger.info(
            "First response recorded",
            extra={"ticket_id": ticket.id, "within_sla": within_sla}
        )
        return ticket

    # ----- helpers -----

    @staticmethod
    def _validate_patch(patch: Dict[str, Any]) -> None:
        if not patch:
            raise ValidationException("Ticket update is empty")
        for name, value in patch.items():
            if name not in TICKET_PATCH_FIELDS:
                raise ValidationException(f"Field '{name}' cannot be updated", {"field": name})
            allowed = TICKET_PATCH_FIELDS[name]
            if allowed is not None and value not in allowed:
                raise ValidationException(
                    f"Invalid value {value!r} for '{name}'", {"field": name, "value": value}
                )

    async def _audit(self, actor_id: str, action: str, ticket: Ticket, details: Dict[str, Any]) -> None:
        await self._audit_repo.append(AuditEntry(
            actor_id=actor_id,
            action=action,
            entity="ticket",
            entity_id=ticket.id,
            details=details,
            created_at=self._clock(),
        ))


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
