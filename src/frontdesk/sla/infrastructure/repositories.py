"""
SLA Infrastructure Repositories
=================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database. ORM rows never leave this module; callers
get domain entities back.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import and_, case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from frontdesk.config import VALID_PRIORITIES, TicketStatus
from frontdesk.core import DuplicateResourceException, RepositoryException, ResourceNotFoundException
from frontdesk.sla.application.services import (
    IAuditLogRepository,
    IConversationRepository,
    ISLAPolicyRepository,
    ITicketRepository,
    IUnitOfWork,
    TicketFilters,
)
from frontdesk.sla.domain import (
    FIRST_RESPONSE_STATUSES,
    SWEEPABLE_STATUSES,
    AuditEntry,
    Conversation,
    ConversationMessage,
    EscalationStep,
    SLAPolicy,
    Ticket,
)
from frontdesk.sla.infrastructure.models import (
    AuditLogModel,
    ConversationModel,
    MessageModel,
    NotificationModel,
    SLAPolicyModel,
    TicketModel,
)


def _parse_uuid(value: Optional[str]) -> Optional[UUID]:
    if value is None:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


# Highest priority sorts first
PRIORITY_RANK = case(
    {priority: rank for rank, priority in enumerate(VALID_PRIORITIES)},
    value=TicketModel.priority,
    else_=-1,
)

# Columns a ticket update may write; identity and creation stay fixed
UPDATABLE_TICKET_FIELDS = frozenset({
    "type", "category", "department", "priority", "status", "assigned_to_id",
    "response_due_at", "resolution_due_at", "first_response_at", "resolved_at",
    "escalated_level", "last_escalation_at", "updated_at",
})


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    Handles persistence of Ticket entities using async SQLAlchemy.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        model = await self._get_model(ticket_id)
        return self._to_domain(model) if model else None

    async def get_by_conversation_id(self, conversation_id: str) -> Optional[Ticket]:
        conversation_uuid = _parse_uuid(conversation_id)
        if conversation_uuid is None:
            return None

        stmt = (
            select(TicketModel)
            .where(TicketModel.conversation_id == conversation_uuid)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def create(self, ticket: Ticket) -> Ticket:
        """Insert a ticket; a second ticket for the same conversation is rejected."""
        conversation_uuid = _parse_uuid(ticket.conversation_id)
        if conversation_uuid is None:
            raise RepositoryException(f"Invalid conversation ID: {ticket.conversation_id}")

        model = TicketModel(id=uuid4(), conversation_id=conversation_uuid)
        self._apply(model, ticket)
        self._session.add(model)

        try:
            await self._session.flush()
        except IntegrityError as e:
            raise DuplicateResourceException(
                "Ticket", ticket.conversation_id, {"conversation_id": ticket.conversation_id}
            ) from e

        return self._to_domain(model)

    async def update(self, ticket: Ticket, fields: Iterable[str]) -> Ticket:
        """Write only `fields` and updated_at; other columns keep their stored values."""
        names = set(fields) | {"updated_at"}
        unknown = names - UPDATABLE_TICKET_FIELDS
        if unknown:
            raise RepositoryException(f"Ticket fields cannot be updated: {sorted(unknown)}")

        model = await self._get_model(ticket.id)
        if model is None:
            raise ResourceNotFoundException("Ticket", ticket.id)

        for name in names:
            setattr(model, name, getattr(ticket, name))
        await self._session.flush()
        return self._to_domain(model)

    async def mark_breached(self, ticket_id: str, at: datetime) -> bool:
        return await self._update_where(
            ticket_id,
            [TicketModel.first_response_at.is_(None), TicketModel.status.in_(SWEEPABLE_STATUSES)],
            status=TicketStatus.BREACHED,
            updated_at=at,
        )

    async def raise_escalation_level(self, ticket_id: str, level: int, at: datetime) -> bool:
        return await self._update_where(
            ticket_id,
            [
                TicketModel.escalated_level < level,
                TicketModel.first_response_at.is_(None),
                TicketModel.status.in_(SWEEPABLE_STATUSES),
            ],
            escalated_level=level,
            last_escalation_at=at,
            updated_at=at,
        )

    async def record_first_response(self, ticket_id: str, at: datetime) -> bool:
        return await self._update_where(
            ticket_id,
            [TicketModel.first_response_at.is_(None)],
            first_response_at=at,
            status=case(
                (TicketModel.status.in_(FIRST_RESPONSE_STATUSES), TicketStatus.IN_PROGRESS),
                else_=TicketModel.status,
            ),
            updated_at=at,
        )

    async def list_awaiting_response(self) -> List[Ticket]:
        stmt = (
            select(TicketModel)
            .where(
                TicketModel.status.in_(SWEEPABLE_STATUSES),
                TicketModel.first_response_at.is_(None),
            )
            .order_by(TicketModel.created_at.asc())
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(m) for m in result.scalars().all()]

    async def list(
        self,
        hotel_id: str,
        filters: TicketFilters,
        limit: int = 20,
        offset: int = 0
    ) -> Tuple[List[Ticket], int]:
        """List a hotel's tickets with filters, plus the unpaged total."""
        conditions = [TicketModel.hotel_id == hotel_id]
        if filters.status:
            conditions.append(TicketModel.status == filters.status)
        if filters.priority:
            conditions.append(TicketModel.priority == filters.priority)
        if filters.department:
            conditions.append(TicketModel.department == filters.department)
        if filters.category:
            conditions.append(TicketModel.category == filters.category)
        if filters.assigned_to_id:
            conditions.append(TicketModel.assigned_to_id == filters.assigned_to_id)

        count_stmt = select(func.count()).select_from(TicketModel).where(and_(*conditions))
        total = (await self._session.execute(count_stmt)).scalar_one()

        stmt = (
            select(TicketModel)
            .where(and_(*conditions))
            .order_by(PRIORITY_RANK.desc(), TicketModel.created_at.desc())
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(m) for m in result.scalars().all()], total

    async def _get_model(self, ticket_id: Optional[str]) -> Optional[TicketModel]:
        ticket_uuid = _parse_uuid(ticket_id)
        if ticket_uuid is None:
            return None
        return await self._session.get(TicketModel, ticket_uuid, populate_existing=True)

    async def _update_where(self, ticket_id: str, conditions: List[Any], **values: Any) -> bool:
        """
        Single-row UPDATE guarded by `conditions` on the stored row.

        Returns True when the row matched. The identity map is not
        synchronised; reads go through populate_existing instead.
        """
        ticket_uuid = _parse_uuid(ticket_id)
        if ticket_uuid is None:
            return False

        stmt = (
            update(TicketModel)
            .where(TicketModel.id == ticket_uuid, *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    @staticmethod
    def _apply(model: TicketModel, ticket: Ticket) -> None:
        model.hotel_id = ticket.hotel_id
        model.type = ticket.type
        model.category = ticket.category
        model.department = ticket.department
        model.priority = ticket.priority
        model.status = ticket.status
        model.assigned_to_id = ticket.assigned_to_id
        model.response_due_at = ticket.response_due_at
        model.resolution_due_at = ticket.resolution_due_at
        model.first_response_at = ticket.first_response_at
        model.resolved_at = ticket.resolved_at
        model.escalated_level = ticket.escalated_level
        model.last_escalation_at = ticket.last_escalation_at
        model.created_at = ticket.created_at
        model.updated_at = ticket.updated_at

    @staticmethod
    def _to_domain(model: TicketModel) -> Ticket:
        return Ticket(
            id=str(model.id),
            hotel_id=model.hotel_id,
            conversation_id=str(model.conversation_id),
            type=model.type,
            category=model.category,
            department=model.department,
            priority=model.priority,
            status=model.status,
            created_at=model.created_at,
            updated_at=model.updated_at,
            response_due_at=model.response_due_at,
            resolution_due_at=model.resolution_due_at,
            first_response_at=model.first_response_at,
            resolved_at=model.resolved_at,
            escalated_level=model.escalated_level,
            last_escalation_at=model.last_escalation_at,
            assigned_to_id=model.assigned_to_id,
        )


class SQLAlchemySLAPolicyRepository(ISLAPolicyRepository):
    """SLA policy lookups."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def find_active(self, hotel_id: str, category: str) -> Optional[SLAPolicy]:
        stmt = (
            select(SLAPolicyModel)
            .where(
                SLAPolicyModel.hotel_id == hotel_id,
                SLAPolicyModel.category == category,
                SLAPolicyModel.is_active.is_(True),
            )
            .order_by(SLAPolicyModel.created_at.asc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def find_active_for_escalation(self, category: str, department: str) -> Optional[SLAPolicy]:
        # Not scoped by hotel; see DESIGN.md.
        stmt = (
            select(SLAPolicyModel)
            .where(
                SLAPolicyModel.category == category,
                SLAPolicyModel.department == department,
                SLAPolicyModel.is_active.is_(True),
            )
            .order_by(SLAPolicyModel.created_at.asc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def create(self, policy: SLAPolicy) -> SLAPolicy:
        model = SLAPolicyModel(
            id=_parse_uuid(policy.id) or uuid4(),
            hotel_id=policy.hotel_id,
            category=policy.category,
            department=policy.department,
            response_minutes=policy.response_minutes,
            resolution_minutes=policy.resolution_minutes,
            escalation_steps=[
                {"level": s.level, "notify_roles": list(s.notify_roles)}
                for s in policy.escalation_steps
            ],
            is_active=policy.is_active,
        )
        self._session.add(model)

        try:
            await self._session.flush()
        except IntegrityError as e:
            raise DuplicateResourceException(
                "SLAPolicy", f"{policy.hotel_id}/{policy.category}/{policy.department}"
            ) from e

        return self._to_domain(model)

    @staticmethod
    def _to_domain(model: SLAPolicyModel) -> SLAPolicy:
        steps = [
            EscalationStep(level=int(s["level"]), notify_roles=list(s.get("notify_roles") or []))
            for s in (model.escalation_steps or [])
        ]
        return SLAPolicy(
            id=str(model.id),
            hotel_id=model.hotel_id,
            category=model.category,
            department=model.department,
            response_minutes=model.response_minutes,
            resolution_minutes=model.resolution_minutes,
            escalation_steps=steps,
            is_active=model.is_active,
        )


class SQLAlchemyAuditLogRepository(IAuditLogRepository):
    """Append-only audit log."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def append(self, entry: AuditEntry) -> AuditEntry:
        model = AuditLogModel(
            id=uuid4(),
            actor_id=entry.actor_id,
            action=entry.action,
            entity=entry.entity,
            entity_id=entry.entity_id,
            details=entry.details,
            created_at=entry.created_at,
        )
        self._session.add(model)
        await self._session.flush()

        entry.id = str(model.id)
        return entry

    async def list_for_entity(self, entity: str, entity_id: str) -> List[AuditEntry]:
        stmt = (
            select(AuditLogModel)
            .where(AuditLogModel.entity == entity, AuditLogModel.entity_id == entity_id)
            .order_by(AuditLogModel.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return [
            AuditEntry(
                id=str(m.id),
                actor_id=m.actor_id,
                action=m.action,
                entity=m.entity,
                entity_id=m.entity_id,
                details=m.details or {},
                created_at=m.created_at,
            )
            for m in result.scalars().all()
        ]


class SQLAlchemyConversationRepository(IConversationRepository):
    """Read-only view of the messaging subsystem's conversations."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_with_recent_messages(self, conversation_id: str, limit: int = 5) -> Optional[Conversation]:
        conversation_uuid = _parse_uuid(conversation_id)
        if conversation_uuid is None:
            return None

        model = await self._session.get(ConversationModel, conversation_uuid)
        if model is None:
            return None

        stmt = (
            select(MessageModel)
            .where(MessageModel.conversation_id == conversation_uuid)
            .order_by(MessageModel.created_at.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        messages = [
            ConversationMessage(body=m.body, created_at=m.created_at)
            for m in result.scalars().all()
        ]

        return Conversation(
            id=str(model.id),
            hotel_id=model.hotel_id,
            subject=model.subject,
            booking_id=model.booking_id,
            messages=messages,
        )

    async def list_ids_without_ticket(self) -> List[str]:
        stmt = (
            select(ConversationModel.id)
            .outerjoin(TicketModel, TicketModel.conversation_id == ConversationModel.id)
            .where(TicketModel.id.is_(None))
            .order_by(ConversationModel.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return [str(row) for row in result.scalars().all()]


class SQLAlchemyNotificationRepository:
    """Writes in-app notification rows."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create_for_roles(
        self,
        hotel_id: str,
        roles: List[str],
        type: str,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None
    ) -> int:
        """One row per distinct role; returns the number of rows written."""
        unique_roles = list(dict.fromkeys(roles))
        for role in unique_roles:
            self._session.add(NotificationModel(
                id=uuid4(),
                hotel_id=hotel_id,
                role=role,
                type=type,
                title=title,
                body=body,
                data=data or {},
            ))
        await self._session.flush()
        return len(unique_roles)

    async def list_for_hotel(self, hotel_id: str) -> List[NotificationModel]:
        stmt = (
            select(NotificationModel)
            .where(NotificationModel.hotel_id == hotel_id)
            .order_by(NotificationModel.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


class SQLAlchemyUnitOfWork(IUnitOfWork):
    """Commit/rollback on the request's session."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()
