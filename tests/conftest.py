"""
Shared fixtures: in-memory fakes of the SLA repository interfaces, a
frozen clock and ready-wired services.
"""

import copy
import os
import tempfile
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

# Settings are read at import time; point them at throwaway resources first.
_TMP_DIR = tempfile.mkdtemp(prefix="frontdesk-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'app.db')}")
os.environ.setdefault("SLA_CONFIG_PATH", os.path.join(_TMP_DIR, "sla_config.yaml"))
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("SLA_SWEEP_INTERVAL_SECONDS", "0")

import pytest

from frontdesk.config import VALID_PRIORITIES, TicketStatus, TicketType
from frontdesk.core import DuplicateResourceException, ResourceNotFoundException
from frontdesk.infrastructure.database import close_database, create_tables, init_database
from frontdesk.sla.application import (
    EscalationSweepService,
    IAuditLogRepository,
    IConversationRepository,
    INotificationDispatcher,
    ISLAConfigProvider,
    ISLAPolicyRepository,
    ITicketRepository,
    IUnitOfWork,
    SLAPolicyResolver,
    TicketFilters,
    TicketService,
)
from frontdesk.sla.domain import (
    FIRST_RESPONSE_STATUSES,
    AuditEntry,
    Conversation,
    ConversationMessage,
    SLAConfig,
    SLAPolicy,
    Ticket,
)
from frontdesk.triage.application import ClassificationService, StaticKeywordRuleProvider
from frontdesk.triage.domain import default_keyword_rules

T0 = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


# ========== Fakes ==========

class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float) -> datetime:
        self.now = self.now + timedelta(minutes=minutes)
        return self.now


class InMemoryTicketRepository(ITicketRepository):
    """Stores copies so that un-persisted mutations behave like a real store."""

    def __init__(self):
        self.tickets: Dict[str, Ticket] = {}
        self.failing_updates: set = set()

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        ticket = self.tickets.get(ticket_id)
        return copy.deepcopy(ticket) if ticket else None

    async def get_by_conversation_id(self, conversation_id: str) -> Optional[Ticket]:
        for ticket in self.tickets.values():
            if ticket.conversation_id == conversation_id:
                return copy.deepcopy(ticket)
        return None

    async def create(self, ticket: Ticket) -> Ticket:
        if any(t.conversation_id == ticket.conversation_id for t in self.tickets.values()):
            raise DuplicateResourceException("Ticket", ticket.conversation_id)
        stored = copy.deepcopy(ticket)
        stored.id = stored.id or str(uuid4())
        self.tickets[stored.id] = stored
        return copy.deepcopy(stored)

    async def update(self, ticket: Ticket, fields: Iterable[str]) -> Ticket:
        stored = self._stored(ticket.id)
        for name in set(fields) | {"updated_at"}:
            setattr(stored, name, copy.deepcopy(getattr(ticket, name)))
        return copy.deepcopy(stored)

    async def mark_breached(self, ticket_id: str, at: datetime) -> bool:
        stored = self._stored(ticket_id)
        if not stored.is_awaiting_response:
            return False
        stored.status = TicketStatus.BREACHED
        stored.updated_at = at
        return True

    async def raise_escalation_level(self, ticket_id: str, level: int, at: datetime) -> bool:
        stored = self._stored(ticket_id)
        if not stored.is_awaiting_response or stored.escalated_level >= level:
            return False
        stored.escalated_level = level
        stored.last_escalation_at = at
        stored.updated_at = at
        return True

    async def record_first_response(self, ticket_id: str, at: datetime) -> bool:
        stored = self._stored(ticket_id)
        if stored.first_response_at is not None:
            return False
        stored.first_response_at = at
        if stored.status in FIRST_RESPONSE_STATUSES:
            stored.status = TicketStatus.IN_PROGRESS
        stored.updated_at = at
        return True

    async def list_awaiting_response(self) -> List[Ticket]:
        awaiting = [t for t in self.tickets.values() if t.is_awaiting_response]
        return [copy.deepcopy(t) for t in sorted(awaiting, key=lambda t: t.created_at)]

    async def list(
        self,
        hotel_id: str,
        filters: TicketFilters,
        limit: int = 20,
        offset: int = 0
    ) -> Tuple[List[Ticket], int]:
        matching = [
            t for t in self.tickets.values()
            if t.hotel_id == hotel_id
            and all(
                getattr(filters, name) is None or getattr(t, name) == getattr(filters, name)
                for name in ("status", "priority", "department", "category", "assigned_to_id")
            )
        ]
        matching.sort(key=lambda t: (VALID_PRIORITIES.index(t.priority), t.created_at), reverse=True)
        return [copy.deepcopy(t) for t in matching[offset:offset + limit]], len(matching)

    def _stored(self, ticket_id: str) -> Ticket:
        if ticket_id in self.failing_updates:
            raise RuntimeError(f"store unavailable for {ticket_id}")
        if ticket_id not in self.tickets:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return self.tickets[ticket_id]


class InMemoryConversationRepository(IConversationRepository):
    def __init__(self, ticket_repo: InMemoryTicketRepository):
        self.conversations: Dict[str, Conversation] = {}
        self._ticket_repo = ticket_repo

    async def get_with_recent_messages(self, conversation_id: str, limit: int = 5) -> Optional[Conversation]:
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            return None
        result = copy.deepcopy(conversation)
        result.messages = sorted(result.messages, key=lambda m: m.created_at, reverse=True)[:limit]
        return result

    async def list_ids_without_ticket(self) -> List[str]:
        ticketed = {t.conversation_id for t in self._ticket_repo.tickets.values()}
        return [cid for cid in self.conversations if cid not in ticketed]


class InMemoryPolicyRepository(ISLAPolicyRepository):
    def __init__(self):
        self.policies: List[SLAPolicy] = []
        self.fail_escalation_lookup = False

    async def find_active(self, hotel_id: str, category: str) -> Optional[SLAPolicy]:
        for policy in self.policies:
            if policy.is_active and policy.hotel_id == hotel_id and policy.category == category:
                return policy
        return None

    async def find_active_for_escalation(self, category: str, department: str) -> Optional[SLAPolicy]:
        if self.fail_escalation_lookup:
            raise RuntimeError("policy store unavailable")
        for policy in self.policies:
            if policy.is_active and policy.category == category and policy.department == department:
                return policy
        return None

    async def create(self, policy: SLAPolicy) -> SLAPolicy:
        policy.id = policy.id or str(uuid4())
        self.policies.append(policy)
        return policy


class InMemoryAuditRepository(IAuditLogRepository):
    def __init__(self):
        self.entries: List[AuditEntry] = []

    async def append(self, entry: AuditEntry) -> AuditEntry:
        entry.id = str(uuid4())
        self.entries.append(entry)
        return entry

    async def list_for_entity(self, entity: str, entity_id: str) -> List[AuditEntry]:
        return [e for e in self.entries if e.entity == entity and e.entity_id == entity_id]

    def actions(self, entity_id: Optional[str] = None) -> List[str]:
        return [e.action for e in self.entries if entity_id is None or e.entity_id == entity_id]


class RecordingDispatcher(INotificationDispatcher):
    def __init__(self):
        self.breaches: List[dict] = []
        self.escalations: List[dict] = []
        self.fail = False

    async def notify_sla_breach(self, **kwargs) -> None:
        if self.fail:
            raise RuntimeError("notification channel down")
        self.breaches.append(kwargs)

    async def notify_ticket_escalated(self, **kwargs) -> None:
        if self.fail:
            raise RuntimeError("notification channel down")
        self.escalations.append(kwargs)


class FakeUnitOfWork(IUnitOfWork):
    def __init__(self):
        self.commits = 0
        self.rollbacks = 0

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1


class StaticConfigProvider(ISLAConfigProvider):
    def __init__(self, config: SLAConfig):
        self.config = config

    def get_config(self) -> SLAConfig:
        return self.config


# ========== Fixtures ==========

@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(T0)


@pytest.fixture
def sla_config() -> SLAConfig:
    return SLAConfig()


@pytest.fixture
def config_provider(sla_config) -> StaticConfigProvider:
    return StaticConfigProvider(sla_config)


@pytest.fixture
def ticket_repo() -> InMemoryTicketRepository:
    return InMemoryTicketRepository()


@pytest.fixture
def conversation_repo(ticket_repo) -> InMemoryConversationRepository:
    return InMemoryConversationRepository(ticket_repo)


@pytest.fixture
def policy_repo() -> InMemoryPolicyRepository:
    return InMemoryPolicyRepository()


@pytest.fixture
def audit_repo() -> InMemoryAuditRepository:
    return InMemoryAuditRepository()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def uow() -> FakeUnitOfWork:
    return FakeUnitOfWork()


@pytest.fixture
def classification_service() -> ClassificationService:
    return ClassificationService(StaticKeywordRuleProvider(default_keyword_rules()))


@pytest.fixture
def policy_resolver(policy_repo, config_provider, clock) -> SLAPolicyResolver:
    return SLAPolicyResolver(policy_repo, config_provider, clock=clock)


@pytest.fixture
def ticket_service(
    ticket_repo, conversation_repo, audit_repo, uow, classification_service, policy_resolver, clock
) -> TicketService:
    return TicketService(
        ticket_repository=ticket_repo,
        conversation_repository=conversation_repo,
        audit_repository=audit_repo,
        unit_of_work=uow,
        classification_service=classification_service,
        policy_resolver=policy_resolver,
        clock=clock,
    )


@pytest.fixture
def sweep_service(ticket_repo, policy_repo, audit_repo, dispatcher, uow, config_provider, clock) -> EscalationSweepService:
    return EscalationSweepService(
        ticket_repository=ticket_repo,
        policy_repository=policy_repo,
        audit_repository=audit_repo,
        notification_dispatcher=dispatcher,
        unit_of_work=uow,
        config_provider=config_provider,
        clock=clock,
    )


@pytest.fixture
def add_conversation(conversation_repo):
    """Factory: store a conversation and return its id."""

    def _add(
        *bodies: str,
        subject: Optional[str] = None,
        hotel_id: str = "hotel-1",
        booking_id: Optional[str] = None
    ) -> str:
        conversation_id = str(uuid4())
        messages = [
            ConversationMessage(body=body, created_at=T0 - timedelta(minutes=len(bodies) - i))
            for i, body in enumerate(bodies)
        ]
        conversation_repo.conversations[conversation_id] = Conversation(
            id=conversation_id,
            hotel_id=hotel_id,
            subject=subject,
            booking_id=booking_id,
            messages=messages,
        )
        return conversation_id

    return _add


@pytest.fixture
def add_ticket(ticket_repo):
    """Factory: store a ticket created at `created_at` with the default 60/480 SLA."""

    def _add(
        created_at: datetime = T0,
        response_minutes: int = 60,
        resolution_minutes: int = 480,
        **overrides
    ) -> Ticket:
        fields = dict(
            id=str(uuid4()),
            hotel_id="hotel-1",
            conversation_id=str(uuid4()),
            type=TicketType.GENERAL_INQUIRY,
            category="HOUSEKEEPING",
            department="HOUSEKEEPING",
            priority="MEDIUM",
            status=TicketStatus.OPEN,
            created_at=created_at,
            updated_at=created_at,
            response_due_at=created_at + timedelta(minutes=response_minutes),
            resolution_due_at=created_at + timedelta(minutes=resolution_minutes),
        )
        fields.update(overrides)
        ticket = Ticket(**fields)
        ticket_repo.tickets[ticket.id] = copy.deepcopy(ticket)
        return ticket

    return _add


@pytest.fixture
async def database(tmp_path):
    """A fresh SQLite database with all tables, initialised as the global engine."""
    engine = init_database(f"sqlite+aiosqlite:///{tmp_path / 'tickets.db'}")
    await create_tables()
    yield engine
    await close_database()
