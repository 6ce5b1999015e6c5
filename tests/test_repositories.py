"""
SQLAlchemy repository tests against a throwaway SQLite database (aiosqlite).
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from frontdesk.core import DuplicateResourceException
from frontdesk.infrastructure.database import get_session_context
from frontdesk.sla.application import (
    EscalationSweepService,
    SLAPolicyResolver,
    TicketFilters,
    TicketService,
)
from frontdesk.sla.domain import AuditEntry, EscalationStep, SLAPolicy, Ticket
from frontdesk.sla.infrastructure import (
    ConversationModel,
    MessageModel,
    SQLAlchemyAuditLogRepository,
    SQLAlchemyConversationRepository,
    SQLAlchemyNotificationRepository,
    SQLAlchemySLAPolicyRepository,
    SQLAlchemyTicketRepository,
    SQLAlchemyUnitOfWork,
)


@pytest.fixture
async def session(database):
    async with get_session_context() as db_session:
        yield db_session


async def _seed_conversation(session, *bodies, t0, hotel_id="hotel-1", subject=None):
    conversation_id = uuid4()
    session.add(ConversationModel(id=conversation_id, hotel_id=hotel_id, subject=subject, created_at=t0))
    for i, body in enumerate(bodies):
        session.add(MessageModel(conversation_id=conversation_id, body=body, created_at=t0 + timedelta(minutes=i)))
    await session.flush()
    return str(conversation_id)


def _ticket(conversation_id: str, t0, **overrides) -> Ticket:
    fields = dict(
        id=None,
        hotel_id="hotel-1",
        conversation_id=conversation_id,
        type="GENERAL_INQUIRY",
        category="HOUSEKEEPING",
        department="HOUSEKEEPING",
        priority="MEDIUM",
        status="OPEN",
        created_at=t0,
        updated_at=t0,
        response_due_at=t0 + timedelta(minutes=60),
        resolution_due_at=t0 + timedelta(minutes=480),
    )
    fields.update(overrides)
    return Ticket(**fields)


def _ticket_service(session, classification_service, config_provider, now, ticket_repository=None) -> TicketService:
    return TicketService(
        ticket_repository=ticket_repository or SQLAlchemyTicketRepository(session),
        conversation_repository=SQLAlchemyConversationRepository(session),
        audit_repository=SQLAlchemyAuditLogRepository(session),
        unit_of_work=SQLAlchemyUnitOfWork(session),
        classification_service=classification_service,
        policy_resolver=SLAPolicyResolver(SQLAlchemySLAPolicyRepository(session), config_provider),
        clock=lambda: now,
    )


def _sweep_service(session, dispatcher, config_provider) -> EscalationSweepService:
    return EscalationSweepService(
        ticket_repository=SQLAlchemyTicketRepository(session),
        policy_repository=SQLAlchemySLAPolicyRepository(session),
        audit_repository=SQLAlchemyAuditLogRepository(session),
        notification_dispatcher=dispatcher,
        unit_of_work=SQLAlchemyUnitOfWork(session),
        config_provider=config_provider,
    )


async def _committed_tickets(t0, *offsets, response_minutes=60, resolution_minutes=480):
    """Create one ticket per minute offset, each on its own conversation, and commit."""
    async with get_session_context() as setup:
        repo = SQLAlchemyTicketRepository(setup)
        tickets = []
        for offset in offsets:
            created_at = t0 + timedelta(minutes=offset)
            conversation_id = await _seed_conversation(setup, "towels", t0=created_at)
            tickets.append(await repo.create(_ticket(
                conversation_id, created_at,
                response_due_at=created_at + timedelta(minutes=response_minutes),
                resolution_due_at=created_at + timedelta(minutes=resolution_minutes),
            )))
    return tickets


class TestTicketRepository:

    @pytest.mark.asyncio
    async def test_create_and_fetch_round_trip_keeps_utc(self, session, t0):
        repo = SQLAlchemyTicketRepository(session)
        conversation_id = await _seed_conversation(session, "towels", t0=t0)

        created = await repo.create(_ticket(conversation_id, t0))
        await session.commit()
        fetched = await repo.get_by_conversation_id(conversation_id)

        assert fetched.id == created.id
        assert fetched.response_due_at == t0 + timedelta(minutes=60)
        assert fetched.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_second_ticket_for_conversation_is_rejected(self, session, t0):
        repo = SQLAlchemyTicketRepository(session)
        conversation_id = await _seed_conversation(session, "towels", t0=t0)
        await repo.create(_ticket(conversation_id, t0))
        await session.commit()

        with pytest.raises(DuplicateResourceException):
            await repo.create(_ticket(conversation_id, t0))
        await session.rollback()

    @pytest.mark.asyncio
    async def test_invalid_ids_return_none(self, session):
        repo = SQLAlchemyTicketRepository(session)
        assert await repo.get_by_id("not-a-uuid") is None
        assert await repo.get_by_conversation_id("not-a-uuid") is None

    @pytest.mark.asyncio
    async def test_list_orders_by_priority_rank_not_alphabet(self, session, t0):
        repo = SQLAlchemyTicketRepository(session)
        priorities = ["LOW", "URGENT", "MEDIUM", "HIGH"]
        for i, priority in enumerate(priorities):
            conversation_id = await _seed_conversation(session, "x", t0=t0)
            await repo.create(_ticket(conversation_id, t0 + timedelta(minutes=i), priority=priority))
        await session.commit()

        tickets, total = await repo.list("hotel-1", TicketFilters(), limit=10, offset=0)

        assert total == 4
        assert [t.priority for t in tickets] == ["URGENT", "HIGH", "MEDIUM", "LOW"]

    @pytest.mark.asyncio
    async def test_list_filters_and_counts(self, session, t0):
        repo = SQLAlchemyTicketRepository(session)
        for status in ["OPEN", "OPEN", "CLOSED"]:
            conversation_id = await _seed_conversation(session, "x", t0=t0)
            await repo.create(_ticket(conversation_id, t0, status=status))
        await session.commit()

        tickets, total = await repo.list("hotel-1", TicketFilters(status="OPEN"), limit=1, offset=0)

        assert total == 2
        assert len(tickets) == 1

    @pytest.mark.asyncio
    async def test_awaiting_response_excludes_answered_and_closed(self, session, t0):
        repo = SQLAlchemyTicketRepository(session)
        waiting = await repo.create(_ticket(await _seed_conversation(session, "a", t0=t0), t0, status="PENDING"))
        await repo.create(_ticket(await _seed_conversation(session, "b", t0=t0), t0, first_response_at=t0))
        await repo.create(_ticket(await _seed_conversation(session, "c", t0=t0), t0, status="CLOSED"))
        await session.commit()

        awaiting = await repo.list_awaiting_response()

        assert [t.id for t in awaiting] == [waiting.id]

    @pytest.mark.asyncio
    async def test_guarded_writes_check_the_stored_row(self, session, t0):
        repo = SQLAlchemyTicketRepository(session)
        ticket = await repo.create(_ticket(await _seed_conversation(session, "a", t0=t0), t0))
        await session.commit()

        assert await repo.raise_escalation_level(ticket.id, 3, t0 + timedelta(minutes=250)) is True
        assert await repo.raise_escalation_level(ticket.id, 2, t0 + timedelta(minutes=260)) is False
        assert await repo.record_first_response(ticket.id, t0 + timedelta(minutes=270)) is True
        assert await repo.record_first_response(ticket.id, t0 + timedelta(minutes=280)) is False
        assert await repo.mark_breached(ticket.id, t0 + timedelta(minutes=290)) is False
        assert await repo.raise_escalation_level(ticket.id, 4, t0 + timedelta(minutes=300)) is False
        await session.commit()

        stored = await repo.get_by_id(ticket.id)
        assert stored.escalated_level == 3
        assert stored.last_escalation_at == t0 + timedelta(minutes=250)
        assert stored.first_response_at == t0 + timedelta(minutes=270)
        assert stored.status == "IN_PROGRESS"

    @pytest.mark.asyncio
    async def test_first_response_moves_breached_ticket_to_in_progress(self, session, t0):
        repo = SQLAlchemyTicketRepository(session)
        ticket = await repo.create(_ticket(await _seed_conversation(session, "a", t0=t0), t0))

        assert await repo.mark_breached(ticket.id, t0 + timedelta(minutes=75)) is True
        assert await repo.record_first_response(ticket.id, t0 + timedelta(minutes=80)) is True
        await session.commit()

        assert (await repo.get_by_id(ticket.id)).status == "IN_PROGRESS"

    @pytest.mark.asyncio
    async def test_update_from_stale_copy_writes_only_named_fields(self, database, t0):
        ticket, = await _committed_tickets(t0, 0)

        async with get_session_context() as editor, get_session_context() as sweeper:
            stale = await SQLAlchemyTicketRepository(editor).get_by_id(ticket.id)

            assert await SQLAlchemyTicketRepository(sweeper).raise_escalation_level(
                ticket.id, 2, t0 + timedelta(minutes=125)
            )
            await sweeper.commit()

            stale.priority = "HIGH"
            await SQLAlchemyTicketRepository(editor).update(stale, ["priority"])
            await editor.commit()

        async with get_session_context() as reader:
            stored = await SQLAlchemyTicketRepository(reader).get_by_id(ticket.id)

        assert (stored.priority, stored.escalated_level) == ("HIGH", 2)


class TestPolicyRepository:

    @pytest.mark.asyncio
    async def test_find_active_and_escalation_lookup(self, session):
        repo = SQLAlchemySLAPolicyRepository(session)
        await repo.create(SLAPolicy(
            id=None, hotel_id="hotel-1", category="BILLING", department="BILLING",
            response_minutes=30, resolution_minutes=240,
            escalation_steps=[EscalationStep(level=1, notify_roles=["STAFF"])],
        ))
        await session.commit()

        policy = await repo.find_active("hotel-1", "BILLING")
        by_department = await repo.find_active_for_escalation("BILLING", "BILLING")

        assert policy.response_minutes == 30
        assert policy.step_for_level(1).notify_roles == ["STAFF"]
        assert by_department.id == policy.id
        assert await repo.find_active("hotel-2", "BILLING") is None

    @pytest.mark.asyncio
    async def test_scope_is_unique(self, session):
        repo = SQLAlchemySLAPolicyRepository(session)
        policy = dict(hotel_id="hotel-1", category="BILLING", department="BILLING",
                      response_minutes=30, resolution_minutes=240)
        await repo.create(SLAPolicy(id=None, **policy))
        await session.commit()

        with pytest.raises(DuplicateResourceException):
            await repo.create(SLAPolicy(id=None, **policy))
        await session.rollback()


class TestConversationRepository:

    @pytest.mark.asyncio
    async def test_recent_messages_newest_first(self, session, t0):
        conversation_id = await _seed_conversation(session, "m1", "m2", "m3", "m4", "m5", "m6", t0=t0)
        repo = SQLAlchemyConversationRepository(session)

        conversation = await repo.get_with_recent_messages(conversation_id, limit=5)

        assert [m.body for m in conversation.messages] == ["m6", "m5", "m4", "m3", "m2"]

    @pytest.mark.asyncio
    async def test_ids_without_ticket(self, session, t0):
        ticketed = await _seed_conversation(session, "a", t0=t0)
        pending = await _seed_conversation(session, "b", t0=t0 + timedelta(minutes=1))
        await SQLAlchemyTicketRepository(session).create(_ticket(ticketed, t0))
        await session.commit()

        ids = await SQLAlchemyConversationRepository(session).list_ids_without_ticket()

        assert ids == [pending]


class TestAuditAndNotifications:

    @pytest.mark.asyncio
    async def test_audit_entries_in_order(self, session, t0):
        repo = SQLAlchemyAuditLogRepository(session)
        for i, action in enumerate(["TICKET_CREATED", "SLA_BREACH"]):
            await repo.append(AuditEntry(
                actor_id="system", action=action, entity="ticket", entity_id="t-1",
                details={"n": i}, created_at=t0 + timedelta(minutes=i),
            ))
        await session.commit()

        entries = await repo.list_for_entity("ticket", "t-1")

        assert [e.action for e in entries] == ["TICKET_CREATED", "SLA_BREACH"]
        assert entries[1].details == {"n": 1}

    @pytest.mark.asyncio
    async def test_notification_per_distinct_role(self, session):
        repo = SQLAlchemyNotificationRepository(session)

        created = await repo.create_for_roles(
            hotel_id="hotel-1", roles=["MANAGER", "ADMIN", "MANAGER"],
            type="TICKET_BREACHED", title="SLA Breach", body="Response SLA breached."
        )
        rows = await repo.list_for_hotel("hotel-1")

        assert created == 2
        assert sorted(r.role for r in rows) == ["ADMIN", "MANAGER"]


class TestEndToEndOnDatabase:

    @pytest.mark.asyncio
    async def test_ensure_then_sweep(self, session, t0, classification_service, config_provider, dispatcher):
        conversation_id = await _seed_conversation(session, "the wifi is broken", t0=t0)
        await session.commit()

        tickets = _ticket_service(session, classification_service, config_provider, t0)
        ticket = await tickets.ensure_ticket_for_conversation(conversation_id, actor_id="staff-1")
        again = await tickets.ensure_ticket_for_conversation(conversation_id)

        sweep = _sweep_service(session, dispatcher, config_provider)
        result = await sweep.run_escalation_sweep(now=t0 + timedelta(minutes=75))

        stored = await SQLAlchemyTicketRepository(session).get_by_id(ticket.id)
        trail = await SQLAlchemyAuditLogRepository(session).list_for_entity("ticket", ticket.id)

        assert again.id == ticket.id
        assert ticket.category == "MAINTENANCE"
        assert result.breached == 1
        assert stored.status == "BREACHED"
        assert [e.action for e in trail] == ["TICKET_CREATED", "SLA_BREACH"]


class TestConcurrentWriters:
    """Two sessions against one database, interleaved through service hooks."""

    @pytest.mark.asyncio
    async def test_concurrent_ensure_returns_the_committed_winner(self, database, t0, classification_service, config_provider):
        async with get_session_context() as setup:
            conversation_id = await _seed_conversation(setup, "towels please", t0=t0)

        async with get_session_context() as loser, get_session_context() as winner:
            loser_repo = SQLAlchemyTicketRepository(loser)
            lookup = loser_repo.get_by_conversation_id
            winners = []

            async def lookup_while_winner_commits(cid):
                if not winners:
                    winning_service = _ticket_service(winner, classification_service, config_provider, t0)
                    winners.append(await winning_service.ensure_ticket_for_conversation(cid))
                    return None
                return await lookup(cid)

            loser_repo.get_by_conversation_id = lookup_while_winner_commits
            losing_service = _ticket_service(
                loser, classification_service, config_provider, t0, ticket_repository=loser_repo
            )

            result = await losing_service.ensure_ticket_for_conversation(conversation_id)

        async with get_session_context() as reader:
            stored, total = await SQLAlchemyTicketRepository(reader).list("hotel-1", TicketFilters())

        assert result.id == winners[0].id
        assert total == 1
        assert stored[0].id == winners[0].id

    @pytest.mark.asyncio
    async def test_overlapping_sweeps_never_lower_the_level(self, database, t0, config_provider, dispatcher):
        first, second = await _committed_tickets(t0, 0, 1, response_minutes=600, resolution_minutes=900)
        overlapping = type(dispatcher)()
        overlap_results = []

        async def notify_during_overlap(**kwargs):
            dispatcher.escalations.append(kwargs)
            if not overlap_results:
                async with get_session_context() as fast:
                    sweep = _sweep_service(fast, overlapping, config_provider)
                    overlap_results.append(await sweep.run_escalation_sweep(now=t0 + timedelta(minutes=250)))

        dispatcher.notify_ticket_escalated = notify_during_overlap

        async with get_session_context() as slow:
            slow_result = await _sweep_service(slow, dispatcher, config_provider).run_escalation_sweep(
                now=t0 + timedelta(minutes=125)
            )

        async with get_session_context() as reader:
            repo = SQLAlchemyTicketRepository(reader)
            levels = [(await repo.get_by_id(t.id)).escalated_level for t in (first, second)]
            trail = await SQLAlchemyAuditLogRepository(reader).list_for_entity("ticket", second.id)

        assert levels == [3, 3]
        assert (slow_result.escalated, overlap_results[0].escalated) == (1, 2)
        assert slow_result.errors == []
        assert [e.details["to_level"] for e in trail] == [3]
        assert [e["level"] for e in dispatcher.escalations] == [2]
        assert [e["level"] for e in overlapping.escalations] == [3, 3]

    @pytest.mark.asyncio
    async def test_first_response_during_sweep_is_kept(self, database, t0, classification_service, config_provider, dispatcher):
        first, second = await _committed_tickets(t0, 0, 1)
        replied_at = t0 + timedelta(minutes=70)

        async def reply_while_notifying(**kwargs):
            dispatcher.breaches.append(kwargs)
            if kwargs["ticket_id"] == first.id:
                async with get_session_context() as staff:
                    service = _ticket_service(staff, classification_service, config_provider, replied_at)
                    await service.record_first_response(second.id, actor_id="staff-1")

        dispatcher.notify_sla_breach = reply_while_notifying

        async with get_session_context() as sweeper:
            result = await _sweep_service(sweeper, dispatcher, config_provider).run_escalation_sweep(
                now=t0 + timedelta(minutes=75)
            )

        async with get_session_context() as reader:
            stored = await SQLAlchemyTicketRepository(reader).get_by_id(second.id)
            trail = await SQLAlchemyAuditLogRepository(reader).list_for_entity("ticket", second.id)

        assert (result.processed, result.breached, result.errors) == (2, 1, [])
        assert stored.status == "IN_PROGRESS"
        assert stored.first_response_at == replied_at
        assert [e.action for e in trail] == ["TICKET_FIRST_RESPONSE"]
        assert [b["ticket_id"] for b in dispatcher.breaches] == [first.id]
