"""
Escalation Sweep Service
=========================

Periodic job that walks every unanswered OPEN/PENDING ticket and either
marks it BREACHED (response deadline passed) or raises its escalation
level (ticket age crossed a ladder threshold).

State changes and their audit entries are committed before any
notification goes out, so a failing notification channel can never undo
a breach or escalation. Each ticket is processed in isolation: an error
is recorded against the ticket and the sweep moves on.

Candidates are listed once per run, so every write is conditional on the
stored row. A ticket that another writer answered or escalated after the
listing is skipped without audit or notification.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from frontdesk.config import SYSTEM_ACTOR, AuditAction
from frontdesk.sla.application.services import (
    Clock,
    IAuditLogRepository,
    INotificationDispatcher,
    ISLAConfigProvider,
    ISLAPolicyRepository,
    ITicketRepository,
    IUnitOfWork,
    utc_now,
)
from frontdesk.sla.domain import AuditEntry, SLACalculator, SLAConfig, Ticket
from frontdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass
class SweepError:
    ticket_id: str
    error: str


@dataclass
class SweepResult:
    """Counters for one sweep run."""
    processed: int = 0
    escalated: int = 0
    breached: int = 0
    errors: List[SweepError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "escalated": self.escalated,
            "breached": self.breached,
            "errors": [{"ticket_id": e.ticket_id, "error": e.error} for e in self.errors],
        }


class EscalationSweepService:
    """Breach detection and escalation ladder for unanswered tickets."""

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        policy_repository: ISLAPolicyRepository,
        audit_repository: IAuditLogRepository,
        notification_dispatcher: INotificationDispatcher,
        unit_of_work: IUnitOfWork,
        config_provider: ISLAConfigProvider,
        clock: Clock = utc_now
    ):
        self._ticket_repo = ticket_repository
        self._policy_repo = policy_repository
        self._audit_repo = audit_repository
        self._dispatcher = notification_dispatcher
        self._uow = unit_of_work
        self._config_provider = config_provider
        self._clock = clock

    async def run_escalation_sweep(self, now: Optional[datetime] = None) -> SweepResult:
        """
        Run one sweep.

        A ticket whose response deadline has passed is breached and not
        escalated in the same run. Otherwise it moves straight to the
        highest ladder level its age qualifies for; levels skipped along
        the way do not get their own notification.
        """
        now = now or self._clock()
        config = self._config_provider.get_config()
        tickets = await self._ticket_repo.list_awaiting_response()
        result = SweepResult()

        logger.info("Escalation sweep started", extra={"candidates": len(tickets)})

        for ticket in tickets:
            result.processed += 1
            try:
                if ticket.is_response_overdue(now):
                    if await self._breach(ticket, now, config):
                        result.breached += 1
                    continue

                level = SLACalculator.next_escalation_level(
                    config.escalation_levels, ticket.age_minutes(now), ticket.escalated_level
                )
                if level is not None and await self._escalate(ticket, level, now, config):
                    result.escalated += 1
            except Exception as e:
                await self._uow.rollback()
                result.errors.append(SweepError(ticket_id=str(ticket.id), error=str(e)))
                logger.error(
                    "Escalation sweep failed for ticket",
                    extra={"ticket_id": ticket.id, "error": str(e)},
                    exc_info=True
                )

        logger.info(
            "Escalation sweep complete",
            extra={
                "processed": result.processed,
                "breached": result.breached,
                "escalated": result.escalated,
                "errors": len(result.errors)
            }
        )
        return result

    async def _breach(self, ticket: Ticket, now: datetime, config: SLAConfig) -> bool:
        due_at = ticket.response_due_at
        ticket.mark_breached(now)
        if not await self._ticket_repo.mark_breached(ticket.id, now):
            await self._skip_changed(ticket, "breach")
            return False

        await self._audit_repo.append(AuditEntry(
            actor_id=SYSTEM_ACTOR,
            action=AuditAction.SLA_BREACH,
            entity="ticket",
            entity_id=ticket.id,
            details={
                "breach_type": "response",
                "due_at": due_at.isoformat(),
                "breached_at": now.isoformat(),
                "delay_minutes": SLACalculator.delay_minutes(now, due_at),
            },
            created_at=now,
        ))
        await self._uow.commit()

        logger.warning(
            "Response SLA breached",
            extra={"ticket_id": ticket.id, "hotel_id": ticket.hotel_id, "category": ticket.category}
        )

        try:
            await self._dispatcher.notify_sla_breach(
                ticket_id=ticket.id,
                conversation_id=ticket.conversation_id,
                hotel_id=ticket.hotel_id,
                kind="response",
                category=ticket.category,
            )
        except Exception as e:
            logger.warning(
                "Breach notification failed",
                extra={"ticket_id": ticket.id, "error": str(e)}
            )
        return True

    async def _escalate(self, ticket: Ticket, level: int, now: datetime, config: SLAConfig) -> bool:
        previous_level = ticket.escalated_level
        ticket.escalate_to(level, now)
        if not await self._ticket_repo.raise_escalation_level(ticket.id, level, now):
            await self._skip_changed(ticket, "escalation")
            return False

        await self._audit_repo.append(AuditEntry(
            actor_id=SYSTEM_ACTOR,
            action=AuditAction.ESCALATION_TRIGGERED,
            entity="ticket",
            entity_id=ticket.id,
            details={
                "from_level": previous_level,
                "to_level": level,
                "minutes_since_creation": int(ticket.age_minutes(now)),
            },
            created_at=now,
        ))
        await self._uow.commit()

        roles = await self._escalation_roles(ticket, level, config)
        logger.info(
            "Ticket escalated",
            extra={"ticket_id": ticket.id, "from_level": previous_level, "to_level": level, "roles": roles}
        )

        try:
            await self._dispatcher.notify_ticket_escalated(
                ticket_id=ticket.id,
                conversation_id=ticket.conversation_id,
                hotel_id=ticket.hotel_id,
                level=level,
                category=ticket.category,
                roles=roles,
            )
        except Exception as e:
            logger.warning(
                "Escalation notification failed",
                extra={"ticket_id": ticket.id, "level": level, "error": str(e)}
            )
        return True

    async def _skip_changed(self, ticket: Ticket, change: str) -> None:
        """The stored ticket moved on since it was listed; leave it alone."""
        await self._uow.rollback()
        logger.info(
            "Ticket changed since listing, skipped",
            extra={"ticket_id": ticket.id, "change": change}
        )

    async def _escalation_roles(self, ticket: Ticket, level: int, config: SLAConfig) -> List[str]:
        """Policy step roles for (category, department), else the configured fallbacks."""
        try:
            policy = await self._policy_repo.find_active_for_escalation(ticket.category, ticket.department)
        except Exception as e:
            await self._uow.rollback()
            logger.warning(
                "SLA policy lookup failed, using default escalation roles",
                extra={"ticket_id": ticket.id, "error": str(e)}
            )
            policy = None
        return SLACalculator.escalation_roles(config, level, policy)
