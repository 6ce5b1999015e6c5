"""
SLA Domain Layer
================

Domain layer for the ticket SLA engine.

Contains:
- Entities: Ticket, Conversation, SLAPolicy, AuditEntry
- Value Objects: SLAConfig, EscalationLevelConfig, SLADeadline
- Domain Services: SLACalculator

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from frontdesk.sla.domain.entities import (
    ALLOWED_TRANSITIONS,
    FIRST_RESPONSE_STATUSES,
    SWEEPABLE_STATUSES,
    AuditEntry,
    Conversation,
    ConversationMessage,
    EscalationStep,
    SLAPolicy,
    Ticket,
)
from frontdesk.sla.domain.value_objects import (
    EscalationLevelConfig,
    SLACalculator,
    SLAConfig,
    SLADeadline,
    default_escalation_levels,
)

__all__ = [
    # Entities
    "ALLOWED_TRANSITIONS",
    "FIRST_RESPONSE_STATUSES",
    "SWEEPABLE_STATUSES",
    "AuditEntry",
    "Conversation",
    "ConversationMessage",
    "EscalationStep",
    "SLAPolicy",
    "Ticket",
    # Value Objects & Services
    "EscalationLevelConfig",
    "SLACalculator",
    "SLAConfig",
    "SLADeadline",
    "default_escalation_levels",
]
