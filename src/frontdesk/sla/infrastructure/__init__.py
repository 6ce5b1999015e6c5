"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for the SLA engine:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer
- External: Config watcher and scheduler
- Notifications: In-app, Slack and composite dispatchers
"""

from frontdesk.sla.infrastructure.models import (
    AuditLogModel,
    ConversationModel,
    MessageModel,
    NotificationModel,
    SLAPolicyModel,
    TicketModel,
)
from frontdesk.sla.infrastructure.repositories import (
    SQLAlchemyAuditLogRepository,
    SQLAlchemyConversationRepository,
    SQLAlchemyNotificationRepository,
    SQLAlchemySLAPolicyRepository,
    SQLAlchemyTicketRepository,
    SQLAlchemyUnitOfWork,
)
from frontdesk.sla.infrastructure.external import SLAConfigManager, SLAScheduler
from frontdesk.sla.infrastructure.notifications import (
    CircuitBreaker,
    CircuitState,
    CompositeNotificationDispatcher,
    InAppNotificationDispatcher,
    SlackNotificationDispatcher,
)

__all__ = [
    # Models
    "AuditLogModel",
    "ConversationModel",
    "MessageModel",
    "NotificationModel",
    "SLAPolicyModel",
    "TicketModel",
    # Repositories
    "SQLAlchemyAuditLogRepository",
    "SQLAlchemyConversationRepository",
    "SQLAlchemyNotificationRepository",
    "SQLAlchemySLAPolicyRepository",
    "SQLAlchemyTicketRepository",
    "SQLAlchemyUnitOfWork",
    # External
    "SLAConfigManager",
    "SLAScheduler",
    # Notifications
    "CircuitBreaker",
    "CircuitState",
    "CompositeNotificationDispatcher",
    "InAppNotificationDispatcher",
    "SlackNotificationDispatcher",
]
