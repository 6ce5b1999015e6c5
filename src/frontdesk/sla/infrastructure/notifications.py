"""
SLA Notification Dispatchers
=============================

Channels for breach and escalation alerts:
- InAppNotificationDispatcher: one notification row per staff role
- SlackNotificationDispatcher: Block Kit webhook with retry and circuit breaker
- CompositeNotificationDispatcher: fans out to several channels

Dispatchers are called after the sweep has committed, so they raise on
failure and leave it to the caller to log and carry on.
"""

import asyncio
import time
from typing import Any, AsyncContextManager, Callable, Dict, List, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from frontdesk.config import NotificationType, settings
from frontdesk.core import NotificationException
from frontdesk.infrastructure.database import get_session_context
from frontdesk.shared.infrastructure.logging import get_logger
from frontdesk.sla.application.services import INotificationDispatcher, ISLAConfigProvider
from frontdesk.sla.infrastructure.repositories import SQLAlchemyNotificationRepository

logger = get_logger(__name__)

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


def _label(value: str) -> str:
    return value.replace("_", " ").title()


class InAppNotificationDispatcher(INotificationDispatcher):
    """
    Writes role-addressed notification rows.

    Uses its own session so a failed insert never touches the caller's
    transaction.
    """

    def __init__(
        self,
        config_provider: ISLAConfigProvider,
        session_factory: SessionFactory = get_session_context
    ):
        self._config_provider = config_provider
        self._session_factory = session_factory

    async def notify_sla_breach(
        self,
        ticket_id: str,
        conversation_id: str,
        hotel_id: str,
        kind: str,
        category: str
    ) -> None:
        roles = self._config_provider.get_config().breach_notify_roles
        await self._create(
            hotel_id=hotel_id,
            roles=roles,
            type=NotificationType.TICKET_BREACHED,
            title="SLA Breach",
            body=f"{kind.capitalize()} SLA breached for a {_label(category).lower()} ticket.",
            data={"ticket_id": ticket_id, "conversation_id": conversation_id, "kind": kind},
        )

    async def notify_ticket_escalated(
        self,
        ticket_id: str,
        conversation_id: str,
        hotel_id: str,
        level: int,
        category: str,
        roles: List[str]
    ) -> None:
        await self._create(
            hotel_id=hotel_id,
            roles=roles,
            type=NotificationType.TICKET_ESCALATED,
            title=f"Ticket Escalated (Level {level})",
            body=f"A {_label(category).lower()} ticket has gone unanswered and was escalated to level {level}.",
            data={"ticket_id": ticket_id, "conversation_id": conversation_id, "level": level},
        )

    async def _create(self, hotel_id: str, roles: List[str], **fields: Any) -> None:
        if not roles:
            logger.debug("No roles to notify", extra={"hotel_id": hotel_id, "type": fields["type"]})
            return

        async with self._session_factory() as session:
            created = await SQLAlchemyNotificationRepository(session).create_for_roles(
                hotel_id=hotel_id, roles=roles, **fields
            )

        logger.info(
            "In-app notifications created",
            extra={"hotel_id": hotel_id, "type": fields["type"], "count": created}
        )


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if self._clock() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = self._clock()

        if self._failure_count >= self.failure_threshold or self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class SlackNotificationDispatcher(INotificationDispatcher):
    """
    Slack webhook dispatcher with circuit breaker and retry logic.

    Handles sending Block Kit alerts to Slack with:
    - Circuit breaker to prevent cascade failures
    - Exponential backoff retry
    - Timeout handling

    Without a webhook URL every call is a no-op.
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        channel: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        ticket_base_url: Optional[str] = None,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self._webhook_url = webhook_url if webhook_url is not None else settings.slack_webhook_url
        self._channel = channel or settings.slack_channel
        self._timeout = timeout_seconds or settings.slack_timeout_seconds
        self._ticket_base_url = (ticket_base_url or settings.ticket_base_url).rstrip("/")
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._circuit_breaker = circuit_breaker or CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        self._http_client = http_client

    @property
    def is_configured(self) -> bool:
        return bool(self._webhook_url)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def notify_sla_breach(
        self,
        ticket_id: str,
        conversation_id: str,
        hotel_id: str,
        kind: str,
        category: str
    ) -> None:
        message = self._build_message(
            header=f"🚨 {kind.capitalize()} SLA Breach",
            ticket_id=ticket_id,
            hotel_id=hotel_id,
            fields=[("Category", _label(category)), ("SLA", kind.capitalize())],
            context=f"{kind.capitalize()} SLA breached for a {_label(category).lower()} ticket.",
        )
        await self._deliver(message, ticket_id=ticket_id, alert="breach")

    async def notify_ticket_escalated(
        self,
        ticket_id: str,
        conversation_id: str,
        hotel_id: str,
        level: int,
        category: str,
        roles: List[str]
    ) -> None:
        message = self._build_message(
            header=f"⚠️ Ticket Escalated (Level {level})",
            ticket_id=ticket_id,
            hotel_id=hotel_id,
            fields=[
                ("Category", _label(category)),
                ("Escalation Level", str(level)),
                ("Notify", ", ".join(_label(r) for r in roles) or "-"),
            ],
            context="No staff response yet.",
        )
        await self._deliver(message, ticket_id=ticket_id, alert="escalation")

    def _build_message(
        self,
        header: str,
        ticket_id: str,
        hotel_id: str,
        fields: List[tuple],
        context: str
    ) -> Dict[str, Any]:
        """Build Slack Block Kit message."""
        ticket_url = f"{self._ticket_base_url}/{ticket_id}"
        section_fields = [
            {"type": "mrkdwn", "text": f"*Ticket:*\n<{ticket_url}|{ticket_id}>"},
            {"type": "mrkdwn", "text": f"*Hotel:*\n{hotel_id}"},
        ]
        section_fields += [{"type": "mrkdwn", "text": f"*{name}:*\n{value}"} for name, value in fields]

        return {
            "channel": self._channel,
            "text": header,
            "blocks": [
                {"type": "header", "text": {"type": "plain_text", "text": header, "emoji": True}},
                {"type": "section", "fields": section_fields},
                {"type": "context", "elements": [{"type": "mrkdwn", "text": context}]},
            ],
        }

    async def _deliver(self, message: Dict[str, Any], ticket_id: str, alert: str) -> None:
        """
        POST to the webhook with exponential backoff.

        Raises:
            NotificationException: circuit open or all attempts failed
        """
        if not self.is_configured:
            logger.debug("Slack webhook URL not configured, skipping notification")
            return

        if not self._circuit_breaker.allow_request():
            raise NotificationException(
                "Slack circuit breaker open", {"ticket_id": ticket_id, "alert": alert}
            )

        last_error = None
        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._webhook_url, json=message)

                if response.status_code == 200:
                    self._circuit_breaker.record_success()
                    logger.info("Slack notification sent", extra={"ticket_id": ticket_id, "alert": alert})
                    return

                last_error = f"HTTP {response.status_code}"
                logger.warning(
                    "Slack webhook returned non-200",
                    extra={"status_code": response.status_code, "attempt": attempt + 1}
                )
            except httpx.HTTPError as e:
                last_error = str(e)
                logger.warning(
                    "Slack notification attempt failed",
                    extra={"error": str(e), "attempt": attempt + 1, "ticket_id": ticket_id}
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._backoff_base * 2 ** attempt)

        self._circuit_breaker.record_failure()
        raise NotificationException(
            f"Slack delivery failed after {self._max_retries} attempts: {last_error}",
            {"ticket_id": ticket_id, "alert": alert}
        )

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class CompositeNotificationDispatcher(INotificationDispatcher):
    """
    Sends every alert to each channel in turn.

    One failing channel does not stop the others; if any failed, a
    NotificationException naming them is raised once all were tried.
    """

    def __init__(self, dispatchers: List[INotificationDispatcher]):
        self._dispatchers = list(dispatchers)

    async def notify_sla_breach(self, **kwargs: Any) -> None:
        await self._fan_out("notify_sla_breach", kwargs)

    async def notify_ticket_escalated(self, **kwargs: Any) -> None:
        await self._fan_out("notify_ticket_escalated", kwargs)

    async def _fan_out(self, method: str, kwargs: Dict[str, Any]) -> None:
        failed = []
        for dispatcher in self._dispatchers:
            try:
                await getattr(dispatcher, method)(**kwargs)
            except Exception as e:
                failed.append(type(dispatcher).__name__)
                logger.warning(
                    "Notification channel failed",
                    extra={"channel": type(dispatcher).__name__, "method": method, "error": str(e)}
                )
        if failed:
            raise NotificationException(
                f"{len(failed)} notification channel(s) failed: {', '.join(failed)}",
                {"channels": failed, "method": method}
            )
