"""
Frontdesk Tickets - Main Application
=====================================

Support-ticket SLA engine for hotel guest messaging.

Modules:
- SLA Engine: Tickets, SLA policies, breach detection and escalation
- Triage: Keyword classification of guest conversations

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, config watcher, notification channels
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from frontdesk.config import settings
from frontdesk.core import ApplicationException

# Infrastructure
from frontdesk.infrastructure.database import (
    close_database,
    create_tables,
    get_session_context,
    init_database,
)

# SLA Module
from frontdesk.sla.application import EscalationSweepService
from frontdesk.sla.infrastructure import (
    CompositeNotificationDispatcher,
    InAppNotificationDispatcher,
    SLAConfigManager,
    SLAScheduler,
    SlackNotificationDispatcher,
    SQLAlchemyAuditLogRepository,
    SQLAlchemySLAPolicyRepository,
    SQLAlchemyTicketRepository,
    SQLAlchemyUnitOfWork,
)

# Module Routers
from frontdesk.sla.interfaces import jobs_router, sla_router
from frontdesk.triage.interfaces import triage_router

# Shared
from frontdesk.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from frontdesk.shared.infrastructure.logging import get_logger, log_latency, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Load SLA configuration and start watching it
    4. Build notification channels
    5. Start the in-process sweep scheduler (when configured)

    SHUTDOWN:
    1. Stop scheduler
    2. Stop config watcher
    3. Close Slack client
    4. Close database connections
    """
    # === STARTUP ===
    setup_logging(level=settings.log_level, environment=settings.environment)
    logger.info("Starting Frontdesk Tickets", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()

    # Development convenience; production schemas are migrated separately
    try:
        await create_tables()
    except Exception as e:
        logger.warning("Database not available - running in degraded mode", extra={"error": str(e)})

    logger.info("Loading SLA configuration", extra={"path": str(settings.sla_config_path)})
    sla_config_manager = SLAConfigManager()
    sla_config_manager.load(settings.sla_config_path)
    sla_config_manager.start_watching()

    slack_dispatcher = SlackNotificationDispatcher()
    notification_dispatcher = CompositeNotificationDispatcher([
        InAppNotificationDispatcher(sla_config_manager),
        slack_dispatcher,
    ])

    app.state.settings = settings
    app.state.sla_config_manager = sla_config_manager
    app.state.notification_dispatcher = notification_dispatcher

    sla_scheduler = None
    if settings.sla_sweep_interval_seconds > 0:

        async def sla_sweep_job():
            """Background escalation sweep."""
            async with get_session_context() as session:
                service = EscalationSweepService(
                    ticket_repository=SQLAlchemyTicketRepository(session),
                    policy_repository=SQLAlchemySLAPolicyRepository(session),
                    audit_repository=SQLAlchemyAuditLogRepository(session),
                    notification_dispatcher=notification_dispatcher,
                    unit_of_work=SQLAlchemyUnitOfWork(session),
                    config_provider=sla_config_manager,
                )
                with log_latency(logger, "sla_escalation_sweep"):
                    await service.run_escalation_sweep()

        sla_scheduler = SLAScheduler(interval_seconds=settings.sla_sweep_interval_seconds)
        await sla_scheduler.start(sla_sweep_job)
    else:
        logger.info("In-process SLA sweep disabled; expecting external job trigger")

    app.state.sla_scheduler = sla_scheduler

    logger.info("Frontdesk Tickets started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Frontdesk Tickets")

    if sla_scheduler:
        await sla_scheduler.stop()

    sla_config_manager.stop_watching()
    await slack_dispatcher.close()
    await close_database()

    logger.info("Frontdesk Tickets shutdown complete")


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    application = FastAPI(
        title="Frontdesk Tickets API",
        description="""
    ## Hotel Support-Ticket SLA Engine

    Turns guest conversations into tracked support tickets, stamps response and
    resolution deadlines, and escalates tickets that go unanswered.

    ---

    ### 🎫 Tickets (`/sla`)

    - `POST /sla/tickets/conversation/{conversation_id}` - Ensure a ticket exists
    - `GET /sla/tickets` - List a hotel's tickets (priority, then newest first)
    - `PATCH /sla/tickets/{id}` - Update status, priority, department, category, assignee
    - `POST /sla/tickets/{id}/first-response` - Record the first staff reply
    - `GET /sla/policies/resolve` - Preview SLA deadlines for a category

    ### 🏷️ Triage (`/triage`)

    - `POST /triage/classify` - Keyword classification (first matching rule wins)

    ### ⏱️ Jobs (`/jobs`)

    - `POST /jobs/sla-escalation/run` - Breach and escalation sweep (`X-Job-Secret`)

    ---

    ### 🔧 Default SLA

    | | Minutes |
    |----------|--------|
    | Response | 60 |
    | Resolution | 480 |

    Escalation ladder by ticket age: level 1 at 60 min (managers), level 2 at
    120 min (managers, admins), level 3 at 240 min (admins).
    """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # === CORS Middleware ===
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Custom Middleware (from shared) ===
    application.add_middleware(LoggingMiddleware)
    application.add_middleware(CorrelationIDMiddleware)
    application.add_exception_handler(ApplicationException, application_exception_handler)
    application.add_exception_handler(Exception, global_exception_handler)

    # === Include Module Routers ===
    application.include_router(sla_router)
    application.include_router(triage_router)
    application.include_router(jobs_router)

    application.add_api_route("/health", health_check, methods=["GET"], tags=["Health"])
    application.add_api_route("/", root, methods=["GET"], tags=["Root"])

    return application


# === Health Check Endpoint ===

async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Reports SLA configuration, config watcher and scheduler state.
    """
    config_manager = getattr(request.app.state, "sla_config_manager", None)
    scheduler = getattr(request.app.state, "sla_scheduler", None)

    checks = {
        "sla_config": "loaded" if config_manager is not None else "not_loaded",
        "sla_config_watch": "watching" if config_manager and config_manager.is_watching else "static",
        "sla_scheduler": "running" if scheduler and scheduler.is_running else "external",
        "slack": "configured" if settings.slack_webhook_url else "not_configured",
    }

    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


async def root():
    """Root endpoint with API information."""
    return {
        "service": "Frontdesk Tickets",
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "sla": {"prefix": "/sla"},
            "triage": {"prefix": "/triage"},
            "jobs": {"prefix": "/jobs"}
        }
    }


app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "frontdesk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
