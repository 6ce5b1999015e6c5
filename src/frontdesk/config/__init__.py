"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="frontdesk-tickets", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/frontdesk",
        description="Async SQLAlchemy connection URL"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Engine ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to SLA rule table YAML file"
    )
    sla_sweep_interval_seconds: int = Field(
        default=0,
        description="Seconds between in-process escalation sweeps (0 = external trigger only)",
        ge=0
    )
    sla_job_secret: Optional[str] = Field(
        default=None,
        description="Shared secret expected in the X-Job-Secret header of job triggers"
    )

    # ========== Slack Integration ==========
    slack_webhook_url: Optional[str] = Field(
        default=None,
        description="Slack webhook URL for breach/escalation alerts"
    )
    slack_channel: str = Field(
        default="#front-desk-escalations",
        description="Slack channel for SLA notifications"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )
    ticket_base_url: str = Field(
        default="https://frontdesk.example.com/tickets",
        description="Base URL used to link tickets from notifications"
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

SYSTEM_ACTOR = "system"


class TicketType(str):
    """Whether the conversation behind a ticket is tied to a booking."""
    BOOKING_RELATED = "BOOKING_RELATED"
    GENERAL_INQUIRY = "GENERAL_INQUIRY"


class TicketCategory(str):
    """Ticket categories assigned by keyword classification."""
    COMPLAINT = "COMPLAINT"
    BILLING = "BILLING"
    HOUSEKEEPING = "HOUSEKEEPING"
    MAINTENANCE = "MAINTENANCE"
    CONCIERGE = "CONCIERGE"
    ROOM_SERVICE = "ROOM_SERVICE"
    CHECK_IN_OUT = "CHECK_IN_OUT"
    BOOKING = "BOOKING"
    OTHER = "OTHER"


class Department(str):
    """Hotel departments a ticket can be routed to."""
    FRONT_DESK = "FRONT_DESK"
    HOUSEKEEPING = "HOUSEKEEPING"
    MAINTENANCE = "MAINTENANCE"
    CONCIERGE = "CONCIERGE"
    BILLING = "BILLING"
    MANAGEMENT = "MANAGEMENT"


class TicketPriority(str):
    """Ticket priority levels."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class TicketStatus(str):
    """Ticket lifecycle statuses."""
    OPEN = "OPEN"
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    BREACHED = "BREACHED"


class StaffRole(str):
    """Staff roles that escalation and breach alerts are addressed to."""
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    STAFF = "STAFF"


class AuditAction(str):
    """Action tags written to the audit log."""
    TICKET_CREATED = "TICKET_CREATED"
    TICKET_UPDATED = "TICKET_UPDATED"
    TICKET_FIRST_RESPONSE = "TICKET_FIRST_RESPONSE"
    SLA_BREACH = "SLA_BREACH"
    ESCALATION_TRIGGERED = "ESCALATION_TRIGGERED"


class NotificationType(str):
    """In-app notification types raised by the SLA engine."""
    TICKET_BREACHED = "TICKET_BREACHED"
    TICKET_ESCALATED = "TICKET_ESCALATED"


# ========== Lists for validation ==========

VALID_TICKET_TYPES = [TicketType.BOOKING_RELATED, TicketType.GENERAL_INQUIRY]
VALID_CATEGORIES = [
    TicketCategory.COMPLAINT, TicketCategory.BILLING, TicketCategory.HOUSEKEEPING,
    TicketCategory.MAINTENANCE, TicketCategory.CONCIERGE, TicketCategory.ROOM_SERVICE,
    TicketCategory.CHECK_IN_OUT, TicketCategory.BOOKING, TicketCategory.OTHER
]
VALID_DEPARTMENTS = [
    Department.FRONT_DESK, Department.HOUSEKEEPING, Department.MAINTENANCE,
    Department.CONCIERGE, Department.BILLING, Department.MANAGEMENT
]
# Ascending order; list position doubles as the sort rank.
VALID_PRIORITIES = [
    TicketPriority.LOW, TicketPriority.MEDIUM,
    TicketPriority.HIGH, TicketPriority.URGENT
]
VALID_STATUSES = [
    TicketStatus.OPEN, TicketStatus.PENDING, TicketStatus.IN_PROGRESS,
    TicketStatus.RESOLVED, TicketStatus.CLOSED, TicketStatus.BREACHED
]
VALID_ROLES = [StaffRole.ADMIN, StaffRole.MANAGER, StaffRole.STAFF]
