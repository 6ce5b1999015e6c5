"""
SLA Value Objects
==================

Immutable value objects and stateless calculations for the SLA domain.

The rule tables the engine runs on (keyword rules, default SLA minutes,
escalation ladder, fallback role lists) are plain configuration data held
by SLAConfig and handed to the services, never module-level state.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from frontdesk.config import StaffRole
from frontdesk.sla.domain.entities import SLAPolicy
from frontdesk.triage.domain import KeywordRule, default_keyword_rules


class EscalationLevelConfig(BaseModel):
    """One rung of the escalation ladder."""
    level: int = Field(ge=1, description="Escalation level (1-based)")
    after_minutes: int = Field(ge=0, description="Minutes without response before this level")
    notify_roles: List[str] = Field(default_factory=list, description="Roles alerted at this level")


def default_escalation_levels() -> List[EscalationLevelConfig]:
    return [
        EscalationLevelConfig(level=1, after_minutes=60, notify_roles=[StaffRole.MANAGER]),
        EscalationLevelConfig(level=2, after_minutes=120, notify_roles=[StaffRole.MANAGER, StaffRole.ADMIN]),
        EscalationLevelConfig(level=3, after_minutes=240, notify_roles=[StaffRole.ADMIN]),
    ]


class SLAConfig(BaseModel):
    """
    SLA rule tables loaded from YAML.

    Every field has a built-in default, so an empty or missing file yields
    the stock hotel configuration.
    """
    keyword_rules: List[KeywordRule] = Field(
        default_factory=default_keyword_rules,
        description="Ordered triage rules, first match wins"
    )
    default_response_minutes: int = Field(default=60, ge=1)
    default_resolution_minutes: int = Field(default=480, ge=1)
    escalation_levels: List[EscalationLevelConfig] = Field(
        default_factory=default_escalation_levels,
        description="Escalation ladder by ticket age"
    )
    default_escalation_roles: List[str] = Field(
        default_factory=lambda: [StaffRole.MANAGER, StaffRole.ADMIN],
        description="Roles alerted on escalation when no policy step applies"
    )
    breach_notify_roles: List[str] = Field(
        default_factory=lambda: [StaffRole.MANAGER, StaffRole.ADMIN],
        description="Roles alerted on response SLA breach"
    )

    @field_validator("escalation_levels")
    @classmethod
    def validate_ladder(cls, v: List[EscalationLevelConfig]) -> List[EscalationLevelConfig]:
        """Sort the ladder by level and reject duplicate levels."""
        levels = [rung.level for rung in v]
        if len(levels) != len(set(levels)):
            raise ValueError("escalation levels must be unique")
        return sorted(v, key=lambda rung: rung.level)

    @model_validator(mode="after")
    def validate_default_minutes(self) -> "SLAConfig":
        if self.default_resolution_minutes <= self.default_response_minutes:
            raise ValueError("default_resolution_minutes must exceed default_response_minutes")
        return self

    def ladder_roles(self, level: int) -> List[str]:
        for rung in self.escalation_levels:
            if rung.level == level:
                return list(rung.notify_roles)
        return []


@dataclass(frozen=True)
class SLADeadline:
    """Response and resolution deadlines for a new ticket."""
    response_due_at: datetime
    resolution_due_at: datetime
    response_minutes: int
    resolution_minutes: int
    policy_id: Optional[str] = None

    @property
    def from_policy(self) -> bool:
        return self.policy_id is not None


class SLACalculator:
    """
    Pure functions for SLA calculations.

    Stateless utility class - all SLA arithmetic in one place.
    """

    @staticmethod
    def calculate_deadlines(
        now: datetime,
        config: SLAConfig,
        policy: Optional[SLAPolicy] = None
    ) -> SLADeadline:
        """
        Deadlines are `now + minutes`, using the policy when one applies and
        the configured defaults otherwise.
        """
        if policy is not None:
            response_minutes = policy.response_minutes
            resolution_minutes = policy.resolution_minutes
        else:
            response_minutes = config.default_response_minutes
            resolution_minutes = config.default_resolution_minutes

        return SLADeadline(
            response_due_at=now + timedelta(minutes=response_minutes),
            resolution_due_at=now + timedelta(minutes=resolution_minutes),
            response_minutes=response_minutes,
            resolution_minutes=resolution_minutes,
            policy_id=policy.id if policy is not None else None
        )

    @staticmethod
    def next_escalation_level(
        ladder: List[EscalationLevelConfig],
        age_minutes: float,
        current_level: int
    ) -> Optional[int]:
        """
        Highest ladder level whose threshold `age_minutes` has crossed and
        which is above `current_level`; None when nothing applies.
        """
        target = None
        for rung in ladder:
            if age_minutes >= rung.after_minutes and rung.level > current_level:
                if target is None or rung.level > target:
                    target = rung.level
        return target

    @staticmethod
    def escalation_roles(
        config: SLAConfig,
        level: int,
        policy: Optional[SLAPolicy] = None
    ) -> List[str]:
        """
        Roles for an escalation notification.

        A matching policy step wins. A step with an empty role list falls
        back to the ladder rung's roles, and failing that (or with no step
        at all) the configured default list is used.
        """
        step = policy.step_for_level(level) if policy is not None else None
        if step is None:
            return list(config.default_escalation_roles)
        if step.notify_roles:
            return list(step.notify_roles)
        return config.ladder_roles(level) or list(config.default_escalation_roles)

    @staticmethod
    def delay_minutes(now: datetime, due_at: datetime) -> int:
        return round((now - due_at).total_seconds() / 60)
