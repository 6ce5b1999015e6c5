"""Tests for SLA domain entities and calculations."""

from datetime import timedelta

import pytest

from frontdesk.core import DomainException, InvalidStatusTransitionException
from frontdesk.sla.domain import (
    EscalationLevelConfig,
    EscalationStep,
    SLACalculator,
    SLAConfig,
    SLAPolicy,
)


def _policy(**overrides) -> SLAPolicy:
    fields = dict(
        id="policy-1",
        hotel_id="hotel-1",
        category="HOUSEKEEPING",
        department="HOUSEKEEPING",
        response_minutes=15,
        resolution_minutes=120,
    )
    fields.update(overrides)
    return SLAPolicy(**fields)


class TestSLACalculator:

    def test_defaults_are_60_and_480_minutes(self, t0):
        deadline = SLACalculator.calculate_deadlines(t0, SLAConfig())

        assert deadline.response_due_at == t0 + timedelta(minutes=60)
        assert deadline.resolution_due_at == t0 + timedelta(minutes=480)
        assert not deadline.from_policy

    def test_policy_minutes_override_defaults(self, t0):
        deadline = SLACalculator.calculate_deadlines(t0, SLAConfig(), _policy())

        assert deadline.response_due_at == t0 + timedelta(minutes=15)
        assert deadline.resolution_due_at == t0 + timedelta(minutes=120)
        assert deadline.policy_id == "policy-1"

    def test_next_level_picks_highest_crossed_threshold(self):
        ladder = SLAConfig().escalation_levels
        assert SLACalculator.next_escalation_level(ladder, 59, 0) is None
        assert SLACalculator.next_escalation_level(ladder, 60, 0) == 1
        assert SLACalculator.next_escalation_level(ladder, 250, 0) == 3

    def test_next_level_never_goes_backwards(self):
        ladder = SLAConfig().escalation_levels
        assert SLACalculator.next_escalation_level(ladder, 130, 2) is None
        assert SLACalculator.next_escalation_level(ladder, 130, 1) == 2

    def test_roles_default_without_policy(self):
        assert SLACalculator.escalation_roles(SLAConfig(), 1) == ["MANAGER", "ADMIN"]

    def test_roles_from_policy_step(self):
        policy = _policy(escalation_steps=[EscalationStep(level=1, notify_roles=["STAFF"])])
        assert SLACalculator.escalation_roles(SLAConfig(), 1, policy) == ["STAFF"]

    def test_roles_default_when_policy_has_no_step_for_level(self):
        policy = _policy(escalation_steps=[EscalationStep(level=1, notify_roles=["STAFF"])])
        assert SLACalculator.escalation_roles(SLAConfig(), 3, policy) == ["MANAGER", "ADMIN"]

    def test_empty_step_falls_back_to_ladder_roles(self):
        policy = _policy(escalation_steps=[EscalationStep(level=3, notify_roles=[])])
        assert SLACalculator.escalation_roles(SLAConfig(), 3, policy) == ["ADMIN"]

    def test_delay_minutes(self, t0):
        assert SLACalculator.delay_minutes(t0 + timedelta(minutes=15), t0) == 15


class TestSLAConfig:

    def test_ladder_is_sorted_by_level(self):
        config = SLAConfig(escalation_levels=[
            EscalationLevelConfig(level=2, after_minutes=30),
            EscalationLevelConfig(level=1, after_minutes=10),
        ])
        assert [rung.level for rung in config.escalation_levels] == [1, 2]

    def test_duplicate_levels_are_rejected(self):
        with pytest.raises(ValueError):
            SLAConfig(escalation_levels=[
                EscalationLevelConfig(level=1, after_minutes=10),
                EscalationLevelConfig(level=1, after_minutes=20),
            ])

    def test_resolution_must_exceed_response(self):
        with pytest.raises(ValueError):
            SLAConfig(default_response_minutes=60, default_resolution_minutes=60)

    def test_policy_minutes_must_be_positive(self):
        with pytest.raises(ValueError):
            _policy(response_minutes=0)

    def test_policy_resolution_must_exceed_response(self):
        with pytest.raises(ValueError, match="resolution_minutes must exceed response_minutes"):
            _policy(response_minutes=120, resolution_minutes=30)
        with pytest.raises(ValueError):
            _policy(response_minutes=120, resolution_minutes=120)


class TestTicketLifecycle:

    def test_resolve_stamps_resolved_at(self, add_ticket, t0):
        ticket = add_ticket()
        later = t0 + timedelta(hours=2)

        ticket.change_status("RESOLVED", later)

        assert ticket.status == "RESOLVED"
        assert ticket.resolved_at == later

    def test_closed_ticket_cannot_reopen(self, add_ticket, t0):
        ticket = add_ticket(status="CLOSED")
        with pytest.raises(InvalidStatusTransitionException):
            ticket.change_status("OPEN", t0)

    def test_resolved_ticket_can_close(self, add_ticket, t0):
        ticket = add_ticket(status="RESOLVED")
        ticket.change_status("CLOSED", t0)
        assert ticket.status == "CLOSED"

    def test_first_response_is_recorded_once(self, add_ticket, t0):
        ticket = add_ticket()

        assert ticket.mark_first_response(t0 + timedelta(minutes=5)) is True
        assert ticket.mark_first_response(t0 + timedelta(minutes=50)) is False
        assert ticket.first_response_at == t0 + timedelta(minutes=5)
        assert ticket.status == "IN_PROGRESS"
        assert ticket.responded_within_sla is True

    def test_breached_ticket_moves_to_in_progress_on_response(self, add_ticket, t0):
        ticket = add_ticket(status="BREACHED")
        ticket.mark_first_response(t0 + timedelta(minutes=90))

        assert ticket.status == "IN_PROGRESS"
        assert ticket.responded_within_sla is False

    def test_answered_ticket_cannot_breach(self, add_ticket, t0):
        ticket = add_ticket(first_response_at=t0, status="IN_PROGRESS")
        with pytest.raises(DomainException):
            ticket.mark_breached(t0 + timedelta(minutes=90))

    def test_escalation_level_only_grows(self, add_ticket, t0):
        ticket = add_ticket(escalated_level=2)
        with pytest.raises(DomainException):
            ticket.escalate_to(2, t0)
        ticket.escalate_to(3, t0)
        assert ticket.escalated_level == 3
        assert ticket.last_escalation_at == t0

    def test_response_overdue_only_after_deadline(self, add_ticket, t0):
        ticket = add_ticket()
        assert not ticket.is_response_overdue(t0 + timedelta(minutes=60))
        assert ticket.is_response_overdue(t0 + timedelta(minutes=61))
