"""SLA arithmetic, escalation targets and rule seed validation."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from helpdesk.sla.domain import (
    EscalationRule, RoleTarget, SLACalculator, SLARule, SLARuleSeed,
    SLAViolation, TicketSnapshot, UserTarget,
)

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


def test_escalation_level_counts_full_intervals():
    assert SLACalculator.calculate_escalation_level(5, 2) == 2
    assert SLACalculator.calculate_escalation_level(1.9, 2) == 0
    assert SLACalculator.calculate_escalation_level(2, 2) == 1


def test_escalation_level_is_zero_without_interval_or_overdue():
    assert SLACalculator.calculate_escalation_level(0, 2) == 0
    assert SLACalculator.calculate_escalation_level(-3, 2) == 0
    assert SLACalculator.calculate_escalation_level(10, 0) == 0


def test_escalation_level_is_not_capped_by_rule_levels():
    # 30h overdue at a 4h interval is level 7 even if the rule has 3 levels
    assert SLACalculator.calculate_escalation_level(30, 4) == 7


def test_deadline_honours_fractional_hours_and_naive_input():
    naive = datetime(2024, 1, 15, 10, 0)
    deadline = SLACalculator.calculate_deadline(naive, 0.5)
    assert deadline == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


def test_breach_is_strictly_after_deadline():
    assert not SLACalculator.is_breached(NOW, NOW)
    assert SLACalculator.is_breached(NOW, NOW + timedelta(seconds=1))


def test_rule_deadlines_per_clock():
    rule = SLARule(id=1, priority_id=1, name="High", initial_response_hours=1, resolution_hours=4)
    ticket = TicketSnapshot(
        id=1, subject="VPN down", priority_id=1, priority_name="high",
        status="open", created_at=NOW,
    )
    assert rule.deadline_for(ticket, "response") == NOW + timedelta(hours=1)
    assert rule.deadline_for(ticket, "resolution") == NOW + timedelta(hours=4)
    with pytest.raises(ValueError):
        rule.threshold_hours("first_contact")


def test_violation_overdue_is_measured_at_now():
    violation = SLAViolation(
        id=1, ticket_id=1, rule_id=1, violation_type="resolution",
        expected_time=NOW - timedelta(hours=3), actual_time=NOW - timedelta(hours=2),
        violation_duration_hours=1.0,
    )
    assert violation.overdue_hours(NOW) == pytest.approx(3.0)
    assert violation.overdue_hours(NOW - timedelta(hours=5)) == 0.0


def test_violation_mark_resolved_once():
    violation = SLAViolation(
        id=1, ticket_id=1, rule_id=1, violation_type="response",
        expected_time=NOW, actual_time=NOW, violation_duration_hours=0.0,
    )
    assert violation.mark_resolved(NOW) is True
    assert violation.mark_resolved(NOW + timedelta(hours=1)) is False
    assert violation.resolved_at == NOW


def test_escalation_rule_target_variants():
    by_user = EscalationRule(id=1, sla_rule_id=1, escalation_level=1, escalate_to_user_id=7)
    by_role = EscalationRule(id=2, sla_rule_id=1, escalation_level=2, escalate_to_role="admin")
    assert by_user.target == UserTarget(7)
    assert by_role.target == RoleTarget("admin")

    with pytest.raises(ValueError):
        EscalationRule(id=3, sla_rule_id=1, escalation_level=3).target


def test_escalation_reason_format():
    assert SLACalculator.escalation_reason("resolution", 5.04) == (
        "SLA resolution violation - 5.0 hours overdue"
    )


def test_rule_seed_rejects_levels_beyond_rule():
    with pytest.raises(ValidationError):
        SLARuleSeed(
            priority="low", name="Low", initial_response_hours=24, resolution_hours=48,
            escalation_levels=2, escalations=[{"level": 3, "role": "admin"}],
        )


def test_rule_seed_requires_single_target():
    with pytest.raises(ValidationError):
        SLARuleSeed(
            priority="low", name="Low", initial_response_hours=24, resolution_hours=48,
            escalations=[{"level": 1, "role": "admin", "user_id": 3}],
        )
