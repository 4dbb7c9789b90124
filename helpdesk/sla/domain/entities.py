"""
SLA Domain Entities
====================

Pure Python domain entities for the SLA engine.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Generic, List, Optional, TypeVar

from helpdesk.config import TERMINAL_STATUSES, ViolationType
from helpdesk.sla.domain.value_objects import (
    EscalationTarget, RoleTarget, SLACalculator, UserTarget
)


T = TypeVar("T")


@dataclass
class TicketSnapshot:
    """
    Read-only view of a helpdesk ticket.

    Tickets are owned by the helpdesk; the engine only reads the fields it
    needs to evaluate deadlines.
    """
    id: int
    subject: str
    priority_id: Optional[int]
    priority_name: Optional[str]
    status: str
    created_at: datetime
    resolved_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        """Terminal tickets are no longer subject to SLA evaluation."""
        return self.status in TERMINAL_STATUSES


@dataclass
class SLARule:
    """
    SLA rule entity: time budgets and escalation cadence for one priority.
    """
    id: Optional[int]
    priority_id: int
    name: str
    initial_response_hours: float
    resolution_hours: float
    escalation_levels: int = 3
    escalation_interval_hours: float = 4.0
    description: Optional[str] = None
    is_active: bool = True
    priority_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def threshold_hours(self, violation_type: str) -> float:
        """Hours allowed for the given SLA clock."""
        if violation_type == ViolationType.RESPONSE:
            return self.initial_response_hours
        if violation_type == ViolationType.RESOLUTION:
            return self.resolution_hours
        raise ValueError(f"Unknown violation type: {violation_type}")

    def deadline_for(self, ticket: TicketSnapshot, violation_type: str) -> datetime:
        """Deadline of a clock for a ticket."""
        return SLACalculator.calculate_deadline(
            ticket.created_at, self.threshold_hours(violation_type)
        )


@dataclass
class EscalationRule:
    """
    Routing target for one escalation level of an SLA rule.

    Exactly one of ``escalate_to_user_id`` / ``escalate_to_role`` is set.
    """
    id: Optional[int]
    sla_rule_id: int
    escalation_level: int
    escalate_to_user_id: Optional[int] = None
    escalate_to_role: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None

    @property
    def target(self) -> EscalationTarget:
        """Tagged escalation target for this level."""
        if self.escalate_to_user_id is not None:
            return UserTarget(self.escalate_to_user_id)
        if self.escalate_to_role:
            return RoleTarget(self.escalate_to_role)
        raise ValueError(f"Escalation rule {self.id} has no target")


@dataclass
class SLAViolation:
    """
    One breach episode of a ticket's response or resolution clock.
    """
    id: Optional[int]
    ticket_id: int
    rule_id: Optional[int]
    violation_type: str
    expected_time: datetime
    actual_time: datetime
    violation_duration_hours: float
    is_resolved: bool = False
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def overdue_hours(self, now: datetime) -> float:
        """Hours past the deadline at ``now`` (never negative)."""
        return SLACalculator.overdue_hours(self.expected_time, now)

    def mark_resolved(self, timestamp: datetime) -> bool:
        """Mark resolved. Returns False if it already was."""
        if self.is_resolved:
            return False
        self.is_resolved = True
        self.resolved_at = timestamp
        return True


@dataclass
class EscalationRecord:
    """
    An escalation step that was actually triggered for a ticket.
    """
    id: Optional[int]
    ticket_id: int
    escalation_level: int
    escalated_to_user_id: Optional[int]
    escalation_reason: str
    escalation_time: datetime
    violation_id: Optional[int] = None
    is_resolved: bool = False
    resolved_at: Optional[datetime] = None
    resolved_by_user_id: Optional[int] = None

    def mark_resolved(self, timestamp: datetime, resolved_by: Optional[int]) -> bool:
        """Mark resolved. Returns False if it already was."""
        if self.is_resolved:
            return False
        self.is_resolved = True
        self.resolved_at = timestamp
        self.resolved_by_user_id = resolved_by
        return True


@dataclass
class Notification:
    """
    SLA notification addressed to a user (or unaddressed).

    Delivery is handled outside the engine.
    """
    id: Optional[int]
    ticket_id: int
    notification_type: str
    message: str
    sent_to_user_id: Optional[int]
    sent_at: datetime
    is_read: bool = False
    read_at: Optional[datetime] = None


@dataclass
class ItemFailure:
    """A single ticket/violation that could not be evaluated in a pass."""
    item_type: str
    item_id: Optional[int]
    error: str


@dataclass
class PassResult(Generic[T]):
    """
    Outcome of one engine pass: records created plus isolated failures.
    """
    created: List[T] = field(default_factory=list)
    failed: List[ItemFailure] = field(default_factory=list)
    evaluated: int = 0

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)


@dataclass
class PriorityCompliance:
    """Per-priority breakdown of a compliance report."""
    total: int = 0
    violations: int = 0


@dataclass
class ComplianceReport:
    """
    Aggregated SLA compliance over a time window.

    response_violations is approximated from total elapsed time since no
    first-response timestamp is tracked for helpdesk tickets.
    """
    time_range: str
    start_date: datetime
    generated_at: datetime
    total_tickets: int
    compliant_tickets: int
    response_violations: int
    resolution_violations: int
    compliance_rate: float
    average_resolution_time: float
    violations_by_priority: Dict[str, PriorityCompliance] = field(default_factory=dict)
