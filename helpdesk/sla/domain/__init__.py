"""
SLA Domain Layer
================

Domain layer for the SLA engine.

Contains:
- Entities: SLARule, EscalationRule, SLAViolation, EscalationRecord,
  Notification, TicketSnapshot, pass results and reports
- Value Objects: EscalationTarget variants, rule seed configuration
- Domain Services: Stateless SLA arithmetic (SLACalculator)

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from helpdesk.sla.domain.value_objects import (
    SLACalculator,
    EscalationTarget,
    UserTarget,
    RoleTarget,
    SLARuleSeed,
    SLARuleSeedFile,
    EscalationLevelSeed,
)
from helpdesk.sla.domain.entities import (
    TicketSnapshot,
    SLARule,
    EscalationRule,
    SLAViolation,
    EscalationRecord,
    Notification,
    ItemFailure,
    PassResult,
    PriorityCompliance,
    ComplianceReport,
)

__all__ = [
    # Entities
    "TicketSnapshot",
    "SLARule",
    "EscalationRule",
    "SLAViolation",
    "EscalationRecord",
    "Notification",
    "ItemFailure",
    "PassResult",
    "PriorityCompliance",
    "ComplianceReport",
    # Value Objects & Services
    "SLACalculator",
    "EscalationTarget",
    "UserTarget",
    "RoleTarget",
    "SLARuleSeed",
    "SLARuleSeedFile",
    "EscalationLevelSeed",
]
