"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for the SLA engine:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer
- External: Rule seed loader and background scheduler
"""

from helpdesk.sla.infrastructure.models import (
    TicketPriorityModel,
    UserModel,
    TicketModel,
    SLARuleModel,
    EscalationRuleModel,
    SLAViolationModel,
    EscalationHistoryModel,
    SLANotificationModel,
)
from helpdesk.sla.infrastructure.repositories import (
    SQLAlchemySavepointScope,
    SQLAlchemyTicketRepository,
    SQLAlchemyUserRepository,
    SQLAlchemySLARuleRepository,
    SQLAlchemyViolationRepository,
    SQLAlchemyEscalationRepository,
    SQLAlchemyNotificationRepository,
)
from helpdesk.sla.infrastructure.external import SLARuleSeedLoader, SLAScheduler

__all__ = [
    "TicketPriorityModel",
    "UserModel",
    "TicketModel",
    "SLARuleModel",
    "EscalationRuleModel",
    "SLAViolationModel",
    "EscalationHistoryModel",
    "SLANotificationModel",
    "SQLAlchemySavepointScope",
    "SQLAlchemyTicketRepository",
    "SQLAlchemyUserRepository",
    "SQLAlchemySLARuleRepository",
    "SQLAlchemyViolationRepository",
    "SQLAlchemyEscalationRepository",
    "SQLAlchemyNotificationRepository",
    "SLARuleSeedLoader",
    "SLAScheduler",
]
