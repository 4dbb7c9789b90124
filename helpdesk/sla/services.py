"""
SLA Services
============

Wiring of the SLA application services onto a database session, plus the
evaluator run by the background scheduler.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.shared.infrastructure.logging import get_logger, log_latency
from helpdesk.sla.application.services import (
    ComplianceReportService, EscalationService, NotificationService,
    SLAEngine, SLARuleService, ViolationDetectionService,
)
from helpdesk.sla.infrastructure.repositories import (
    SQLAlchemyEscalationRepository, SQLAlchemyNotificationRepository,
    SQLAlchemySavepointScope, SQLAlchemySLARuleRepository,
    SQLAlchemyTicketRepository, SQLAlchemyUserRepository,
    SQLAlchemyViolationRepository,
)

logger = get_logger(__name__)


def build_notification_service(session: AsyncSession) -> NotificationService:
    return NotificationService(SQLAlchemyNotificationRepository(session))


def build_rule_service(session: AsyncSession) -> SLARuleService:
    return SLARuleService(
        SQLAlchemySLARuleRepository(session),
        SQLAlchemyTicketRepository(session),
        SQLAlchemyUserRepository(session)
    )


def build_violation_service(session: AsyncSession) -> ViolationDetectionService:
    return ViolationDetectionService(
        ticket_repository=SQLAlchemyTicketRepository(session),
        rule_repository=SQLAlchemySLARuleRepository(session),
        violation_repository=SQLAlchemyViolationRepository(session),
        escalation_repository=SQLAlchemyEscalationRepository(session),
        notifier=build_notification_service(session),
        scope=SQLAlchemySavepointScope(session)
    )


def build_escalation_service(session: AsyncSession) -> EscalationService:
    return EscalationService(
        violation_repository=SQLAlchemyViolationRepository(session),
        rule_repository=SQLAlchemySLARuleRepository(session),
        escalation_repository=SQLAlchemyEscalationRepository(session),
        user_repository=SQLAlchemyUserRepository(session),
        notifier=build_notification_service(session),
        scope=SQLAlchemySavepointScope(session)
    )


def build_report_service(session: AsyncSession) -> ComplianceReportService:
    return ComplianceReportService(
        SQLAlchemyTicketRepository(session),
        SQLAlchemySLARuleRepository(session)
    )


class SLAEvaluator:
    """
    Runs one engine pass per scheduler tick.

    This service:
    1. Resolves SLA records of tickets that were closed since the last pass
    2. Records new response / resolution violations
    3. Escalates open violations to their current level
    """

    async def evaluate(self, session: AsyncSession, now: Optional[datetime] = None) -> dict:
        """
        Evaluate all open tickets and violations.

        Args:
            session: Database session; committed by the caller

        Returns:
            Summary of the pass
        """
        engine = SLAEngine(
            build_violation_service(session),
            build_escalation_service(session)
        )

        with log_latency(logger, "sla_pass", trigger="scheduler"):
            summary = await engine.run_pass(now)

        logger.info("SLA pass summary", extra=summary)
        return summary
