"""
SLA Infrastructure Repositories
=================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database. Timestamps read back from SQLite are naive and
are normalised to UTC on the way out.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, List, Optional, Sequence

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.config import TERMINAL_STATUSES
from helpdesk.core import ConflictException, RepositoryException
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.shared.time import as_utc
from helpdesk.sla.application.services import (
    IEscalationRepository, INotificationRepository, ISLARuleRepository,
    ISLAViolationRepository, ITicketRepository, ITransactionScope,
    IUserRepository,
)
from helpdesk.sla.domain import (
    EscalationRecord, EscalationRule, Notification, SLARule, SLAViolation,
    TicketSnapshot,
)
from helpdesk.sla.infrastructure.models import (
    EscalationHistoryModel, EscalationRuleModel, SLANotificationModel,
    SLARuleModel, SLAViolationModel, TicketModel, TicketPriorityModel,
    UserModel,
)

logger = get_logger(__name__)


class SQLAlchemySavepointScope(ITransactionScope):
    """
    Wraps each evaluated item in a SAVEPOINT.

    An exception inside the block rolls back that item's writes only and
    propagates to the caller.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        async with self._session.begin_nested():
            yield


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    Read-only access to helpdesk tickets and priorities.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_entity(model: TicketModel) -> TicketSnapshot:
        return TicketSnapshot(
            id=model.id,
            subject=model.subject,
            priority_id=model.priority_id,
            priority_name=model.priority.name if model.priority else None,
            status=model.status,
            created_at=as_utc(model.created_at),
            resolved_at=as_utc(model.resolved_at),
        )

    async def list_open(self) -> List[TicketSnapshot]:
        """Tickets whose status is not terminal."""
        stmt = (
            select(TicketModel)
            .where(TicketModel.status.not_in(TERMINAL_STATUSES))
            .order_by(TicketModel.id)
            .execution_options(populate_existing=True)
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException("Failed to load open tickets", {"error": str(e)})

        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_created_since(self, since: datetime) -> List[TicketSnapshot]:
        stmt = (
            select(TicketModel)
            .where(TicketModel.created_at >= since)
            .order_by(TicketModel.id)
            .execution_options(populate_existing=True)
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException("Failed to load tickets", {"error": str(e)})

        return [self._to_entity(m) for m in result.scalars().all()]

    async def priority_exists(self, priority_id: int) -> bool:
        stmt = select(TicketPriorityModel.id).where(TicketPriorityModel.id == priority_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def find_priority_id(self, name: str) -> Optional[int]:
        stmt = select(TicketPriorityModel.id).where(
            func.lower(TicketPriorityModel.name) == name.lower()
        )
        result = await self._session.execute(stmt)
        return result.scalars().first()


class SQLAlchemyUserRepository(IUserRepository):
    """Read-only access to helpdesk users."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def find_first_active_by_role(self, role: str) -> Optional[int]:
        """Lowest id wins so the choice is stable between passes."""
        stmt = (
            select(UserModel.id)
            .where(and_(UserModel.role == role, UserModel.is_active.is_(True)))
            .order_by(UserModel.id)
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def exists_active(self, user_id: int) -> bool:
        stmt = select(UserModel.id).where(
            and_(UserModel.id == user_id, UserModel.is_active.is_(True))
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None


class SQLAlchemySLARuleRepository(ISLARuleRepository):
    """
    SQLAlchemy implementation of the SLA rule store.

    Handles persistence of SLARule and EscalationRule entities.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_entity(model: SLARuleModel) -> SLARule:
        return SLARule(
            id=model.id,
            priority_id=model.priority_id,
            priority_name=model.priority.name if model.priority else None,
            name=model.name,
            description=model.description,
            initial_response_hours=model.initial_response_hours,
            resolution_hours=model.resolution_hours,
            escalation_levels=model.escalation_levels,
            escalation_interval_hours=model.escalation_interval_hours,
            is_active=model.is_active,
            created_at=as_utc(model.created_at),
            updated_at=as_utc(model.updated_at),
        )

    @staticmethod
    def _to_escalation_entity(model: EscalationRuleModel) -> EscalationRule:
        return EscalationRule(
            id=model.id,
            sla_rule_id=model.sla_rule_id,
            escalation_level=model.escalation_level,
            escalate_to_user_id=model.escalate_to_user_id,
            escalate_to_role=model.escalate_to_role,
            is_active=model.is_active,
            created_at=as_utc(model.created_at),
        )

    async def _get_model(self, rule_id: int) -> Optional[SLARuleModel]:
        stmt = (
            select(SLARuleModel)
            .where(SLARuleModel.id == rule_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id(self, rule_id: int) -> Optional[SLARule]:
        model = await self._get_model(rule_id)
        return self._to_entity(model) if model else None

    async def get_active_by_priority(self, priority_id: int) -> Optional[SLARule]:
        stmt = select(SLARuleModel).where(
            and_(SLARuleModel.priority_id == priority_id, SLARuleModel.is_active.is_(True))
        ).execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        model = result.scalars().first()
        return self._to_entity(model) if model else None

    async def list_active(self) -> List[SLARule]:
        stmt = (
            select(SLARuleModel)
            .where(SLARuleModel.is_active.is_(True))
            .order_by(SLARuleModel.priority_id)
            .execution_options(populate_existing=True)
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException("Failed to load SLA rules", {"error": str(e)})

        return [self._to_entity(m) for m in result.scalars().all()]

    async def create(self, rule: SLARule) -> SLARule:
        """Create new rule."""
        model = SLARuleModel(
            priority_id=rule.priority_id,
            name=rule.name,
            description=rule.description,
            initial_response_hours=rule.initial_response_hours,
            resolution_hours=rule.resolution_hours,
            escalation_levels=rule.escalation_levels,
            escalation_interval_hours=rule.escalation_interval_hours,
            is_active=rule.is_active,
        )

        try:
            async with self._session.begin_nested():
                self._session.add(model)
                await self._session.flush()
        except IntegrityError:
            raise ConflictException(
                f"Priority {rule.priority_id} already has an active SLA rule"
            )

        return await self.get_by_id(model.id)

    async def update(self, rule: SLARule) -> SLARule:
        """Update existing rule."""
        model = await self._get_model(rule.id)
        if not model:
            raise RepositoryException(f"SLA rule {rule.id} not found")

        model.name = rule.name
        model.description = rule.description
        model.initial_response_hours = rule.initial_response_hours
        model.resolution_hours = rule.resolution_hours
        model.escalation_levels = rule.escalation_levels
        model.escalation_interval_hours = rule.escalation_interval_hours
        model.is_active = rule.is_active
        model.updated_at = datetime.now(timezone.utc)

        try:
            async with self._session.begin_nested():
                await self._session.flush()
        except IntegrityError:
            raise ConflictException(
                f"Priority {rule.priority_id} already has an active SLA rule"
            )

        return await self.get_by_id(rule.id)

    async def delete(self, rule_id: int) -> bool:
        """
        Delete a rule and its escalation routing.

        Violations survive with ``rule_id`` set to NULL.
        """
        model = await self._get_model(rule_id)
        if not model:
            return False

        await self._session.execute(
            update(SLAViolationModel)
            .where(SLAViolationModel.rule_id == rule_id)
            .values(rule_id=None)
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(
            delete(EscalationRuleModel)
            .where(EscalationRuleModel.sla_rule_id == rule_id)
            .execution_options(synchronize_session=False)
        )
        await self._session.delete(model)
        await self._session.flush()
        return True

    async def list_escalation_rules(self, sla_rule_id: int) -> List[EscalationRule]:
        stmt = (
            select(EscalationRuleModel)
            .where(EscalationRuleModel.sla_rule_id == sla_rule_id)
            .order_by(EscalationRuleModel.escalation_level, EscalationRuleModel.id)
        )
        result = await self._session.execute(stmt)
        return [self._to_escalation_entity(m) for m in result.scalars().all()]

    async def get_escalation_rule(self, sla_rule_id: int, level: int) -> Optional[EscalationRule]:
        stmt = (
            select(EscalationRuleModel)
            .where(and_(
                EscalationRuleModel.sla_rule_id == sla_rule_id,
                EscalationRuleModel.escalation_level == level,
                EscalationRuleModel.is_active.is_(True),
            ))
            .order_by(EscalationRuleModel.id)
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_escalation_entity(model) if model else None

    async def create_escalation_rule(self, rule: EscalationRule) -> EscalationRule:
        model = EscalationRuleModel(
            sla_rule_id=rule.sla_rule_id,
            escalation_level=rule.escalation_level,
            escalate_to_user_id=rule.escalate_to_user_id,
            escalate_to_role=rule.escalate_to_role,
            is_active=rule.is_active,
        )
        self._session.add(model)
        await self._session.flush()
        return self._to_escalation_entity(model)

    async def deactivate_escalation_rule(self, escalation_rule_id: int) -> Optional[EscalationRule]:
        model = await self._session.get(EscalationRuleModel, escalation_rule_id)
        if not model:
            return None

        model.is_active = False
        await self._session.flush()
        return self._to_escalation_entity(model)


class SQLAlchemyViolationRepository(ISLAViolationRepository):
    """
    SQLAlchemy implementation of SLA violation repository.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_entity(model: SLAViolationModel) -> SLAViolation:
        return SLAViolation(
            id=model.id,
            ticket_id=model.ticket_id,
            rule_id=model.rule_id,
            violation_type=model.violation_type,
            expected_time=as_utc(model.expected_time),
            actual_time=as_utc(model.actual_time),
            violation_duration_hours=model.violation_duration_hours,
            is_resolved=model.is_resolved,
            resolved_at=as_utc(model.resolved_at),
            created_at=as_utc(model.created_at),
        )

    async def get_by_id(self, violation_id: int) -> Optional[SLAViolation]:
        stmt = (
            select(SLAViolationModel)
            .where(SLAViolationModel.id == violation_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list(self, filters: dict) -> List[SLAViolation]:
        stmt = select(SLAViolationModel).execution_options(populate_existing=True)

        conditions = []
        if "is_resolved" in filters:
            conditions.append(SLAViolationModel.is_resolved.is_(bool(filters["is_resolved"])))
        if "violation_type" in filters:
            conditions.append(SLAViolationModel.violation_type == filters["violation_type"])
        if "ticket_id" in filters:
            conditions.append(SLAViolationModel.ticket_id == filters["ticket_id"])

        if conditions:
            stmt = stmt.where(and_(*conditions))

        stmt = stmt.order_by(SLAViolationModel.created_at.desc(), SLAViolationModel.id.desc())

        result = await self._session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_unresolved(self) -> List[SLAViolation]:
        stmt = (
            select(SLAViolationModel)
            .where(SLAViolationModel.is_resolved.is_(False))
            .order_by(SLAViolationModel.id)
            .execution_options(populate_existing=True)
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException("Failed to load unresolved violations", {"error": str(e)})

        return [self._to_entity(m) for m in result.scalars().all()]

    async def get_unresolved(self, ticket_id: int, violation_type: str) -> Optional[SLAViolation]:
        stmt = select(SLAViolationModel).where(and_(
            SLAViolationModel.ticket_id == ticket_id,
            SLAViolationModel.violation_type == violation_type,
            SLAViolationModel.is_resolved.is_(False),
        )).execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        model = result.scalars().first()
        return self._to_entity(model) if model else None

    async def create(self, violation: SLAViolation) -> Optional[SLAViolation]:
        """
        Create violation.

        Returns None when an unresolved violation of the same type already
        exists for the ticket.
        """
        model = SLAViolationModel(
            ticket_id=violation.ticket_id,
            rule_id=violation.rule_id,
            violation_type=violation.violation_type,
            expected_time=violation.expected_time,
            actual_time=violation.actual_time,
            violation_duration_hours=violation.violation_duration_hours,
            is_resolved=False,
        )

        try:
            async with self._session.begin_nested():
                self._session.add(model)
                await self._session.flush()
        except IntegrityError:
            logger.debug(
                "Unresolved violation already recorded",
                extra={"ticket_id": violation.ticket_id, "violation_type": violation.violation_type}
            )
            return None

        return self._to_entity(model)

    async def mark_resolved(self, violation_id: int, resolved_at: datetime) -> Optional[SLAViolation]:
        await self._session.execute(
            update(SLAViolationModel)
            .where(and_(
                SLAViolationModel.id == violation_id,
                SLAViolationModel.is_resolved.is_(False),
            ))
            .values(is_resolved=True, resolved_at=resolved_at)
            .execution_options(synchronize_session=False)
        )
        return await self.get_by_id(violation_id)

    async def resolve_for_ticket_statuses(self, statuses: Sequence[str], resolved_at: datetime) -> int:
        ticket_ids = select(TicketModel.id).where(TicketModel.status.in_(list(statuses)))
        result = await self._session.execute(
            update(SLAViolationModel)
            .where(and_(
                SLAViolationModel.is_resolved.is_(False),
                SLAViolationModel.ticket_id.in_(ticket_ids),
            ))
            .values(is_resolved=True, resolved_at=resolved_at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def delete_resolved_before(self, cutoff: datetime) -> int:
        # Escalations pointing at a purged violation keep their history
        purged = select(SLAViolationModel.id).where(and_(
            SLAViolationModel.is_resolved.is_(True),
            SLAViolationModel.created_at < cutoff,
        ))
        await self._session.execute(
            update(EscalationHistoryModel)
            .where(EscalationHistoryModel.violation_id.in_(purged))
            .values(violation_id=None)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(
            delete(SLAViolationModel)
            .where(and_(
                SLAViolationModel.is_resolved.is_(True),
                SLAViolationModel.created_at < cutoff,
            ))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0


class SQLAlchemyEscalationRepository(IEscalationRepository):
    """
    SQLAlchemy implementation of escalation history repository.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_entity(model: EscalationHistoryModel) -> EscalationRecord:
        return EscalationRecord(
            id=model.id,
            ticket_id=model.ticket_id,
            violation_id=model.violation_id,
            escalation_level=model.escalation_level,
            escalated_to_user_id=model.escalated_to_user_id,
            escalation_reason=model.escalation_reason,
            escalation_time=as_utc(model.escalation_time),
            is_resolved=model.is_resolved,
            resolved_at=as_utc(model.resolved_at),
            resolved_by_user_id=model.resolved_by_user_id,
        )

    async def get_by_id(self, escalation_id: int) -> Optional[EscalationRecord]:
        stmt = (
            select(EscalationHistoryModel)
            .where(EscalationHistoryModel.id == escalation_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list(self, filters: dict) -> List[EscalationRecord]:
        stmt = select(EscalationHistoryModel).execution_options(populate_existing=True)

        conditions = []
        if "is_resolved" in filters:
            conditions.append(EscalationHistoryModel.is_resolved.is_(bool(filters["is_resolved"])))
        if "ticket_id" in filters:
            conditions.append(EscalationHistoryModel.ticket_id == filters["ticket_id"])

        if conditions:
            stmt = stmt.where(and_(*conditions))

        stmt = stmt.order_by(
            EscalationHistoryModel.escalation_time.desc(), EscalationHistoryModel.id.desc()
        )

        result = await self._session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def get_unresolved(self, ticket_id: int, level: int) -> Optional[EscalationRecord]:
        stmt = select(EscalationHistoryModel).where(and_(
            EscalationHistoryModel.ticket_id == ticket_id,
            EscalationHistoryModel.escalation_level == level,
            EscalationHistoryModel.is_resolved.is_(False),
        )).execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        model = result.scalars().first()
        return self._to_entity(model) if model else None

    async def create(self, record: EscalationRecord) -> Optional[EscalationRecord]:
        """
        Create escalation.

        Returns None when the ticket already has an unresolved escalation
        at this level.
        """
        model = EscalationHistoryModel(
            ticket_id=record.ticket_id,
            violation_id=record.violation_id,
            escalation_level=record.escalation_level,
            escalated_to_user_id=record.escalated_to_user_id,
            escalation_reason=record.escalation_reason,
            escalation_time=record.escalation_time,
            is_resolved=False,
        )

        try:
            async with self._session.begin_nested():
                self._session.add(model)
                await self._session.flush()
        except IntegrityError:
            logger.debug(
                "Unresolved escalation already recorded",
                extra={"ticket_id": record.ticket_id, "escalation_level": record.escalation_level}
            )
            return None

        return self._to_entity(model)

    async def mark_resolved(
        self, escalation_id: int, resolved_at: datetime, resolved_by: Optional[int]
    ) -> Optional[EscalationRecord]:
        await self._session.execute(
            update(EscalationHistoryModel)
            .where(and_(
                EscalationHistoryModel.id == escalation_id,
                EscalationHistoryModel.is_resolved.is_(False),
            ))
            .values(is_resolved=True, resolved_at=resolved_at, resolved_by_user_id=resolved_by)
            .execution_options(synchronize_session=False)
        )
        return await self.get_by_id(escalation_id)

    async def resolve_for_ticket_statuses(self, statuses: Sequence[str], resolved_at: datetime) -> int:
        ticket_ids = select(TicketModel.id).where(TicketModel.status.in_(list(statuses)))
        result = await self._session.execute(
            update(EscalationHistoryModel)
            .where(and_(
                EscalationHistoryModel.is_resolved.is_(False),
                EscalationHistoryModel.ticket_id.in_(ticket_ids),
            ))
            .values(is_resolved=True, resolved_at=resolved_at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0


class SQLAlchemyNotificationRepository(INotificationRepository):
    """
    SQLAlchemy implementation of SLA notification repository.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_entity(model: SLANotificationModel) -> Notification:
        return Notification(
            id=model.id,
            ticket_id=model.ticket_id,
            notification_type=model.notification_type,
            message=model.message,
            sent_to_user_id=model.sent_to_user_id,
            sent_at=as_utc(model.sent_at),
            is_read=model.is_read,
            read_at=as_utc(model.read_at),
        )

    async def create(self, notification: Notification) -> Notification:
        model = SLANotificationModel(
            ticket_id=notification.ticket_id,
            notification_type=notification.notification_type,
            message=notification.message,
            sent_to_user_id=notification.sent_to_user_id,
            sent_at=notification.sent_at,
            is_read=False,
        )
        self._session.add(model)
        await self._session.flush()
        return self._to_entity(model)

    async def get_by_id(self, notification_id: int) -> Optional[Notification]:
        stmt = (
            select(SLANotificationModel)
            .where(SLANotificationModel.id == notification_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list(self, filters: dict) -> List[Notification]:
        stmt = select(SLANotificationModel).execution_options(populate_existing=True)

        conditions = []
        if "is_read" in filters:
            conditions.append(SLANotificationModel.is_read.is_(bool(filters["is_read"])))
        if "notification_type" in filters:
            conditions.append(SLANotificationModel.notification_type == filters["notification_type"])
        if "sent_to_user_id" in filters:
            conditions.append(SLANotificationModel.sent_to_user_id == filters["sent_to_user_id"])

        if conditions:
            stmt = stmt.where(and_(*conditions))

        stmt = stmt.order_by(SLANotificationModel.sent_at.desc(), SLANotificationModel.id.desc())

        result = await self._session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def mark_read(self, notification_id: int, read_at: datetime) -> Optional[Notification]:
        await self._session.execute(
            update(SLANotificationModel)
            .where(and_(
                SLANotificationModel.id == notification_id,
                SLANotificationModel.is_read.is_(False),
            ))
            .values(is_read=True, read_at=read_at)
            .execution_options(synchronize_session=False)
        )
        return await self.get_by_id(notification_id)
