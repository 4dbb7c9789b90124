"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: rule store, detector, escalation calculator,
  notifier and reporter are separate services
- Dependency Inversion: depend on repository abstractions, not on SQLAlchemy

Every pass-level method accepts an optional ``now`` so that a pass is
evaluated against a single instant.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime, timedelta
from typing import AsyncContextManager, Dict, List, Optional, Sequence

from helpdesk.config import (
    NotificationType, REPORT_RANGE_DAYS, TERMINAL_STATUSES,
    VALID_NOTIFICATION_TYPES, VALID_VIOLATION_TYPES,
)
from helpdesk.core import (
    ConflictException, ResourceNotFoundException, ValidationException
)
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.shared.time import as_utc, hours_between, utcnow
from helpdesk.sla.application.dto import (
    EscalationRuleCreateDTO, SLARuleCreateDTO, SLARuleUpdateDTO
)
from helpdesk.sla.domain import (
    ComplianceReport, EscalationRecord, EscalationRule, EscalationTarget,
    ItemFailure, Notification, PassResult, PriorityCompliance, RoleTarget,
    SLACalculator, SLARule, SLARuleSeedFile, SLAViolation, TicketSnapshot,
    UserTarget,
)

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ITransactionScope(ABC):
    """Isolates the writes of one evaluated item."""

    @abstractmethod
    def savepoint(self) -> AsyncContextManager[None]:
        """Context manager that rolls back only this item's writes on error."""


class ITicketRepository(ABC):
    """Read access to helpdesk tickets and priorities."""

    @abstractmethod
    async def list_open(self) -> List[TicketSnapshot]:
        """Tickets whose status is not terminal."""

    @abstractmethod
    async def list_created_since(self, since: datetime) -> List[TicketSnapshot]:
        """Tickets created at or after ``since``."""

    @abstractmethod
    async def priority_exists(self, priority_id: int) -> bool:
        """Check that a ticket priority exists."""

    @abstractmethod
    async def find_priority_id(self, name: str) -> Optional[int]:
        """Look up a priority id by name (case-insensitive)."""


class IUserRepository(ABC):
    """Read access to helpdesk users."""

    @abstractmethod
    async def find_first_active_by_role(self, role: str) -> Optional[int]:
        """Id of the first active user holding ``role``."""

    @abstractmethod
    async def exists_active(self, user_id: int) -> bool:
        """Check that an active user with this id exists."""


class ISLARuleRepository(ABC):
    """Interface for SLA and escalation rule data access."""

    @abstractmethod
    async def get_by_id(self, rule_id: int) -> Optional[SLARule]:
        """Get rule by ID, active or not."""

    @abstractmethod
    async def get_active_by_priority(self, priority_id: int) -> Optional[SLARule]:
        """Get the active rule of a priority."""

    @abstractmethod
    async def list_active(self) -> List[SLARule]:
        """All active rules ordered by priority."""

    @abstractmethod
    async def create(self, rule: SLARule) -> SLARule:
        """Create new rule."""

    @abstractmethod
    async def update(self, rule: SLARule) -> SLARule:
        """Persist changes to an existing rule."""

    @abstractmethod
    async def delete(self, rule_id: int) -> bool:
        """Delete a rule without deleting its violations."""

    @abstractmethod
    async def list_escalation_rules(self, sla_rule_id: int) -> List[EscalationRule]:
        """Escalation rules of an SLA rule ordered by level."""

    @abstractmethod
    async def get_escalation_rule(self, sla_rule_id: int, level: int) -> Optional[EscalationRule]:
        """Active escalation rule for (rule, level)."""

    @abstractmethod
    async def create_escalation_rule(self, rule: EscalationRule) -> EscalationRule:
        """Create new escalation rule."""

    @abstractmethod
    async def deactivate_escalation_rule(self, escalation_rule_id: int) -> Optional[EscalationRule]:
        """Soft-disable an escalation rule."""


class ISLAViolationRepository(ABC):
    """Interface for SLA violation data access."""

    @abstractmethod
    async def get_by_id(self, violation_id: int) -> Optional[SLAViolation]:
        """Get violation by ID."""

    @abstractmethod
    async def list(self, filters: dict) -> List[SLAViolation]:
        """List violations, newest first."""

    @abstractmethod
    async def list_unresolved(self) -> List[SLAViolation]:
        """All violations not yet resolved."""

    @abstractmethod
    async def get_unresolved(self, ticket_id: int, violation_type: str) -> Optional[SLAViolation]:
        """The open violation of (ticket, type), if any."""

    @abstractmethod
    async def create(self, violation: SLAViolation) -> Optional[SLAViolation]:
        """Create violation; None when an open one already exists."""

    @abstractmethod
    async def mark_resolved(self, violation_id: int, resolved_at: datetime) -> Optional[SLAViolation]:
        """Resolve a violation; already-resolved ones are left untouched."""

    @abstractmethod
    async def resolve_for_ticket_statuses(self, statuses: Sequence[str], resolved_at: datetime) -> int:
        """Resolve open violations of tickets in the given statuses."""

    @abstractmethod
    async def delete_resolved_before(self, cutoff: datetime) -> int:
        """Delete resolved violations created before ``cutoff``."""


class IEscalationRepository(ABC):
    """Interface for escalation history data access."""

    @abstractmethod
    async def get_by_id(self, escalation_id: int) -> Optional[EscalationRecord]:
        """Get escalation by ID."""

    @abstractmethod
    async def list(self, filters: dict) -> List[EscalationRecord]:
        """List escalations, newest first."""

    @abstractmethod
    async def get_unresolved(self, ticket_id: int, level: int) -> Optional[EscalationRecord]:
        """The open escalation of (ticket, level), if any."""

    @abstractmethod
    async def create(self, record: EscalationRecord) -> Optional[EscalationRecord]:
        """Create escalation; None when an open one already exists."""

    @abstractmethod
    async def mark_resolved(
        self, escalation_id: int, resolved_at: datetime, resolved_by: Optional[int]
    ) -> Optional[EscalationRecord]:
        """Resolve an escalation; already-resolved ones are left untouched."""

    @abstractmethod
    async def resolve_for_ticket_statuses(self, statuses: Sequence[str], resolved_at: datetime) -> int:
        """Resolve open escalations of tickets in the given statuses."""


class INotificationRepository(ABC):
    """Interface for SLA notification data access."""

    @abstractmethod
    async def create(self, notification: Notification) -> Notification:
        """Create new notification."""

    @abstractmethod
    async def get_by_id(self, notification_id: int) -> Optional[Notification]:
        """Get notification by ID."""

    @abstractmethod
    async def list(self, filters: dict) -> List[Notification]:
        """List notifications, newest first."""

    @abstractmethod
    async def mark_read(self, notification_id: int, read_at: datetime) -> Optional[Notification]:
        """Mark read; already-read ones are left untouched."""


# ========== Application Services ==========

class NotificationService:
    """
    Creates SLA notification records and tracks their read state.

    Delivery (email, chat, ...) is handled outside the engine.
    """

    def __init__(self, notification_repository: INotificationRepository):
        self._notification_repo = notification_repository

    async def notify(
        self,
        ticket_id: int,
        notification_type: str,
        message: str,
        recipient_user_id: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> Notification:
        """Record a notification for a ticket."""
        if notification_type not in VALID_NOTIFICATION_TYPES:
            raise ValidationException(f"Invalid notification type: {notification_type}")

        return await self._notification_repo.create(Notification(
            id=None,
            ticket_id=ticket_id,
            notification_type=notification_type,
            message=message,
            sent_to_user_id=recipient_user_id,
            sent_at=now or utcnow(),
        ))

    async def get_notification(self, notification_id: int) -> Notification:
        notification = await self._notification_repo.get_by_id(notification_id)
        if notification is None:
            raise ResourceNotFoundException("Notification", notification_id)
        return notification

    async def list_notifications(
        self,
        is_read: Optional[bool] = None,
        notification_type: Optional[str] = None,
        sent_to_user_id: Optional[int] = None
    ) -> List[Notification]:
        filters = {}
        if is_read is not None:
            filters["is_read"] = is_read
        if notification_type:
            filters["notification_type"] = notification_type
        if sent_to_user_id is not None:
            filters["sent_to_user_id"] = sent_to_user_id
        return await self._notification_repo.list(filters)

    async def mark_read(self, notification_id: int, now: Optional[datetime] = None) -> Notification:
        """Mark a notification as read. Calling it twice is harmless."""
        notification = await self._notification_repo.mark_read(notification_id, now or utcnow())
        if notification is None:
            raise ResourceNotFoundException("Notification", notification_id)
        return notification


class SLARuleService:
    """
    Rule Store: SLA rules per priority and their escalation routing.

    Enforces at most one active rule per priority.
    """

    def __init__(
        self,
        rule_repository: ISLARuleRepository,
        ticket_repository: ITicketRepository,
        user_repository: IUserRepository
    ):
        self._rule_repo = rule_repository
        self._ticket_repo = ticket_repository
        self._user_repo = user_repository

    async def list_rules(self) -> List[SLARule]:
        return await self._rule_repo.list_active()

    async def get_rule(self, rule_id: int) -> SLARule:
        rule = await self._rule_repo.get_by_id(rule_id)
        if rule is None:
            raise ResourceNotFoundException("SLA rule", rule_id)
        return rule

    async def get_rule_by_priority(self, priority_id: int) -> Optional[SLARule]:
        """Active rule for a priority, or None when the priority has none."""
        return await self._rule_repo.get_active_by_priority(priority_id)

    async def create_rule(self, data: SLARuleCreateDTO) -> SLARule:
        """
        Create a rule for a priority.

        Raises:
            ValidationException: unknown priority or invalid hours
            ConflictException: the priority already has an active rule
        """
        rule = SLARule(id=None, is_active=True, **data.model_dump())
        self._validate_rule(rule)

        if not await self._ticket_repo.priority_exists(rule.priority_id):
            raise ValidationException(f"Unknown priority id: {rule.priority_id}")
        await self._ensure_no_other_active_rule(rule)

        created = await self._rule_repo.create(rule)
        logger.info("SLA rule created", extra={"rule_id": created.id, "priority_id": created.priority_id})
        return created

    async def update_rule(self, rule_id: int, data: SLARuleUpdateDTO) -> SLARule:
        """Partially update a rule; re-activating checks priority uniqueness."""
        rule = await self.get_rule(rule_id)

        for field_name, value in data.model_dump(exclude_unset=True).items():
            if value is None and field_name != "description":
                continue
            setattr(rule, field_name, value)
        self._validate_rule(rule)

        if rule.is_active:
            await self._ensure_no_other_active_rule(rule)

        return await self._rule_repo.update(rule)

    async def delete_rule(self, rule_id: int) -> None:
        """Delete a rule. Violations it produced are kept."""
        if not await self._rule_repo.delete(rule_id):
            raise ResourceNotFoundException("SLA rule", rule_id)
        logger.info("SLA rule deleted", extra={"rule_id": rule_id})

    async def list_escalation_rules(self, rule_id: int) -> List[EscalationRule]:
        await self.get_rule(rule_id)
        return await self._rule_repo.list_escalation_rules(rule_id)

    async def create_escalation_rule(
        self, rule_id: int, data: EscalationRuleCreateDTO
    ) -> EscalationRule:
        """
        Route one escalation level of a rule to a user or a role.

        Raises:
            ValidationException: level beyond the rule, or unknown or inactive user
            ConflictException: the level is already routed
        """
        rule = await self.get_rule(rule_id)

        if data.escalation_level > rule.escalation_levels:
            raise ValidationException(
                f"Escalation level {data.escalation_level} exceeds "
                f"the rule's {rule.escalation_levels} levels"
            )
        if await self._rule_repo.get_escalation_rule(rule_id, data.escalation_level):
            raise ConflictException(
                f"Level {data.escalation_level} of SLA rule {rule_id} is already routed"
            )
        if data.escalate_to_user_id is not None and not await self._user_repo.exists_active(
            data.escalate_to_user_id
        ):
            raise ValidationException(f"Unknown user id: {data.escalate_to_user_id}")

        return await self._rule_repo.create_escalation_rule(EscalationRule(
            id=None,
            sla_rule_id=rule_id,
            escalation_level=data.escalation_level,
            escalate_to_user_id=data.escalate_to_user_id,
            escalate_to_role=data.escalate_to_role,
        ))

    async def deactivate_escalation_rule(self, escalation_rule_id: int) -> EscalationRule:
        rule = await self._rule_repo.deactivate_escalation_rule(escalation_rule_id)
        if rule is None:
            raise ResourceNotFoundException("Escalation rule", escalation_rule_id)
        return rule

    async def seed_defaults(self, seed: SLARuleSeedFile) -> List[SLARule]:
        """
        Insert default rules for priorities that have no active rule yet.

        Priorities missing from the helpdesk are skipped. Idempotent.
        """
        created = []

        for rule_seed in seed.rules:
            priority_id = await self._ticket_repo.find_priority_id(rule_seed.priority)
            if priority_id is None:
                logger.warning("Skipping default rule for unknown priority",
                               extra={"priority": rule_seed.priority})
                continue
            if await self._rule_repo.get_active_by_priority(priority_id):
                continue

            rule = await self._rule_repo.create(SLARule(
                id=None,
                priority_id=priority_id,
                name=rule_seed.name,
                description=rule_seed.description,
                initial_response_hours=rule_seed.initial_response_hours,
                resolution_hours=rule_seed.resolution_hours,
                escalation_levels=rule_seed.escalation_levels,
                escalation_interval_hours=rule_seed.escalation_interval_hours,
            ))
            for esc in rule_seed.escalations:
                await self._rule_repo.create_escalation_rule(EscalationRule(
                    id=None,
                    sla_rule_id=rule.id,
                    escalation_level=esc.level,
                    escalate_to_user_id=esc.user_id,
                    escalate_to_role=esc.role,
                ))
            created.append(rule)

        logger.info("Default SLA rules seeded", extra={"rules_created": len(created)})
        return created

    @staticmethod
    def _validate_rule(rule: SLARule) -> None:
        if rule.initial_response_hours is None or rule.initial_response_hours <= 0:
            raise ValidationException("initial_response_hours must be positive")
        if rule.resolution_hours is None or rule.resolution_hours <= 0:
            raise ValidationException("resolution_hours must be positive")
        if rule.escalation_levels is None or rule.escalation_levels < 1:
            raise ValidationException("escalation_levels must be at least 1")
        if rule.escalation_interval_hours is None or rule.escalation_interval_hours <= 0:
            raise ValidationException("escalation_interval_hours must be positive")

    async def _ensure_no_other_active_rule(self, rule: SLARule) -> None:
        existing = await self._rule_repo.get_active_by_priority(rule.priority_id)
        if existing is not None and existing.id != rule.id:
            raise ConflictException(
                f"Priority {rule.priority_id} already has active SLA rule {existing.id}"
            )


class ViolationDetectionService:
    """
    Violation Detector.

    Scans open tickets and records a violation the first time each of the
    response / resolution deadlines is crossed.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        rule_repository: ISLARuleRepository,
        violation_repository: ISLAViolationRepository,
        escalation_repository: IEscalationRepository,
        notifier: NotificationService,
        scope: ITransactionScope
    ):
        self._ticket_repo = ticket_repository
        self._rule_repo = rule_repository
        self._violation_repo = violation_repository
        self._escalation_repo = escalation_repository
        self._notifier = notifier
        self._scope = scope

    async def check_violations(self, now: Optional[datetime] = None) -> PassResult[SLAViolation]:
        """
        Run one detection pass over all open tickets.

        Tickets without an active rule are skipped. A failure on one ticket
        is rolled back, logged and reported; the other tickets still run.

        Raises:
            RepositoryException: if the ticket or rule set cannot be loaded
        """
        now = as_utc(now) if now else utcnow()
        result: PassResult[SLAViolation] = PassResult()

        await self._resolve_for_terminal_tickets(now, result)

        rules = {rule.priority_id: rule for rule in await self._rule_repo.list_active()}
        tickets = await self._ticket_repo.list_open()

        for ticket in tickets:
            rule = rules.get(ticket.priority_id)
            if rule is None or ticket.is_terminal:
                continue

            result.evaluated += 1
            try:
                async with self._scope.savepoint():
                    created = await self._evaluate_ticket(ticket, rule, now)
            except Exception as e:
                logger.error(
                    "Violation check failed for ticket",
                    extra={"ticket_id": ticket.id, "error": str(e)},
                    exc_info=True
                )
                result.failed.append(ItemFailure("ticket", ticket.id, str(e)))
                continue

            result.created.extend(created)

        logger.info(
            "Violation check complete",
            extra={
                "tickets_evaluated": result.evaluated,
                "violations_created": len(result.created),
                "tickets_failed": len(result.failed)
            }
        )
        return result

    async def _evaluate_ticket(
        self,
        ticket: TicketSnapshot,
        rule: SLARule,
        now: datetime
    ) -> List[SLAViolation]:
        """Check both clocks of one ticket."""
        created = []

        for violation_type in VALID_VIOLATION_TYPES:
            expected = rule.deadline_for(ticket, violation_type)
            if not SLACalculator.is_breached(expected, now):
                continue

            if await self._violation_repo.get_unresolved(ticket.id, violation_type):
                continue

            violation = await self._violation_repo.create(SLAViolation(
                id=None,
                ticket_id=ticket.id,
                rule_id=rule.id,
                violation_type=violation_type,
                expected_time=expected,
                actual_time=now,
                violation_duration_hours=hours_between(expected, now),
            ))
            if violation is None:
                # Another pass recorded it first
                continue

            await self._notifier.notify(
                ticket.id,
                NotificationType.BREACH,
                f"SLA {violation_type} violation detected for ticket {ticket.id}",
                None,
                now=now
            )
            created.append(violation)

        return created

    async def _resolve_for_terminal_tickets(
        self, now: datetime, result: PassResult[SLAViolation]
    ) -> None:
        """Close out violations and escalations of tickets that reached a terminal status."""
        try:
            async with self._scope.savepoint():
                violations = await self._violation_repo.resolve_for_ticket_statuses(
                    TERMINAL_STATUSES, now
                )
                escalations = await self._escalation_repo.resolve_for_ticket_statuses(
                    TERMINAL_STATUSES, now
                )
        except Exception as e:
            logger.error("Terminal ticket sweep failed", extra={"error": str(e)}, exc_info=True)
            result.failed.append(ItemFailure("terminal_sweep", None, str(e)))
            return

        if violations or escalations:
            logger.info(
                "Resolved SLA records of closed tickets",
                extra={"violations_resolved": violations, "escalations_resolved": escalations}
            )

    async def get_violation(self, violation_id: int) -> SLAViolation:
        violation = await self._violation_repo.get_by_id(violation_id)
        if violation is None:
            raise ResourceNotFoundException("SLA violation", violation_id)
        return violation

    async def list_violations(
        self,
        is_resolved: Optional[bool] = None,
        violation_type: Optional[str] = None,
        ticket_id: Optional[int] = None
    ) -> List[SLAViolation]:
        filters = {}
        if is_resolved is not None:
            filters["is_resolved"] = is_resolved
        if violation_type:
            filters["violation_type"] = violation_type
        if ticket_id is not None:
            filters["ticket_id"] = ticket_id
        return await self._violation_repo.list(filters)

    async def resolve_violation(
        self,
        violation_id: int,
        resolved_by: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> SLAViolation:
        """Resolve a violation. Resolving twice is a no-op."""
        violation = await self._violation_repo.mark_resolved(violation_id, now or utcnow())
        if violation is None:
            raise ResourceNotFoundException("SLA violation", violation_id)
        logger.info(
            "SLA violation resolved",
            extra={"violation_id": violation_id, "resolved_by": resolved_by}
        )
        return violation

    async def cleanup_old_violations(
        self, days_to_keep: int = 90, now: Optional[datetime] = None
    ) -> int:
        """Delete resolved violations older than ``days_to_keep`` days."""
        if days_to_keep < 1:
            raise ValidationException("days_to_keep must be at least 1")
        cutoff = (now or utcnow()) - timedelta(days=days_to_keep)
        deleted = await self._violation_repo.delete_resolved_before(cutoff)
        logger.info("Old SLA violations deleted", extra={"deleted": deleted, "days_to_keep": days_to_keep})
        return deleted


class EscalationService:
    """
    Escalation Calculator.

    Turns the overdue time of every open violation into an escalation level
    and routes the ticket to that level's target once.
    """

    def __init__(
        self,
        violation_repository: ISLAViolationRepository,
        rule_repository: ISLARuleRepository,
        escalation_repository: IEscalationRepository,
        user_repository: IUserRepository,
        notifier: NotificationService,
        scope: ITransactionScope
    ):
        self._violation_repo = violation_repository
        self._rule_repo = rule_repository
        self._escalation_repo = escalation_repository
        self._user_repo = user_repository
        self._notifier = notifier
        self._scope = scope

    @staticmethod
    def calculate_escalation_level(
        violation: SLAViolation,
        rule: Optional[SLARule],
        now: datetime
    ) -> int:
        """
        Current escalation level of a violation.

        Overdue time is measured at ``now``, not at detection time.
        """
        if rule is None:
            return 0
        return SLACalculator.calculate_escalation_level(
            violation.overdue_hours(now), rule.escalation_interval_hours
        )

    async def resolve_target(self, target: EscalationTarget) -> Optional[int]:
        """User id an escalation target points at, or None."""
        if isinstance(target, UserTarget):
            return target.user_id
        if isinstance(target, RoleTarget):
            return await self._user_repo.find_first_active_by_role(target.role)
        return None

    async def check_escalations(self, now: Optional[datetime] = None) -> PassResult[EscalationRecord]:
        """
        Run one escalation pass over all unresolved violations.

        Only the current level is escalated; levels skipped by a late pass
        are not backfilled.

        Raises:
            RepositoryException: if the violation set cannot be loaded
        """
        now = as_utc(now) if now else utcnow()
        result: PassResult[EscalationRecord] = PassResult()
        rules: Dict[int, Optional[SLARule]] = {}

        for violation in await self._violation_repo.list_unresolved():
            result.evaluated += 1
            try:
                async with self._scope.savepoint():
                    if violation.rule_id is not None and violation.rule_id not in rules:
                        rules[violation.rule_id] = await self._rule_repo.get_by_id(violation.rule_id)
                    record = await self._escalate(violation, rules.get(violation.rule_id), now)
            except Exception as e:
                logger.error(
                    "Escalation check failed for violation",
                    extra={"violation_id": violation.id, "ticket_id": violation.ticket_id, "error": str(e)},
                    exc_info=True
                )
                result.failed.append(ItemFailure("violation", violation.id, str(e)))
                continue

            if record is not None:
                result.created.append(record)

        logger.info(
            "Escalation check complete",
            extra={
                "violations_evaluated": result.evaluated,
                "escalations_triggered": len(result.created),
                "violations_failed": len(result.failed)
            }
        )
        return result

    async def _escalate(
        self,
        violation: SLAViolation,
        rule: Optional[SLARule],
        now: datetime
    ) -> Optional[EscalationRecord]:
        """Escalate one violation to its current level if not done yet."""
        level = self.calculate_escalation_level(violation, rule, now)
        if level == 0:
            return None

        if await self._escalation_repo.get_unresolved(violation.ticket_id, level):
            return None

        escalation_rule = await self._rule_repo.get_escalation_rule(rule.id, level)
        if escalation_rule is None:
            logger.debug("No escalation rule for level",
                         extra={"rule_id": rule.id, "escalation_level": level})
            return None

        user_id = await self.resolve_target(escalation_rule.target)
        if user_id is None:
            logger.debug("Escalation target resolved to no user",
                         extra={"escalation_rule_id": escalation_rule.id, "escalation_level": level})
            return None

        record = await self._escalation_repo.create(EscalationRecord(
            id=None,
            ticket_id=violation.ticket_id,
            violation_id=violation.id,
            escalation_level=level,
            escalated_to_user_id=user_id,
            escalation_reason=SLACalculator.escalation_reason(
                violation.violation_type, violation.overdue_hours(now)
            ),
            escalation_time=now,
        ))
        if record is None:
            return None

        await self._notifier.notify(
            violation.ticket_id,
            NotificationType.ESCALATION,
            f"Ticket {violation.ticket_id} escalated to level {level} "
            f"due to SLA {violation.violation_type} violation",
            user_id,
            now=now
        )
        return record

    async def get_escalation(self, escalation_id: int) -> EscalationRecord:
        record = await self._escalation_repo.get_by_id(escalation_id)
        if record is None:
            raise ResourceNotFoundException("Escalation", escalation_id)
        return record

    async def list_escalations(
        self,
        is_resolved: Optional[bool] = None,
        ticket_id: Optional[int] = None
    ) -> List[EscalationRecord]:
        filters = {}
        if is_resolved is not None:
            filters["is_resolved"] = is_resolved
        if ticket_id is not None:
            filters["ticket_id"] = ticket_id
        return await self._escalation_repo.list(filters)

    async def resolve_escalation(
        self,
        escalation_id: int,
        resolved_by: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> EscalationRecord:
        """Resolve an escalation. Resolving twice is a no-op."""
        record = await self._escalation_repo.mark_resolved(escalation_id, now or utcnow(), resolved_by)
        if record is None:
            raise ResourceNotFoundException("Escalation", escalation_id)
        return record


class ComplianceReportService:
    """
    Compliance Reporter: read-only aggregation of tickets against rules.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        rule_repository: ISLARuleRepository
    ):
        self._ticket_repo = ticket_repository
        self._rule_repo = rule_repository

    async def get_compliance_report(
        self,
        time_range: str = "30d",
        now: Optional[datetime] = None
    ) -> ComplianceReport:
        """
        Compliance of tickets created within ``time_range`` of ``now``.

        Response violations reuse the total elapsed time, which overstates
        them for tickets that got a quick first answer.
        """
        if time_range not in REPORT_RANGE_DAYS:
            raise ValidationException(f"Invalid time range: {time_range}")

        now = as_utc(now) if now else utcnow()
        start_date = SLACalculator.report_start(time_range, now)

        rules = {rule.priority_id: rule for rule in await self._rule_repo.list_active()}
        tickets = await self._ticket_repo.list_created_since(start_date)

        total = compliant = response_violations = resolution_violations = 0
        resolved_hours: List[float] = []
        by_priority: Dict[str, PriorityCompliance] = defaultdict(PriorityCompliance)

        for ticket in tickets:
            rule = rules.get(ticket.priority_id)
            if rule is None:
                continue

            actual_hours = hours_between(ticket.created_at, ticket.resolved_at or now)
            total += 1
            breakdown = by_priority[ticket.priority_name or str(ticket.priority_id)]
            breakdown.total += 1

            if actual_hours <= rule.resolution_hours:
                compliant += 1
            else:
                resolution_violations += 1
                breakdown.violations += 1

            if actual_hours > rule.initial_response_hours:
                response_violations += 1

            if ticket.resolved_at is not None:
                resolved_hours.append(actual_hours)

        compliance_rate = (compliant / total * 100) if total > 0 else 0.0
        average_resolution = (sum(resolved_hours) / len(resolved_hours)) if resolved_hours else 0.0

        return ComplianceReport(
            time_range=time_range,
            start_date=start_date,
            generated_at=now,
            total_tickets=total,
            compliant_tickets=compliant,
            response_violations=response_violations,
            resolution_violations=resolution_violations,
            compliance_rate=round(compliance_rate, 2),
            average_resolution_time=round(average_resolution, 2),
            violations_by_priority=dict(by_priority),
        )


class SLAEngine:
    """
    One scheduler tick: detect violations, then escalate.
    """

    def __init__(
        self,
        detector: ViolationDetectionService,
        escalator: EscalationService
    ):
        self._detector = detector
        self._escalator = escalator

    async def run_pass(self, now: Optional[datetime] = None) -> dict:
        """Run detector and calculator against the same instant."""
        now = as_utc(now) if now else utcnow()

        violations = await self._detector.check_violations(now)
        escalations = await self._escalator.check_escalations(now)

        return {
            "tickets_evaluated": violations.evaluated,
            "violations_created": len(violations.created),
            "violations_evaluated": escalations.evaluated,
            "escalations_triggered": len(escalations.created),
            "failed": len(violations.failed) + len(escalations.failed),
        }
