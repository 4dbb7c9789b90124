"""Violation detection against a SQLite-backed store."""

from datetime import timedelta

import pytest
from sqlalchemy import select, update

from helpdesk.core import RepositoryException, ResourceNotFoundException
from helpdesk.sla.application import NotificationService, ViolationDetectionService
from helpdesk.sla.infrastructure.models import (
    EscalationHistoryModel, SLAViolationModel, TicketModel
)
from helpdesk.sla.infrastructure.repositories import (
    SQLAlchemyEscalationRepository, SQLAlchemyNotificationRepository,
    SQLAlchemySavepointScope, SQLAlchemySLARuleRepository,
    SQLAlchemyTicketRepository, SQLAlchemyViolationRepository,
)
from helpdesk.sla.services import build_notification_service, build_violation_service
from tests.factories import NOW, add_priority, add_rule, add_ticket, hours_ago


def test_resolution_violation_just_after_deadline(run_db):
    async def scenario(maker):
        async with maker() as session:
            priority_id = await add_priority(session)
            await add_rule(session, priority_id, resolution_hours=4)
            late = await add_ticket(session, priority_id, NOW - timedelta(hours=4, minutes=1))
            await add_ticket(session, priority_id, NOW - timedelta(hours=3, minutes=59))
            await session.commit()

            result = await build_violation_service(session).check_violations(NOW)
            await session.commit()

            notifications = await build_notification_service(session).list_notifications()
            return late, result, notifications

    late, result, notifications = run_db(scenario)

    assert result.evaluated == 2
    assert not result.has_failures
    assert len(result.created) == 1

    violation = result.created[0]
    assert violation.ticket_id == late
    assert violation.violation_type == "resolution"
    assert violation.violation_duration_hours == pytest.approx(1 / 60, abs=1e-3)
    assert violation.expected_time == NOW - timedelta(minutes=1)
    assert violation.actual_time == NOW

    assert len(notifications) == 1
    assert notifications[0].notification_type == "breach"
    assert notifications[0].sent_to_user_id is None
    assert notifications[0].message == f"SLA resolution violation detected for ticket {late}"


def test_both_clocks_can_breach(run_db):
    async def scenario(maker):
        async with maker() as session:
            priority_id = await add_priority(session)
            await add_rule(session, priority_id, initial_response_hours=1, resolution_hours=2)
            await add_ticket(session, priority_id, hours_ago(3))
            await session.commit()

            result = await build_violation_service(session).check_violations(NOW)
            return sorted(v.violation_type for v in result.created)

    assert run_db(scenario) == ["resolution", "response"]


def test_repeated_checks_keep_one_open_violation(run_db):
    async def scenario(maker):
        async with maker() as session:
            priority_id = await add_priority(session)
            await add_rule(session, priority_id, resolution_hours=4)
            await add_ticket(session, priority_id, hours_ago(6))
            await session.commit()

            service = build_violation_service(session)
            first = await service.check_violations(NOW)
            await session.commit()
            second = await service.check_violations(NOW + timedelta(hours=1))
            await session.commit()

            open_violations = await service.list_violations(is_resolved=False)
            return first, second, open_violations

    first, second, open_violations = run_db(scenario)

    assert len(first.created) == 1
    assert second.created == []
    assert len(open_violations) == 1


def test_store_rejects_second_open_violation(run_db):
    async def scenario(maker):
        async with maker() as session:
            priority_id = await add_priority(session)
            rule_id = await add_rule(session, priority_id)
            ticket_id = await add_ticket(session, priority_id, hours_ago(6))

            repo = SQLAlchemyViolationRepository(session)
            violation = (await build_violation_service(session).check_violations(NOW)).created[0]
            violation.id = None
            violation.rule_id = rule_id
            duplicate = await repo.create(violation)
            await session.commit()

            count = len(await repo.list({"ticket_id": ticket_id}))
            return duplicate, count

    duplicate, count = run_db(scenario)

    assert duplicate is None
    assert count == 1


@pytest.mark.parametrize("status", ["resolved", "closed", "cancelled"])
def test_terminal_tickets_are_not_evaluated(run_db, status):
    async def scenario(maker):
        async with maker() as session:
            priority_id = await add_priority(session)
            await add_rule(session, priority_id, resolution_hours=1)
            await add_ticket(session, priority_id, hours_ago(48), status=status)
            await session.commit()

            return await build_violation_service(session).check_violations(NOW)

    result = run_db(scenario)

    assert result.evaluated == 0
    assert result.created == []


def test_tickets_without_active_rule_are_skipped(run_db):
    async def scenario(maker):
        async with maker() as session:
            covered = await add_priority(session, "high")
            uncovered = await add_priority(session, "low")
            await add_rule(session, covered, resolution_hours=1)
            await add_rule(session, uncovered, resolution_hours=1, is_active=False)
            await add_ticket(session, uncovered, hours_ago(48))
            await add_ticket(session, None, hours_ago(48))
            await session.commit()

            return await build_violation_service(session).check_violations(NOW)

    result = run_db(scenario)

    assert result.evaluated == 0
    assert result.created == []


def test_closing_a_ticket_resolves_its_sla_records(run_db):
    async def scenario(maker):
        async with maker() as session:
            priority_id = await add_priority(session)
            await add_rule(session, priority_id, resolution_hours=2)
            ticket_id = await add_ticket(session, priority_id, hours_ago(5))
            await session.commit()

            service = build_violation_service(session)
            violation = (await service.check_violations(NOW)).created[0]
            session.add(EscalationHistoryModel(
                ticket_id=ticket_id,
                violation_id=violation.id,
                escalation_level=1,
                escalated_to_user_id=None,
                escalation_reason="SLA resolution violation - 3.0 hours overdue",
                escalation_time=NOW,
            ))
            await session.commit()

            await session.execute(
                update(TicketModel).where(TicketModel.id == ticket_id).values(status="closed")
            )
            await session.commit()

            later = NOW + timedelta(hours=1)
            await service.check_violations(later)
            await session.commit()

            resolved = await service.get_violation(violation.id)
            escalation = (await session.execute(
                select(EscalationHistoryModel).execution_options(populate_existing=True)
            )).scalar_one()
            return resolved, escalation.is_resolved, later

    resolved, escalation_resolved, later = run_db(scenario)

    assert resolved.is_resolved is True
    assert resolved.resolved_at == later
    assert escalation_resolved is True


class FailingNotificationRepository(SQLAlchemyNotificationRepository):
    """Fails after the violation row of one ticket has been written."""

    def __init__(self, session, failing_ticket_id):
        super().__init__(session)
        self._failing_ticket_id = failing_ticket_id

    async def create(self, notification):
        if notification.ticket_id == self._failing_ticket_id:
            raise RuntimeError("database is locked")
        return await super().create(notification)


def test_failing_ticket_does_not_block_others(run_db):
    async def scenario(maker):
        async with maker() as session:
            priority_id = await add_priority(session)
            await add_rule(session, priority_id, resolution_hours=1)
            broken = await add_ticket(session, priority_id, hours_ago(3))
            healthy = await add_ticket(session, priority_id, hours_ago(3))
            await session.commit()

            service = ViolationDetectionService(
                ticket_repository=SQLAlchemyTicketRepository(session),
                rule_repository=SQLAlchemySLARuleRepository(session),
                violation_repository=SQLAlchemyViolationRepository(session),
                escalation_repository=SQLAlchemyEscalationRepository(session),
                notifier=NotificationService(FailingNotificationRepository(session, broken)),
                scope=SQLAlchemySavepointScope(session),
            )
            result = await service.check_violations(NOW)
            await session.commit()

            stored = (await session.execute(select(SLAViolationModel.ticket_id))).scalars().all()
            return broken, healthy, result, stored

    broken, healthy, result, stored = run_db(scenario)

    assert [v.ticket_id for v in result.created] == [healthy]
    assert len(result.failed) == 1
    assert result.failed[0].item_type == "ticket"
    assert result.failed[0].item_id == broken
    assert "database is locked" in result.failed[0].error
    # The broken ticket's violation row was rolled back with its savepoint
    assert stored == [healthy]


class UnavailableTicketRepository(SQLAlchemyTicketRepository):
    async def list_open(self):
        raise RepositoryException("Failed to load open tickets")


def test_pass_fails_when_ticket_set_cannot_be_loaded(run_db):
    async def scenario(maker):
        async with maker() as session:
            service = ViolationDetectionService(
                ticket_repository=UnavailableTicketRepository(session),
                rule_repository=SQLAlchemySLARuleRepository(session),
                violation_repository=SQLAlchemyViolationRepository(session),
                escalation_repository=SQLAlchemyEscalationRepository(session),
                notifier=build_notification_service(session),
                scope=SQLAlchemySavepointScope(session),
            )
            with pytest.raises(RepositoryException):
                await service.check_violations(NOW)

    run_db(scenario)


def test_resolve_violation_twice_is_harmless(run_db):
    async def scenario(maker):
        async with maker() as session:
            priority_id = await add_priority(session)
            await add_rule(session, priority_id, resolution_hours=1)
            await add_ticket(session, priority_id, hours_ago(3))
            await session.commit()

            service = build_violation_service(session)
            violation = (await service.check_violations(NOW)).created[0]
            await session.commit()

            first = await service.resolve_violation(violation.id, resolved_by=5, now=NOW)
            second = await service.resolve_violation(
                violation.id, resolved_by=6, now=NOW + timedelta(hours=2)
            )
            await session.commit()

            with pytest.raises(ResourceNotFoundException):
                await service.resolve_violation(9999)
            return first, second

    first, second = run_db(scenario)

    assert first.is_resolved and second.is_resolved
    assert second.resolved_at == NOW


def test_cleanup_removes_only_old_resolved_violations(run_db):
    async def scenario(maker):
        async with maker() as session:
            priority_id = await add_priority(session)
            rule_id = await add_rule(session, priority_id)
            ticket_id = await add_ticket(session, priority_id, hours_ago(24 * 200))

            def violation(violation_type, is_resolved, age_days):
                return SLAViolationModel(
                    ticket_id=ticket_id, rule_id=rule_id, violation_type=violation_type,
                    expected_time=NOW, actual_time=NOW, violation_duration_hours=1.0,
                    is_resolved=is_resolved, created_at=NOW - timedelta(days=age_days),
                )

            session.add_all([
                violation("response", True, 120),
                violation("resolution", True, 10),
                violation("resolution", False, 120),
            ])
            await session.commit()

            service = build_violation_service(session)
            deleted = await service.cleanup_old_violations(days_to_keep=90, now=NOW)
            await session.commit()
            remaining = await service.list_violations()
            return deleted, remaining

    deleted, remaining = run_db(scenario)

    assert deleted == 1
    assert sorted((v.violation_type, v.is_resolved) for v in remaining) == [
        ("resolution", False), ("resolution", True)
    ]
