"""Compliance report aggregation."""

from datetime import timedelta

import pytest

from helpdesk.core import ValidationException
from helpdesk.sla.services import build_report_service
from tests.factories import NOW, add_priority, add_rule, add_ticket, hours_ago


async def _seed(session):
    medium = await add_priority(session, "medium")
    high = await add_priority(session, "high")
    unruled = await add_priority(session, "low")
    await add_rule(session, medium, initial_response_hours=4, resolution_hours=8)
    await add_rule(session, high, initial_response_hours=1, resolution_hours=2)

    # medium: resolved in 3h (compliant on both clocks)
    created = hours_ago(50)
    await add_ticket(session, medium, created, status="resolved", resolved_at=created + timedelta(hours=3))
    # medium: resolved in 12h (both clocks missed)
    created = hours_ago(100)
    await add_ticket(session, medium, created, status="closed", resolved_at=created + timedelta(hours=12))
    # high: still open after 10h
    await add_ticket(session, high, hours_ago(10))
    # high: resolved in 1.5h (response missed, resolution met)
    created = hours_ago(20)
    await add_ticket(session, high, created, status="resolved", resolved_at=created + timedelta(hours=1.5))
    # outside every window but 1y
    await add_ticket(session, medium, NOW - timedelta(days=40))
    # no rule for the priority
    await add_ticket(session, unruled, hours_ago(5))


def test_monthly_report(run_db):
    async def scenario(maker):
        async with maker() as session:
            await _seed(session)
            await session.commit()
            return await build_report_service(session).get_compliance_report("30d", now=NOW)

    report = run_db(scenario)

    assert report.time_range == "30d"
    assert report.start_date == NOW - timedelta(days=30)
    assert report.generated_at == NOW
    assert report.total_tickets == 4
    assert report.compliant_tickets == 2
    assert report.resolution_violations == 2
    assert report.response_violations == 3
    assert report.compliance_rate == 50.0
    # resolved tickets only: (3 + 12 + 1.5) / 3
    assert report.average_resolution_time == 5.5
    assert report.violations_by_priority["medium"].total == 2
    assert report.violations_by_priority["medium"].violations == 1
    assert report.violations_by_priority["high"].total == 2
    assert report.violations_by_priority["high"].violations == 1
    assert "low" not in report.violations_by_priority


def test_report_is_deterministic_for_fixed_now(run_db):
    async def scenario(maker):
        async with maker() as session:
            await _seed(session)
            await session.commit()
            service = build_report_service(session)
            return (
                await service.get_compliance_report("1y", now=NOW),
                await service.get_compliance_report("1y", now=NOW),
            )

    first, second = run_db(scenario)

    assert first == second
    assert first.total_tickets == 5


def test_empty_report_has_zero_rates(run_db):
    async def scenario(maker):
        async with maker() as session:
            return await build_report_service(session).get_compliance_report("7d", now=NOW)

    report = run_db(scenario)

    assert report.total_tickets == 0
    assert report.compliance_rate == 0.0
    assert report.average_resolution_time == 0.0


def test_unknown_time_range_is_rejected(run_db):
    async def scenario(maker):
        async with maker() as session:
            with pytest.raises(ValidationException):
                await build_report_service(session).get_compliance_report("2w", now=NOW)

    run_db(scenario)
