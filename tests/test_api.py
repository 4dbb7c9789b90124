"""HTTP surface of the SLA router, served through httpx's ASGI transport."""

from datetime import datetime, timedelta, timezone

from httpx import ASGITransport, AsyncClient

from helpdesk.config import settings
from helpdesk.infrastructure.database import get_session
from helpdesk.main import app
from tests.factories import add_priority, add_ticket, add_user


def _override_session(maker):
    async def _get_session():
        async with maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return _get_session


def _run_api(run_db, scenario):
    """Run ``scenario(client, maker)`` against the app bound to a fresh database."""

    async def _with_client(maker):
        app.dependency_overrides[get_session] = _override_session(maker)
        try:
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                return await scenario(client, maker)
        finally:
            app.dependency_overrides.clear()

    return run_db(_with_client)


RULE_BODY = {
    "name": "High Priority SLA",
    "initial_response_hours": 1,
    "resolution_hours": 4,
    "escalation_levels": 3,
    "escalation_interval_hours": 2,
}


def test_rule_crud(run_db):
    async def scenario(client, maker):
        async with maker() as session:
            priority_id = await add_priority(session, "high")
            await session.commit()

        created = await client.post("/sla/rules", json={**RULE_BODY, "priority_id": priority_id})
        duplicate = await client.post("/sla/rules", json={**RULE_BODY, "priority_id": priority_id})
        unknown = await client.post("/sla/rules", json={**RULE_BODY, "priority_id": 999})
        invalid = await client.post(
            "/sla/rules", json={**RULE_BODY, "priority_id": priority_id, "resolution_hours": 0}
        )
        rule_id = created.json()["id"]
        updated = await client.put(f"/sla/rules/{rule_id}", json={"resolution_hours": 6})
        listed = await client.get("/sla/rules")
        deleted = await client.delete(f"/sla/rules/{rule_id}")
        missing = await client.get(f"/sla/rules/{rule_id}")
        return created, duplicate, unknown, invalid, updated, listed, deleted, missing

    created, duplicate, unknown, invalid, updated, listed, deleted, missing = _run_api(run_db, scenario)

    assert created.status_code == 201
    assert created.json()["priority_name"] == "high"
    assert duplicate.status_code == 409
    assert unknown.status_code == 422
    assert invalid.status_code == 422
    assert updated.status_code == 200
    assert updated.json()["resolution_hours"] == 6
    assert [r["id"] for r in listed.json()] == [created.json()["id"]]
    assert deleted.status_code == 204
    assert missing.status_code == 404
    assert "not found" in missing.json()["detail"]


def test_escalation_rule_routes(run_db):
    async def scenario(client, maker):
        async with maker() as session:
            priority_id = await add_priority(session)
            await session.commit()

        rule_id = (await client.post("/sla/rules", json={**RULE_BODY, "priority_id": priority_id})).json()["id"]
        routed = await client.post(
            f"/sla/rules/{rule_id}/escalation-rules",
            json={"escalation_level": 1, "escalate_to_role": "technician"},
        )
        both = await client.post(
            f"/sla/rules/{rule_id}/escalation-rules",
            json={"escalation_level": 2, "escalate_to_role": "admin", "escalate_to_user_id": 1},
        )
        too_deep = await client.post(
            f"/sla/rules/{rule_id}/escalation-rules",
            json={"escalation_level": 4, "escalate_to_role": "admin"},
        )
        ghost = await client.post(
            f"/sla/rules/{rule_id}/escalation-rules",
            json={"escalation_level": 2, "escalate_to_user_id": 999},
        )
        off = await client.delete(f"/sla/escalation-rules/{routed.json()['id']}")
        listed = await client.get(f"/sla/rules/{rule_id}/escalation-rules")
        return routed, both, too_deep, ghost, off, listed

    routed, both, too_deep, ghost, off, listed = _run_api(run_db, scenario)

    assert routed.status_code == 201
    assert routed.json()["escalate_to_role"] == "technician"
    assert both.status_code == 422
    assert too_deep.status_code == 422
    assert ghost.status_code == 422
    assert ghost.json()["detail"] == "Unknown user id: 999"
    assert off.json()["is_active"] is False
    assert len(listed.json()) == 1


def test_check_violations_and_resolve(run_db):
    now = datetime.now(timezone.utc)

    async def scenario(client, maker):
        async with maker() as session:
            priority_id = await add_priority(session)
            ticket_id = await add_ticket(session, priority_id, now - timedelta(hours=5))
            admin = await add_user(session, "admin")
            await session.commit()

        rule_id = (await client.post("/sla/rules", json={**RULE_BODY, "priority_id": priority_id})).json()["id"]
        await client.post(
            f"/sla/rules/{rule_id}/escalation-rules",
            json={"escalation_level": 2, "escalate_to_user_id": admin},
        )

        check = await client.post("/sla/check-violations")
        again = await client.post("/sla/check-violations")
        escalations = await client.post("/sla/check-escalations")
        open_resolution = await client.get(
            "/sla/violations", params={"is_resolved": "false", "violation_type": "resolution"}
        )

        violation_id = open_resolution.json()[0]["id"]
        resolved = await client.post(
            f"/sla/violations/{violation_id}/resolve", headers={"X-User-ID": str(admin)}
        )
        resolved_again = await client.post(f"/sla/violations/{violation_id}/resolve")

        escalation_id = escalations.json()["escalations"][0]["id"]
        escalation = await client.post(
            f"/sla/escalations/{escalation_id}/resolve", headers={"X-User-ID": str(admin)}
        )
        notifications = await client.get("/sla/notifications", params={"sent_to_user_id": admin})
        read = await client.post(f"/sla/notifications/{notifications.json()[0]['id']}/read")
        return ticket_id, admin, check, again, escalations, resolved, resolved_again, escalation, read

    (ticket_id, admin, check, again, escalations,
     resolved, resolved_again, escalation, read) = _run_api(run_db, scenario)

    body = check.json()
    assert check.status_code == 200
    assert body["tickets_evaluated"] == 1
    # 5h old ticket: response (1h) and resolution (4h) both breached
    assert body["violations_found"] == 2
    assert body["failed"] == 0 and body["errors"] == []
    assert again.json()["violations_found"] == 0

    # resolution clock is 1h overdue, response clock 4h: level 2 only for response
    esc = escalations.json()
    assert esc["escalations_triggered"] == 1
    assert esc["escalations"][0]["escalated_to_user_id"] == admin
    assert esc["escalations"][0]["ticket_id"] == ticket_id

    assert resolved.json()["is_resolved"] is True
    assert resolved_again.status_code == 200
    assert resolved_again.json()["resolved_at"] == resolved.json()["resolved_at"]
    assert escalation.json()["resolved_by_user_id"] == admin
    assert read.json()["is_read"] is True


def test_report_initialize_and_cleanup(run_db):
    async def scenario(client, maker):
        async with maker() as session:
            for name in ("low", "medium", "high", "critical"):
                await add_priority(session, name)
            await session.commit()

        initialized = await client.post("/sla/initialize")
        repeated = await client.post("/sla/initialize")
        report = await client.get("/sla/reports/compliance", params={"time_range": "7d"})
        bad_range = await client.get("/sla/reports/compliance", params={"time_range": "2w"})
        cleanup = await client.post("/sla/cleanup", json={"days_to_keep": 30})
        default_cleanup = await client.post("/sla/cleanup")
        bad_cleanup = await client.post("/sla/cleanup", json={"days_to_keep": 0})
        return initialized, repeated, report, bad_range, cleanup, default_cleanup, bad_cleanup

    (initialized, repeated, report, bad_range,
     cleanup, default_cleanup, bad_cleanup) = _run_api(run_db, scenario)

    assert initialized.json()["rules_created"] == 4
    assert repeated.json()["rules_created"] == 0
    assert report.status_code == 200
    assert report.json()["total_tickets"] == 0
    assert bad_range.status_code == 422
    assert cleanup.json() == {
        "message": "Old SLA data cleaned up", "deleted_records": 0, "days_kept": 30
    }
    assert default_cleanup.status_code == 200
    assert default_cleanup.json()["days_kept"] == settings.sla_cleanup_days
    assert bad_cleanup.status_code == 422


def test_missing_records_return_404(run_db):
    async def scenario(client, maker):
        return [
            await client.get("/sla/violations/1"),
            await client.get("/sla/escalations/1"),
            await client.post("/sla/notifications/1/read"),
            await client.delete("/sla/escalation-rules/1"),
        ]

    responses = _run_api(run_db, scenario)

    assert [r.status_code for r in responses] == [404, 404, 404, 404]


def test_health_and_root(run_db):
    async def scenario(client, maker):
        return await client.get("/health"), await client.get("/")

    health, root = _run_api(run_db, scenario)

    assert health.status_code == 200
    assert set(health.json()["checks"]) == {"database", "sla_scheduler"}
    assert "X-Correlation-ID" in health.headers
    assert root.json()["modules"]["sla"]["prefix"] == "/sla"
