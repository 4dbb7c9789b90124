"""
SLA Controllers (API Routes)
=============================

FastAPI routes for the SLA engine.

Controllers are thin - they delegate to application services. Application
exceptions raised by the services are turned into HTTP responses by the
handler registered in ``helpdesk.main``.
"""

import time
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Header, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.config import settings
from helpdesk.infrastructure.database import get_session
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.sla.application import (
    CleanupRequest, CleanupResponse, ComplianceReportResponse,
    ComplianceReportService, EscalationCheckResponse, EscalationResponse,
    EscalationRuleCreateDTO, EscalationRuleResponse, EscalationService,
    InitializeResponse, ItemErrorResponse, NotificationResponse,
    NotificationService, SLARuleCreateDTO, SLARuleResponse, SLARuleService,
    SLARuleUpdateDTO, ViolationCheckResponse, ViolationDetectionService,
    ViolationResponse,
)
from helpdesk.sla.application.dto import (
    NotificationTypeStr, TimeRangeStr, ViolationTypeStr
)
from helpdesk.sla.infrastructure.external import SLARuleSeedLoader
from helpdesk.sla.services import (
    build_escalation_service, build_notification_service,
    build_report_service, build_rule_service, build_violation_service,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA Engine"])


# ========== Example payloads for Swagger ==========

VIOLATION_CHECK_EXAMPLE = {
    "message": "Violation check completed",
    "tickets_evaluated": 12,
    "violations_found": 1,
    "violations": [
        {
            "id": 7,
            "ticket_id": 42,
            "rule_id": 3,
            "violation_type": "resolution",
            "expected_time": "2024-01-15T12:00:00Z",
            "actual_time": "2024-01-15T12:01:00Z",
            "violation_duration_hours": 0.0167,
            "is_resolved": False,
            "resolved_at": None,
            "created_at": "2024-01-15T12:01:00Z"
        }
    ],
    "failed": 0,
    "errors": []
}

COMPLIANCE_REPORT_EXAMPLE = {
    "time_range": "30d",
    "start_date": "2024-01-01T00:00:00Z",
    "generated_at": "2024-01-31T00:00:00Z",
    "total_tickets": 40,
    "compliant_tickets": 36,
    "response_violations": 9,
    "resolution_violations": 4,
    "compliance_rate": 90.0,
    "average_resolution_time": 5.25,
    "violations_by_priority": {
        "high": {"total": 10, "violations": 3},
        "low": {"total": 30, "violations": 1}
    }
}


# ========== Dependencies ==========

async def get_rule_service(session: AsyncSession = Depends(get_session)) -> SLARuleService:
    return build_rule_service(session)


async def get_violation_service(
    session: AsyncSession = Depends(get_session)
) -> ViolationDetectionService:
    return build_violation_service(session)


async def get_escalation_service(
    session: AsyncSession = Depends(get_session)
) -> EscalationService:
    return build_escalation_service(session)


async def get_notification_service(
    session: AsyncSession = Depends(get_session)
) -> NotificationService:
    return build_notification_service(session)


async def get_report_service(
    session: AsyncSession = Depends(get_session)
) -> ComplianceReportService:
    return build_report_service(session)


def get_seed_loader() -> SLARuleSeedLoader:
    """Seed loader for the configured default rules file."""
    return SLARuleSeedLoader(settings.sla_rules_seed_path)


# ========== SLA Rules ==========

@router.get("/rules", response_model=List[SLARuleResponse], summary="List active SLA rules")
async def list_rules(service: SLARuleService = Depends(get_rule_service)):
    return await service.list_rules()


@router.get("/rules/{rule_id}", response_model=SLARuleResponse, summary="Get SLA rule")
async def get_rule(rule_id: int, service: SLARuleService = Depends(get_rule_service)):
    return await service.get_rule(rule_id)


@router.post(
    "/rules",
    response_model=SLARuleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create SLA rule",
    description="""
    Create the SLA rule of a ticket priority.

    A priority can have only one active rule; a second one is rejected
    with 409.
    """
)
async def create_rule(
    data: SLARuleCreateDTO,
    service: SLARuleService = Depends(get_rule_service)
):
    return await service.create_rule(data)


@router.put("/rules/{rule_id}", response_model=SLARuleResponse, summary="Update SLA rule")
async def update_rule(
    rule_id: int,
    data: SLARuleUpdateDTO,
    service: SLARuleService = Depends(get_rule_service)
):
    return await service.update_rule(rule_id, data)


@router.delete(
    "/rules/{rule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete SLA rule",
    description="Delete a rule and its escalation routing. Recorded violations are kept."
)
async def delete_rule(rule_id: int, service: SLARuleService = Depends(get_rule_service)):
    await service.delete_rule(rule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/rules/{rule_id}/escalation-rules",
    response_model=List[EscalationRuleResponse],
    summary="List escalation rules of an SLA rule"
)
async def list_escalation_rules(
    rule_id: int,
    service: SLARuleService = Depends(get_rule_service)
):
    return await service.list_escalation_rules(rule_id)


@router.post(
    "/rules/{rule_id}/escalation-rules",
    response_model=EscalationRuleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Route an escalation level",
    description="""
    Route one escalation level of an SLA rule to either a specific user
    (`escalate_to_user_id`) or the first active user of a role
    (`escalate_to_role`).
    """
)
async def create_escalation_rule(
    rule_id: int,
    data: EscalationRuleCreateDTO,
    service: SLARuleService = Depends(get_rule_service)
):
    return await service.create_escalation_rule(rule_id, data)


@router.delete(
    "/escalation-rules/{escalation_rule_id}",
    response_model=EscalationRuleResponse,
    summary="Deactivate escalation rule"
)
async def deactivate_escalation_rule(
    escalation_rule_id: int,
    service: SLARuleService = Depends(get_rule_service)
):
    return await service.deactivate_escalation_rule(escalation_rule_id)


# ========== Violations ==========

@router.get("/violations", response_model=List[ViolationResponse], summary="List SLA violations")
async def list_violations(
    is_resolved: Optional[bool] = Query(None, description="Filter by resolution state"),
    violation_type: Optional[ViolationTypeStr] = Query(None, description="response or resolution"),
    ticket_id: Optional[int] = Query(None, description="Filter by ticket"),
    service: ViolationDetectionService = Depends(get_violation_service)
):
    return await service.list_violations(is_resolved, violation_type, ticket_id)


@router.get("/violations/{violation_id}", response_model=ViolationResponse, summary="Get SLA violation")
async def get_violation(
    violation_id: int,
    service: ViolationDetectionService = Depends(get_violation_service)
):
    return await service.get_violation(violation_id)


@router.post(
    "/violations/{violation_id}/resolve",
    response_model=ViolationResponse,
    summary="Resolve SLA violation"
)
async def resolve_violation(
    violation_id: int,
    user_id: Optional[int] = Header(None, alias="X-User-ID"),
    service: ViolationDetectionService = Depends(get_violation_service)
):
    return await service.resolve_violation(violation_id, resolved_by=user_id)


# ========== Escalations ==========

@router.get("/escalations", response_model=List[EscalationResponse], summary="List escalations")
async def list_escalations(
    is_resolved: Optional[bool] = Query(None, description="Filter by resolution state"),
    ticket_id: Optional[int] = Query(None, description="Filter by ticket"),
    service: EscalationService = Depends(get_escalation_service)
):
    return await service.list_escalations(is_resolved, ticket_id)


@router.get("/escalations/{escalation_id}", response_model=EscalationResponse, summary="Get escalation")
async def get_escalation(
    escalation_id: int,
    service: EscalationService = Depends(get_escalation_service)
):
    return await service.get_escalation(escalation_id)


@router.post(
    "/escalations/{escalation_id}/resolve",
    response_model=EscalationResponse,
    summary="Resolve escalation"
)
async def resolve_escalation(
    escalation_id: int,
    user_id: Optional[int] = Header(None, alias="X-User-ID"),
    service: EscalationService = Depends(get_escalation_service)
):
    return await service.resolve_escalation(escalation_id, resolved_by=user_id)


# ========== Notifications ==========

@router.get("/notifications", response_model=List[NotificationResponse], summary="List SLA notifications")
async def list_notifications(
    is_read: Optional[bool] = Query(None, description="Filter by read state"),
    notification_type: Optional[NotificationTypeStr] = Query(None, description="warning, breach or escalation"),
    sent_to_user_id: Optional[int] = Query(None, description="Filter by recipient"),
    service: NotificationService = Depends(get_notification_service)
):
    return await service.list_notifications(is_read, notification_type, sent_to_user_id)


@router.post(
    "/notifications/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark notification as read"
)
async def mark_notification_read(
    notification_id: int,
    service: NotificationService = Depends(get_notification_service)
):
    return await service.mark_read(notification_id)


# ========== Reports ==========

@router.get(
    "/reports/compliance",
    response_model=ComplianceReportResponse,
    summary="SLA compliance report",
    description="""
    Compliance of tickets created within the time range against the
    active rule of their priority.

    **Time ranges**: `7d`, `30d`, `90d`, `1y`

    `response_violations` is approximated from total elapsed time.
    """,
    responses={
        200: {
            "description": "Compliance report",
            "content": {"application/json": {"example": COMPLIANCE_REPORT_EXAMPLE}}
        }
    }
)
async def get_compliance_report(
    time_range: TimeRangeStr = Query("30d", description="Report window"),
    service: ComplianceReportService = Depends(get_report_service)
):
    return await service.get_compliance_report(time_range)


# ========== Engine passes & maintenance ==========

@router.post(
    "/check-violations",
    response_model=ViolationCheckResponse,
    summary="Run violation detection",
    description="""
    Run one violation detection pass now.

    Tickets that fail are reported in `errors`; the others are still
    evaluated and their violations committed.
    """,
    responses={
        200: {
            "description": "Pass result",
            "content": {"application/json": {"example": VIOLATION_CHECK_EXAMPLE}}
        }
    }
)
async def check_violations(service: ViolationDetectionService = Depends(get_violation_service)):
    start_time = time.perf_counter()

    result = await service.check_violations()

    logger.info(
        "Manual violation check complete",
        extra={
            "violations_found": len(result.created),
            "failed": len(result.failed),
            "processing_time_ms": int((time.perf_counter() - start_time) * 1000)
        }
    )

    return ViolationCheckResponse(
        message="Violation check completed",
        tickets_evaluated=result.evaluated,
        violations_found=len(result.created),
        violations=[ViolationResponse.model_validate(v) for v in result.created],
        failed=len(result.failed),
        errors=[ItemErrorResponse.model_validate(f) for f in result.failed]
    )


@router.post(
    "/check-escalations",
    response_model=EscalationCheckResponse,
    summary="Run escalation check",
    description="Escalate every open violation to its current level now."
)
async def check_escalations(service: EscalationService = Depends(get_escalation_service)):
    start_time = time.perf_counter()

    result = await service.check_escalations()

    logger.info(
        "Manual escalation check complete",
        extra={
            "escalations_triggered": len(result.created),
            "failed": len(result.failed),
            "processing_time_ms": int((time.perf_counter() - start_time) * 1000)
        }
    )

    return EscalationCheckResponse(
        message="Escalation check completed",
        violations_evaluated=result.evaluated,
        escalations_triggered=len(result.created),
        escalations=[EscalationResponse.model_validate(e) for e in result.created],
        failed=len(result.failed),
        errors=[ItemErrorResponse.model_validate(f) for f in result.failed]
    )


@router.post(
    "/initialize",
    response_model=InitializeResponse,
    summary="Seed default SLA rules",
    description="Insert the default rules for priorities that have no active rule. Safe to repeat."
)
async def initialize_rules(
    service: SLARuleService = Depends(get_rule_service),
    loader: SLARuleSeedLoader = Depends(get_seed_loader)
):
    created = await service.seed_defaults(loader.load())
    return InitializeResponse(
        message="Default SLA rules initialized",
        rules_created=len(created),
        rules=[SLARuleResponse.model_validate(r) for r in created]
    )


@router.post(
    "/cleanup",
    response_model=CleanupResponse,
    summary="Delete old resolved violations"
)
async def cleanup_violations(
    request: Optional[CleanupRequest] = Body(None),
    service: ViolationDetectionService = Depends(get_violation_service)
):
    days_to_keep = request.days_to_keep if request else settings.sla_cleanup_days
    deleted = await service.cleanup_old_violations(days_to_keep)
    return CleanupResponse(
        message="Old SLA data cleaned up",
        deleted_records=deleted,
        days_kept=days_to_keep
    )


# Export router for inclusion in main app
sla_router = router
