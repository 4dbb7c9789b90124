"""
SLA Application Layer
======================

Application layer for the SLA engine.

Contains:
- Services: Orchestrate business logic and coordinate with repositories
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from helpdesk.sla.application.dto import (
    SLARuleCreateDTO,
    SLARuleUpdateDTO,
    EscalationRuleCreateDTO,
    CleanupRequest,
    SLARuleResponse,
    EscalationRuleResponse,
    ViolationResponse,
    EscalationResponse,
    NotificationResponse,
    ItemErrorResponse,
    ViolationCheckResponse,
    EscalationCheckResponse,
    PriorityComplianceResponse,
    ComplianceReportResponse,
    InitializeResponse,
    CleanupResponse,
)
from helpdesk.sla.application.services import (
    NotificationService,
    SLARuleService,
    ViolationDetectionService,
    EscalationService,
    ComplianceReportService,
    SLAEngine,
    ITransactionScope,
    ITicketRepository,
    IUserRepository,
    ISLARuleRepository,
    ISLAViolationRepository,
    IEscalationRepository,
    INotificationRepository,
)

__all__ = [
    # DTOs
    "SLARuleCreateDTO",
    "SLARuleUpdateDTO",
    "EscalationRuleCreateDTO",
    "CleanupRequest",
    "SLARuleResponse",
    "EscalationRuleResponse",
    "ViolationResponse",
    "EscalationResponse",
    "NotificationResponse",
    "ItemErrorResponse",
    "ViolationCheckResponse",
    "EscalationCheckResponse",
    "PriorityComplianceResponse",
    "ComplianceReportResponse",
    "InitializeResponse",
    "CleanupResponse",
    # Services
    "NotificationService",
    "SLARuleService",
    "ViolationDetectionService",
    "EscalationService",
    "ComplianceReportService",
    "SLAEngine",
    # Repository Interfaces
    "ITransactionScope",
    "ITicketRepository",
    "IUserRepository",
    "ISLARuleRepository",
    "ISLAViolationRepository",
    "IEscalationRepository",
    "INotificationRepository",
]
