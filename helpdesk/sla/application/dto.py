"""
SLA Application DTOs
=====================

Data Transfer Objects for the SLA API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses. Responses are built straight from domain
entities (``from_attributes``).
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Dict, List, Optional, Literal
from datetime import datetime


# ========== Type Aliases for Literals ==========
ViolationTypeStr = Literal["response", "resolution"]
NotificationTypeStr = Literal["warning", "breach", "escalation"]
TimeRangeStr = Literal["7d", "30d", "90d", "1y"]


# ========== Request DTOs ==========

class SLARuleCreateDTO(BaseModel):
    """DTO for creating an SLA rule."""
    priority_id: int = Field(..., description="Ticket priority the rule applies to")
    name: str = Field(..., min_length=1, description="Rule name")
    description: Optional[str] = Field(None, description="Free-text description")
    initial_response_hours: float = Field(..., gt=0, description="Hours allowed until first response")
    resolution_hours: float = Field(..., gt=0, description="Hours allowed until resolution")
    escalation_levels: int = Field(default=3, ge=1, description="Number of escalation levels")
    escalation_interval_hours: float = Field(default=4, gt=0, description="Hours between escalation levels")


class SLARuleUpdateDTO(BaseModel):
    """DTO for partially updating an SLA rule."""
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    initial_response_hours: Optional[float] = Field(None, gt=0)
    resolution_hours: Optional[float] = Field(None, gt=0)
    escalation_levels: Optional[int] = Field(None, ge=1)
    escalation_interval_hours: Optional[float] = Field(None, gt=0)
    is_active: Optional[bool] = None


class EscalationRuleCreateDTO(BaseModel):
    """DTO for routing one escalation level to a user or a role."""
    escalation_level: int = Field(..., ge=1, description="Escalation level (1-based)")
    escalate_to_user_id: Optional[int] = Field(None, description="Specific user to escalate to")
    escalate_to_role: Optional[str] = Field(None, min_length=1, description="Role to escalate to")

    @model_validator(mode="after")
    def check_single_target(self) -> "EscalationRuleCreateDTO":
        """Exactly one of user / role must be given."""
        if (self.escalate_to_user_id is None) == (self.escalate_to_role is None):
            raise ValueError("exactly one of escalate_to_user_id / escalate_to_role must be set")
        return self


class CleanupRequest(BaseModel):
    """Request body for purging old resolved violations."""
    days_to_keep: int = Field(default=90, ge=1, description="Keep resolved violations newer than this")


# ========== Response DTOs ==========

class SLARuleResponse(BaseModel):
    """Response model for an SLA rule."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    priority_id: int
    priority_name: Optional[str] = None
    name: str
    description: Optional[str] = None
    initial_response_hours: float
    resolution_hours: float
    escalation_levels: int
    escalation_interval_hours: float
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class EscalationRuleResponse(BaseModel):
    """Response model for an escalation rule."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    sla_rule_id: int
    escalation_level: int
    escalate_to_user_id: Optional[int] = None
    escalate_to_role: Optional[str] = None
    is_active: bool


class ViolationResponse(BaseModel):
    """Response model for an SLA violation."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    ticket_id: int
    rule_id: Optional[int] = None
    violation_type: ViolationTypeStr
    expected_time: datetime
    actual_time: datetime
    violation_duration_hours: float
    is_resolved: bool
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class EscalationResponse(BaseModel):
    """Response model for an escalation record."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    ticket_id: int
    violation_id: Optional[int] = None
    escalation_level: int
    escalated_to_user_id: Optional[int] = None
    escalation_reason: str
    escalation_time: datetime
    is_resolved: bool
    resolved_at: Optional[datetime] = None
    resolved_by_user_id: Optional[int] = None


class NotificationResponse(BaseModel):
    """Response model for an SLA notification."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    ticket_id: int
    notification_type: NotificationTypeStr
    message: str
    sent_to_user_id: Optional[int] = None
    sent_at: datetime
    is_read: bool
    read_at: Optional[datetime] = None


class ItemErrorResponse(BaseModel):
    """A single item that failed during an engine pass."""
    model_config = ConfigDict(from_attributes=True)

    item_type: str
    item_id: Optional[int] = None
    error: str


class ViolationCheckResponse(BaseModel):
    """Response model for a manual violation check."""
    message: str
    tickets_evaluated: int
    violations_found: int
    violations: List[ViolationResponse] = Field(default_factory=list)
    failed: int = Field(default=0, description="Number of tickets that failed")
    errors: List[ItemErrorResponse] = Field(default_factory=list)


class EscalationCheckResponse(BaseModel):
    """Response model for a manual escalation check."""
    message: str
    violations_evaluated: int
    escalations_triggered: int
    escalations: List[EscalationResponse] = Field(default_factory=list)
    failed: int = Field(default=0, description="Number of violations that failed")
    errors: List[ItemErrorResponse] = Field(default_factory=list)


class PriorityComplianceResponse(BaseModel):
    """Per-priority compliance breakdown."""
    model_config = ConfigDict(from_attributes=True)

    total: int
    violations: int


class ComplianceReportResponse(BaseModel):
    """Response model for the SLA compliance report."""
    model_config = ConfigDict(from_attributes=True)

    time_range: TimeRangeStr
    start_date: datetime
    generated_at: datetime
    total_tickets: int
    compliant_tickets: int
    response_violations: int
    resolution_violations: int
    compliance_rate: float = Field(..., description="Percentage of compliant tickets")
    average_resolution_time: float = Field(..., description="Average hours to resolve (resolved tickets only)")
    violations_by_priority: Dict[str, PriorityComplianceResponse] = Field(default_factory=dict)


class InitializeResponse(BaseModel):
    """Response model for default rule seeding."""
    message: str
    rules_created: int
    rules: List[SLARuleResponse] = Field(default_factory=list)


class CleanupResponse(BaseModel):
    """Response model for violation cleanup."""
    message: str
    deleted_records: int
    days_kept: int
