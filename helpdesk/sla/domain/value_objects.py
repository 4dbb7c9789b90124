"""
SLA Value Objects
==================

Immutable value objects for the SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Union

from pydantic import BaseModel, Field, model_validator

from helpdesk.config import REPORT_RANGE_DAYS, ReportTimeRange
from helpdesk.shared.time import as_utc, hours_between


@dataclass(frozen=True)
class UserTarget:
    """Escalate to a specific user."""
    user_id: int


@dataclass(frozen=True)
class RoleTarget:
    """Escalate to the first active user holding a role."""
    role: str


EscalationTarget = Union[UserTarget, RoleTarget]


class SLACalculator:
    """
    Pure functions for SLA calculations.

    Stateless utility class - all deadline and escalation arithmetic in
    one place.
    """

    @staticmethod
    def calculate_deadline(created_at: datetime, hours: float) -> datetime:
        """
        Deadline of an SLA clock.

        Args:
            created_at: When the ticket was created
            hours: Allowed hours (fractions honoured, e.g. 0.5)
        """
        return as_utc(created_at) + timedelta(hours=hours)

    @staticmethod
    def is_breached(deadline: datetime, now: datetime) -> bool:
        """A clock is breached strictly after its deadline."""
        return as_utc(now) > as_utc(deadline)

    @staticmethod
    def overdue_hours(deadline: datetime, now: datetime) -> float:
        """Hours elapsed past the deadline, clamped at zero."""
        return max(0.0, hours_between(deadline, now))

    @staticmethod
    def calculate_escalation_level(overdue_hours: float, interval_hours: float) -> int:
        """
        Number of full escalation intervals a violation has stayed open.

        Level 0 means still within the first window past the breach.

        Example:
            interval 2h, overdue 5h   -> 2
            interval 2h, overdue 1.9h -> 0
        """
        if interval_hours is None or interval_hours <= 0 or overdue_hours <= 0:
            return 0
        return int(math.floor(overdue_hours / interval_hours))

    @staticmethod
    def escalation_reason(violation_type: str, overdue_hours: float) -> str:
        return f"SLA {violation_type} violation - {overdue_hours:.1f} hours overdue"

    @staticmethod
    def report_start(time_range: str, now: datetime) -> datetime:
        """Start of a compliance report window ending at ``now``."""
        days = REPORT_RANGE_DAYS.get(time_range, REPORT_RANGE_DAYS[ReportTimeRange.YEAR])
        return as_utc(now) - timedelta(days=days)


# ========== Default rule seed (YAML) ==========

class EscalationLevelSeed(BaseModel):
    """Default routing for a single escalation level."""
    level: int = Field(ge=1, description="Escalation level (1-based)")
    role: Optional[str] = Field(default=None, description="Role to escalate to")
    user_id: Optional[int] = Field(default=None, description="User to escalate to")

    @model_validator(mode="after")
    def check_single_target(self) -> "EscalationLevelSeed":
        if (self.role is None) == (self.user_id is None):
            raise ValueError("exactly one of role / user_id must be set")
        return self


class SLARuleSeed(BaseModel):
    """Default SLA rule for one priority, referenced by priority name."""
    priority: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    initial_response_hours: float = Field(..., gt=0)
    resolution_hours: float = Field(..., gt=0)
    escalation_levels: int = Field(default=3, ge=1)
    escalation_interval_hours: float = Field(default=4, gt=0)
    escalations: List[EscalationLevelSeed] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_levels(self) -> "SLARuleSeed":
        for esc in self.escalations:
            if esc.level > self.escalation_levels:
                raise ValueError(
                    f"{self.name}: escalation level {esc.level} exceeds "
                    f"escalation_levels={self.escalation_levels}"
                )
        return self


class SLARuleSeedFile(BaseModel):
    """
    Default SLA configuration loaded from YAML.

    This is a value object - immutable and defined by its attributes.
    """
    rules: List[SLARuleSeed] = Field(default_factory=list)
