"""Row builders for the helpdesk tables the engine reads and the rules it owns."""

import itertools
from datetime import datetime, timedelta, timezone
from typing import Optional

from helpdesk.sla.infrastructure.models import (
    EscalationRuleModel, SLARuleModel, TicketModel, TicketPriorityModel,
    UserModel,
)

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

_ids = itertools.count(1)


def hours_ago(hours: float, now: datetime = NOW) -> datetime:
    return now - timedelta(hours=hours)


async def add_priority(session, name: str = "high") -> int:
    priority = TicketPriorityModel(name=name, description=f"{name} priority issues")
    session.add(priority)
    await session.flush()
    return priority.id


async def add_user(session, role: str, is_active: bool = True, email: Optional[str] = None) -> int:
    user = UserModel(
        email=email or f"{role}-{next(_ids)}@example.com",
        name=role.title(),
        role=role,
        is_active=is_active,
    )
    session.add(user)
    await session.flush()
    return user.id


async def add_ticket(
    session,
    priority_id: Optional[int],
    created_at: datetime,
    status: str = "open",
    resolved_at: Optional[datetime] = None,
    subject: str = "Printer on floor 3 is offline",
) -> int:
    ticket = TicketModel(
        subject=subject,
        priority_id=priority_id,
        status=status,
        created_at=created_at,
        resolved_at=resolved_at,
    )
    session.add(ticket)
    await session.flush()
    return ticket.id


async def add_rule(
    session,
    priority_id: int,
    resolution_hours: float = 4,
    initial_response_hours: float = 100,
    escalation_levels: int = 3,
    escalation_interval_hours: float = 2,
    is_active: bool = True,
    name: str = "Test SLA",
) -> int:
    rule = SLARuleModel(
        priority_id=priority_id,
        name=name,
        initial_response_hours=initial_response_hours,
        resolution_hours=resolution_hours,
        escalation_levels=escalation_levels,
        escalation_interval_hours=escalation_interval_hours,
        is_active=is_active,
    )
    session.add(rule)
    await session.flush()
    return rule.id


async def add_escalation_rule(
    session,
    sla_rule_id: int,
    level: int,
    role: Optional[str] = None,
    user_id: Optional[int] = None,
    is_active: bool = True,
) -> int:
    rule = EscalationRuleModel(
        sla_rule_id=sla_rule_id,
        escalation_level=level,
        escalate_to_role=role,
        escalate_to_user_id=user_id,
        is_active=is_active,
    )
    session.add(rule)
    await session.flush()
    return rule.id
