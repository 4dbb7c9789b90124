"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for the SLA module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.

``ticket_priorities``, ``users`` and ``tickets`` are owned by the helpdesk;
the engine only reads them.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text, text
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from helpdesk.infrastructure.database import Base
from helpdesk.config import TicketStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ========== Helpdesk read models ==========

class TicketPriorityModel(Base):
    """
    Database model for ticket priorities.

    Maps to the 'ticket_priorities' table.
    """
    __tablename__ = "ticket_priorities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class UserModel(Base):
    """
    Database model for helpdesk users.

    Maps to the 'users' table.
    """
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="user", index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class TicketModel(Base):
    """
    Database model for helpdesk tickets.

    Maps to the 'tickets' table.
    """
    __tablename__ = "tickets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    priority_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("ticket_priorities.id"), nullable=True, index=True
    )
    status: Mapped[str] = mapped_column(String(50), nullable=False, default=TicketStatus.OPEN, index=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    priority: Mapped[Optional[TicketPriorityModel]] = relationship(lazy="joined")


# ========== SLA engine tables ==========

class SLARuleModel(Base):
    """
    Database model for SLA rules.

    Maps to the 'sla_rules' table. At most one active rule per priority.
    """
    __tablename__ = "sla_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    priority_id: Mapped[int] = mapped_column(
        ForeignKey("ticket_priorities.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Time budgets (hours, fractions allowed)
    initial_response_hours: Mapped[float] = mapped_column(Float, nullable=False)
    resolution_hours: Mapped[float] = mapped_column(Float, nullable=False)

    # Escalation cadence
    escalation_levels: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    escalation_interval_hours: Mapped[float] = mapped_column(Float, nullable=False, default=4)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    priority: Mapped[TicketPriorityModel] = relationship(lazy="joined")

    __table_args__ = (
        Index(
            "uq_sla_rules_active_priority", "priority_id",
            unique=True,
            postgresql_where=text("is_active = true"),
            sqlite_where=text("is_active = 1"),
        ),
    )


class EscalationRuleModel(Base):
    """
    Database model for escalation routing.

    Maps to the 'escalation_rules' table.
    """
    __tablename__ = "escalation_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sla_rule_id: Mapped[int] = mapped_column(
        ForeignKey("sla_rules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False)

    # Exactly one of these is set
    escalate_to_user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    escalate_to_role: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class SLAViolationModel(Base):
    """
    Database model for SLA violations.

    Maps to the 'sla_violations' table. One unresolved row per
    (ticket, violation type).
    """
    __tablename__ = "sla_violations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Nulled when the rule is deleted; the violation itself is kept
    rule_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("sla_rules.id", ondelete="SET NULL"), nullable=True, index=True
    )
    violation_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    expected_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    actual_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    violation_duration_hours: Mapped[float] = mapped_column(Float, nullable=False)

    is_resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index(
            "uq_sla_violations_open", "ticket_id", "violation_type",
            unique=True,
            postgresql_where=text("is_resolved = false"),
            sqlite_where=text("is_resolved = 0"),
        ),
    )


class EscalationHistoryModel(Base):
    """
    Database model for triggered escalations.

    Maps to the 'escalation_history' table. One unresolved row per
    (ticket, level).
    """
    __tablename__ = "escalation_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    violation_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("sla_violations.id", ondelete="SET NULL"), nullable=True
    )
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    escalated_to_user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    escalation_reason: Mapped[str] = mapped_column(Text, nullable=False)
    escalation_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    is_resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by_user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    __table_args__ = (
        Index(
            "uq_escalation_history_open", "ticket_id", "escalation_level",
            unique=True,
            postgresql_where=text("is_resolved = false"),
            sqlite_where=text("is_resolved = 0"),
        ),
    )


class SLANotificationModel(Base):
    """
    Database model for SLA notifications.

    Maps to the 'sla_notifications' table.
    """
    __tablename__ = "sla_notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    notification_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    sent_to_user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
