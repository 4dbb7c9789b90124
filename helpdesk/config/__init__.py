"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import List


DEFAULT_RULES_PATH = Path(__file__).resolve().parent.parent / "sla" / "default_rules.yaml"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="helpdesk-sla", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/helpdesk",
        description="Async SQLAlchemy connection URL"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Engine ==========
    sla_rules_seed_path: Path = Field(
        default=DEFAULT_RULES_PATH,
        description="YAML file with the default SLA and escalation rules"
    )
    sla_seed_on_startup: bool = Field(
        default=False,
        description="Seed default SLA rules when the application starts"
    )
    sla_evaluation_interval: int = Field(
        default=300,
        description="Seconds between violation/escalation passes (0 disables the scheduler)",
        ge=0
    )
    sla_cleanup_days: int = Field(
        default=90,
        description="Default retention in days for resolved violations",
        ge=1
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and check the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return level


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class TicketStatus(str):
    """Helpdesk ticket statuses relevant to SLA evaluation."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    PENDING = "pending"
    RESOLVED = "resolved"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class ViolationType(str):
    """SLA clocks that can be breached."""
    RESPONSE = "response"
    RESOLUTION = "resolution"


class NotificationType(str):
    """Kinds of SLA notifications."""
    WARNING = "warning"
    BREACH = "breach"
    ESCALATION = "escalation"


class ReportTimeRange(str):
    """Supported compliance report windows."""
    WEEK = "7d"
    MONTH = "30d"
    QUARTER = "90d"
    YEAR = "1y"


# ========== Lists for validation ==========

TERMINAL_STATUSES = [
    TicketStatus.RESOLVED, TicketStatus.CLOSED, TicketStatus.CANCELLED
]
VALID_VIOLATION_TYPES = [ViolationType.RESPONSE, ViolationType.RESOLUTION]
VALID_NOTIFICATION_TYPES = [
    NotificationType.WARNING, NotificationType.BREACH, NotificationType.ESCALATION
]
REPORT_RANGE_DAYS = {
    ReportTimeRange.WEEK: 7,
    ReportTimeRange.MONTH: 30,
    ReportTimeRange.QUARTER: 90,
    ReportTimeRange.YEAR: 365,
}
