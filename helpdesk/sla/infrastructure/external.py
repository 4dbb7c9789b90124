"""
SLA External Service Integrations
==================================

External services for the SLA engine:
- YAML seed file with the default SLA and escalation rules
- APScheduler for the periodic violation / escalation pass
"""

from pathlib import Path
from typing import Optional

import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError

from helpdesk.core import ConfigurationException
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.sla.domain.value_objects import SLARuleSeedFile

logger = get_logger(__name__)


class SLARuleSeedLoader:
    """
    Loads the default rule set from YAML.

    The parsed seed is cached per loader; call ``reload()`` after editing
    the file.
    """

    def __init__(self, path: Path):
        self._path = Path(path)
        self._seed: Optional[SLARuleSeedFile] = None

    def _load_from_file(self, path: Path) -> SLARuleSeedFile:
        """Load and parse YAML seed file."""
        if not path.exists():
            raise ConfigurationException(
                f"SLA rule seed file not found: {path}",
                {"path": str(path)}
            )

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
            return SLARuleSeedFile(**data)
        except yaml.YAMLError as e:
            raise ConfigurationException(f"Invalid YAML in {path}", {"error": str(e)})
        except (ValidationError, TypeError) as e:
            raise ConfigurationException(f"Invalid SLA rule seed in {path}", {"error": str(e)})

    def load(self) -> SLARuleSeedFile:
        if self._seed is None:
            self._seed = self._load_from_file(self._path)
            logger.info(
                "SLA rule seed loaded",
                extra={"path": str(self._path), "rules": len(self._seed.rules)}
            )
        return self._seed

    def reload(self) -> SLARuleSeedFile:
        self._seed = None
        return self.load()


class SLAScheduler:
    """
    Wrapper for APScheduler for the background SLA pass.

    Manages the lifecycle of the scheduler and jobs. At most one pass runs
    at a time.
    """

    def __init__(self, interval_seconds: int = 300):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func) -> None:
        """Start the scheduler with the given job function."""
        if self._running:
            logger.warning("SLA scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()

        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id="sla_evaluation",
            name="SLA Violation and Escalation Pass",
            misfire_grace_time=60,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        self._scheduler.start()
        self._running = True

        logger.info(
            "SLA scheduler started",
            extra={"interval_seconds": self.interval_seconds}
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=True)

        self._running = False
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running
