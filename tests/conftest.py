"""Common pytest configuration: import path, test settings and a SQLite-backed runner."""

import asyncio
import os
import sys
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SLA_EVALUATION_INTERVAL", "0")

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

from helpdesk.infrastructure.database import build_engine, create_tables  # noqa: E402


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'sla.db'}"


@pytest.fixture
def run_db(db_url):
    """
    Run ``scenario(session_maker)`` on a fresh schema inside ``asyncio.run``.

    Engine, tables and connections live and die within the one event loop.
    """

    def _run(scenario):
        async def _main():
            engine = build_engine(db_url)
            await create_tables(engine)
            maker = async_sessionmaker(
                bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
            )
            try:
                return await scenario(maker)
            finally:
                await engine.dispose()

        return asyncio.run(_main())

    return _run
