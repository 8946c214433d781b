"""Shared fixtures for unit and feature tests."""

from __future__ import annotations

import typing as typ

import dramatiq
import pytest
import pytest_asyncio
from dramatiq.brokers.stub import StubBroker
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from cohortmill.ledger.storage import init_ledger_storage
from cohortmill.reporting.storage import init_report_storage
from tests.helpers.ledger import LedgerSeeder

if typ.TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncSession

# Actor modules register with the global broker on import.
dramatiq.set_broker(StubBroker())


async def _setup_sqlite(database_path: Path) -> AsyncEngine:
    """Create a SQLite engine and initialise ledger and report tables."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{database_path}")
    try:
        await init_ledger_storage(engine)
        await init_report_storage(engine)
    except Exception:
        await engine.dispose()
        raise
    return engine


@pytest.fixture
def database_path(tmp_path: Path) -> Path:
    """Return the path of the per-test SQLite database file."""
    return tmp_path / "cohortmill_test.db"


@pytest_asyncio.fixture
async def session_factory(
    database_path: Path,
) -> typ.AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Yield a fresh async session factory backed by sqlite."""
    engine = await _setup_sqlite(database_path)
    factory = async_sessionmaker(engine, expire_on_commit=False)
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest.fixture
def seeder(session_factory: async_sessionmaker[AsyncSession]) -> LedgerSeeder:
    """Return a seeder bound to the per-test database."""
    return LedgerSeeder(session_factory)
