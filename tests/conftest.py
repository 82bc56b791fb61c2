"""Pytest configuration and shared fixtures.

Usage Guide:
- For ORM model tests: import factories from tests.factories
- For payload parsing tests: use the dict fixtures in tests.fixtures
- For sync tests: seed through ``uow_factory`` so every step sees committed rows
"""

from datetime import UTC, datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from devmetrics.config import Settings
from devmetrics.db.engine import configure_sqlite
from devmetrics.db.models import Base
from devmetrics.db.unit_of_work import UnitOfWork

# -----------------------------------------------------------------------------
# Test Timeline Constants
#
# A consistent "test epoch" for deterministic date matching across tests.
# 2024-01-15 is a Monday.
# -----------------------------------------------------------------------------

JAN_08 = datetime(2024, 1, 8, 9, 0, 0, tzinfo=UTC)    # Monday, week before
JAN_10 = datetime(2024, 1, 10, 9, 0, 0, tzinfo=UTC)   # Merged PR opened
JAN_12 = datetime(2024, 1, 12, 16, 0, 0, tzinfo=UTC)  # Merged PR merged
JAN_15 = datetime(2024, 1, 15, 10, 0, 0, tzinfo=UTC)  # Monday, first commit
JAN_16 = datetime(2024, 1, 16, 14, 0, 0, tzinfo=UTC)  # Second commit
JAN_17 = datetime(2024, 1, 17, 11, 0, 0, tzinfo=UTC)  # Third commit
JAN_20 = datetime(2024, 1, 20, 16, 0, 0, tzinfo=UTC)  # Saturday
NOW = datetime(2024, 1, 21, 12, 0, 0, tzinfo=UTC)     # "now" for clock-injected code

# ISO 8601 strings (for GitHub API mocks)
JAN_10_ISO = "2024-01-10T09:00:00Z"
JAN_12_ISO = "2024-01-12T16:00:00Z"
JAN_15_ISO = "2024-01-15T10:00:00Z"
JAN_16_ISO = "2024-01-16T14:00:00Z"
JAN_17_ISO = "2024-01-17T11:00:00Z"
JAN_20_ISO = "2024-01-20T16:00:00Z"


# -----------------------------------------------------------------------------
# Database Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
async def test_engine():
    """Create an in-memory SQLite engine for tests.

    Each test gets a fresh database with all tables created. StaticPool
    keeps every session on the same in-memory connection; the SQLite hooks
    match the application engine so savepoints nest inside a real transaction.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )
    configure_sqlite(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory configured like the application's."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_factory):
    """Create an async session with auto-rollback.

    Changes are rolled back after each test to ensure isolation.
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def uow(db_session) -> UnitOfWork:
    """Unit of work over the test session (the test owns the session)."""
    return UnitOfWork(session=db_session)


@pytest.fixture
def uow_factory(session_factory):
    """Factory of fresh, self-contained units of work (as the orchestrator uses)."""
    return lambda: UnitOfWork(session_factory)


# -----------------------------------------------------------------------------
# Settings
# -----------------------------------------------------------------------------
@pytest.fixture
def settings() -> Settings:
    """Settings with defaults only (no .env), commit stats off, no retry delay."""
    return Settings(
        _env_file=None,
        retry={"max_attempts": 2, "backoff_base": 1.0, "jitter_min_ms": 0, "jitter_max_ms": 1},
        sync={"fetch_commit_stats": False},
    )


# -----------------------------------------------------------------------------
# Utility Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def fixed_clock():
    """Clock returning NOW."""
    return lambda: NOW
