"""Async SQLAlchemy engine and session management."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event, pool
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from devmetrics.config import get_settings
from devmetrics.db.models import Base

# Module-level engine instance (initialized lazily)
_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def _on_sqlite_connect(dbapi_connection: Any, connection_record: Any) -> None:
    """Hand transaction control to SQLAlchemy and turn on FK enforcement.

    pysqlite/aiosqlite only issue BEGIN before DML, so a SAVEPOINT opened
    first would become the outer transaction and its RELEASE a commit.
    """
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _on_sqlite_begin(conn: Any) -> None:
    conn.exec_driver_sql("BEGIN")


def configure_sqlite(engine: AsyncEngine) -> None:
    """Install the SQLite connection hooks on an async engine.

    After this, savepoints nest inside a real transaction and roll back with it.
    """
    event.listen(engine.sync_engine, "connect", _on_sqlite_connect)
    event.listen(engine.sync_engine, "begin", _on_sqlite_begin)


def build_engine(database_url: str) -> AsyncEngine:
    """Create an async engine for the given URL.

    SQLite connections get explicit transaction handling and foreign keys.
    """
    engine = create_async_engine(
        database_url,
        echo=False,
        poolclass=pool.NullPool,  # SQLite: avoid "database is locked" across sessions
    )
    if engine.dialect.name == "sqlite":
        configure_sqlite(engine)
    return engine


def get_engine() -> AsyncEngine:
    """Get or create the async SQLAlchemy engine."""
    global _engine
    if _engine is None:
        _engine = build_engine(get_settings().database_url)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the async session factory."""
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _async_session_factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get an async database session with automatic cleanup.

    Usage:
        async with get_session() as session:
            result = await session.execute(select(Commit))
    """
    session_factory = get_session_factory()
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def create_tables() -> None:
    """Create all database tables.

    Use this for testing or initial setup. In production, use Alembic migrations.
    """
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_tables() -> None:
    """Drop all database tables.

    WARNING: This will delete all data. Use only for testing.
    """
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def dispose_engine() -> None:
    """Dispose the engine and close all connections."""
    global _engine, _async_session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
