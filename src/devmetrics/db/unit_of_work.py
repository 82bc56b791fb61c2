"""Unit of work over a single AsyncSession.

Groups the repositories a sync or metrics step needs behind one
transaction, so a reconciliation pass is saved (or rolled back) as a whole.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from devmetrics.db.repositories import (
    CommitRepository,
    DeveloperRepository,
    MetricRepository,
    PullRequestRepository,
    RepositoryRepository,
)
from devmetrics.logging import get_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = get_logger(__name__)


class UnitOfWork:
    """Transaction-scoped access to all repositories.

    Usage:
        async with UnitOfWork(get_session_factory()) as uow:
            uow.commits.add(commit)
            await uow.save()

    Either a session factory (the unit of work opens and closes its own
    session) or an existing session (caller owns it; used by tests) is
    accepted. Leaving the context with an exception rolls back; leaving it
    normally without save() discards pending writes when the owned session
    closes.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        session: AsyncSession | None = None,
    ) -> None:
        if (session_factory is None) == (session is None):
            raise ValueError("Provide exactly one of session_factory or session")
        self._session_factory = session_factory
        self._session = session
        self._owns_session = session is None
        self._bind_repositories()

    def _bind_repositories(self) -> None:
        if self._session is None:
            return
        self.developers = DeveloperRepository(self._session)
        self.repositories = RepositoryRepository(self._session)
        self.commits = CommitRepository(self._session)
        self.pull_requests = PullRequestRepository(self._session)
        self.metrics = MetricRepository(self._session)

    @property
    def session(self) -> AsyncSession:
        """The active session (only valid inside the context)."""
        if self._session is None:
            raise RuntimeError("UnitOfWork used outside of 'async with'")
        return self._session

    async def __aenter__(self) -> UnitOfWork:
        if self._owns_session:
            assert self._session_factory is not None
            self._session = self._session_factory()
            self._bind_repositories()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        try:
            if exc_type is not None:
                await self.rollback()
        finally:
            if self._owns_session and self._session is not None:
                await self._session.close()
                self._session = None

    # -------------------------------------------------------------------------
    # Transaction boundaries
    # -------------------------------------------------------------------------

    async def begin(self) -> None:
        """Start a transaction explicitly (no-op if one is already open)."""
        if not self.session.in_transaction():
            await self.session.begin()

    async def save(self) -> None:
        """Flush and commit every pending write in this unit of work."""
        await self.session.flush()
        await self.session.commit()

    async def commit(self) -> None:
        """Commit the current transaction."""
        await self.session.commit()

    async def rollback(self) -> None:
        """Roll back the current transaction, discarding pending writes."""
        logger.debug("Rolling back unit of work")
        await self.session.rollback()
