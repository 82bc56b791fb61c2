"""Repository for Commit model operations."""

from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import ColumnElement, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from devmetrics.db.models import Commit

from .base import BaseRepository


class CommitRepository(BaseRepository[Commit]):
    """Repository for Commit entities, keyed by (sha, repository_id)."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Commit)

    async def get_by_sha(self, repository_id: int, sha: str) -> Commit | None:
        """Get a commit by natural key."""
        rows = await self.find(Commit.repository_id == repository_id, Commit.sha == sha)
        return rows[0] if rows else None

    async def get_by_shas(self, repository_id: int, shas: Iterable[str]) -> dict[str, Commit]:
        """Bulk lookup of existing commits for one repository.

        Returns:
            Mapping of sha to commit for the shas already stored
        """
        wanted = set(shas)
        if not wanted:
            return {}
        commits = await self.find(Commit.repository_id == repository_id, Commit.sha.in_(wanted))
        return {c.sha: c for c in commits}

    async def in_range(
        self,
        start: datetime,
        end: datetime,
        *,
        developer_id: int | None = None,
        end_inclusive: bool = False,
    ) -> list[Commit]:
        """Commits with committed_at in [start, end) (or [start, end]).

        Args:
            start: Lower bound (inclusive)
            end: Upper bound
            developer_id: Restrict to one developer
            end_inclusive: Include commits exactly at end

        Returns:
            Commits ordered by committed_at then id
        """
        upper = Commit.committed_at <= end if end_inclusive else Commit.committed_at < end
        stmt = self.query().where(Commit.committed_at >= start, upper)
        if developer_id is not None:
            stmt = stmt.where(Commit.developer_id == developer_id)
        return await self.fetch_all(stmt.order_by(Commit.committed_at, Commit.id))

    # -------------------------------------------------------------------------
    # Aggregates (leaderboards)
    # -------------------------------------------------------------------------

    async def _grouped_by_developer(
        self,
        value: ColumnElement[Any],
        start: datetime,
        end: datetime,
    ) -> list[tuple[int, int]]:
        stmt = (
            select(Commit.developer_id, value)
            .where(Commit.committed_at >= start, Commit.committed_at <= end)
            .group_by(Commit.developer_id)
            .order_by(Commit.developer_id)
        )
        result = await self._session.execute(stmt)
        return [(developer_id, int(total or 0)) for developer_id, total in result.all()]

    async def count_by_developer(self, start: datetime, end: datetime) -> list[tuple[int, int]]:
        """(developer_id, commit count) for commits in [start, end]."""
        return await self._grouped_by_developer(func.count(Commit.id), start, end)

    async def lines_changed_by_developer(
        self, start: datetime, end: datetime
    ) -> list[tuple[int, int]]:
        """(developer_id, lines added + removed) for commits in [start, end]."""
        return await self._grouped_by_developer(
            func.sum(Commit.lines_added + Commit.lines_removed), start, end
        )

    async def active_days_by_developer(
        self, start: datetime, end: datetime
    ) -> list[tuple[int, int]]:
        """(developer_id, distinct UTC commit days) for commits in [start, end]."""
        return await self._grouped_by_developer(
            func.count(func.distinct(func.date(Commit.committed_at))), start, end
        )
