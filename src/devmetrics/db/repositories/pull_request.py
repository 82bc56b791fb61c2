"""Repository for PullRequest model operations."""

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from devmetrics.db.models import PullRequest, PullRequestStatus

from .base import BaseRepository


class PullRequestRepository(BaseRepository[PullRequest]):
    """Repository for PullRequest entities, keyed by (number, repository_id).

    No state-machine guard here: the latest fetched state always wins,
    so out-of-order updates are applied as-is.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, PullRequest)

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    async def get_by_number(self, repository_id: int, number: int) -> PullRequest | None:
        """Get a PR by repository and PR number.

        Args:
            repository_id: Repository ID
            number: PR number

        Returns:
            PullRequest or None if not found
        """
        rows = await self.find(
            PullRequest.repository_id == repository_id,
            PullRequest.number == number,
        )
        return rows[0] if rows else None

    async def get_by_numbers(
        self,
        repository_id: int,
        numbers: Iterable[int],
    ) -> dict[int, PullRequest]:
        """Bulk lookup of existing PRs for one repository."""
        wanted = set(numbers)
        if not wanted:
            return {}
        prs = await self.find(
            PullRequest.repository_id == repository_id,
            PullRequest.number.in_(wanted),
        )
        return {pr.number: pr for pr in prs}

    async def opened_in_range(
        self,
        start: datetime,
        end: datetime,
        *,
        author_id: int | None = None,
    ) -> list[PullRequest]:
        """PRs opened within [start, end] (both inclusive)."""
        stmt = self.query().where(PullRequest.opened_at >= start, PullRequest.opened_at <= end)
        if author_id is not None:
            stmt = stmt.where(PullRequest.author_id == author_id)
        return await self.fetch_all(stmt.order_by(PullRequest.opened_at, PullRequest.id))

    async def merged_in_range(
        self,
        start: datetime,
        end: datetime,
        *,
        author_id: int | None = None,
    ) -> list[PullRequest]:
        """Merged PRs with merged_at in [start, end)."""
        stmt = self.query().where(
            PullRequest.status == PullRequestStatus.MERGED,
            PullRequest.merged_at.is_not(None),
            PullRequest.merged_at >= start,
            PullRequest.merged_at < end,
        )
        if author_id is not None:
            stmt = stmt.where(PullRequest.author_id == author_id)
        return await self.fetch_all(stmt.order_by(PullRequest.merged_at, PullRequest.id))

    async def count_by_author(self, start: datetime, end: datetime) -> list[tuple[int, int]]:
        """(author_id, PR count) for PRs opened in [start, end], ordered by author."""
        stmt = (
            select(PullRequest.author_id, func.count(PullRequest.id))
            .where(PullRequest.opened_at >= start, PullRequest.opened_at <= end)
            .group_by(PullRequest.author_id)
            .order_by(PullRequest.author_id)
        )
        result = await self._session.execute(stmt)
        return [(author_id, count) for author_id, count in result.all()]
