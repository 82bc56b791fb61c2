"""Repository for tracked Repository model operations."""

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from devmetrics.db.models import PlatformType, Repository, repository_contributors
from devmetrics.errors import NotFoundError

from .base import BaseRepository


class RepositoryRepository(BaseRepository[Repository]):
    """Repository for tracked source repositories.

    Besides lookups by natural key, this owns the sync watermark
    (last_synced_at) and the informational contributors association.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Repository)

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    async def get_by_external_ids(
        self,
        platform: PlatformType,
        external_ids: Iterable[str],
    ) -> dict[str, Repository]:
        """Bulk lookup by natural key (external_id, platform).

        Returns:
            Mapping of external id to repository for those that exist
        """
        wanted = set(external_ids)
        if not wanted:
            return {}
        repos = await self.find(
            Repository.platform == platform,
            Repository.external_id.in_(wanted),
        )
        return {r.external_id: r for r in repos}

    async def get_for_account(
        self,
        account_id: str,
        *,
        active_only: bool = True,
    ) -> list[Repository]:
        """Get repositories discovered by an account, ordered by id.

        Args:
            account_id: External account identifier
            active_only: Skip repositories marked inactive

        Returns:
            List of repositories
        """
        stmt = self.query().where(Repository.account_id == account_id)
        if active_only:
            stmt = stmt.where(Repository.is_active.is_(True))
        return await self.fetch_all(stmt.order_by(Repository.id))

    # -------------------------------------------------------------------------
    # Watermark
    # -------------------------------------------------------------------------

    async def advance_watermark(
        self,
        repository_id: int,
        synced_at: datetime,
    ) -> bool:
        """Move last_synced_at forward to synced_at.

        The watermark never moves backwards; an older (or equal) timestamp
        is ignored.

        Args:
            repository_id: Repository ID
            synced_at: Timestamp the successful sync covered up to

        Returns:
            True if the watermark moved

        Raises:
            NotFoundError: If the repository does not exist
        """
        repo = await self.get_by_id(repository_id)
        if repo is None:
            raise NotFoundError(f"Repository {repository_id} not found")

        if repo.last_synced_at is not None and synced_at <= repo.last_synced_at:
            return False
        repo.last_synced_at = synced_at
        return True

    # -------------------------------------------------------------------------
    # Contributors
    # -------------------------------------------------------------------------

    async def get_contributor_ids(self, repository_id: int) -> set[int]:
        """Developer ids already linked to a repository."""
        stmt = select(repository_contributors.c.developer_id).where(
            repository_contributors.c.repository_id == repository_id
        )
        result = await self._session.execute(stmt)
        return set(result.scalars().all())

    async def add_contributors(self, repository_id: int, developer_ids: Iterable[int]) -> int:
        """Link developers to a repository, skipping existing links.

        Returns:
            Number of new links
        """
        existing = await self.get_contributor_ids(repository_id)
        new_ids = sorted(set(developer_ids) - existing)
        if not new_ids:
            return 0
        await self._session.execute(
            insert(repository_contributors),
            [{"repository_id": repository_id, "developer_id": d} for d in new_ids],
        )
        return len(new_ids)
