"""Repository for Developer model operations."""

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from devmetrics.db.models import Developer
from devmetrics.logging import get_logger

from .base import BaseRepository

logger = get_logger(__name__)


class DeveloperRepository(BaseRepository[Developer]):
    """Repository for Developer entities.

    Developers are keyed by email. The email uniqueness constraint is the one
    place concurrent syncs for different accounts can collide, so creation
    goes through a SAVEPOINT and falls back to re-reading the winner's row.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Developer)

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    async def get_by_email(self, email: str) -> Developer | None:
        """Get a developer by email (exact match)."""
        return await self._get_by_field("email", email)

    async def get_by_username(self, username: str) -> Developer | None:
        """Get a developer by platform username.

        Usernames are not unique. A confirmed (non-provisional) username
        wins over one derived from an email; ties go to the oldest row.

        Args:
            username: Platform login

        Returns:
            Developer or None if no row carries that username
        """
        stmt = (
            select(Developer)
            .where(Developer.github_username == username)
            .order_by(Developer.username_provisional, Developer.id)
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_emails(self, emails: Iterable[str]) -> dict[str, Developer]:
        """Bulk lookup by email.

        Returns:
            Mapping of email to developer for the emails that exist
        """
        wanted = set(emails)
        if not wanted:
            return {}
        developers = await self.find(Developer.email.in_(wanted))
        return {d.email: d for d in developers}

    # -------------------------------------------------------------------------
    # Create Methods
    # -------------------------------------------------------------------------

    async def get_or_create(
        self,
        email: str,
        *,
        github_username: str | None = None,
        username_provisional: bool = False,
        display_name: str | None = None,
        avatar_url: str | None = None,
    ) -> tuple[Developer, bool]:
        """Get existing developer by email or create a new one.

        The insert runs inside a nested transaction; if another writer created
        the same email first, the savepoint is rolled back and the existing row
        is returned instead.

        Args:
            email: Developer email (unique key)
            github_username: Platform login, or a provisional name
            username_provisional: True when github_username was derived from the email
            display_name: Optional display name
            avatar_url: Optional avatar URL

        Returns:
            Tuple of (developer, created) where created is True if new
        """
        existing = await self.get_by_email(email)
        if existing is not None:
            return existing, False

        developer = Developer(
            email=email,
            github_username=github_username,
            username_provisional=username_provisional,
            display_name=display_name,
            avatar_url=avatar_url,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(developer)
                await self._session.flush()
        except IntegrityError:
            logger.debug("Developer {} created concurrently, re-fetching", email)
            winner = await self.get_by_email(email)
            if winner is None:
                raise
            return winner, False

        return developer, True
