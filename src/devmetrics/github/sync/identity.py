"""Developer identity resolution for one reconciliation pass.

Commits identify their author by email; pull requests only by platform
login. ``DeveloperResolver`` finds (or lazily creates) the Developer row for
either, memoizing through a pass-scoped ``IdentityMap`` so one pass never
creates two rows for the same identity.

Identities are partially unified: a commit whose email is unknown but whose
platform login matches a confirmed username reuses that developer, and a
placeholder email created for a PR author is upgraded to the real one.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from devmetrics.db.models import Developer
from devmetrics.db.repositories import DeveloperRepository
from devmetrics.logging import get_logger
from devmetrics.schemas.github_api import placeholder_email
from devmetrics.schemas.records import FetchedCommit, FetchedPullRequest

logger = get_logger(__name__)


@dataclass
class IdentityMap:
    """Pass-scoped memo of developers by email and by confirmed username.

    Create one per reconciliation pass (or share one across the passes of a
    single repository step) and drop it afterwards; it is never global.
    """

    by_email: dict[str, Developer] = field(default_factory=dict)
    by_username: dict[str, Developer] = field(default_factory=dict)
    created: int = 0

    def remember(self, developer: Developer) -> None:
        self.by_email[developer.email] = developer
        if developer.github_username and not developer.username_provisional:
            self.by_username[developer.github_username] = developer

    def forget_email(self, email: str) -> None:
        self.by_email.pop(email, None)

    @property
    def developers(self) -> list[Developer]:
        """Distinct developers seen in this pass."""
        seen: dict[int, Developer] = {}
        for dev in self.by_email.values():
            seen[id(dev)] = dev
        return list(seen.values())


def _local_part(email: str) -> str:
    return email.split("@", 1)[0] or email


class DeveloperResolver:
    """Find or create developers for fetched commits and pull requests."""

    def __init__(self, developers: DeveloperRepository, identities: IdentityMap) -> None:
        self._developers = developers
        self._identities = identities
        # Store rows loaded up front for a batch; None means look up one by one
        self._stored: dict[str, Developer] | None = None

    @property
    def identities(self) -> IdentityMap:
        return self._identities

    async def prefetch_emails(self, emails: Iterable[str]) -> None:
        """Load the stored developers for a batch of commit emails in one query."""
        wanted = {e for e in emails if e not in self._identities.by_email}
        self._stored = await self._developers.get_by_emails(wanted)

    async def _stored_by_email(self, email: str) -> Developer | None:
        if self._stored is None:
            return await self._developers.get_by_email(email)
        return self._stored.get(email)

    # -------------------------------------------------------------------------
    # Commits
    # -------------------------------------------------------------------------

    async def for_commit(self, record: FetchedCommit) -> Developer:
        """Resolve the author of a commit.

        Order: memo by email, store by email, then (when the commit carries a
        platform login) memo/store by confirmed username, then create.
        """
        email = record.author_email
        memo = self._identities.by_email.get(email)
        if memo is not None:
            return memo

        developer = await self._stored_by_email(email)
        if developer is not None:
            self._absorb_commit_identity(developer, record)
            self._identities.remember(developer)
            return developer

        login = record.author_login
        if login:
            developer = await self._confirmed_by_username(login)
            if developer is not None and developer.email == placeholder_email(login):
                # PR-created developer: the commit reveals the real email
                logger.debug("Upgrading placeholder email of {} to {}", login, email)
                self._identities.forget_email(developer.email)
                developer.email = email
                self._absorb_commit_identity(developer, record)
                self._identities.remember(developer)
                return developer

        developer, created = await self._developers.get_or_create(
            email,
            github_username=login or _local_part(email),
            username_provisional=login is None,
            display_name=record.author_name,
            avatar_url=record.author_avatar_url,
        )
        if created:
            self._identities.created += 1
        self._identities.remember(developer)
        return developer

    def _absorb_commit_identity(self, developer: Developer, record: FetchedCommit) -> None:
        """Fill gaps in a stored developer from a commit (never overwrite confirmed data)."""
        if record.author_login and (
            developer.github_username is None or developer.username_provisional
        ):
            developer.github_username = record.author_login
            developer.username_provisional = False
        if developer.display_name is None and record.author_name:
            developer.display_name = record.author_name
        if developer.avatar_url is None and record.author_avatar_url:
            developer.avatar_url = record.author_avatar_url

    async def _confirmed_by_username(self, login: str) -> Developer | None:
        memo = self._identities.by_username.get(login)
        if memo is not None:
            return memo
        developer = await self._developers.get_by_username(login)
        if developer is None or developer.username_provisional:
            return None
        return developer

    # -------------------------------------------------------------------------
    # Pull requests
    # -------------------------------------------------------------------------

    async def for_pull_request(self, record: FetchedPullRequest) -> Developer:
        """Resolve the author of a pull request by platform login.

        Order: memo or store by confirmed username, then create with a
        placeholder email. A provisional username is only a guess from an
        email local part, so a PR login never matches one.
        """
        login = record.author_login
        developer = await self._confirmed_by_username(login)
        if developer is not None:
            if developer.avatar_url is None and record.author_avatar_url:
                developer.avatar_url = record.author_avatar_url
            self._identities.remember(developer)
            return developer

        developer, created = await self._developers.get_or_create(
            placeholder_email(login),
            github_username=login,
            avatar_url=record.author_avatar_url,
        )
        if created:
            self._identities.created += 1
        self._identities.remember(developer)
        return developer
