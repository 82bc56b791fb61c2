"""Fetchers: one record type per fetcher, for one (owner, project) pair.

Each fetch runs through the resilience policy and returns a fully mapped
list of internal records, so reconciliation only ever starts after a whole
batch was fetched. Errors leave a fetcher only as domain errors.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime

from devmetrics.config import Settings, get_settings
from devmetrics.errors import ValidationFailureError
from devmetrics.logging import get_logger
from devmetrics.schemas.base import as_utc
from devmetrics.schemas.github_api import GitHubCommit
from devmetrics.schemas.records import FetchedCommit, FetchedPullRequest, FetchedRepository

from .client import GitHubClient
from .resilience import ResiliencePolicy

logger = get_logger(__name__)

ClientFactory = Callable[[str], GitHubClient]


def _check_cancelled(cancel_event: asyncio.Event | None, what: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise asyncio.CancelledError(f"{what} cancelled")


def _require(owner: str, project: str) -> None:
    if not owner or not project or "/" in owner or "/" in project:
        raise ValidationFailureError(f"Invalid repository reference: {owner!r}/{project!r}")


class _Fetcher:
    """Shared wiring: settings, retry policy and per-credential clients."""

    def __init__(
        self,
        policy: ResiliencePolicy | None = None,
        client_factory: ClientFactory | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._policy = policy or ResiliencePolicy(self._settings.retry)
        self._client_factory = client_factory or self._default_client

    def _default_client(self, credential: str) -> GitHubClient:
        return GitHubClient(credential, per_page=self._settings.sync.per_page)

    def _client(self, credential: str) -> GitHubClient:
        if not credential:
            raise ValidationFailureError("A credential is required to fetch")
        return self._client_factory(credential)


# ------------------------------------------------------------------------------
# Repositories
# ------------------------------------------------------------------------------
class RepositoryFetcher(_Fetcher):
    """Reads repository metadata (always a full fetch)."""

    async def fetch(
        self,
        credential: str,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> list[FetchedRepository]:
        """All repositories visible to the credential's account."""
        client = self._client(credential)

        async def _collect() -> list[FetchedRepository]:
            records: list[FetchedRepository] = []
            async for repo in client.iter_user_repositories():
                _check_cancelled(cancel_event, "repository fetch")
                records.append(repo.to_record())
            return records

        async with client:
            records = await self._policy.execute_with_retry(
                _collect,
                operation_name="list repositories",
                cancel_event=cancel_event,
            )
        logger.debug("Fetched {} repositories", len(records))
        return records

    async def fetch_one(
        self,
        owner: str,
        project: str,
        credential: str,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> FetchedRepository:
        """A single repository by owner/name."""
        _require(owner, project)
        client = self._client(credential)
        async with client:
            repo = await self._policy.execute_with_retry(
                lambda: client.get_repository(owner, project),
                operation_name=f"get repository {owner}/{project}",
                cancel_event=cancel_event,
            )
        return repo.to_record()


# ------------------------------------------------------------------------------
# Commits
# ------------------------------------------------------------------------------
class CommitFetcher(_Fetcher):
    """Reads commits newest-first, optionally since a watermark."""

    async def fetch(
        self,
        owner: str,
        project: str,
        credential: str,
        since: datetime | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> list[FetchedCommit]:
        """Commits of owner/project committed after ``since`` (all when None).

        With ``sync.fetch_commit_stats`` on, each commit's line and file
        counts are read from the single-commit endpoint.
        """
        _require(owner, project)
        since_utc = as_utc(since) if since is not None else None
        client = self._client(credential)

        async def _collect() -> list[GitHubCommit]:
            items: list[GitHubCommit] = []
            async for commit in client.iter_commits(owner, project, since=since_utc):
                _check_cancelled(cancel_event, "commit fetch")
                items.append(commit)
            return items

        async with client:
            listed = await self._policy.execute_with_retry(
                _collect,
                operation_name=f"list commits {owner}/{project}",
                cancel_event=cancel_event,
            )

            records: list[FetchedCommit] = []
            for commit in listed:
                detail: GitHubCommit | None = None
                if self._settings.sync.fetch_commit_stats:
                    _check_cancelled(cancel_event, "commit fetch")
                    sha = commit.sha
                    detail = await self._policy.execute_with_retry(
                        lambda: client.get_commit(owner, project, sha),
                        operation_name=f"get commit {owner}/{project}@{sha[:7]}",
                        cancel_event=cancel_event,
                    )
                records.append(commit.to_record(detail))

        logger.debug(
            "Fetched {} commits for {}/{} since {}", len(records), owner, project, since_utc
        )
        return records


# ------------------------------------------------------------------------------
# Pull Requests
# ------------------------------------------------------------------------------
class PullRequestFetcher(_Fetcher):
    """Reads pull requests of every state, most recently updated first."""

    async def fetch(
        self,
        owner: str,
        project: str,
        credential: str,
        since: datetime | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> list[FetchedPullRequest]:
        """PRs of owner/project updated at or after ``since`` (all when None).

        The list is requested sorted by updated desc, so paging stops at the
        first PR older than ``since``.
        """
        _require(owner, project)
        since_utc = as_utc(since) if since is not None else None
        client = self._client(credential)

        async def _collect() -> list[FetchedPullRequest]:
            records: list[FetchedPullRequest] = []
            async for pr in client.iter_pull_requests(
                owner, project, state="all", sort="updated", direction="desc"
            ):
                _check_cancelled(cancel_event, "pull request fetch")
                record = pr.to_record()
                if since_utc is not None and record.updated_at < since_utc:
                    break
                records.append(record)
            return records

        async with client:
            records = await self._policy.execute_with_retry(
                _collect,
                operation_name=f"list pull requests {owner}/{project}",
                cancel_event=cancel_event,
            )
        logger.debug(
            "Fetched {} pull requests for {}/{} since {}", len(records), owner, project, since_utc
        )
        return records
