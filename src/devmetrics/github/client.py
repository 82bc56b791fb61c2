"""Async GitHub API client wrapper using githubkit.

This module provides a typed async interface to the GitHub REST API for
repository, commit and pull request retrieval. githubkit's own retry is
turned off: retries belong to ``devmetrics.github.resilience``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from typing import Any, Literal

from githubkit import GitHub
from githubkit.exception import RequestError, RequestFailed, RequestTimeout

from devmetrics.logging import get_logger
from devmetrics.schemas.github_api import GitHubCommit, GitHubPullRequest, GitHubRepository

from .exceptions import (
    GitHubAuthenticationError,
    GitHubClientError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubServerError,
    GitHubTransportError,
)

logger = get_logger(__name__)

PRState = Literal["open", "closed", "all"]
PRSort = Literal["created", "updated", "popularity", "long-running"]


def _payload(item: Any) -> Any:
    """Plain data for a githubkit model (unset fields dropped)."""
    if hasattr(item, "model_dump"):
        return item.model_dump(exclude_unset=True)
    return item


class GitHubClient:
    """Async GitHub API client bound to one credential.

    Usage:
        async with GitHubClient(token) as client:
            async for repo in client.iter_user_repositories():
                print(repo.full_name)

    List methods are lazy async iterators so callers can stop paging early
    (and check for cancellation between items).
    """

    def __init__(self, token: str, *, per_page: int = 100) -> None:
        """Initialize the GitHub client.

        Args:
            token: GitHub token for the account being synced
            per_page: Results per page for list endpoints (max 100)

        Raises:
            GitHubAuthenticationError: If the token is empty.
        """
        if not token:
            raise GitHubAuthenticationError("GitHub token required")
        self._token = token
        self._per_page = per_page
        self._client: GitHub[Any] | None = None

    @property
    def _github(self) -> GitHub[Any]:
        """Get or create the githubkit client instance."""
        if self._client is None:
            self._client = GitHub(self._token, auto_retry=False)
        return self._client

    async def close(self) -> None:
        """Drop the underlying githubkit client."""
        self._client = None

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Repository Methods
    # -------------------------------------------------------------------------
    async def iter_user_repositories(self) -> AsyncIterator[GitHubRepository]:
        """Iterate over every repository the authenticated account can see.

        Yields:
            GitHubRepository objects
        """
        try:
            repo_data: Any
            async for repo_data in self._github.rest.paginate(
                self._github.rest.repos.async_list_for_authenticated_user,
                per_page=self._per_page,
            ):
                yield GitHubRepository.model_validate(_payload(repo_data))
        except (RequestFailed, RequestError, RequestTimeout) as e:
            raise self._handle_error(e, "repositories") from e

    async def get_repository(self, owner: str, repo: str) -> GitHubRepository:
        """Get a single repository.

        Raises:
            GitHubNotFoundError: If the repository doesn't exist or is hidden
        """
        try:
            resp = await self._github.rest.repos.async_get(owner=owner, repo=repo)
            return GitHubRepository.model_validate(_payload(resp.parsed_data))
        except (RequestFailed, RequestError, RequestTimeout) as e:
            raise self._handle_error(e, f"{owner}/{repo}") from e

    # -------------------------------------------------------------------------
    # Commit Methods
    # -------------------------------------------------------------------------
    async def iter_commits(
        self,
        owner: str,
        repo: str,
        *,
        since: datetime | None = None,
    ) -> AsyncIterator[GitHubCommit]:
        """Iterate over commits on the default branch, newest first.

        Args:
            owner: Repository owner
            repo: Repository name
            since: Only commits after this timestamp

        Yields:
            GitHubCommit objects (list payload, no stats)
        """
        params: dict[str, Any] = {"owner": owner, "repo": repo, "per_page": self._per_page}
        if since is not None:
            params["since"] = since
        try:
            commit_data: Any
            async for commit_data in self._github.rest.paginate(
                self._github.rest.repos.async_list_commits,
                **params,
            ):
                yield GitHubCommit.model_validate(_payload(commit_data))
        except (RequestFailed, RequestError, RequestTimeout) as e:
            # An empty repository answers 409 on the commits endpoint
            if isinstance(e, RequestFailed) and e.response.status_code == 409:
                logger.debug("{}/{} has no commits yet", owner, repo)
                return
            raise self._handle_error(e, f"{owner}/{repo} commits") from e

    async def get_commit(self, owner: str, repo: str, sha: str) -> GitHubCommit:
        """Get a single commit with stats and files."""
        try:
            resp = await self._github.rest.repos.async_get_commit(owner=owner, repo=repo, ref=sha)
            return GitHubCommit.model_validate(_payload(resp.parsed_data))
        except (RequestFailed, RequestError, RequestTimeout) as e:
            raise self._handle_error(e, f"{owner}/{repo}@{sha[:7]}") from e

    # -------------------------------------------------------------------------
    # Pull Request Methods
    # -------------------------------------------------------------------------
    async def iter_pull_requests(
        self,
        owner: str,
        repo: str,
        *,
        state: PRState = "all",
        sort: PRSort = "updated",
        direction: Literal["asc", "desc"] = "desc",
    ) -> AsyncIterator[GitHubPullRequest]:
        """Iterate over pull requests lazily (for efficient early termination).

        Args:
            owner: Repository owner (org or user)
            repo: Repository name
            state: Filter by state ("open", "closed", "all")
            sort: What to sort results by
            direction: Sort direction ("asc", "desc")

        Yields:
            GitHubPullRequest objects (list payload - stats may be missing)
        """
        try:
            pr_data: Any
            async for pr_data in self._github.rest.paginate(
                self._github.rest.pulls.async_list,
                owner=owner,
                repo=repo,
                state=state,
                sort=sort,
                direction=direction,
                per_page=self._per_page,
            ):
                yield GitHubPullRequest.model_validate(_payload(pr_data))
        except (RequestFailed, RequestError, RequestTimeout) as e:
            raise self._handle_error(e, f"{owner}/{repo} pulls") from e

    # -------------------------------------------------------------------------
    # Error Handling
    # -------------------------------------------------------------------------
    def _handle_error(
        self,
        error: RequestFailed | RequestError | RequestTimeout,
        resource: str,
    ) -> GitHubClientError:
        """Convert githubkit exceptions to our platform exceptions."""
        if not isinstance(error, RequestFailed):
            return GitHubTransportError(f"Transport failure on {resource}: {error}")

        status = error.response.status_code
        headers = error.response.headers

        if status == 429 or (status == 403 and headers.get("x-ratelimit-remaining") == "0"):
            return GitHubRateLimitError(
                f"GitHub rate limit exceeded on {resource}",
                reset_at=_reset_time(headers),
                status_code=status,
            )
        if status == 403 and "retry-after" in headers:
            # Secondary rate limit
            return GitHubRateLimitError(
                f"GitHub secondary rate limit on {resource}",
                reset_at=_reset_time(headers),
                status_code=status,
            )
        if status in (401, 403):
            return GitHubAuthenticationError(
                f"Credential rejected for {resource} ({status})", status_code=status
            )
        if status == 404:
            return GitHubNotFoundError(f"{resource} not found", status_code=status)
        return GitHubServerError(f"GitHub API error ({status}) on {resource}", status_code=status)


def _reset_time(headers: Any) -> datetime | None:
    """Rate limit reset from x-ratelimit-reset (epoch) or retry-after (seconds)."""
    reset = str(headers.get("x-ratelimit-reset") or "")
    if reset.isdigit():
        return datetime.fromtimestamp(int(reset), tz=UTC)
    retry_after = str(headers.get("retry-after") or "")
    if retry_after.isdigit():
        return datetime.now(UTC) + timedelta(seconds=int(retry_after))
    return None
