"""Tests for the repository, commit and pull request fetchers.

The fetchers are wired to an in-memory fake client; retries run through a
real ResiliencePolicy with a no-op sleep.
"""

import asyncio
from datetime import timedelta

import pytest

from devmetrics.config import RetryConfig
from devmetrics.errors import (
    ExternalServiceUnavailableError,
    NotFoundError,
    UnauthorizedError,
    ValidationFailureError,
)
from devmetrics.github.exceptions import (
    GitHubAuthenticationError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubServerError,
)
from devmetrics.github.fetchers import CommitFetcher, PullRequestFetcher, RepositoryFetcher
from devmetrics.github.resilience import ResiliencePolicy
from devmetrics.schemas.github_api import GitHubCommit, GitHubPullRequest, GitHubRepository
from tests.conftest import JAN_10_ISO, JAN_12_ISO, JAN_15, JAN_15_ISO, JAN_16, JAN_17_ISO, NOW
from tests.factories import make_github_commit, make_github_pr, make_github_repo


# -----------------------------------------------------------------------------
# Fake Client
# -----------------------------------------------------------------------------
class FakeClient:
    """Stands in for GitHubClient: serves canned payloads, records calls."""

    def __init__(self, *, repos=(), commits=(), details=None, prs=(), errors=None):
        self.repos = [GitHubRepository.model_validate(r) for r in repos]
        self.commits = [GitHubCommit.model_validate(c) for c in commits]
        self.details = {
            sha: GitHubCommit.model_validate(d) for sha, d in (details or {}).items()
        }
        self.prs = [GitHubPullRequest.model_validate(p) for p in prs]
        # method name -> errors raised by successive calls
        self.errors = {k: list(v) for k, v in (errors or {}).items()}
        self.calls: list[tuple] = []
        self.closed = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.closed += 1

    def _maybe_fail(self, method: str) -> None:
        queued = self.errors.get(method)
        if queued:
            raise queued.pop(0)

    async def iter_user_repositories(self):
        self.calls.append(("iter_user_repositories",))
        self._maybe_fail("iter_user_repositories")
        for repo in self.repos:
            yield repo

    async def get_repository(self, owner, repo):
        self.calls.append(("get_repository", owner, repo))
        self._maybe_fail("get_repository")
        return next(r for r in self.repos if r.full_name == f"{owner}/{repo}")

    async def iter_commits(self, owner, repo, *, since=None):
        self.calls.append(("iter_commits", owner, repo, since))
        self._maybe_fail("iter_commits")
        for commit in self.commits:
            yield commit

    async def get_commit(self, owner, repo, sha):
        self.calls.append(("get_commit", sha))
        self._maybe_fail("get_commit")
        return self.details[sha]

    async def iter_pull_requests(
        self, owner, repo, *, state="all", sort="updated", direction="desc"
    ):
        self.calls.append(("iter_pull_requests", owner, repo, state, sort, direction))
        self._maybe_fail("iter_pull_requests")
        for pr in self.prs:
            yield pr


@pytest.fixture
def policy() -> ResiliencePolicy:
    async def no_sleep(_: float) -> None:
        return None

    return ResiliencePolicy(RetryConfig(max_attempts=2), sleep=no_sleep, clock=lambda: NOW)


def fetcher_for(cls, client: FakeClient, policy, settings):
    credentials: list[str] = []

    def factory(credential: str) -> FakeClient:
        credentials.append(credential)
        return client

    fetcher = cls(policy=policy, client_factory=factory, settings=settings)
    fetcher.credentials = credentials
    return fetcher


# -----------------------------------------------------------------------------
# Repositories
# -----------------------------------------------------------------------------
class TestRepositoryFetcher:
    async def test_fetch_maps_records(self, policy, settings):
        client = FakeClient(
            repos=[make_github_repo(1, "acme/one"), make_github_repo(2, "acme/two")]
        )
        fetcher = fetcher_for(RepositoryFetcher, client, policy, settings)

        records = await fetcher.fetch("token-1")

        assert [r.external_id for r in records] == ["1", "2"]
        assert records[0].full_name == "acme/one"
        assert fetcher.credentials == ["token-1"]
        assert client.closed == 1

    async def test_empty_credential(self, policy, settings):
        fetcher = fetcher_for(RepositoryFetcher, FakeClient(), policy, settings)

        with pytest.raises(ValidationFailureError):
            await fetcher.fetch("")

    async def test_transient_failure_retried(self, policy, settings):
        client = FakeClient(
            repos=[make_github_repo(1, "acme/one")],
            errors={"iter_user_repositories": [GitHubServerError("boom", 502)]},
        )
        fetcher = fetcher_for(RepositoryFetcher, client, policy, settings)

        records = await fetcher.fetch("t")

        assert len(records) == 1
        assert len([c for c in client.calls if c[0] == "iter_user_repositories"]) == 2

    async def test_rejected_credential(self, policy, settings):
        client = FakeClient(
            errors={"iter_user_repositories": [GitHubAuthenticationError("no", 401)]}
        )
        fetcher = fetcher_for(RepositoryFetcher, client, policy, settings)

        with pytest.raises(UnauthorizedError):
            await fetcher.fetch("t")

    async def test_fetch_one(self, policy, settings):
        client = FakeClient(repos=[make_github_repo(9, "acme/nine")])
        fetcher = fetcher_for(RepositoryFetcher, client, policy, settings)

        record = await fetcher.fetch_one("acme", "nine", "t")

        assert record.external_id == "9"

    async def test_fetch_one_missing(self, policy, settings):
        client = FakeClient(errors={"get_repository": [GitHubNotFoundError("gone", 404)]})
        fetcher = fetcher_for(RepositoryFetcher, client, policy, settings)

        with pytest.raises(NotFoundError):
            await fetcher.fetch_one("acme", "gone", "t")

    @pytest.mark.parametrize(("owner", "project"), [("", "x"), ("acme", ""), ("a/b", "c")])
    async def test_fetch_one_invalid_reference(self, policy, settings, owner, project):
        fetcher = fetcher_for(RepositoryFetcher, FakeClient(), policy, settings)

        with pytest.raises(ValidationFailureError):
            await fetcher.fetch_one(owner, project, "t")


# -----------------------------------------------------------------------------
# Commits
# -----------------------------------------------------------------------------
class TestCommitFetcher:
    async def test_fetch_passes_since(self, policy, settings):
        client = FakeClient(commits=[make_github_commit("a" * 40), make_github_commit("b" * 40)])
        fetcher = fetcher_for(CommitFetcher, client, policy, settings)

        records = await fetcher.fetch("prebid", "prebid-server", "t", since=JAN_15)

        assert [r.sha for r in records] == ["a" * 40, "b" * 40]
        assert client.calls[0] == ("iter_commits", "prebid", "prebid-server", JAN_15)

    async def test_stats_off_reports_zero_lines(self, policy, settings):
        client = FakeClient(commits=[make_github_commit("a" * 40)])
        fetcher = fetcher_for(CommitFetcher, client, policy, settings)

        [record] = await fetcher.fetch("prebid", "prebid-server", "t")

        assert record.lines_changed == 0
        assert not any(c[0] == "get_commit" for c in client.calls)

    async def test_stats_on_reads_detail(self, policy, settings):
        settings.sync.fetch_commit_stats = True
        sha = "c" * 40
        client = FakeClient(
            commits=[make_github_commit(sha)],
            details={
                sha: make_github_commit(sha, additions=100, deletions=20, files=["a.go", "b.go"])
            },
        )
        fetcher = fetcher_for(CommitFetcher, client, policy, settings)

        [record] = await fetcher.fetch("prebid", "prebid-server", "t")

        assert (record.lines_added, record.lines_removed, record.files_changed) == (100, 20, 2)
        assert ("get_commit", sha) in client.calls

    async def test_email_normalized(self, policy, settings):
        client = FakeClient(commits=[make_github_commit(email="  Dev@Example.COM ")])
        fetcher = fetcher_for(CommitFetcher, client, policy, settings)

        [record] = await fetcher.fetch("prebid", "prebid-server", "t")

        assert record.author_email == "dev@example.com"

    async def test_undated_commit_rejected(self, policy, settings):
        """A payload that cannot be mapped leaves the fetcher as a domain error."""
        undated = make_github_commit("d" * 40)
        undated["commit"]["author"]["date"] = None
        undated["commit"]["committer"]["date"] = None
        fetcher = fetcher_for(CommitFetcher, FakeClient(commits=[undated]), policy, settings)

        with pytest.raises(ValidationFailureError, match="no author or committer date"):
            await fetcher.fetch("prebid", "prebid-server", "t")

    async def test_rate_limited(self, policy, settings):
        client = FakeClient(
            errors={
                "iter_commits": [
                    GitHubRateLimitError("limited", reset_at=NOW + timedelta(seconds=90))
                ]
            }
        )
        fetcher = fetcher_for(CommitFetcher, client, policy, settings)

        with pytest.raises(ExternalServiceUnavailableError) as exc_info:
            await fetcher.fetch("prebid", "prebid-server", "t")

        assert exc_info.value.retry_after == timedelta(seconds=90)

    async def test_cancelled(self, policy, settings):
        cancel = asyncio.Event()
        cancel.set()
        fetcher = fetcher_for(CommitFetcher, FakeClient(), policy, settings)

        with pytest.raises(asyncio.CancelledError):
            await fetcher.fetch("prebid", "prebid-server", "t", cancel_event=cancel)


# -----------------------------------------------------------------------------
# Pull Requests
# -----------------------------------------------------------------------------
class TestPullRequestFetcher:
    async def test_fetch_all_states(self, policy, settings):
        client = FakeClient(
            prs=[
                make_github_pr(3, state="open", draft=True),
                make_github_pr(2, state="closed", merged_at=JAN_12_ISO),
                make_github_pr(1, state="closed"),
            ]
        )
        fetcher = fetcher_for(PullRequestFetcher, client, policy, settings)

        records = await fetcher.fetch("prebid", "prebid-server", "t")

        assert [r.status.value for r in records] == ["draft", "merged", "closed"]
        assert client.calls[0][3:] == ("all", "updated", "desc")

    async def test_stops_at_first_older_than_since(self, policy, settings):
        client = FakeClient(
            prs=[
                make_github_pr(3, updated_at=JAN_17_ISO),
                make_github_pr(2, updated_at=JAN_15_ISO),
                make_github_pr(1, created_at=JAN_10_ISO, updated_at=JAN_10_ISO),
            ]
        )
        fetcher = fetcher_for(PullRequestFetcher, client, policy, settings)

        records = await fetcher.fetch("prebid", "prebid-server", "t", since=JAN_15)

        # updated_at == since is kept
        assert [r.number for r in records] == [3, 2]

    async def test_since_after_everything(self, policy, settings):
        client = FakeClient(prs=[make_github_pr(1)])
        fetcher = fetcher_for(PullRequestFetcher, client, policy, settings)

        since = JAN_16 + timedelta(days=1)

        assert await fetcher.fetch("prebid", "prebid-server", "t", since=since) == []

    async def test_invalid_reference(self, policy, settings):
        fetcher = fetcher_for(PullRequestFetcher, FakeClient(), policy, settings)

        with pytest.raises(ValidationFailureError):
            await fetcher.fetch("prebid", "", "t")
