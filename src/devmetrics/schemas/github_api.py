"""Pydantic schemas for parsing GitHub API responses.

These schemas map directly to the GitHub REST API response structure and
only declare the fields we read. Each top-level payload knows how to turn
itself into an internal record (see ``devmetrics.schemas.records``).

See: https://docs.github.com/en/rest
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from devmetrics.db.models import PlatformType, PullRequestStatus
from devmetrics.errors import ValidationFailureError

from .records import FetchedCommit, FetchedPullRequest, FetchedRepository

UNKNOWN_AUTHOR_EMAIL = "unknown@users.noreply.github.com"
"""Used when a commit carries neither an author email nor a linked login."""


def placeholder_email(login: str) -> str:
    """Synthetic email for a developer only known by platform login."""
    return f"{login}@users.noreply.github.com"


class GitHubPayload(BaseModel):
    """Base for API payload models; unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore")


class GitHubUser(GitHubPayload):
    """GitHub user object from API responses."""

    login: str = Field(description="GitHub username")
    id: int = Field(description="GitHub user ID")
    avatar_url: str | None = Field(default=None, description="Avatar URL")
    type: str = Field(default="User", description="User type")


class GitHubRepository(GitHubPayload):
    """Repository object from the repos endpoints.

    Maps to: GET /user/repos, GET /repos/{owner}/{repo}
    """

    id: int = Field(description="Repository ID")
    name: str = Field(description="Repository name")
    full_name: str = Field(description="owner/name")
    description: str | None = None
    html_url: str | None = None
    default_branch: str | None = None
    private: bool = False
    fork: bool = False
    stargazers_count: int | None = None
    forks_count: int | None = None
    open_issues_count: int | None = None
    language: str | None = None
    pushed_at: datetime | None = None

    def to_record(self) -> FetchedRepository:
        """Map to the internal repository record."""
        return FetchedRepository(
            external_id=str(self.id),
            platform=PlatformType.GITHUB,
            name=self.name,
            full_name=self.full_name,
            description=self.description,
            url=self.html_url,
            default_branch=self.default_branch,
            is_private=self.private,
            is_fork=self.fork,
            stargazers_count=self.stargazers_count or 0,
            forks_count=self.forks_count or 0,
            open_issues_count=self.open_issues_count or 0,
            language=self.language,
            pushed_at=self.pushed_at,
        )


class GitHubGitActor(GitHubPayload):
    """Author/committer info from git (not the GitHub user)."""

    name: str | None = None
    email: str | None = None
    date: datetime | None = None


class GitHubCommitDetail(GitHubPayload):
    """Nested ``commit`` object of a commit payload."""

    author: GitHubGitActor | None = None
    committer: GitHubGitActor | None = None
    message: str = ""


class GitHubCommitStats(GitHubPayload):
    """Line stats (single-commit endpoint only)."""

    additions: int = 0
    deletions: int = 0
    total: int = 0


class GitHubCommitFile(GitHubPayload):
    """Changed file entry (single-commit endpoint only)."""

    filename: str


class GitHubCommit(GitHubPayload):
    """Commit object from the commits endpoints.

    Maps to: GET /repos/{owner}/{repo}/commits[/{ref}]
    The list endpoint omits ``stats`` and ``files``.
    """

    sha: str = Field(description="Commit SHA")
    commit: GitHubCommitDetail = Field(description="Git-level commit details")
    author: GitHubUser | None = Field(default=None, description="Linked GitHub author")
    committer: GitHubUser | None = Field(default=None, description="Linked GitHub committer")
    stats: GitHubCommitStats | None = None
    files: list[GitHubCommitFile] | None = None

    def to_record(self, detail: "GitHubCommit | None" = None) -> FetchedCommit:
        """Map to the internal commit record.

        Identity comes from the git author (falling back to the committer);
        the timestamp is the committer date, which is what ``since`` filters
        on. Counts default to 0 when no detail payload is supplied.

        Args:
            detail: Same commit from the single-commit endpoint, for stats

        Returns:
            FetchedCommit

        Raises:
            ValidationFailureError: If the payload carries no date at all
        """
        git_author = self.commit.author or GitHubGitActor()
        git_committer = self.commit.committer or GitHubGitActor()
        login = self.author.login if self.author else None

        email = git_author.email or git_committer.email
        if not email:
            email = placeholder_email(login) if login else UNKNOWN_AUTHOR_EMAIL

        committed_at = git_committer.date or git_author.date
        if committed_at is None:
            raise ValidationFailureError(f"Commit {self.sha} has no author or committer date")

        source = detail or self
        stats = source.stats or GitHubCommitStats()
        return FetchedCommit(
            sha=self.sha,
            message=self.commit.message,
            author_name=git_author.name or git_committer.name,
            author_email=email.strip().lower(),
            committer_name=git_committer.name,
            committer_email=git_committer.email,
            author_login=login,
            author_avatar_url=self.author.avatar_url if self.author else None,
            committed_at=committed_at,
            lines_added=stats.additions,
            lines_removed=stats.deletions,
            files_changed=len(source.files or []),
        )


class GitHubPullRequest(GitHubPayload):
    """GitHub Pull Request object from API.

    Maps to: GET /repos/{owner}/{repo}/pulls
    The list endpoint omits additions, deletions and changed_files.
    """

    number: int = Field(description="PR number")
    state: str = Field(description="PR state (open, closed)")
    title: str = Field(description="PR title")
    body: str | None = Field(default=None, description="PR description")
    draft: bool | None = Field(default=False, description="Whether PR is a draft")
    user: GitHubUser | None = Field(default=None, description="PR author")

    created_at: datetime = Field(description="When PR was created")
    updated_at: datetime = Field(description="Last update timestamp")
    closed_at: datetime | None = Field(default=None, description="When PR was closed")
    merged_at: datetime | None = Field(default=None, description="When PR was merged")

    additions: int | None = None
    deletions: int | None = None
    changed_files: int | None = None

    @property
    def status(self) -> PullRequestStatus:
        """Map platform state to our status (merged wins over closed)."""
        if self.merged_at is not None:
            return PullRequestStatus.MERGED
        if self.state == "closed":
            return PullRequestStatus.CLOSED
        if self.draft:
            return PullRequestStatus.DRAFT
        return PullRequestStatus.OPEN

    def to_record(self) -> FetchedPullRequest:
        """Map to the internal pull request record."""
        return FetchedPullRequest(
            number=self.number,
            title=self.title,
            description=self.body,
            status=self.status,
            author_login=self.user.login if self.user else "ghost",
            author_avatar_url=self.user.avatar_url if self.user else None,
            opened_at=self.created_at,
            updated_at=self.updated_at,
            closed_at=self.closed_at,
            merged_at=self.merged_at,
            changed_files=self.changed_files or 0,
            lines_added=self.additions or 0,
            lines_removed=self.deletions or 0,
        )
