"""Internal records produced by the fetchers and consumed by reconciliation.

Records are a flattened, stable subset of the platform payloads. They are
immutable, carry only typed fields with explicit defaults, and have every
timestamp normalized to UTC.
"""

from datetime import datetime

from pydantic import Field

from devmetrics.db.models import PlatformType, PullRequestStatus

from .base import RecordBase

RECORD_MAPPING_VERSION = 1
"""Bumped whenever a payload-to-record mapping changes meaning."""


class FetchedRepository(RecordBase):
    """Repository metadata as read from the platform."""

    external_id: str
    platform: PlatformType = PlatformType.GITHUB
    name: str
    full_name: str
    description: str | None = None
    url: str | None = None
    default_branch: str | None = None
    is_private: bool = False
    is_fork: bool = False
    stargazers_count: int = Field(default=0, ge=0)
    forks_count: int = Field(default=0, ge=0)
    open_issues_count: int = Field(default=0, ge=0)
    language: str | None = None
    pushed_at: datetime | None = None


class FetchedCommit(RecordBase):
    """One commit with its author identity and line counts."""

    sha: str
    message: str = ""
    author_name: str | None = None
    author_email: str
    committer_name: str | None = None
    committer_email: str | None = None
    # Platform login linked to the author email, when the platform knows it
    author_login: str | None = None
    author_avatar_url: str | None = None
    committed_at: datetime
    lines_added: int = Field(default=0, ge=0)
    lines_removed: int = Field(default=0, ge=0)
    files_changed: int = Field(default=0, ge=0)

    @property
    def lines_changed(self) -> int:
        return self.lines_added + self.lines_removed


class FetchedPullRequest(RecordBase):
    """Latest known state of one pull request."""

    number: int = Field(ge=1)
    title: str
    description: str | None = None
    status: PullRequestStatus
    author_login: str
    author_avatar_url: str | None = None
    opened_at: datetime
    updated_at: datetime
    closed_at: datetime | None = None
    merged_at: datetime | None = None
    changed_files: int = Field(default=0, ge=0)
    lines_added: int = Field(default=0, ge=0)
    lines_removed: int = Field(default=0, ge=0)
