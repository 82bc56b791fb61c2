"""SQLAlchemy ORM models for DevMetrics DB."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)
from sqlalchemy.types import JSON, TypeDecorator


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator[datetime]):
    """DateTime column that always stores and returns aware UTC values.

    SQLite drops tzinfo, so naive values read back are assumed UTC and
    aware values written in another zone are converted first.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class PlatformType(str, Enum):
    """Source-control platform a repository lives on."""

    GITHUB = "github"
    GITLAB = "gitlab"
    AZURE = "azure"


class PullRequestStatus(str, Enum):
    """Pull request status enum."""

    OPEN = "open"
    CLOSED = "closed"  # closed without merge
    MERGED = "merged"
    DRAFT = "draft"


class MetricType(str, Enum):
    """Kinds of cached per-developer metrics."""

    COMMITS = "commits"
    PULL_REQUESTS = "pull_requests"
    CODE_REVIEWS = "code_reviews"
    ISSUES_CLOSED = "issues_closed"
    LINES_ADDED = "lines_added"
    LINES_REMOVED = "lines_removed"
    ACTIVE_DAYS = "active_days"
    AVERAGE_RESPONSE_TIME = "average_response_time"


# ------------------------------------------------------------------------------
# Junction table for many-to-many: Repository <-> Developer (contributors)
# ------------------------------------------------------------------------------
repository_contributors = Table(
    "repository_contributors",
    Base.metadata,
    Column(
        "repository_id",
        ForeignKey("repositories.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "developer_id",
        ForeignKey("developers.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("created_at", UTCDateTime, default=utc_now),
)


# ------------------------------------------------------------------------------
# Developer model
# ------------------------------------------------------------------------------
class Developer(Base):
    """A person identified by email; created lazily by reconciliation."""

    __tablename__ = "developers"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True)
    github_username: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    # True when github_username was derived from the email local part
    username_provisional: Mapped[bool] = mapped_column(default=False)
    display_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, onupdate=utc_now)

    # Relationships
    commits: Mapped[list["Commit"]] = relationship(back_populates="developer")
    pull_requests: Mapped[list["PullRequest"]] = relationship(back_populates="author")
    metrics: Mapped[list["Metric"]] = relationship(
        back_populates="developer",
        cascade="all, delete-orphan",
    )
    repositories: Mapped[list["Repository"]] = relationship(
        secondary=repository_contributors,
        back_populates="contributors",
    )

    def __repr__(self) -> str:
        return f"<Developer(id={self.id}, email='{self.email}')>"

    @property
    def label(self) -> str:
        """Best human-readable name for this developer."""
        return self.display_name or self.github_username or self.email


# ------------------------------------------------------------------------------
# Repository model
# ------------------------------------------------------------------------------
class Repository(Base):
    """Tracked external repository."""

    __tablename__ = "repositories"

    id: Mapped[int] = mapped_column(primary_key=True)
    # Account whose credential discovered this repository
    account_id: Mapped[str] = mapped_column(String(100), index=True)
    platform: Mapped[PlatformType] = mapped_column(default=PlatformType.GITHUB)
    external_id: Mapped[str] = mapped_column(String(100))
    name: Mapped[str] = mapped_column(String(100))  # e.g., "prebid-server"
    full_name: Mapped[str] = mapped_column(String(200))  # "prebid/prebid-server"
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    default_branch: Mapped[str | None] = mapped_column(String(200), nullable=True)
    is_private: Mapped[bool] = mapped_column(default=False)
    is_fork: Mapped[bool] = mapped_column(default=False)
    stargazers_count: Mapped[int] = mapped_column(default=0)
    forks_count: Mapped[int] = mapped_column(default=0)
    open_issues_count: Mapped[int] = mapped_column(default=0)
    language: Mapped[str | None] = mapped_column(String(100), nullable=True)
    pushed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    # Watermark: null means never synced
    last_synced_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, onupdate=utc_now)

    # Relationships
    commits: Mapped[list["Commit"]] = relationship(
        back_populates="repository",
        cascade="all, delete-orphan",
    )
    pull_requests: Mapped[list["PullRequest"]] = relationship(
        back_populates="repository",
        cascade="all, delete-orphan",
    )
    contributors: Mapped[list["Developer"]] = relationship(
        secondary=repository_contributors,
        back_populates="repositories",
    )

    __table_args__ = (
        UniqueConstraint("external_id", "platform", name="uq_repo_external_platform"),
    )

    def __repr__(self) -> str:
        return f"<Repository(id={self.id}, full_name='{self.full_name}')>"

    @property
    def owner(self) -> str:
        """Owner part of full_name."""
        return self.full_name.split("/", 1)[0]

    @property
    def project(self) -> str:
        """Project part of full_name."""
        return self.full_name.split("/", 1)[-1]


# ------------------------------------------------------------------------------
# Commit model
# ------------------------------------------------------------------------------
class Commit(Base):
    """A commit; immutable upstream, updated in place on re-sync."""

    __tablename__ = "commits"

    id: Mapped[int] = mapped_column(primary_key=True)
    repository_id: Mapped[int] = mapped_column(ForeignKey("repositories.id", ondelete="CASCADE"))
    developer_id: Mapped[int] = mapped_column(ForeignKey("developers.id"), index=True)

    sha: Mapped[str] = mapped_column(String(64))
    message: Mapped[str] = mapped_column(Text, default="")
    lines_added: Mapped[int] = mapped_column(default=0)
    lines_removed: Mapped[int] = mapped_column(default=0)
    files_changed: Mapped[int] = mapped_column(default=0)
    committed_at: Mapped[datetime] = mapped_column(UTCDateTime, index=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, onupdate=utc_now)

    repository: Mapped["Repository"] = relationship(back_populates="commits")
    developer: Mapped["Developer"] = relationship(back_populates="commits")

    # One SHA per repo
    __table_args__ = (UniqueConstraint("sha", "repository_id", name="uq_commit_sha_repo"),)

    def __repr__(self) -> str:
        return f"<Commit(id={self.id}, repo={self.repository_id}, sha='{self.sha[:7]}')>"

    @property
    def lines_changed(self) -> int:
        """Lines added plus lines removed."""
        return self.lines_added + self.lines_removed


# ------------------------------------------------------------------------------
# PullRequest model
# ------------------------------------------------------------------------------
class PullRequest(Base):
    """Pull request; the latest fetched state always wins."""

    __tablename__ = "pull_requests"

    id: Mapped[int] = mapped_column(primary_key=True)
    repository_id: Mapped[int] = mapped_column(ForeignKey("repositories.id", ondelete="CASCADE"))
    author_id: Mapped[int] = mapped_column(ForeignKey("developers.id"), index=True)

    number: Mapped[int] = mapped_column()
    title: Mapped[str] = mapped_column(String(500))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[PullRequestStatus] = mapped_column(default=PullRequestStatus.OPEN)

    # --------------------------------------------------------------------------
    # Platform timestamps
    # --------------------------------------------------------------------------
    opened_at: Mapped[datetime] = mapped_column(UTCDateTime, index=True)
    closed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    merged_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Numeric stats (list endpoint omits these, so they may stay 0)
    changed_files: Mapped[int] = mapped_column(default=0)
    lines_added: Mapped[int] = mapped_column(default=0)
    lines_removed: Mapped[int] = mapped_column(default=0)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, onupdate=utc_now)

    repository: Mapped["Repository"] = relationship(back_populates="pull_requests")
    author: Mapped["Developer"] = relationship(back_populates="pull_requests")

    # One PR number per repo
    __table_args__ = (UniqueConstraint("number", "repository_id", name="uq_pr_number_repo"),)

    def __repr__(self) -> str:
        return f"<PullRequest(id={self.id}, repo={self.repository_id}, number={self.number})>"

    @property
    def is_merged(self) -> bool:
        """Check if PR was merged."""
        return self.status == PullRequestStatus.MERGED

    @property
    def hours_to_merge(self) -> float | None:
        """Hours between opening and merge (None when not merged)."""
        if self.merged_at is None:
            return None
        return (self.merged_at - self.opened_at).total_seconds() / 3600


# ------------------------------------------------------------------------------
# Metric model
# ------------------------------------------------------------------------------
class Metric(Base):
    """Cached derived value; one current row per (developer, metric_type)."""

    __tablename__ = "metrics"

    id: Mapped[int] = mapped_column(primary_key=True)
    developer_id: Mapped[int] = mapped_column(ForeignKey("developers.id", ondelete="CASCADE"))
    repository_id: Mapped[int | None] = mapped_column(
        ForeignKey("repositories.id", ondelete="SET NULL"), nullable=True
    )
    metric_type: Mapped[MetricType] = mapped_column()
    value: Mapped[float] = mapped_column(Float, default=0.0)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)
    metadata_json: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    developer: Mapped["Developer"] = relationship(back_populates="metrics")

    __table_args__ = (
        UniqueConstraint("developer_id", "metric_type", name="uq_metric_developer_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<Metric(id={self.id}, developer={self.developer_id}, "
            f"type={self.metric_type.value}, value={self.value})>"
        )
