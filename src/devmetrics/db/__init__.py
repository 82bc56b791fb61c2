"""Database module for DevMetrics DB."""

from devmetrics.db.engine import (
    build_engine,
    configure_sqlite,
    create_tables,
    dispose_engine,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
)
from devmetrics.db.models import (
    Base,
    Commit,
    Developer,
    Metric,
    MetricType,
    PlatformType,
    PullRequest,
    PullRequestStatus,
    Repository,
    UTCDateTime,
    repository_contributors,
)
from devmetrics.db.repositories import (
    BaseRepository,
    CommitRepository,
    DeveloperRepository,
    MetricRepository,
    PullRequestRepository,
    RepositoryRepository,
)
from devmetrics.db.unit_of_work import UnitOfWork

__all__ = [
    # Models
    "Base",
    "Commit",
    "Developer",
    "Metric",
    "MetricType",
    "PlatformType",
    "PullRequest",
    "PullRequestStatus",
    "Repository",
    "UTCDateTime",
    "repository_contributors",
    # Engine
    "build_engine",
    "configure_sqlite",
    "create_tables",
    "dispose_engine",
    "drop_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    # Repositories
    "BaseRepository",
    "CommitRepository",
    "DeveloperRepository",
    "MetricRepository",
    "PullRequestRepository",
    "RepositoryRepository",
    # Unit of work
    "UnitOfWork",
]
