"""Pydantic schemas for DevMetrics DB.

This module provides the GitHub payload models, the internal records they
map to, and the read-only metric views.
"""

from .base import RecordBase, as_utc
from .github_api import (
    GitHubCommit,
    GitHubCommitDetail,
    GitHubGitActor,
    GitHubPullRequest,
    GitHubRepository,
    GitHubUser,
    placeholder_email,
)
from .metrics import (
    CodeVelocity,
    CommitActivity,
    ContributionHeatmap,
    ContributionLevel,
    DayContribution,
    DeveloperMetrics,
    LeaderboardEntry,
    PullRequestStats,
    ReviewTimeMetrics,
    WeeklyVelocity,
    format_duration,
)
from .records import (
    RECORD_MAPPING_VERSION,
    FetchedCommit,
    FetchedPullRequest,
    FetchedRepository,
)

__all__ = [
    # Base
    "RecordBase",
    "as_utc",
    # GitHub API
    "GitHubCommit",
    "GitHubCommitDetail",
    "GitHubGitActor",
    "GitHubPullRequest",
    "GitHubRepository",
    "GitHubUser",
    "placeholder_email",
    # Records
    "RECORD_MAPPING_VERSION",
    "FetchedCommit",
    "FetchedPullRequest",
    "FetchedRepository",
    # Metrics
    "CodeVelocity",
    "CommitActivity",
    "ContributionHeatmap",
    "ContributionLevel",
    "DayContribution",
    "DeveloperMetrics",
    "LeaderboardEntry",
    "PullRequestStats",
    "ReviewTimeMetrics",
    "WeeklyVelocity",
    "format_duration",
]
