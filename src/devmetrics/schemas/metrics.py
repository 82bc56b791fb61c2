"""Output schemas for derived metrics.

These are read-only views computed from the store; nothing here is
persisted directly (cached per-developer values live in the Metric table).
"""

from datetime import date, datetime
from enum import IntEnum
from typing import Self

from pydantic import BaseModel, ConfigDict, computed_field


def format_duration(hours: float) -> str:
    """Compact human form of a duration: "45m", "5.5h" or "2.3d"."""
    if hours < 1:
        return f"{int(hours * 60)}m"
    if hours < 24:
        return f"{hours:.1f}h"
    return f"{hours / 24:.1f}d"


class MetricsSchema(BaseModel):
    """Base for immutable metric views."""

    model_config = ConfigDict(frozen=True)


# -----------------------------------------------------------------------------
# Velocity
# -----------------------------------------------------------------------------
class WeeklyVelocity(MetricsSchema):
    """Activity within one Monday-aligned week."""

    week_start: datetime
    label: str
    commits: int = 0
    lines_added: int = 0
    lines_removed: int = 0
    prs_merged: int = 0
    active_days: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def lines_changed(self) -> int:
        return self.lines_added + self.lines_removed


class CodeVelocity(MetricsSchema):
    """Weekly velocity series with averages and a commit trend.

    ``commit_trend`` is +1 (rising), -1 (falling) or 0 (flat, or fewer
    than four weeks analyzed).
    """

    weekly_data: list[WeeklyVelocity] = []
    average_commits_per_week: float = 0.0
    average_lines_per_week: float = 0.0
    average_prs_per_week: float = 0.0
    commit_trend: int = 0
    commit_trend_percent: float = 0.0
    total_commits: int = 0
    total_lines_changed: int = 0
    total_prs_merged: int = 0
    weeks_analyzed: int = 0
    start_date: datetime
    end_date: datetime

    @classmethod
    def empty(cls, start: datetime, end: datetime) -> Self:
        """Result for a window without commits or merged PRs."""
        return cls(start_date=start, end_date=end)

    @property
    def is_empty(self) -> bool:
        return self.weeks_analyzed == 0


# -----------------------------------------------------------------------------
# Review time
# -----------------------------------------------------------------------------
class ReviewTimeMetrics(MetricsSchema):
    """Time-to-merge statistics for PRs opened in a window.

    Two "nothing to time" states are distinct:

    - empty: no PRs at all (``total_prs_analyzed == 0``)
    - zero merge: PRs exist but none merged (``merged_prs == 0``)
    """

    average_time_to_merge_hours: float = 0.0
    median_time_to_merge_hours: float = 0.0
    fastest_merge_hours: float = 0.0
    slowest_merge_hours: float = 0.0
    total_prs_analyzed: int = 0
    merged_prs: int = 0
    merge_rate_percent: float = 0.0
    start_date: datetime
    end_date: datetime

    @computed_field  # type: ignore[prop-decorator]
    @property
    def average_time_to_merge_formatted(self) -> str:
        return format_duration(self.average_time_to_merge_hours)

    @classmethod
    def empty(cls, start: datetime, end: datetime) -> Self:
        return cls(start_date=start, end_date=end)

    @classmethod
    def zero_merge(cls, total_prs: int, start: datetime, end: datetime) -> Self:
        return cls(total_prs_analyzed=total_prs, start_date=start, end_date=end)

    @property
    def is_empty(self) -> bool:
        return self.total_prs_analyzed == 0

    @property
    def is_zero_merge(self) -> bool:
        return self.total_prs_analyzed > 0 and self.merged_prs == 0


# -----------------------------------------------------------------------------
# Heatmap
# -----------------------------------------------------------------------------
class ContributionLevel(IntEnum):
    """Intensity bucket of a day relative to the busiest day of the period."""

    NONE = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    MAX = 4


class DayContribution(MetricsSchema):
    day: date
    count: int
    level: ContributionLevel


class ContributionHeatmap(MetricsSchema):
    """Per-day commit counts over an inclusive date range."""

    days: list[DayContribution] = []
    max_contributions: int = 0
    total_contributions: int = 0
    number_of_weeks: int = 0
    start_date: date
    end_date: date


# -----------------------------------------------------------------------------
# Leaderboard
# -----------------------------------------------------------------------------
class LeaderboardEntry(MetricsSchema):
    rank: int
    developer_id: int
    developer_name: str
    avatar_url: str | None = None
    value: int


# -----------------------------------------------------------------------------
# Chart series
# -----------------------------------------------------------------------------
class CommitActivity(MetricsSchema):
    """Daily commit counts, zero-filled, labelled "Mon DD"."""

    labels: list[str] = []
    values: list[int] = []
    total_commits: int = 0
    average_per_day: float = 0.0
    start_date: datetime
    end_date: datetime


class PullRequestStats(MetricsSchema):
    """PR counts per status plus the average review time of merged PRs."""

    labels: list[str] = []
    values: list[int] = []
    total_prs: int = 0
    average_review_time_hours: float | None = None
    start_date: datetime
    end_date: datetime


# -----------------------------------------------------------------------------
# Per-developer snapshot
# -----------------------------------------------------------------------------
class DeveloperMetrics(MetricsSchema):
    """Values written to the Metric table for one developer and window."""

    developer_id: int
    start_date: datetime
    end_date: datetime
    commits: int = 0
    lines_added: int = 0
    lines_removed: int = 0
    pull_requests: int = 0
    active_days: int = 0
    average_response_time_hours: float | None = None
    """Mean hours-to-merge of the developer's merged PRs (None when none merged)."""
