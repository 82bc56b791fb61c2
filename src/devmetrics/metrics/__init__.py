"""Developer metrics: pure calculations and the store-backed service."""

from .calculations import (
    commit_trend,
    compute_code_velocity,
    compute_commit_activity,
    compute_contribution_heatmap,
    compute_review_time,
    contribution_level,
    rank_leaderboard,
    week_start,
)
from .service import LeaderboardMetric, MetricsRunResult, MetricsService

__all__ = [
    "LeaderboardMetric",
    "MetricsRunResult",
    "MetricsService",
    "commit_trend",
    "compute_code_velocity",
    "compute_commit_activity",
    "compute_contribution_heatmap",
    "compute_review_time",
    "contribution_level",
    "rank_leaderboard",
    "week_start",
]
