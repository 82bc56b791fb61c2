"""Pure metric calculations.

Every function here works on already-loaded Commit/PullRequest rows and
returns a schema from ``devmetrics.schemas.metrics``. There is no store or
network access, so results depend only on the arguments.
"""

from collections import Counter
from collections.abc import Iterable, Sequence
from datetime import date, datetime, timedelta
from statistics import mean, median

from devmetrics.db.models import Commit, Developer, PullRequest
from devmetrics.errors import ValidationFailureError
from devmetrics.schemas.metrics import (
    CodeVelocity,
    CommitActivity,
    ContributionHeatmap,
    ContributionLevel,
    DayContribution,
    LeaderboardEntry,
    ReviewTimeMetrics,
    WeeklyVelocity,
)

MIN_TREND_WEEKS = 4
TREND_THRESHOLD_PERCENT = 5.0
CHART_LABEL_FORMAT = "%b %d"  # "Nov 23"


def week_start(moment: datetime) -> datetime:
    """Midnight of the Monday on or before ``moment`` (timezone preserved)."""
    midnight = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight - timedelta(days=midnight.weekday())


def _days(start: date, end: date) -> list[date]:
    """Every day in [start, end]."""
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]


# -----------------------------------------------------------------------------
# Velocity
# -----------------------------------------------------------------------------


def commit_trend(weeks: Sequence[WeeklyVelocity]) -> tuple[int, float]:
    """Compare mean weekly commits of the first half of ``weeks`` to the second.

    Returns:
        Tuple of (direction, percent change). Direction is +1 above +5 %,
        -1 below -5 %, else 0. With fewer than four weeks both are 0.
        A first half with no commits gives (1, 0.0) if the second half has
        any, else (0, 0.0).
    """
    if len(weeks) < MIN_TREND_WEEKS:
        return 0, 0.0

    half = len(weeks) // 2
    first = mean(w.commits for w in weeks[:half])
    second = mean(w.commits for w in weeks[half:])
    if first == 0:
        return (1 if second > 0 else 0), 0.0

    percent = (second - first) / first * 100
    if percent > TREND_THRESHOLD_PERCENT:
        return 1, percent
    if percent < -TREND_THRESHOLD_PERCENT:
        return -1, percent
    return 0, percent


def compute_code_velocity(
    commits: Sequence[Commit],
    merged_prs: Sequence[PullRequest],
    start: datetime,
    end: datetime,
) -> CodeVelocity:
    """Bucket commits and merged PRs into Monday-aligned weeks.

    Weeks start at ``week_start(start)`` and continue while the week start
    is before ``end``. Commits are bucketed by ``committed_at`` and PRs by
    ``merged_at``.

    Args:
        commits: Commits in the window
        merged_prs: PRs merged in the window
        start: Window start
        end: Window end

    Returns:
        CodeVelocity (``CodeVelocity.empty`` when there is no activity)
    """
    if not commits and not merged_prs:
        return CodeVelocity.empty(start, end)

    weeks: list[WeeklyVelocity] = []
    current = week_start(start)
    while current < end:
        following = current + timedelta(days=7)
        week_commits = [c for c in commits if current <= c.committed_at < following]
        week_prs = [
            pr
            for pr in merged_prs
            if pr.merged_at is not None and current <= pr.merged_at < following
        ]
        weeks.append(
            WeeklyVelocity(
                week_start=current,
                label=current.strftime(CHART_LABEL_FORMAT),
                commits=len(week_commits),
                lines_added=sum(c.lines_added for c in week_commits),
                lines_removed=sum(c.lines_removed for c in week_commits),
                prs_merged=len(week_prs),
                active_days=len({c.committed_at.date() for c in week_commits}),
            )
        )
        current = following

    trend, trend_percent = commit_trend(weeks)
    return CodeVelocity(
        weekly_data=weeks,
        average_commits_per_week=mean(w.commits for w in weeks) if weeks else 0.0,
        average_lines_per_week=mean(w.lines_changed for w in weeks) if weeks else 0.0,
        average_prs_per_week=mean(w.prs_merged for w in weeks) if weeks else 0.0,
        commit_trend=trend,
        commit_trend_percent=trend_percent,
        total_commits=len(commits),
        total_lines_changed=sum(c.lines_added + c.lines_removed for c in commits),
        total_prs_merged=len(merged_prs),
        weeks_analyzed=len(weeks),
        start_date=start,
        end_date=end,
    )


# -----------------------------------------------------------------------------
# Review time
# -----------------------------------------------------------------------------


def merge_durations(prs: Iterable[PullRequest]) -> list[float]:
    """Positive hours-to-merge of the merged PRs in ``prs``, sorted ascending."""
    hours = (pr.hours_to_merge for pr in prs if pr.is_merged)
    return sorted(h for h in hours if h is not None and h > 0)


def compute_review_time(
    prs: Sequence[PullRequest],
    start: datetime,
    end: datetime,
) -> ReviewTimeMetrics:
    """Time-to-merge statistics for the PRs opened in a window.

    Non-positive durations (merged before opened, clock skew) are left out
    of the timing statistics but still count as merged.
    """
    if not prs:
        return ReviewTimeMetrics.empty(start, end)

    merged = [pr for pr in prs if pr.is_merged and pr.merged_at is not None]
    if not merged:
        return ReviewTimeMetrics.zero_merge(len(prs), start, end)

    durations = merge_durations(merged)
    merge_rate = len(merged) / len(prs) * 100
    if not durations:
        return ReviewTimeMetrics(
            total_prs_analyzed=len(prs),
            merged_prs=len(merged),
            merge_rate_percent=merge_rate,
            start_date=start,
            end_date=end,
        )

    return ReviewTimeMetrics(
        average_time_to_merge_hours=mean(durations),
        median_time_to_merge_hours=median(durations),
        fastest_merge_hours=durations[0],
        slowest_merge_hours=durations[-1],
        total_prs_analyzed=len(prs),
        merged_prs=len(merged),
        merge_rate_percent=merge_rate,
        start_date=start,
        end_date=end,
    )


# -----------------------------------------------------------------------------
# Heatmap
# -----------------------------------------------------------------------------


def contribution_level(count: int, max_count: int) -> ContributionLevel:
    """Bucket ``count`` by its share of the period's busiest day."""
    if count <= 0 or max_count <= 0:
        return ContributionLevel.NONE
    percentage = count / max_count * 100
    if percentage <= 25:
        return ContributionLevel.LOW
    if percentage <= 50:
        return ContributionLevel.MEDIUM
    if percentage <= 75:
        return ContributionLevel.HIGH
    return ContributionLevel.MAX


def daily_commit_counts(commits: Iterable[Commit]) -> Counter[date]:
    return Counter(c.committed_at.date() for c in commits)


def compute_contribution_heatmap(
    commits: Iterable[Commit],
    start: date,
    end: date,
    *,
    number_of_weeks: int = 0,
) -> ContributionHeatmap:
    """Per-day commit counts and levels for every day in [start, end]."""
    counts = daily_commit_counts(commits)
    days = _days(start, end)
    max_count = max((counts[d] for d in days), default=0)
    return ContributionHeatmap(
        days=[
            DayContribution(day=d, count=counts[d], level=contribution_level(counts[d], max_count))
            for d in days
        ],
        max_contributions=max_count,
        total_contributions=sum(counts[d] for d in days),
        number_of_weeks=number_of_weeks,
        start_date=start,
        end_date=end,
    )


def compute_commit_activity(
    commits: Iterable[Commit],
    start: datetime,
    end: datetime,
) -> CommitActivity:
    """Zero-filled daily commit series from start's day to end's day."""
    counts = daily_commit_counts(commits)
    days = _days(start.date(), end.date())
    values = [counts[d] for d in days]
    total = sum(values)
    return CommitActivity(
        labels=[d.strftime(CHART_LABEL_FORMAT) for d in days],
        values=values,
        total_commits=total,
        average_per_day=round(total / len(days), 2) if days else 0.0,
        start_date=start,
        end_date=end,
    )


# -----------------------------------------------------------------------------
# Leaderboard
# -----------------------------------------------------------------------------


def rank_leaderboard(
    rows: Iterable[tuple[Developer, int]],
    top_n: int,
) -> list[LeaderboardEntry]:
    """Rank (developer, value) rows by value, highest first.

    The sort is stable, so equal values keep their input order. Ranks are
    1-based positions in the output.

    Raises:
        ValidationFailureError: If top_n < 1
    """
    if top_n < 1:
        raise ValidationFailureError(f"top_n must be at least 1, got {top_n}")

    ordered = sorted(rows, key=lambda row: row[1], reverse=True)
    return [
        LeaderboardEntry(
            rank=index + 1,
            developer_id=developer.id,
            developer_name=developer.label,
            avatar_url=developer.avatar_url,
            value=value,
        )
        for index, (developer, value) in enumerate(ordered[:top_n])
    ]
