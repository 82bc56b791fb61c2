"""Metrics service: loads activity from the store and derives metrics.

Reads go through the unit of work's repositories; the arithmetic lives in
``devmetrics.metrics.calculations``. Only ``calculate_for_developer`` (and
the all-developers loop built on it) writes, upserting cached Metric rows.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, time, timedelta
from enum import Enum
from functools import partial
from statistics import mean
from typing import Any

from devmetrics.config import Settings, get_settings
from devmetrics.db.models import Developer, MetricType, PullRequestStatus, utc_now
from devmetrics.db.unit_of_work import UnitOfWork
from devmetrics.errors import NotFoundError, ValidationFailureError
from devmetrics.logging import get_logger
from devmetrics.outcomes import Tally, attempt
from devmetrics.schemas.metrics import (
    CodeVelocity,
    CommitActivity,
    ContributionHeatmap,
    DeveloperMetrics,
    LeaderboardEntry,
    PullRequestStats,
    ReviewTimeMetrics,
)

from .calculations import (
    compute_code_velocity,
    compute_commit_activity,
    compute_contribution_heatmap,
    compute_review_time,
    merge_durations,
    rank_leaderboard,
)

logger = get_logger(__name__)


class LeaderboardMetric(str, Enum):
    """What a leaderboard ranks developers by."""

    COMMITS = "commits"
    PULL_REQUESTS = "pull_requests"
    LINES_CHANGED = "lines_changed"
    ACTIVE_DAYS = "active_days"


def _require_window(start: datetime, end: datetime) -> None:
    if start >= end:
        raise ValidationFailureError(
            f"start ({start.isoformat()}) must be before end ({end.isoformat()})"
        )


def _require_positive(name: str, value: int) -> None:
    if value < 1:
        raise ValidationFailureError(f"{name} must be at least 1, got {value}")


@dataclass
class MetricsRunResult:
    """Tally of a calculate-for-all-developers run."""

    start: datetime
    end: datetime
    succeeded: list[int] = field(default_factory=list)
    """Developer ids whose metrics were written."""

    failed: dict[int, str] = field(default_factory=dict)
    """Developer id to error description."""

    @property
    def developers_processed(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def success(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "developers_processed": self.developers_processed,
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "errors": {str(dev_id): msg for dev_id, msg in self.failed.items()},
        }


class MetricsService:
    """Metric queries and cached-metric writes for one unit of work.

    Usage:
        async with UnitOfWork(get_session_factory()) as uow:
            service = MetricsService(uow)
            velocity = await service.get_code_velocity(weeks=8)
    """

    def __init__(
        self,
        uow: UnitOfWork,
        settings: Settings | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._uow = uow
        self._settings = settings or get_settings()
        self._clock = clock

    # -------------------------------------------------------------------------
    # Cached per-developer metrics
    # -------------------------------------------------------------------------

    async def calculate_for_developer(
        self,
        developer_id: int,
        start: datetime,
        end: datetime,
    ) -> DeveloperMetrics:
        """Compute a developer's activity in [start, end] and upsert Metric rows.

        Writes commits, lines added, lines removed, pull requests, active days
        and average response time (mean hours-to-merge, 0 when nothing merged),
        each tagged with the window in its metadata.

        Raises:
            ValidationFailureError: If start >= end
            NotFoundError: If the developer does not exist
        """
        _require_window(start, end)
        try:
            developer = await self._uow.developers.get_by_id(developer_id)
            if developer is None:
                raise NotFoundError(f"Developer {developer_id} not found")

            commits = await self._uow.commits.in_range(
                start, end, developer_id=developer_id, end_inclusive=True
            )
            prs = await self._uow.pull_requests.opened_in_range(
                start, end, author_id=developer_id
            )
            durations = merge_durations(prs)
            snapshot = DeveloperMetrics(
                developer_id=developer_id,
                start_date=start,
                end_date=end,
                commits=len(commits),
                lines_added=sum(c.lines_added for c in commits),
                lines_removed=sum(c.lines_removed for c in commits),
                pull_requests=len(prs),
                active_days=len({c.committed_at.date() for c in commits}),
                average_response_time_hours=mean(durations) if durations else None,
            )

            metadata = {
                "start_date": start.date().isoformat(),
                "end_date": end.date().isoformat(),
            }
            values: dict[MetricType, float] = {
                MetricType.COMMITS: snapshot.commits,
                MetricType.LINES_ADDED: snapshot.lines_added,
                MetricType.LINES_REMOVED: snapshot.lines_removed,
                MetricType.PULL_REQUESTS: snapshot.pull_requests,
                MetricType.ACTIVE_DAYS: snapshot.active_days,
                MetricType.AVERAGE_RESPONSE_TIME: snapshot.average_response_time_hours or 0.0,
            }
            computed_at = self._clock()
            for metric_type, value in values.items():
                await self._uow.metrics.upsert(
                    developer_id, metric_type, value, metadata=metadata, timestamp=computed_at
                )
            await self._uow.save()
        except Exception:
            await self._uow.rollback()
            raise

        logger.debug(
            "Metrics for developer {}: commits={}, +{}/-{}, prs={}, active_days={}",
            developer_id,
            snapshot.commits,
            snapshot.lines_added,
            snapshot.lines_removed,
            snapshot.pull_requests,
            snapshot.active_days,
        )
        return snapshot

    async def calculate_for_all_developers(
        self,
        window_days: int | None = None,
    ) -> MetricsRunResult:
        """Recalculate every developer over the trailing window.

        One developer's failure is recorded and the loop moves on.
        """
        if window_days is None:
            window_days = self._settings.metrics.default_window_days
        _require_positive("window_days", window_days)
        end = self._clock()
        start = end - timedelta(days=window_days)

        # Plain ids: a failed developer rolls back and expires loaded rows
        developer_ids = sorted(d.id for d in await self._uow.developers.get_all())
        logger.info("Calculating metrics for {} developers", len(developer_ids))

        tally: Tally[DeveloperMetrics] = Tally()
        for developer_id in developer_ids:
            outcome = await attempt(
                partial(self.calculate_for_developer, developer_id, start, end),
                subject=developer_id,
            )
            if not outcome.ok:
                logger.error(
                    "Metrics calculation failed for developer {}: {}",
                    developer_id,
                    outcome.error,
                )
            tally.add(outcome)

        result = MetricsRunResult(
            start=start,
            end=end,
            succeeded=[o.subject for o in tally.successes],
            failed=tally.errors,
        )
        logger.info(
            "Metrics calculation finished: {} succeeded, {} failed",
            len(tally.successes),
            len(tally.failures),
        )
        return result

    # -------------------------------------------------------------------------
    # Read-only metrics
    # -------------------------------------------------------------------------

    async def get_code_velocity(
        self,
        developer_id: int | None = None,
        weeks: int | None = None,
    ) -> CodeVelocity:
        """Weekly velocity over the trailing ``weeks`` weeks."""
        weeks = self._settings.metrics.velocity_weeks if weeks is None else weeks
        _require_positive("weeks", weeks)
        end = self._clock()
        start = end - timedelta(weeks=weeks)

        commits = await self._uow.commits.in_range(
            start, end, developer_id=developer_id, end_inclusive=True
        )
        merged = await self._uow.pull_requests.merged_in_range(start, end, author_id=developer_id)
        velocity = compute_code_velocity(commits, merged, start, end)
        logger.info(
            "Velocity over {} weeks: {} commits, {} merged PRs, trend {}",
            velocity.weeks_analyzed,
            velocity.total_commits,
            velocity.total_prs_merged,
            velocity.commit_trend,
        )
        return velocity

    async def get_review_time_metrics(
        self,
        developer_id: int | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> ReviewTimeMetrics:
        """Time-to-merge statistics for PRs opened in [start, end].

        Defaults to the trailing default window ending now.
        """
        end = end or self._clock()
        start = start or end - timedelta(days=self._settings.metrics.default_window_days)
        _require_window(start, end)

        prs = await self._uow.pull_requests.opened_in_range(start, end, author_id=developer_id)
        return compute_review_time(prs, start, end)

    async def get_contribution_heatmap(
        self,
        weeks: int | None = None,
        developer_id: int | None = None,
    ) -> ContributionHeatmap:
        """Daily commit heatmap for the ``weeks * 7`` days ending today (UTC)."""
        weeks = self._settings.metrics.heatmap_weeks if weeks is None else weeks
        _require_positive("weeks", weeks)
        last_day = self._clock().astimezone(UTC).date()
        first_day = last_day - timedelta(days=weeks * 7 - 1)

        lower = datetime.combine(first_day, time.min, tzinfo=UTC)
        upper = datetime.combine(last_day + timedelta(days=1), time.min, tzinfo=UTC)
        commits = await self._uow.commits.in_range(lower, upper, developer_id=developer_id)
        return compute_contribution_heatmap(
            commits, first_day, last_day, number_of_weeks=weeks
        )

    async def get_leaderboard(
        self,
        metric: LeaderboardMetric,
        top_n: int | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[LeaderboardEntry]:
        """Top developers by ``metric`` over [start, end].

        Equal values keep the developer-id order of the grouped query.
        """
        top_n = top_n if top_n is not None else self._settings.metrics.leaderboard_top_n
        end = end or self._clock()
        start = start or end - timedelta(days=self._settings.metrics.default_window_days)
        _require_window(start, end)
        logger.info(
            "Leaderboard for {}, top {}, from {} to {}", metric.value, top_n, start, end
        )

        match metric:
            case LeaderboardMetric.COMMITS:
                rows = await self._uow.commits.count_by_developer(start, end)
            case LeaderboardMetric.PULL_REQUESTS:
                rows = await self._uow.pull_requests.count_by_author(start, end)
            case LeaderboardMetric.LINES_CHANGED:
                rows = await self._uow.commits.lines_changed_by_developer(start, end)
            case LeaderboardMetric.ACTIVE_DAYS:
                rows = await self._uow.commits.active_days_by_developer(start, end)
            case _:
                raise ValidationFailureError(f"Unknown leaderboard metric: {metric}")

        developers = {
            d.id: d
            for d in await self._uow.developers.find(Developer.id.in_([i for i, _ in rows]))
        }
        return rank_leaderboard(((developers[i], value) for i, value in rows), top_n)

    async def get_commit_activity(
        self,
        start: datetime,
        end: datetime,
        developer_id: int | None = None,
    ) -> CommitActivity:
        """Daily commit counts for every day from start to end."""
        _require_window(start, end)
        commits = await self._uow.commits.in_range(
            start, end, developer_id=developer_id, end_inclusive=True
        )
        activity = compute_commit_activity(commits, start, end)
        logger.info(
            "Found {} commits over {} days (avg: {:.2f}/day)",
            activity.total_commits,
            len(activity.values),
            activity.average_per_day,
        )
        return activity

    async def get_pull_request_stats(
        self,
        days: int = 30,
        developer_id: int | None = None,
    ) -> PullRequestStats:
        """PR counts per status and average review hours over the last ``days`` days."""
        _require_positive("days", days)
        end = self._clock()
        start = end - timedelta(days=days)

        prs = await self._uow.pull_requests.opened_in_range(start, end, author_id=developer_id)
        if not prs:
            logger.info("No PRs found between {} and {}", start, end)
            return PullRequestStats(start_date=start, end_date=end)

        counts = {status: 0 for status in PullRequestStatus}
        for pr in prs:
            counts[pr.status] += 1
        present = [(status, n) for status, n in counts.items() if n]
        durations = merge_durations(prs)
        return PullRequestStats(
            labels=[status.value for status, _ in present],
            values=[n for _, n in present],
            total_prs=len(prs),
            average_review_time_hours=mean(durations) if durations else None,
            start_date=start,
            end_date=end,
        )
