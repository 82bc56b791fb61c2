"""Tests for MetricsService against the in-memory database."""

from datetime import date, timedelta
from unittest.mock import patch

import pytest

from devmetrics.db.models import MetricType, PullRequestStatus
from devmetrics.errors import NotFoundError, ValidationFailureError
from devmetrics.metrics import LeaderboardMetric, MetricsService
from tests.conftest import JAN_08, JAN_10, JAN_12, JAN_15, JAN_16, JAN_17, JAN_20, NOW
from tests.factories import make_commit, make_developer, make_pull_request, make_repository


@pytest.fixture
def service(uow, settings, fixed_clock) -> MetricsService:
    return MetricsService(uow, settings, clock=fixed_clock)


@pytest.fixture
async def team(uow):
    """alice: 3 commits (+105/-25) and a PR merged after 55h; bob: 1 commit and an open PR."""
    session = uow.session
    repo = make_repository(session)
    alice = make_developer(session, email="alice@x.io", github_username="alice")
    bob = make_developer(session, email="bob@x.io", github_username="bob")
    await session.flush()

    make_commit(session, repo, alice, committed_at=JAN_15, lines_added=60, lines_removed=10)
    make_commit(session, repo, alice, committed_at=JAN_16, lines_added=40, lines_removed=10)
    make_commit(session, repo, alice, committed_at=JAN_17, lines_added=5, lines_removed=5)
    make_commit(session, repo, bob, committed_at=JAN_20, lines_added=1, lines_removed=1)
    make_pull_request(
        session, repo, alice, status=PullRequestStatus.MERGED, opened_at=JAN_10, merged_at=JAN_12
    )
    make_pull_request(session, repo, bob, opened_at=JAN_16)
    await session.flush()
    return alice, bob


# -----------------------------------------------------------------------------
# Cached per-developer metrics
# -----------------------------------------------------------------------------
class TestCalculateForDeveloper:
    async def test_snapshot_and_rows(self, uow, service, team):
        alice, _ = team

        snapshot = await service.calculate_for_developer(alice.id, JAN_08, NOW)

        assert snapshot.commits == 3
        assert (snapshot.lines_added, snapshot.lines_removed) == (105, 25)
        assert snapshot.pull_requests == 1
        assert snapshot.active_days == 3
        assert snapshot.average_response_time_hours == pytest.approx(55.0)

        stored = await uow.metrics.for_developer(alice.id)
        assert set(stored) == {
            MetricType.COMMITS,
            MetricType.LINES_ADDED,
            MetricType.LINES_REMOVED,
            MetricType.PULL_REQUESTS,
            MetricType.ACTIVE_DAYS,
            MetricType.AVERAGE_RESPONSE_TIME,
        }
        assert stored[MetricType.COMMITS].value == 3
        assert stored[MetricType.COMMITS].metadata_json == {
            "start_date": "2024-01-08",
            "end_date": "2024-01-21",
        }
        assert stored[MetricType.COMMITS].timestamp == NOW

    async def test_recalculation_overwrites(self, uow, service, team):
        alice, _ = team

        await service.calculate_for_developer(alice.id, JAN_08, NOW)
        await service.calculate_for_developer(alice.id, JAN_16, NOW)

        stored = await uow.metrics.for_developer(alice.id)
        assert len(stored) == 6
        assert stored[MetricType.COMMITS].value == 2

    async def test_nothing_merged_stores_zero_response_time(self, uow, service, team):
        _, bob = team

        snapshot = await service.calculate_for_developer(bob.id, JAN_08, NOW)

        assert snapshot.average_response_time_hours is None
        current = await uow.metrics.get_current(bob.id, MetricType.AVERAGE_RESPONSE_TIME)
        assert current.value == 0.0

    async def test_unknown_developer(self, service, team):
        with pytest.raises(NotFoundError):
            await service.calculate_for_developer(9999, JAN_08, NOW)

    async def test_invalid_window(self, service, team):
        alice, _ = team

        with pytest.raises(ValidationFailureError):
            await service.calculate_for_developer(alice.id, NOW, JAN_08)


class TestCalculateForAllDevelopers:
    async def test_all_succeed(self, service, team):
        alice, bob = team

        run = await service.calculate_for_all_developers()

        assert run.success
        assert run.succeeded == [alice.id, bob.id]
        assert run.end == NOW
        assert run.start == NOW - timedelta(days=30)
        assert run.to_dict()["developers_processed"] == 2

    async def test_one_failure_does_not_stop_loop(self, service, team):
        alice, bob = team
        original = service.calculate_for_developer

        async def flaky(developer_id, start, end):
            if developer_id == alice.id:
                raise RuntimeError("disk full")
            return await original(developer_id, start, end)

        with patch.object(service, "calculate_for_developer", side_effect=flaky):
            run = await service.calculate_for_all_developers()

        assert not run.success
        assert run.succeeded == [bob.id]
        assert run.failed == {alice.id: "RuntimeError: disk full"}

    async def test_invalid_window_days(self, service):
        with pytest.raises(ValidationFailureError):
            await service.calculate_for_all_developers(0)


# -----------------------------------------------------------------------------
# Read-only metrics
# -----------------------------------------------------------------------------
class TestCodeVelocity:
    async def test_all_developers(self, service, team):
        velocity = await service.get_code_velocity(weeks=2)

        assert velocity.total_commits == 4
        assert velocity.total_lines_changed == 132
        assert velocity.total_prs_merged == 1
        # NOW - 2 weeks falls in the week of Jan 1
        assert velocity.weeks_analyzed == 3
        assert velocity.end_date == NOW

    async def test_single_developer(self, service, team):
        alice, _ = team

        velocity = await service.get_code_velocity(alice.id, weeks=2)

        assert velocity.total_commits == 3
        assert velocity.total_lines_changed == 130

    async def test_no_activity(self, service):
        assert (await service.get_code_velocity(weeks=4)).is_empty

    async def test_invalid_weeks(self, service):
        with pytest.raises(ValidationFailureError):
            await service.get_code_velocity(weeks=0)


class TestReviewTime:
    async def test_default_window(self, service, team):
        metrics = await service.get_review_time_metrics()

        assert metrics.total_prs_analyzed == 2
        assert metrics.merged_prs == 1
        assert metrics.merge_rate_percent == pytest.approx(50.0)
        assert metrics.average_time_to_merge_hours == pytest.approx(55.0)

    async def test_zero_merge_for_developer(self, service, team):
        _, bob = team

        metrics = await service.get_review_time_metrics(bob.id)

        assert metrics.is_zero_merge

    async def test_empty_window(self, service, team):
        metrics = await service.get_review_time_metrics(start=JAN_17, end=JAN_20)

        assert metrics.is_empty

    async def test_invalid_window(self, service):
        with pytest.raises(ValidationFailureError):
            await service.get_review_time_metrics(start=NOW, end=NOW)


class TestHeatmap:
    async def test_one_week(self, service, team):
        heatmap = await service.get_contribution_heatmap(weeks=1)

        assert heatmap.start_date == date(2024, 1, 15)
        assert heatmap.end_date == date(2024, 1, 21)
        assert [d.count for d in heatmap.days] == [1, 1, 1, 0, 0, 1, 0]
        assert heatmap.total_contributions == 4
        assert heatmap.number_of_weeks == 1

    async def test_day_count(self, service, team):
        heatmap = await service.get_contribution_heatmap(weeks=52)

        assert len(heatmap.days) == 52 * 7
        assert heatmap.days[-1].day == date(2024, 1, 21)

    async def test_single_developer(self, service, team):
        _, bob = team

        heatmap = await service.get_contribution_heatmap(weeks=1, developer_id=bob.id)

        assert heatmap.total_contributions == 1


class TestLeaderboard:
    @pytest.mark.parametrize(
        ("metric", "expected"),
        [
            (LeaderboardMetric.COMMITS, [("alice", 3), ("bob", 1)]),
            (LeaderboardMetric.LINES_CHANGED, [("alice", 130), ("bob", 2)]),
            (LeaderboardMetric.ACTIVE_DAYS, [("alice", 3), ("bob", 1)]),
            (LeaderboardMetric.PULL_REQUESTS, [("alice", 1), ("bob", 1)]),
        ],
    )
    async def test_metrics(self, service, team, metric, expected):
        entries = await service.get_leaderboard(metric, start=JAN_08, end=NOW)

        assert [(e.developer_name, e.value) for e in entries] == expected
        assert [e.rank for e in entries] == [1, 2]

    async def test_top_n(self, service, team):
        entries = await service.get_leaderboard(LeaderboardMetric.COMMITS, 1)

        assert [e.developer_name for e in entries] == ["alice"]

    async def test_invalid_top_n(self, service, team):
        with pytest.raises(ValidationFailureError):
            await service.get_leaderboard(LeaderboardMetric.COMMITS, 0)

    async def test_no_activity(self, service):
        assert await service.get_leaderboard(LeaderboardMetric.COMMITS) == []


class TestChartSeries:
    async def test_commit_activity(self, service, team):
        activity = await service.get_commit_activity(JAN_15, JAN_17)

        assert activity.values == [1, 1, 1]
        assert activity.total_commits == 3

    async def test_pull_request_stats(self, service, team):
        stats = await service.get_pull_request_stats(days=30)

        assert stats.labels == ["open", "merged"]
        assert stats.values == [1, 1]
        assert stats.total_prs == 2
        assert stats.average_review_time_hours == pytest.approx(55.0)

    async def test_pull_request_stats_empty(self, service):
        stats = await service.get_pull_request_stats(days=7)

        assert stats.total_prs == 0
        assert stats.average_review_time_hours is None
