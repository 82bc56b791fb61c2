"""Tests for the devmetrics CLI.

The sync orchestrator and metrics queries are mocked; these tests cover
argument handling, output formats and exit codes.
"""

import json
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import typer
from typer.testing import CliRunner

from devmetrics import __version__
from devmetrics.cli.app import app
from devmetrics.cli.common import parse_date
from devmetrics.config import Settings
from devmetrics.errors import ExternalServiceUnavailableError
from devmetrics.github.sync import ReconcileResult, RepoSyncResult, SyncResult, SyncStep
from devmetrics.metrics import MetricsRunResult
from devmetrics.schemas.metrics import LeaderboardEntry, ReviewTimeMetrics
from tests.conftest import JAN_08, NOW

runner = CliRunner()


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def sync_result() -> SyncResult:
    result = SyncResult(account_id="acme", started_at=NOW, completed_at=NOW + timedelta(seconds=3))
    result.repositories = ReconcileResult(2, 0)
    result.add_repo_result(
        RepoSyncResult(1, "acme/one", commits=ReconcileResult(5, 0), watermark_advanced=True)
    )
    result.add_repo_result(
        RepoSyncResult(2, "acme/two", errors={SyncStep.COMMITS: "NotFoundError: gone"})
    )
    return result


@pytest.fixture
def mock_orchestrator(sync_result):
    with patch("devmetrics.cli.sync._orchestrator") as factory:
        orchestrator = MagicMock()
        orchestrator.run_full_sync = AsyncMock(return_value=sync_result)
        orchestrator.sync_commits = AsyncMock(return_value=sync_result)
        orchestrator.sync_pull_requests = AsyncMock(return_value=sync_result)
        factory.return_value = orchestrator
        yield orchestrator


# -----------------------------------------------------------------------------
# Global options
# -----------------------------------------------------------------------------
class TestGlobalOptions:
    def test_version(self):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert f"devmetrics version {__version__}" in result.stdout

    def test_help_lists_command_groups(self):
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for group in ("db", "sync", "metrics"):
            assert group in result.stdout
        assert "--verbose" in result.stdout
        assert "--quiet" in result.stdout


# -----------------------------------------------------------------------------
# Sync
# -----------------------------------------------------------------------------
class TestSyncCommands:
    def test_account_text_output(self, mock_orchestrator):
        result = runner.invoke(app, ["sync", "account", "acme", "--token", "ghp_test"])

        assert result.exit_code == 0
        assert "Sync Complete" in result.stdout
        assert "acme/two (commits): NotFoundError: gone" in result.stdout
        account = mock_orchestrator.run_full_sync.call_args.args[0]
        assert account.account_id == "acme"
        assert account.credential == "ghp_test"
        assert mock_orchestrator.run_full_sync.call_args.kwargs == {"calculate_metrics": False}

    def test_account_json_output(self, mock_orchestrator):
        args = ["-q", "sync", "account", "acme", "-t", "ghp_test", "--metrics", "--format", "json"]

        result = runner.invoke(app, args)

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["summary"]["repositories_failed"] == 1
        assert data["summary"]["commits"] == {"added": 5, "updated": 0}
        assert mock_orchestrator.run_full_sync.call_args.kwargs == {"calculate_metrics": True}

    def test_failed_run_exits_1(self, mock_orchestrator, sync_result):
        sync_result.fail(
            ExternalServiceUnavailableError("rate limited", retry_after=timedelta(seconds=90))
        )

        result = runner.invoke(app, ["sync", "account", "acme", "--token", "ghp_test"])

        assert result.exit_code == 1
        assert "Sync Failed" in result.stdout
        assert "Retry after: 90s" in result.stdout

    def test_missing_token(self, mock_orchestrator):
        with patch(
            "devmetrics.cli.sync.get_settings",
            return_value=Settings(_env_file=None, github_token=""),
        ):
            result = runner.invoke(app, ["sync", "account", "acme"])

        assert result.exit_code == 1
        assert "GITHUB_TOKEN" in result.stdout
        mock_orchestrator.run_full_sync.assert_not_called()

    def test_commits(self, mock_orchestrator):
        result = runner.invoke(app, ["sync", "commits", "acme", "3", "--token", "ghp_test"])

        assert result.exit_code == 0
        assert mock_orchestrator.sync_commits.call_args.args[1] == 3

    def test_prs(self, mock_orchestrator):
        result = runner.invoke(app, ["sync", "prs", "acme", "3", "--token", "ghp_test"])

        assert result.exit_code == 0
        mock_orchestrator.sync_pull_requests.assert_awaited_once()

    def test_requires_account_argument(self):
        result = runner.invoke(app, ["sync", "account"])

        assert result.exit_code != 0

    def test_orchestrator_crash_is_reported(self, mock_orchestrator):
        mock_orchestrator.run_full_sync.side_effect = RuntimeError("database is locked")

        result = runner.invoke(app, ["sync", "account", "acme", "--token", "ghp_test"])

        assert result.exit_code == 1
        assert "Sync failed" in result.stdout
        assert "database is locked" in result.stdout


# -----------------------------------------------------------------------------
# Metrics
# -----------------------------------------------------------------------------
class TestMetricsCommands:
    def test_leaderboard_table(self):
        entries = [
            LeaderboardEntry(rank=1, developer_id=1, developer_name="alice", value=12),
            LeaderboardEntry(rank=2, developer_id=2, developer_name="bob", value=4),
        ]
        with patch("devmetrics.cli.metrics._run", return_value=entries):
            result = runner.invoke(app, ["metrics", "leaderboard", "-m", "commits", "-n", "2"])

        assert result.exit_code == 0
        assert "alice" in result.stdout
        assert "bob" in result.stdout

    def test_review_time_json(self):
        metrics = ReviewTimeMetrics(
            average_time_to_merge_hours=55.0,
            total_prs_analyzed=2,
            merged_prs=1,
            merge_rate_percent=50.0,
            start_date=JAN_08,
            end_date=NOW,
        )
        with patch("devmetrics.cli.metrics._run", return_value=metrics):
            result = runner.invoke(
                app, ["-q", "metrics", "review-time", "--since", "2024-01-08", "--format", "json"]
            )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["merged_prs"] == 1
        assert data["average_time_to_merge_formatted"] == "2.3d"

    def test_review_time_bad_date(self):
        result = runner.invoke(app, ["metrics", "review-time", "--since", "last tuesday"])

        assert result.exit_code == 1
        assert "Invalid date format" in result.stdout

    def test_calculate_with_failures_exits_1(self):
        run = MetricsRunResult(start=JAN_08, end=NOW, succeeded=[1], failed={2: "boom"})
        with patch("devmetrics.cli.metrics._run", return_value=run):
            result = runner.invoke(app, ["metrics", "calculate"])

        assert result.exit_code == 1
        assert "1 succeeded, 1 failed" in result.stdout


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
class TestParseDate:
    def test_date_only_is_utc_midnight(self):
        assert parse_date("2024-01-08") == JAN_08.replace(hour=0)

    def test_offset_converted_to_utc(self):
        parsed = parse_date("2024-01-21T14:00:00+0200")

        assert parsed == NOW

    def test_none(self):
        assert parse_date(None) is None

    def test_invalid(self):
        with pytest.raises(typer.BadParameter):
            parse_date("21/01/2024")
