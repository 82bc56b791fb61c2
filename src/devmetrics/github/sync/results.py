"""Result objects for sync operations.

Structured results provide consistent interfaces for monitoring,
error handling, and CLI output. Sync entry points always return one of
these; they never hand raw exceptions to their caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from devmetrics.errors import ExternalServiceUnavailableError
from devmetrics.outcomes import describe_error

from .enums import SyncState, SyncStep
from .reconciliation import ReconcileResult


@dataclass
class RepoSyncResult:
    """Outcome of one repository within a sync run."""

    repository_id: int
    """Internal repository id."""

    full_name: str
    """Full repository name (owner/name)."""

    commits: ReconcileResult | None = None
    """Commit counts (None if the step did not run or failed)."""

    pull_requests: ReconcileResult | None = None
    """PR counts (None if the step did not run or failed)."""

    errors: dict[SyncStep, str] = field(default_factory=dict)
    """Failure description per step."""

    watermark_advanced: bool = False
    """True if last_synced_at moved forward for this repository."""

    @property
    def success(self) -> bool:
        """True if no step failed."""
        return not self.errors

    @property
    def state(self) -> SyncState:
        """FAILED if any step failed, else IDLE."""
        return SyncState.FAILED if self.errors else SyncState.IDLE

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "repository_id": self.repository_id,
            "full_name": self.full_name,
            "success": self.success,
            "state": self.state.value,
            "commits": self.commits.to_dict() if self.commits else None,
            "pull_requests": self.pull_requests.to_dict() if self.pull_requests else None,
            "errors": {step.value: msg for step, msg in self.errors.items()},
            "watermark_advanced": self.watermark_advanced,
        }


@dataclass
class SyncResult:
    """Summary of a sync entry point for one account.

    ``success`` is False only when the run as a whole failed (e.g. the
    repository list could not be read, or a rate limit stopped it).
    Per-repository failures leave ``success`` True and show up in
    ``repositories_failed``.
    """

    account_id: str
    started_at: datetime
    completed_at: datetime | None = None

    repositories: ReconcileResult = field(default_factory=ReconcileResult)
    repo_results: list[RepoSyncResult] = field(default_factory=list)

    metrics_calculated: int = 0
    """Developers whose metrics were recalculated after the sync."""

    success: bool = True
    error_message: str | None = None
    retry_after_seconds: float | None = None
    """Set when the run failed on a rate limit."""

    @property
    def repositories_synced(self) -> int:
        """Repositories whose every step succeeded."""
        return sum(1 for r in self.repo_results if r.success)

    @property
    def repositories_failed(self) -> int:
        return sum(1 for r in self.repo_results if not r.success)

    @property
    def commits(self) -> ReconcileResult:
        """Commit counts summed over repositories."""
        return sum((r.commits for r in self.repo_results if r.commits), ReconcileResult())

    @property
    def pull_requests(self) -> ReconcileResult:
        """PR counts summed over repositories."""
        return sum(
            (r.pull_requests for r in self.repo_results if r.pull_requests), ReconcileResult()
        )

    @property
    def commits_synced(self) -> int:
        return self.commits.total

    @property
    def pull_requests_synced(self) -> int:
        return self.pull_requests.total

    @property
    def duration_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    def fail(self, error: BaseException) -> None:
        """Mark the whole run failed from an exception."""
        self.success = False
        self.error_message = describe_error(error)
        if isinstance(error, ExternalServiceUnavailableError):
            self.retry_after_seconds = error.retry_after_seconds

    def add_repo_result(self, repo_result: RepoSyncResult) -> RepoSyncResult:
        """Record one repository; its counts are included in the totals."""
        self.repo_results.append(repo_result)
        return repo_result

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "summary": {
                "account_id": self.account_id,
                "success": self.success,
                "error_message": self.error_message,
                "retry_after_seconds": self.retry_after_seconds,
                "repositories": self.repositories.to_dict(),
                "repositories_synced": self.repositories_synced,
                "repositories_failed": self.repositories_failed,
                "commits": self.commits.to_dict(),
                "pull_requests": self.pull_requests.to_dict(),
                "metrics_calculated": self.metrics_calculated,
                "started_at": self.started_at.isoformat(),
                "completed_at": self.completed_at.isoformat() if self.completed_at else None,
                "duration_seconds": round(self.duration_seconds, 2),
            },
            "repositories": [r.to_dict() for r in self.repo_results],
        }
