"""Sync Orchestrator - per-account sync of repositories, commits and PRs.

A full run reads the account's repository list, then commits for every
active repository, then pull requests for every one. Each repository step
runs in its own unit of work; one repository's failure is recorded and the
run moves on. Only rate limits and rejected credentials stop a run, since
every later request would fail the same way.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import TYPE_CHECKING, Any

from devmetrics.config import Settings, get_settings
from devmetrics.db.models import Repository, utc_now
from devmetrics.db.unit_of_work import UnitOfWork
from devmetrics.errors import (
    DevMetricsError,
    ExternalServiceUnavailableError,
    UnauthorizedError,
    UnexpectedError,
    ValidationFailureError,
)
from devmetrics.github.fetchers import (
    ClientFactory,
    CommitFetcher,
    PullRequestFetcher,
    RepositoryFetcher,
)
from devmetrics.github.resilience import ResiliencePolicy
from devmetrics.logging import bind_account, bind_repo, get_logger, mask_secret
from devmetrics.metrics.service import MetricsService
from devmetrics.outcomes import Outcome, Tally, attempt, describe_error

from .enums import SyncState, SyncStep
from .identity import IdentityMap
from .notifications import SafeNotifier, SyncNotifier
from .reconciliation import Reconciler, ReconcileResult
from .results import RepoSyncResult, SyncResult

if TYPE_CHECKING:
    from loguru import Logger

logger = get_logger(__name__)

UnitOfWorkFactory = Callable[[], UnitOfWork]


@dataclass(frozen=True)
class SyncAccount:
    """An external account and the credential its sync runs with."""

    account_id: str
    credential: str

    def __repr__(self) -> str:
        return f"SyncAccount(account_id={self.account_id!r})"


@dataclass(frozen=True)
class RepositoryRef:
    """Plain snapshot of a repository taken at run start.

    ORM rows are expired by a rollback in another step, so the run works
    from these values instead.
    """

    id: int
    full_name: str
    owner: str
    project: str
    last_synced_at: datetime | None

    @classmethod
    def of(cls, repo: Repository) -> RepositoryRef:
        return cls(repo.id, repo.full_name, repo.owner, repo.project, repo.last_synced_at)


def _raise_if_run_stopping(outcome: Outcome[Any]) -> None:
    """Re-raise rate limits and rejected credentials; they end the whole run."""
    error = outcome.error
    if isinstance(error, UnauthorizedError) or (
        isinstance(error, ExternalServiceUnavailableError) and error.retry_after is not None
    ):
        raise error


class SyncOrchestrator:
    """Runs account syncs and reports them as SyncResult values.

    Usage:
        orchestrator = SyncOrchestrator(
            uow_factory=lambda: UnitOfWork(get_session_factory()),
            notifier=LoggingNotifier(),
        )
        result = await orchestrator.run_full_sync(SyncAccount("acme", token))

    No entry point raises for a domain failure; it comes back as
    ``success=False`` with an ``error_message``.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        client_factory: ClientFactory | None = None,
        notifier: SyncNotifier | None = None,
        settings: Settings | None = None,
        *,
        policy: ResiliencePolicy | None = None,
        repository_fetcher: RepositoryFetcher | None = None,
        commit_fetcher: CommitFetcher | None = None,
        pull_request_fetcher: PullRequestFetcher | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            uow_factory: Returns a fresh, not yet entered UnitOfWork
            client_factory: Builds a GitHubClient for a credential
            notifier: Receiver of lifecycle events (wrapped in SafeNotifier)
            settings: Settings (defaults to get_settings())
            policy: Retry policy shared by the default fetchers
            repository_fetcher: Override for the repository fetcher
            commit_fetcher: Override for the commit fetcher
            pull_request_fetcher: Override for the PR fetcher
            clock: Source of "now" for run start times and watermarks
        """
        self._uow_factory = uow_factory
        self._settings = settings or get_settings()
        self._notifier = SafeNotifier(notifier)
        self._clock = clock
        policy = policy or ResiliencePolicy(self._settings.retry)
        self._repository_fetcher = repository_fetcher or RepositoryFetcher(
            policy, client_factory, self._settings
        )
        self._commit_fetcher = commit_fetcher or CommitFetcher(
            policy, client_factory, self._settings
        )
        self._pull_request_fetcher = pull_request_fetcher or PullRequestFetcher(
            policy, client_factory, self._settings
        )
        self._state = SyncState.IDLE

    @property
    def state(self) -> SyncState:
        """Current state of the run in progress (IDLE between runs)."""
        return self._state

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    async def sync_repositories(
        self,
        account: SyncAccount,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> SyncResult:
        """Fetch the account's full repository list and reconcile it."""
        result = SyncResult(account_id=account.account_id, started_at=self._clock())
        log = bind_account(account.account_id)
        try:
            _require_account(account)
            await self._sync_repository_list(account, result, cancel_event)
        except asyncio.CancelledError as e:
            self._cancelled(result, e, cancel_event, log)
        except Exception as e:
            self._fail(result, e, log)
        finally:
            self._state = SyncState.IDLE
        return self._complete(result, log)

    async def sync_commits(
        self,
        account: SyncAccount,
        repository_id: int,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> SyncResult:
        """Incremental commit sync of one repository.

        Fetches since the repository's watermark and, on success, moves the
        watermark to the time this call started.
        """
        started_at = self._clock()
        result = SyncResult(account_id=account.account_id, started_at=started_at)
        log = bind_account(account.account_id)
        try:
            _require_account(account)
            ref = await self._load_repository(account, repository_id)
            repo_result = result.add_repo_result(RepoSyncResult(ref.id, ref.full_name))
            self._state = SyncState.SYNCING_COMMITS
            outcome = await attempt(
                partial(self._sync_commits_for, account, ref, cancel_event), subject=ref.id
            )
            self._record(repo_result, SyncStep.COMMITS, outcome)
            _raise_if_run_stopping(outcome)
            if repo_result.success:
                await self._advance_watermark(ref, repo_result, started_at)
        except asyncio.CancelledError as e:
            self._cancelled(result, e, cancel_event, log)
        except Exception as e:
            self._fail(result, e, log)
        finally:
            self._state = SyncState.IDLE
        return self._complete(result, log)

    async def sync_pull_requests(
        self,
        account: SyncAccount,
        repository_id: int,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> SyncResult:
        """Incremental PR sync of one repository (the watermark is left alone)."""
        result = SyncResult(account_id=account.account_id, started_at=self._clock())
        log = bind_account(account.account_id)
        try:
            _require_account(account)
            ref = await self._load_repository(account, repository_id)
            repo_result = result.add_repo_result(RepoSyncResult(ref.id, ref.full_name))
            self._state = SyncState.SYNCING_PULL_REQUESTS
            outcome = await attempt(
                partial(self._sync_pull_requests_for, account, ref, cancel_event), subject=ref.id
            )
            self._record(repo_result, SyncStep.PULL_REQUESTS, outcome)
            _raise_if_run_stopping(outcome)
        except asyncio.CancelledError as e:
            self._cancelled(result, e, cancel_event, log)
        except Exception as e:
            self._fail(result, e, log)
        finally:
            self._state = SyncState.IDLE
        return self._complete(result, log)

    async def run_full_sync(
        self,
        account: SyncAccount,
        cancel_event: asyncio.Event | None = None,
        *,
        calculate_metrics: bool = False,
    ) -> SyncResult:
        """Repositories, then commits, then pull requests for one account.

        Every repository's fetch window is its watermark as read at run
        start. A repository's watermark moves to the run start time only
        when both its commit and PR steps succeeded.

        Args:
            account: Account to sync
            cancel_event: Set to stop the run before its next request
            calculate_metrics: Recalculate all developers' metrics afterwards

        Returns:
            SyncResult with per-repository outcomes
        """
        started_at = self._clock()
        result = SyncResult(account_id=account.account_id, started_at=started_at)
        log = bind_account(account.account_id)
        await self._notifier.sync_started(account.account_id)
        log.info("Starting full sync with credential {}", mask_secret(account.credential))

        try:
            _require_account(account)
            await self._sync_repository_list(account, result, cancel_event)
            refs = await self._load_account_repositories(account.account_id)
            repo_results = {
                ref.id: result.add_repo_result(RepoSyncResult(ref.id, ref.full_name))
                for ref in refs
            }

            self._state = SyncState.SYNCING_COMMITS
            commits = await self._run_step(
                refs,
                repo_results,
                SyncStep.COMMITS,
                partial(self._sync_commits_for, account, cancel_event=cancel_event),
            )
            self._state = SyncState.SYNCING_PULL_REQUESTS
            prs = await self._run_step(
                refs,
                repo_results,
                SyncStep.PULL_REQUESTS,
                partial(self._sync_pull_requests_for, account, cancel_event=cancel_event),
            )
            log.info(
                "Steps finished: commits {} ok / {} failed, pull requests {} ok / {} failed",
                len(commits.successes),
                len(commits.failures),
                len(prs.successes),
                len(prs.failures),
            )

            for ref in refs:
                if repo_results[ref.id].success:
                    await self._advance_watermark(ref, repo_results[ref.id], started_at)

            if calculate_metrics:
                result.metrics_calculated = await self._calculate_metrics()
                await self._notifier.metrics_updated(account.account_id)
        except asyncio.CancelledError as e:
            self._cancelled(result, e, cancel_event, log)
        except Exception as e:
            self._fail(result, e, log)
        finally:
            self._state = SyncState.IDLE

        self._complete(result, log)
        await self._notifier.sync_completed(account.account_id, result)
        return result

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    async def _sync_repository_list(
        self,
        account: SyncAccount,
        result: SyncResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        self._state = SyncState.SYNCING_REPOSITORIES
        records = await self._repository_fetcher.fetch(
            account.credential, cancel_event=cancel_event
        )
        async with self._uow_factory() as uow:
            _repos, counts = await Reconciler(uow).reconcile_repositories(
                records, account.account_id
            )
        result.repositories = counts

    async def _run_step(
        self,
        refs: list[RepositoryRef],
        repo_results: dict[int, RepoSyncResult],
        step: SyncStep,
        operation: Callable[[RepositoryRef], Awaitable[ReconcileResult]],
    ) -> Tally[ReconcileResult]:
        """Run ``operation`` for every repository, isolating failures."""
        tally: Tally[ReconcileResult] = Tally()
        for ref in refs:
            outcome: Outcome[ReconcileResult] = await attempt(
                partial(operation, ref),
                subject=ref.id,
            )
            self._record(repo_results[ref.id], step, outcome)
            tally.add(outcome)
            _raise_if_run_stopping(outcome)
        return tally

    async def _sync_commits_for(
        self,
        account: SyncAccount,
        ref: RepositoryRef,
        cancel_event: asyncio.Event | None = None,
    ) -> ReconcileResult:
        log = bind_repo(ref.full_name, account_id=account.account_id)
        records = await self._commit_fetcher.fetch(
            ref.owner,
            ref.project,
            account.credential,
            since=ref.last_synced_at,
            cancel_event=cancel_event,
        )
        async with self._uow_factory() as uow:
            counts = await Reconciler(uow).reconcile_commits(records, ref.id, IdentityMap())
        log.info("Commits: added={}, updated={}", counts.added, counts.updated)
        return counts

    async def _sync_pull_requests_for(
        self,
        account: SyncAccount,
        ref: RepositoryRef,
        cancel_event: asyncio.Event | None = None,
    ) -> ReconcileResult:
        log = bind_repo(ref.full_name, account_id=account.account_id)
        records = await self._pull_request_fetcher.fetch(
            ref.owner,
            ref.project,
            account.credential,
            since=ref.last_synced_at,
            cancel_event=cancel_event,
        )
        async with self._uow_factory() as uow:
            counts = await Reconciler(uow).reconcile_pull_requests(
                records, ref.id, IdentityMap()
            )
        log.info("Pull requests: added={}, updated={}", counts.added, counts.updated)
        return counts

    async def _advance_watermark(
        self,
        ref: RepositoryRef,
        repo_result: RepoSyncResult,
        synced_at: datetime,
    ) -> None:
        async def _advance() -> bool:
            async with self._uow_factory() as uow:
                moved = await uow.repositories.advance_watermark(ref.id, synced_at)
                await uow.save()
            return moved

        outcome = await attempt(_advance, subject=ref.id)
        if outcome.ok:
            repo_result.watermark_advanced = bool(outcome.value)
        else:
            self._record(repo_result, SyncStep.WATERMARK, outcome)

    async def _calculate_metrics(self) -> int:
        async with self._uow_factory() as uow:
            service = MetricsService(uow, self._settings, clock=self._clock)
            run = await service.calculate_for_all_developers()
        return len(run.succeeded)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _load_repository(self, account: SyncAccount, repository_id: int) -> RepositoryRef:
        async with self._uow_factory() as uow:
            repo = await uow.repositories.get_by_id(repository_id)
            if repo is None or repo.account_id != account.account_id:
                raise ValidationFailureError(
                    f"Unknown repository id {repository_id} for account {account.account_id}"
                )
            return RepositoryRef.of(repo)

    async def _load_account_repositories(self, account_id: str) -> list[RepositoryRef]:
        async with self._uow_factory() as uow:
            repos = await uow.repositories.get_for_account(account_id)
            return [RepositoryRef.of(r) for r in repos]

    def _record(
        self,
        repo_result: RepoSyncResult,
        step: SyncStep,
        outcome: Outcome[Any],
    ) -> None:
        if outcome.ok:
            if step is SyncStep.COMMITS:
                repo_result.commits = outcome.value
            elif step is SyncStep.PULL_REQUESTS:
                repo_result.pull_requests = outcome.value
            return

        assert outcome.error is not None
        repo_result.errors[step] = describe_error(outcome.error)
        bind_repo(repo_result.full_name).opt(exception=outcome.error).error(
            "Repository {} step failed: {}", step.value, outcome.error
        )

    def _cancelled(
        self,
        result: SyncResult,
        error: asyncio.CancelledError,
        cancel_event: asyncio.Event | None,
        log: Logger,
    ) -> None:
        """Absorb a cancellation we asked for; re-raise any other."""
        if cancel_event is None or not cancel_event.is_set():
            raise error
        log.warning("Sync cancelled")
        result.fail(error)

    def _fail(self, result: SyncResult, error: Exception, log: Logger) -> None:
        """Turn a run-level exception into a failed result."""
        if isinstance(error, DevMetricsError):
            log.error("Sync failed: {}", error)
            result.fail(error)
            return
        log.opt(exception=error).error("Sync failed unexpectedly: {}", error)
        result.fail(UnexpectedError(str(error)))

    def _complete(self, result: SyncResult, log: Logger) -> SyncResult:
        result.completed_at = self._clock()
        log.info(
            "Sync {}: repositories added={}, updated={}; repos ok={}, failed={}; "
            "commits added={}, updated={}; pull requests added={}, updated={} ({:.1f}s)",
            "completed" if result.success else "failed",
            result.repositories.added,
            result.repositories.updated,
            result.repositories_synced,
            result.repositories_failed,
            result.commits.added,
            result.commits.updated,
            result.pull_requests.added,
            result.pull_requests.updated,
            result.duration_seconds,
        )
        return result


def _require_account(account: SyncAccount) -> None:
    if not account.account_id:
        raise ValidationFailureError("account_id is required")
    if not account.credential:
        raise ValidationFailureError(f"No credential for account {account.account_id}")
