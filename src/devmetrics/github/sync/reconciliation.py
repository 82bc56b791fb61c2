"""Reconciliation (upsert) of fetched records into the store.

Each pass matches a batch of fetched records against persisted rows by
natural key, creates or updates, and saves once at the end. A pass either
persists completely or rolls back and re-raises; per-repository isolation
is the orchestrator's job.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from devmetrics.db.models import Commit, PullRequest, Repository
from devmetrics.db.unit_of_work import UnitOfWork
from devmetrics.errors import ValidationFailureError
from devmetrics.logging import get_logger
from devmetrics.schemas.records import FetchedCommit, FetchedPullRequest, FetchedRepository

from .identity import DeveloperResolver, IdentityMap

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    """Added/updated counts of one pass (reporting only)."""

    added: int = 0
    updated: int = 0

    @property
    def total(self) -> int:
        return self.added + self.updated

    def __add__(self, other: ReconcileResult) -> ReconcileResult:
        return ReconcileResult(self.added + other.added, self.updated + other.updated)

    def to_dict(self) -> dict[str, int]:
        return {"added": self.added, "updated": self.updated}


class Reconciler:
    """Create-or-update engine for repositories, commits and pull requests.

    Usage:
        async with UnitOfWork(session_factory) as uow:
            result = await Reconciler(uow).reconcile_commits(records, repo.id)
    """

    def __init__(self, uow: UnitOfWork) -> None:
        self._uow = uow

    async def _save_or_rollback(self) -> None:
        try:
            await self._uow.save()
        except Exception:
            await self._uow.rollback()
            raise

    # -------------------------------------------------------------------------
    # Repositories
    # -------------------------------------------------------------------------

    async def reconcile_repositories(
        self,
        records: Sequence[FetchedRepository],
        account_id: str,
    ) -> tuple[list[Repository], ReconcileResult]:
        """Upsert repositories keyed on (external_id, platform).

        Metadata is refreshed in full; the sync watermark is left alone.

        Returns:
            Tuple of (repositories in record order, counts)
        """
        if not account_id:
            raise ValidationFailureError("account_id is required")

        added = updated = 0
        repositories: dict[tuple[str, str], Repository] = {}
        try:
            existing: dict[tuple[str, str], Repository] = {}
            for platform in {r.platform for r in records}:
                found = await self._uow.repositories.get_by_external_ids(
                    platform, (r.external_id for r in records if r.platform == platform)
                )
                existing.update({(ext, platform.value): repo for ext, repo in found.items()})

            for record in records:
                key = (record.external_id, record.platform.value)
                values = record.model_dump(exclude={"external_id", "platform"})
                repo = existing.get(key)
                if repo is not None:
                    self._uow.repositories.update(repo, account_id=account_id, **values)
                    updated += 1
                else:
                    repo = Repository(
                        external_id=record.external_id,
                        platform=record.platform,
                        account_id=account_id,
                        **values,
                    )
                    self._uow.repositories.add(repo)
                    existing[key] = repo
                    added += 1
                repositories[key] = repo
        except Exception:
            await self._uow.rollback()
            raise

        await self._save_or_rollback()
        result = ReconcileResult(added, updated)
        logger.info(
            "Reconciled repositories for {}: added={}, updated={}",
            account_id,
            result.added,
            result.updated,
        )
        return list(repositories.values()), result

    # -------------------------------------------------------------------------
    # Commits
    # -------------------------------------------------------------------------

    async def reconcile_commits(
        self,
        records: Sequence[FetchedCommit],
        repository_id: int,
        identities: IdentityMap | None = None,
    ) -> ReconcileResult:
        """Upsert commits keyed on (sha, repository_id).

        Re-fetching a known commit overwrites its message, counts,
        timestamp and author in place.
        """
        identities = identities if identities is not None else IdentityMap()
        resolver = DeveloperResolver(self._uow.developers, identities)
        added = updated = 0
        try:
            await self._require_repository(repository_id)
            existing = await self._uow.commits.get_by_shas(repository_id, (r.sha for r in records))
            await resolver.prefetch_emails(r.author_email for r in records)
            author_ids: set[int] = set()

            for record in records:
                developer = await resolver.for_commit(record)
                author_ids.add(developer.id)
                values = {
                    "developer_id": developer.id,
                    "message": record.message,
                    "lines_added": record.lines_added,
                    "lines_removed": record.lines_removed,
                    "files_changed": record.files_changed,
                    "committed_at": record.committed_at,
                }
                commit = existing.get(record.sha)
                if commit is not None:
                    self._uow.commits.update(commit, **values)
                    updated += 1
                else:
                    commit = Commit(repository_id=repository_id, sha=record.sha, **values)
                    self._uow.commits.add(commit)
                    existing[record.sha] = commit
                    added += 1

            await self._uow.repositories.add_contributors(repository_id, author_ids)
        except Exception:
            await self._uow.rollback()
            raise

        await self._save_or_rollback()
        return ReconcileResult(added, updated)

    # -------------------------------------------------------------------------
    # Pull Requests
    # -------------------------------------------------------------------------

    async def reconcile_pull_requests(
        self,
        records: Sequence[FetchedPullRequest],
        repository_id: int,
        identities: IdentityMap | None = None,
    ) -> ReconcileResult:
        """Upsert pull requests keyed on (number, repository_id).

        The fetched state is authoritative even if it is older than what is
        stored (e.g. a merged PR reported as open again is set back to open).
        """
        identities = identities if identities is not None else IdentityMap()
        resolver = DeveloperResolver(self._uow.developers, identities)
        added = updated = 0
        try:
            await self._require_repository(repository_id)
            existing = await self._uow.pull_requests.get_by_numbers(
                repository_id, (r.number for r in records)
            )
            author_ids: set[int] = set()

            for record in records:
                developer = await resolver.for_pull_request(record)
                author_ids.add(developer.id)
                values = {
                    "author_id": developer.id,
                    "title": record.title,
                    "description": record.description,
                    "status": record.status,
                    "opened_at": record.opened_at,
                    "closed_at": record.closed_at,
                    "merged_at": record.merged_at,
                    "changed_files": record.changed_files,
                    "lines_added": record.lines_added,
                    "lines_removed": record.lines_removed,
                }
                pr = existing.get(record.number)
                if pr is not None:
                    self._uow.pull_requests.update(pr, **values)
                    updated += 1
                else:
                    pr = PullRequest(repository_id=repository_id, number=record.number, **values)
                    self._uow.pull_requests.add(pr)
                    existing[record.number] = pr
                    added += 1

            await self._uow.repositories.add_contributors(repository_id, author_ids)
        except Exception:
            await self._uow.rollback()
            raise

        await self._save_or_rollback()
        return ReconcileResult(added, updated)

    async def _require_repository(self, repository_id: int) -> Repository:
        repo = await self._uow.repositories.get_by_id(repository_id)
        if repo is None:
            raise ValidationFailureError(f"Unknown repository id {repository_id}")
        return repo
