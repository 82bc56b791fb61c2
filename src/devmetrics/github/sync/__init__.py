"""Account sync: reconciliation, orchestration and notifications.

This module provides:
- Reconciler: create-or-update of fetched records by natural key
- IdentityMap / DeveloperResolver: pass-scoped developer identity memo
- SyncOrchestrator: per-account repository/commit/PR sync runs
- SyncNotifier implementations: Null, Logging, Queue, Safe
- Result objects: ReconcileResult, RepoSyncResult, SyncResult
"""

from .enums import OutputFormat, SyncState, SyncStep
from .identity import DeveloperResolver, IdentityMap
from .notifications import (
    LoggingNotifier,
    NullNotifier,
    QueueNotifier,
    SafeNotifier,
    SyncEvent,
    SyncNotifier,
)
from .orchestrator import RepositoryRef, SyncAccount, SyncOrchestrator
from .reconciliation import Reconciler, ReconcileResult
from .results import RepoSyncResult, SyncResult

__all__ = [
    # Enums
    "OutputFormat",
    "SyncState",
    "SyncStep",
    # Identity
    "DeveloperResolver",
    "IdentityMap",
    # Notifications
    "LoggingNotifier",
    "NullNotifier",
    "QueueNotifier",
    "SafeNotifier",
    "SyncEvent",
    "SyncNotifier",
    # Orchestration
    "RepositoryRef",
    "SyncAccount",
    "SyncOrchestrator",
    # Reconciliation
    "ReconcileResult",
    "Reconciler",
    # Results
    "RepoSyncResult",
    "SyncResult",
]
