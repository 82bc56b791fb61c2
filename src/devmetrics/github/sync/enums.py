"""Enums for sync operations."""

from enum import Enum


class SyncState(str, Enum):
    """Where an account's sync run currently is.

    IDLE -> SYNCING_REPOSITORIES -> SYNCING_COMMITS -> SYNCING_PULL_REQUESTS -> IDLE.
    FAILED is recorded per repository and never halts the run.
    """

    IDLE = "idle"
    SYNCING_REPOSITORIES = "syncing_repositories"
    SYNCING_COMMITS = "syncing_commits"
    SYNCING_PULL_REQUESTS = "syncing_pull_requests"
    FAILED = "failed"


class SyncStep(str, Enum):
    """Per-repository step of a sync run."""

    COMMITS = "commits"
    PULL_REQUESTS = "pull_requests"
    WATERMARK = "watermark"


class OutputFormat(str, Enum):
    """Output format for CLI commands."""

    TEXT = "text"
    """Human-readable text output."""

    JSON = "json"
    """Machine-readable JSON output."""
