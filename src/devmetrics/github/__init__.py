"""GitHub API access.

This module provides:
- GitHubClient: Async githubkit wrapper bound to one credential
- Platform exceptions (GitHubClientError and subclasses)
- ResiliencePolicy: retry/backoff and translation to domain errors
- Fetchers: RepositoryFetcher, CommitFetcher, PullRequestFetcher

Sync orchestration lives in ``devmetrics.github.sync``.
"""

from .client import GitHubClient
from .exceptions import (
    GitHubAuthenticationError,
    GitHubClientError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubRetryableError,
    GitHubServerError,
    GitHubTransportError,
)
from .fetchers import CommitFetcher, PullRequestFetcher, RepositoryFetcher
from .resilience import ResiliencePolicy, translate_error

__all__ = [
    # Client
    "GitHubClient",
    # Exceptions
    "GitHubAuthenticationError",
    "GitHubClientError",
    "GitHubNotFoundError",
    "GitHubRateLimitError",
    "GitHubRetryableError",
    "GitHubServerError",
    "GitHubTransportError",
    # Resilience
    "ResiliencePolicy",
    "translate_error",
    # Fetchers
    "CommitFetcher",
    "PullRequestFetcher",
    "RepositoryFetcher",
]
