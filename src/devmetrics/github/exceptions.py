"""GitHub client exceptions.

These describe what the platform said. The resilience policy decides which
of them are retried and translates the rest into domain errors.
"""

from datetime import datetime


class GitHubClientError(Exception):
    """Base exception for GitHub client errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GitHubAuthenticationError(GitHubClientError):
    """Raised when the credential is rejected (401, or a non-rate-limit 403)."""

    pass


class GitHubNotFoundError(GitHubClientError):
    """Raised when a resource is not found (404)."""

    pass


class GitHubRateLimitError(GitHubClientError):
    """Raised when the rate limit is exhausted (429, or 403 with remaining=0).

    Never retried inline; ``reset_at`` tells the caller when to come back.
    """

    def __init__(
        self,
        message: str,
        reset_at: datetime | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, status_code)
        self.reset_at = reset_at


class GitHubRetryableError(GitHubClientError):
    """Base class for transient errors the resilience policy retries."""

    pass


class GitHubServerError(GitHubRetryableError):
    """Any other API error (5xx, unexpected 4xx)."""

    pass


class GitHubTransportError(GitHubRetryableError):
    """Network failure or timeout before a response arrived."""

    pass
