"""Domain error taxonomy.

These are the only exceptions that leave the fetch layer and the
reconciliation/metrics services. Platform-specific failures live in
``devmetrics.github.exceptions`` and are translated by the resilience policy.
"""

from datetime import timedelta


class DevMetricsError(Exception):
    """Base exception for all domain errors."""

    pass


class NotFoundError(DevMetricsError):
    """Requested external or internal resource is absent."""

    pass


class UnauthorizedError(DevMetricsError):
    """Credential is invalid or expired; the account must re-authenticate."""

    pass


class ExternalServiceUnavailableError(DevMetricsError):
    """Upstream failure or rate limit.

    ``retry_after`` is set when the upstream told us how long to wait
    (rate limit reset); it is never negative.
    """

    def __init__(self, message: str, retry_after: timedelta | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after

    @property
    def retry_after_seconds(self) -> float | None:
        """Retry hint in seconds (None when the upstream gave none)."""
        if self.retry_after is None:
            return None
        return self.retry_after.total_seconds()


class ValidationFailureError(DevMetricsError):
    """Malformed input to a sync or metrics request."""

    pass


class UnexpectedError(DevMetricsError):
    """Anything uncategorized."""

    pass
