"""Retry policy for calls to the GitHub API.

Wraps any awaitable-producing operation with bounded retry, exponential
backoff plus jitter, and translation of platform errors into the domain
taxonomy of ``devmetrics.errors``.

Retried: transport failures (including timeouts) and non-rate-limit API
errors. Never retried: rate limits, rejected credentials, not-found; those
are deterministic and retrying them only burns the failure budget.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import TypeVar

from devmetrics.config import RetryConfig
from devmetrics.errors import (
    DevMetricsError,
    ExternalServiceUnavailableError,
    NotFoundError,
    UnauthorizedError,
    UnexpectedError,
)
from devmetrics.logging import get_logger

from .exceptions import (
    GitHubAuthenticationError,
    GitHubClientError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubRetryableError,
)

logger = get_logger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]
ClockFunc = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(UTC)


def retry_after_from(reset_at: datetime | None, now: datetime) -> timedelta | None:
    """Time to wait until reset_at, floored at zero (None if unknown)."""
    if reset_at is None:
        return None
    return max(reset_at - now, timedelta(0))


def translate_error(error: BaseException, *, now: datetime | None = None) -> DevMetricsError:
    """Map a platform (or unknown) exception to a domain error.

    Args:
        error: Exception raised by the client or the operation
        now: Reference time for the retry-after computation

    Returns:
        Domain error to raise in its place (domain errors pass through)
    """
    if isinstance(error, DevMetricsError):
        return error
    if isinstance(error, GitHubRateLimitError):
        return ExternalServiceUnavailableError(
            str(error),
            retry_after=retry_after_from(error.reset_at, now or _utc_now()),
        )
    if isinstance(error, GitHubNotFoundError):
        return NotFoundError(str(error))
    if isinstance(error, GitHubAuthenticationError):
        return UnauthorizedError(str(error))
    if isinstance(error, GitHubClientError):
        return ExternalServiceUnavailableError(str(error))
    return UnexpectedError(f"{type(error).__name__}: {error}")


class ResiliencePolicy:
    """Bounded retry with exponential backoff and jitter.

    Usage:
        policy = ResiliencePolicy(settings.retry)
        repo = await policy.execute_with_retry(
            lambda: client.get_repository("prebid", "prebid-server"),
            operation_name="get_repository",
        )

    The sleep function, random source and clock are injectable so tests can
    run without real delays.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        *,
        sleep: SleepFunc = asyncio.sleep,
        rng: random.Random | None = None,
        clock: ClockFunc = _utc_now,
    ) -> None:
        self._config = config or RetryConfig()
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._clock = clock

    @property
    def config(self) -> RetryConfig:
        return self._config

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait before retry number ``attempt`` (1-based).

        ``backoff_base ** attempt`` plus uniform jitter in
        [jitter_min_ms, jitter_max_ms) milliseconds.
        """
        jitter_ms = self._rng.uniform(self._config.jitter_min_ms, self._config.jitter_max_ms)
        # uniform() may return the upper bound through rounding
        jitter_ms = min(jitter_ms, self._config.jitter_max_ms - 1e-6)
        return self._config.backoff_base**attempt + jitter_ms / 1000

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        operation_name: str,
        max_attempts: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> T:
        """Run ``operation`` with retries.

        Args:
            operation: Zero-argument callable returning a fresh awaitable per call
            operation_name: Name used in retry log lines
            max_attempts: Retries after the initial call (defaults to config)
            cancel_event: When set, the next attempt raises CancelledError

        Returns:
            The operation's result

        Raises:
            asyncio.CancelledError: If cancel_event is set before an attempt
            ExternalServiceUnavailableError: Rate limit (with retry_after), or
                transient failures after retries are exhausted
            UnauthorizedError: Credential rejected
            NotFoundError: Resource absent
            UnexpectedError: Anything else raised by the operation
        """
        retries = self._config.max_attempts if max_attempts is None else max_attempts
        attempt = 0
        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise asyncio.CancelledError(f"{operation_name} cancelled")
            try:
                return await operation()
            except GitHubRetryableError as e:
                if attempt >= retries:
                    logger.error(
                        "{} failed after {} retries: {}", operation_name, attempt, e
                    )
                    raise translate_error(e) from e
                attempt += 1
                delay = self.backoff_delay(attempt)
                logger.warning(
                    "{} failed ({}); retry {}/{} in {:.2f}s",
                    operation_name,
                    e,
                    attempt,
                    retries,
                    delay,
                )
                await self._sleep(delay)
            except GitHubRateLimitError as e:
                retry_after = retry_after_from(e.reset_at, self._clock())
                logger.warning(
                    "{} hit the rate limit; retry after {}", operation_name, retry_after
                )
                raise ExternalServiceUnavailableError(str(e), retry_after=retry_after) from e
            except DevMetricsError:
                raise
            except Exception as e:
                raise translate_error(e) from e
