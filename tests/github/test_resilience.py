"""Tests for the retry policy and error translation."""

import asyncio
import random
from datetime import timedelta

import pytest

from devmetrics.config import RetryConfig
from devmetrics.errors import (
    ExternalServiceUnavailableError,
    NotFoundError,
    UnauthorizedError,
    UnexpectedError,
    ValidationFailureError,
)
from devmetrics.github.exceptions import (
    GitHubAuthenticationError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubServerError,
    GitHubTransportError,
)
from devmetrics.github.resilience import ResiliencePolicy, retry_after_from, translate_error
from tests.conftest import NOW


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
class FlakyOperation:
    """Raises the queued errors in order, then returns ``result``."""

    def __init__(self, *errors: Exception, result: str = "ok") -> None:
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


@pytest.fixture
def delays() -> list[float]:
    return []


@pytest.fixture
def policy(delays) -> ResiliencePolicy:
    async def record_sleep(seconds: float) -> None:
        delays.append(seconds)

    return ResiliencePolicy(
        RetryConfig(max_attempts=3, backoff_base=2.0, jitter_min_ms=100, jitter_max_ms=500),
        sleep=record_sleep,
        rng=random.Random(42),
        clock=lambda: NOW,
    )


# -----------------------------------------------------------------------------
# Backoff
# -----------------------------------------------------------------------------
class TestBackoffDelay:
    @pytest.mark.parametrize("attempt", [1, 2, 3])
    def test_exponential_with_bounded_jitter(self, policy, attempt):
        delay = policy.backoff_delay(attempt)

        assert 2.0**attempt + 0.1 <= delay < 2.0**attempt + 0.5

    def test_jitter_varies(self, policy):
        samples = {policy.backoff_delay(1) for _ in range(20)}

        assert len(samples) > 1


# -----------------------------------------------------------------------------
# Retry Behavior
# -----------------------------------------------------------------------------
class TestExecuteWithRetry:
    async def test_success_first_try(self, policy, delays):
        operation = FlakyOperation()

        assert await policy.execute_with_retry(operation, operation_name="op") == "ok"
        assert operation.calls == 1
        assert delays == []

    async def test_transient_then_success(self, policy, delays):
        operation = FlakyOperation(
            GitHubServerError("bad gateway", 502),
            GitHubTransportError("reset"),
        )

        assert await policy.execute_with_retry(operation, operation_name="op") == "ok"
        assert operation.calls == 3
        assert len(delays) == 2
        assert 2.1 <= delays[0] < 2.5
        assert 4.1 <= delays[1] < 4.5

    async def test_exhausted_retries(self, policy, delays):
        operation = FlakyOperation(*[GitHubServerError("boom", 500) for _ in range(4)])

        with pytest.raises(ExternalServiceUnavailableError) as exc_info:
            await policy.execute_with_retry(operation, operation_name="op")

        assert operation.calls == 4  # initial call + 3 retries
        assert len(delays) == 3
        assert exc_info.value.retry_after is None

    async def test_max_attempts_override(self, policy, delays):
        operation = FlakyOperation(GitHubServerError("boom", 500))

        with pytest.raises(ExternalServiceUnavailableError):
            await policy.execute_with_retry(operation, operation_name="op", max_attempts=0)

        assert operation.calls == 1
        assert delays == []

    async def test_rate_limit_not_retried(self, policy, delays):
        operation = FlakyOperation(
            GitHubRateLimitError("limited", reset_at=NOW + timedelta(seconds=90), status_code=403)
        )

        with pytest.raises(ExternalServiceUnavailableError) as exc_info:
            await policy.execute_with_retry(operation, operation_name="op")

        assert operation.calls == 1
        assert delays == []
        assert exc_info.value.retry_after == timedelta(seconds=90)
        assert exc_info.value.retry_after_seconds == 90.0

    async def test_rate_limit_reset_in_past_floors_to_zero(self, policy):
        operation = FlakyOperation(
            GitHubRateLimitError("limited", reset_at=NOW - timedelta(minutes=5))
        )

        with pytest.raises(ExternalServiceUnavailableError) as exc_info:
            await policy.execute_with_retry(operation, operation_name="op")

        assert exc_info.value.retry_after == timedelta(0)

    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (GitHubAuthenticationError("bad token", 401), UnauthorizedError),
            (GitHubNotFoundError("missing", 404), NotFoundError),
        ],
    )
    async def test_deterministic_errors_not_retried(self, policy, delays, error, expected):
        operation = FlakyOperation(error)

        with pytest.raises(expected):
            await policy.execute_with_retry(operation, operation_name="op")

        assert operation.calls == 1
        assert delays == []

    async def test_domain_error_passes_through(self, policy):
        error = ValidationFailureError("bad input")

        with pytest.raises(ValidationFailureError) as exc_info:
            await policy.execute_with_retry(FlakyOperation(error), operation_name="op")

        assert exc_info.value is error

    async def test_unknown_error_becomes_unexpected(self, policy):
        with pytest.raises(UnexpectedError, match="KeyError"):
            await policy.execute_with_retry(
                FlakyOperation(KeyError("login")), operation_name="op"
            )

    async def test_cancel_event_set_before_first_attempt(self, policy):
        operation = FlakyOperation()
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(asyncio.CancelledError):
            await policy.execute_with_retry(operation, operation_name="op", cancel_event=cancel)

        assert operation.calls == 0

    async def test_cancel_event_stops_retries(self, delays):
        cancel = asyncio.Event()

        async def cancelling_sleep(seconds: float) -> None:
            delays.append(seconds)
            cancel.set()

        policy = ResiliencePolicy(RetryConfig(max_attempts=3), sleep=cancelling_sleep)
        operation = FlakyOperation(GitHubServerError("boom", 500))

        with pytest.raises(asyncio.CancelledError):
            await policy.execute_with_retry(operation, operation_name="op", cancel_event=cancel)

        assert operation.calls == 1
        assert len(delays) == 1


# -----------------------------------------------------------------------------
# Translation
# -----------------------------------------------------------------------------
class TestTranslateError:
    def test_rate_limit(self):
        error = GitHubRateLimitError("limited", reset_at=NOW + timedelta(minutes=2))

        translated = translate_error(error, now=NOW)

        assert isinstance(translated, ExternalServiceUnavailableError)
        assert translated.retry_after == timedelta(minutes=2)

    def test_server_error_has_no_retry_hint(self):
        translated = translate_error(GitHubServerError("boom", 503), now=NOW)

        assert isinstance(translated, ExternalServiceUnavailableError)
        assert translated.retry_after is None

    def test_domain_error_identity(self):
        error = NotFoundError("gone")

        assert translate_error(error) is error

    def test_unknown(self):
        assert isinstance(translate_error(RuntimeError("x")), UnexpectedError)

    def test_retry_after_from(self):
        assert retry_after_from(None, NOW) is None
        assert retry_after_from(NOW + timedelta(seconds=5), NOW) == timedelta(seconds=5)
        assert retry_after_from(NOW - timedelta(seconds=5), NOW) == timedelta(0)
