"""Tests for Outcome, attempt and Tally."""

import asyncio

import pytest

from devmetrics.errors import NotFoundError
from devmetrics.outcomes import Outcome, Tally, attempt, describe_error


async def _ok(value):
    return value


async def _fail(error):
    raise error


class TestAttempt:
    async def test_success(self):
        outcome = await attempt(lambda: _ok(42), subject="repo-1")

        assert outcome.ok
        assert outcome.value == 42
        assert outcome.subject == "repo-1"

    async def test_failure_is_captured(self):
        error = NotFoundError("gone")

        outcome = await attempt(lambda: _fail(error), subject=7)

        assert not outcome.ok
        assert outcome.error is error
        assert outcome.subject == 7

    async def test_cancellation_propagates(self):
        with pytest.raises(asyncio.CancelledError):
            await attempt(lambda: _fail(asyncio.CancelledError()))


class TestTally:
    def test_fold(self):
        tally = Tally.fold(
            [
                Outcome.success(1, subject=1),
                Outcome.failure(NotFoundError("missing"), subject=2),
                Outcome.success(3, subject=3),
            ]
        )

        assert tally.values == [1, 3]
        assert [o.subject for o in tally.successes] == [1, 3]
        assert tally.errors == {2: "NotFoundError: missing"}

    def test_describe_error(self):
        assert describe_error(ValueError("bad")) == "ValueError: bad"
