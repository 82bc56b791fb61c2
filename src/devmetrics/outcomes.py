"""Failure-as-value helpers for best-effort loops.

Loops over repositories (sync) or developers (metrics) must not stop on
one item's failure. Each iteration yields an ``Outcome`` and the loop
folds them into a ``Tally``, instead of wrapping every call site in try/except.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Hashable, Iterable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")


def describe_error(error: BaseException) -> str:
    """Short "Type: message" text for an exception."""
    return f"{type(error).__name__}: {error}"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of one isolated unit of work: a value or the exception it raised.

    ``subject`` identifies what the work was for (a repository or developer id).
    """

    subject: Hashable = None
    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T, subject: Hashable = None) -> Outcome[T]:
        return cls(subject=subject, value=value)

    @classmethod
    def failure(cls, error: Exception, subject: Hashable = None) -> Outcome[T]:
        return cls(subject=subject, error=error)


async def attempt(
    operation: Callable[[], Awaitable[T]],
    subject: Hashable = None,
) -> Outcome[T]:
    """Await ``operation`` and capture its result or its exception.

    Only ``Exception`` is captured; cancellation and interpreter exits
    still propagate.
    """
    try:
        return Outcome.success(await operation(), subject)
    except Exception as e:
        return Outcome.failure(e, subject)


@dataclass
class Tally(Generic[T]):
    """Fold of many outcomes into successes and failures."""

    successes: list[Outcome[T]] = field(default_factory=list)
    failures: list[Outcome[T]] = field(default_factory=list)

    def add(self, outcome: Outcome[T]) -> None:
        if outcome.ok:
            self.successes.append(outcome)
        else:
            self.failures.append(outcome)

    @property
    def values(self) -> list[T]:
        """Values of the successful outcomes, in order."""
        return [o.value for o in self.successes]  # type: ignore[misc]

    @property
    def errors(self) -> dict[Hashable, str]:
        """Subject to error description for every failure."""
        return {o.subject: describe_error(o.error) for o in self.failures if o.error is not None}

    @classmethod
    def fold(cls, outcomes: Iterable[Outcome[T]]) -> Tally[T]:
        tally: Tally[T] = cls()
        for outcome in outcomes:
            tally.add(outcome)
        return tally
