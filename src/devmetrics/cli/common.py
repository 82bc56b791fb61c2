"""Common CLI option factories and helpers.

This module centralizes reusable CLI options to reduce duplication
and consolidate noqa comments for Typer's required function call pattern.

It also provides:
- `run_async_command`: Unified async execution with error handling for CLI commands
- `parse_date`: Date option parsing into aware UTC datetimes
- `open_unit_of_work`: Unit of work over the configured database
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Coroutine
from datetime import UTC, datetime
from typing import Annotated, Any, TypeVar

import typer
from rich.console import Console

from devmetrics.db import UnitOfWork, dispose_engine, get_session_factory
from devmetrics.github.sync.enums import OutputFormat

# Shared console instance for CLI output
console = Console()

T = TypeVar("T")


def run_async_command(
    coro: Coroutine[object, object, T],
    *,
    error_prefix: str = "Error",
) -> T:
    """Execute async code from synchronous CLI command with unified error handling.

    Uses asyncio.run() for clean event loop management and disposes the
    database engine afterwards. Catches exceptions, prints user-friendly
    error messages, and exits with code 1.

    Args:
        coro: Async coroutine to execute
        error_prefix: Prefix for error messages (default: "Error")

    Returns:
        Result from the coroutine

    Raises:
        typer.Exit: Re-raised from deliberate exits, or raised with code 1 on error
    """

    async def _run() -> T:
        try:
            return await coro
        finally:
            await dispose_engine()

    try:
        return asyncio.run(_run())
    except typer.Exit:
        # Re-raise deliberate exits (e.g., from validation helpers)
        raise
    except Exception as e:
        console.print(f"[red]{error_prefix}:[/red] {e}")
        raise typer.Exit(1) from None


def open_unit_of_work() -> UnitOfWork:
    """A fresh unit of work on the configured database (enter it with ``async with``)."""
    return UnitOfWork(get_session_factory())


def print_json(data: Any) -> None:
    """Print JSON-serializable data (dicts, lists, ISO strings)."""
    console.print_json(json.dumps(data, default=str))


def parse_date(date_str: str | None) -> datetime | None:
    """Parse a date string into a datetime object.

    Supports formats:
    - YYYY-MM-DD
    - YYYY-MM-DDTHH:MM:SS
    - ISO format with timezone

    Args:
        date_str: Date string to parse, or None

    Returns:
        datetime object with UTC timezone, or None if input was None

    Raises:
        typer.BadParameter: If the date string is invalid
    """
    if date_str is None:
        return None

    formats = [
        "%Y-%m-%d",
        "%Y-%m-%dT%H:%M:%S",
        "%Y-%m-%dT%H:%M:%SZ",
        "%Y-%m-%dT%H:%M:%S%z",
    ]

    for fmt in formats:
        try:
            dt = datetime.strptime(date_str, fmt)
        except ValueError:
            continue
        # Ensure UTC timezone
        if dt.tzinfo is None:
            return dt.replace(tzinfo=UTC)
        return dt.astimezone(UTC)

    raise typer.BadParameter(
        f"Invalid date format: {date_str}. Use YYYY-MM-DD or YYYY-MM-DDTHH:MM:SS format."
    )


# Typer requires function calls as default arguments, which triggers B008.
# Using Annotated with a centralized type alias keeps the noqa in one place.

OutputFormatOption = Annotated[
    OutputFormat,
    typer.Option(
        "--format",
        "-f",
        help="Output format",
    ),
]
"""Output format option type for CLI commands.

Usage:
    def command(output_format: OutputFormatOption = OutputFormat.TEXT):
"""

DeveloperOption = Annotated[
    int | None,
    typer.Option(
        "--developer",
        "-d",
        help="Restrict to one developer id",
    ),
]

SinceOption = Annotated[
    str | None,
    typer.Option(
        "--since",
        help="Window start (YYYY-MM-DD or ISO format)",
    ),
]

UntilOption = Annotated[
    str | None,
    typer.Option(
        "--until",
        help="Window end (YYYY-MM-DD or ISO format, defaults to now)",
    ),
]

TokenOption = Annotated[
    str | None,
    typer.Option(
        "--token",
        "-t",
        help="GitHub token for the account (defaults to GITHUB_TOKEN)",
    ),
]


def parse_window(since: str | None, until: str | None) -> tuple[datetime | None, datetime | None]:
    """Parse --since/--until, exiting with code 1 on a bad date."""
    try:
        return parse_date(since), parse_date(until)
    except typer.BadParameter as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None
