"""Centralized logging configuration using loguru.

Provides:
- Configurable log levels from Settings
- CLI flag override (--verbose/--quiet)
- Standard library interception (SQLAlchemy, httpx)
- Structured context binding for account/repository tracking
- Masking of GitHub credentials that end up in log messages
- Optional file rotation logging
"""

from __future__ import annotations

import logging
import re
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from loguru import logger

if TYPE_CHECKING:
    from loguru import Logger

# Levels accepted by setup_logging and LoggingConfig
LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

# Set by setup_logging, cleared by reset_logging
_configured = False

# Personal access, OAuth, app and fine-grained tokens
_TOKEN_PATTERN = re.compile(r"\b(?:gh[pousr]_[A-Za-z0-9]{20,}|github_pat_[A-Za-z0-9_]{20,})")

_CONSOLE_FORMAT = (
    "<dim>{time:HH:mm:ss}</dim> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - "
    "<level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """Route standard library log records (SQLAlchemy, httpx) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        from types import FrameType

        # Map the stdlib level name onto loguru's, numeric if unknown
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = str(record.levelno)

        # Walk out of the logging module so loguru reports the real caller
        frame: FrameType | None = logging.currentframe()
        depth = 2
        while frame is not None:
            if frame.f_code.co_filename != logging.__file__:
                break
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def mask_secret(value: str | None, visible: int = 4) -> str:
    """Mask a credential for display, keeping its first few characters.

    Example:
        mask_secret("ghp_abcdef123") == "ghp_***"
    """
    if not value:
        return "[empty]"
    if len(value) <= visible:
        return "***"
    return f"{value[:visible]}***"


def _prepare_record(record: Any) -> bool:
    """Sink filter: name unnamed (stdlib) records and mask tokens in the message."""
    record["extra"].setdefault("name", record["name"])
    record["message"] = _TOKEN_PATTERN.sub(lambda m: mask_secret(m.group(0)), record["message"])
    return True


def setup_logging(
    level: LogLevel = "INFO",
    *,
    verbose: bool = False,
    quiet: bool = False,
    log_file: Path | None = None,
    rotation: str = "10 MB",
    retention: str = "7 days",
    serialize: bool = False,
) -> Logger:
    """Configure logging for the application.

    Args:
        level: Base log level from config
        verbose: If True, use DEBUG level (overrides level)
        quiet: If True, use WARNING level (overrides level)
        log_file: Optional path for file logging with rotation
        rotation: When to rotate log file (e.g., "10 MB", "1 day")
        retention: How long to keep rotated logs
        serialize: If True, output JSON format (useful for file logs)

    Returns:
        Configured logger instance

    Note:
        verbose takes precedence over quiet if both are True.
    """
    global _configured

    # CLI flags win over the configured level
    effective_level: LogLevel
    if verbose:
        effective_level = "DEBUG"
    elif quiet:
        effective_level = "WARNING"
    else:
        effective_level = level

    # Drop loguru's default sink (and ours, on reconfiguration)
    logger.remove()

    # Console sink; diagnose is off so variable values (tokens) never reach stderr
    logger.add(
        sys.stderr,
        level=effective_level,
        format=_CONSOLE_FORMAT,
        colorize=True,
        backtrace=True,
        diagnose=False,
        filter=_prepare_record,
    )

    # Optional rotating file sink
    if log_file:
        logger.add(
            log_file,
            level="DEBUG",  # always capture everything to file
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{extra[name]}:{function}:{line} | "
                "{extra} | "
                "{message}"
            ),
            rotation=rotation,
            retention=retention,
            compression="gz",
            serialize=serialize,
            filter=_prepare_record,
        )

    _intercept_stdlib_logging(effective_level)

    _configured = True
    return logger


def _intercept_stdlib_logging(level: LogLevel) -> None:
    """Send SQLAlchemy, httpx (used by githubkit) and other stdlib loggers to loguru."""
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    # SQL statements only when debugging
    if level in ("TRACE", "DEBUG"):
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)
    else:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    # Request lines from githubkit's transport, debug only
    httpx_level = logging.DEBUG if level in ("TRACE", "DEBUG") else logging.WARNING
    logging.getLogger("httpx").setLevel(httpx_level)
    logging.getLogger("httpcore").setLevel(httpx_level)


def get_logger(name: str) -> Logger:
    """Get a logger with the given name bound as context.

    Usage:
        from devmetrics.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Fetched {} commits", count)

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance with name bound
    """
    return logger.bind(name=name)


def bind_account(account_id: str) -> Logger:
    """Bind sync account context to logger."""
    return logger.bind(name="sync", account=account_id)


def bind_repo(full_name: str, *, account_id: str | None = None) -> Logger:
    """Bind repository context (and optionally the account) to logger.

    Args:
        full_name: Repository in owner/name form
        account_id: Account that owns the sync run

    Returns:
        Logger with repo context bound
    """
    if account_id is None:
        return logger.bind(name="sync", repo=full_name)
    return logger.bind(name="sync", repo=full_name, account=account_id)


class LogContext:
    """Context manager for temporary log context binding.

    Usage:
        with LogContext(account="acme", run="full"):
            logger.info("Processing")  # Has account and run context
    """

    def __init__(self, **context: Any) -> None:
        self._context = context
        self._token: Any = None

    def __enter__(self) -> Logger:
        self._token = logger.contextualize(**self._context)
        self._token.__enter__()
        return logger

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if self._token:
            self._token.__exit__(exc_type, exc_val, exc_tb)


def is_configured() -> bool:
    """Check if logging has been configured."""
    return _configured


def reset_logging() -> None:
    """Reset logging state (primarily for testing)."""
    global _configured
    logger.remove()
    _configured = False
