"""Configuration settings for DevMetrics DB."""

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RetryConfig(BaseModel):
    """Configuration for the GitHub retry policy.

    Controls how many times transient failures are retried and
    how long to back off between attempts.
    """

    max_attempts: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retry attempts after the initial call (0 = no retries)",
    )
    backoff_base: float = Field(
        default=2.0,
        ge=1.0,
        description="Retry n waits backoff_base ** n seconds before jitter",
    )
    jitter_min_ms: int = Field(
        default=100,
        ge=0,
        description="Lower bound (inclusive) of random jitter added to each delay",
    )
    jitter_max_ms: int = Field(
        default=500,
        ge=1,
        description="Upper bound (exclusive) of random jitter added to each delay",
    )

    @model_validator(mode="after")
    def _check_jitter_bounds(self) -> "RetryConfig":
        if self.jitter_min_ms >= self.jitter_max_ms:
            raise ValueError("jitter_min_ms must be lower than jitter_max_ms")
        return self


class SyncConfig(BaseModel):
    """Configuration for repository/commit/PR sync behavior."""

    per_page: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Results per page for GitHub list endpoints",
    )
    fetch_commit_stats: bool = Field(
        default=True,
        description="Read per-commit line/file stats (one extra request per commit)",
    )


class MetricsConfig(BaseModel):
    """Default windows for metrics calculation."""

    default_window_days: int = Field(
        default=30,
        ge=1,
        description="Window used when calculating metrics for all developers",
    )
    velocity_weeks: int = Field(default=12, ge=1, le=104)
    heatmap_weeks: int = Field(default=52, ge=1, le=104)
    leaderboard_top_n: int = Field(default=10, ge=1, le=100)


class LoggingConfig(BaseModel):
    """Configuration for logging behavior.

    Controls file logging, rotation, and output format.
    """

    log_file: str | None = Field(
        default=None,
        description="Optional path for file logging (enables rotation)",
    )
    rotation: str = Field(
        default="10 MB",
        description="When to rotate log file (e.g., '10 MB', '1 day')",
    )
    retention: str = Field(
        default="7 days",
        description="How long to keep rotated logs",
    )
    serialize: bool = Field(
        default=False,
        description="If True, output JSON format to file",
    )


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # --------------------------------------------------------------------------
    # Database
    # --------------------------------------------------------------------------
    database_url: str = Field(
        default="sqlite+aiosqlite:///./devmetrics.db",
        description="Async database connection string",
    )

    # --------------------------------------------------------------------------
    # GitHub API
    # --------------------------------------------------------------------------
    github_token: str = Field(
        default="",
        description="Default GitHub token (CLI use; accounts normally bring their own)",
    )

    # --------------------------------------------------------------------------
    # Application
    # --------------------------------------------------------------------------
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # --------------------------------------------------------------------------
    # Retry / Sync / Metrics
    # --------------------------------------------------------------------------
    retry: RetryConfig = Field(
        default_factory=RetryConfig,
        description="Retry policy for GitHub requests",
    )
    sync: SyncConfig = Field(
        default_factory=SyncConfig,
        description="Sync behavior configuration",
    )
    metrics: MetricsConfig = Field(
        default_factory=MetricsConfig,
        description="Metrics window defaults",
    )

    # --------------------------------------------------------------------------
    # Logging Configuration
    # --------------------------------------------------------------------------
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration (file output, rotation)",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
