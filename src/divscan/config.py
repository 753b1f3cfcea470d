"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env files.
Every field has a conservative default, so an empty environment
yields a working (slow, polite) collector.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Pacing:
        CONCURRENCY: Entities whose sub-fetches may be in flight at once
        MIN_DELAY_SECONDS / MAX_DELAY_SECONDS: Jittered pause before each request

    Retry:
        MAX_RETRIES: Attempts per logical request
        REQUEST_TIMEOUT_SECONDS: Timeout applied to every attempt
        BACKOFF_BASE_SECONDS / BACKOFF_FACTOR: Exponential floor between attempts

    Cooldowns:
        RATE_LIMIT_COOLDOWN_SECONDS: Pause after an HTTP 429
        BLOCK_COOLDOWN_SECONDS: Pause after an HTTP 403
        FAILURE_CEILING: Consecutive failures that trip the circuit breaker
        CIRCUIT_BREAKER_COOLDOWN_SECONDS: Pause when the breaker trips

    Checkpointing:
        CHECKPOINT_EVERY: Processed entities between checkpoint saves
        CHECKPOINT_STALENESS_HOURS: Older checkpoints are ignored
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Data source
    API_BASE_URL: str = Field(
        default="https://api.nasdaq.com", description="Nasdaq API base URL"
    )
    LISTING_LIMIT: int = Field(
        default=10000, ge=1, description="Maximum rows requested from the screener"
    )

    # Pacing
    CONCURRENCY: int = Field(default=3, ge=1, le=20, description="Concurrent entities")
    MIN_DELAY_SECONDS: float = Field(default=0.5, ge=0.0, description="Minimum pre-request delay")
    MAX_DELAY_SECONDS: float = Field(default=1.5, ge=0.0, description="Maximum pre-request delay")

    # Retry
    MAX_RETRIES: int = Field(default=4, ge=1, le=10, description="Attempts per request")
    REQUEST_TIMEOUT_SECONDS: float = Field(default=20.0, gt=0.0, description="Per-attempt timeout")
    BACKOFF_BASE_SECONDS: float = Field(default=1.0, ge=0.0, description="First retry wait floor")
    BACKOFF_FACTOR: float = Field(default=2.0, description="Growth of the retry wait floor")

    # Cooldowns
    RATE_LIMIT_COOLDOWN_SECONDS: float = Field(default=30.0, ge=0.0)
    BLOCK_COOLDOWN_SECONDS: float = Field(default=45.0, ge=0.0)
    FAILURE_CEILING: int = Field(default=10, ge=1)
    CIRCUIT_BREAKER_COOLDOWN_SECONDS: float = Field(default=120.0, ge=0.0)

    # Checkpointing
    CHECKPOINT_EVERY: int = Field(default=25, ge=1, description="Entities between saves")
    CHECKPOINT_STALENESS_HOURS: float = Field(
        default=2.0, gt=0.0, description="Maximum checkpoint age to resume from"
    )

    # Record assembly
    SUPPLEMENT_FALLBACK: Literal["listing", "blank"] = Field(
        default="listing",
        description="What fills sector/industry when the profile fetch fails",
    )
    FILTER_MISSING_GROWTH: bool = Field(
        default=False, description="Drop records without growth data from the report"
    )
    TOP_N: int = Field(default=20, ge=1, description="Size of the top-yield ranking")

    # Directories
    DATA_DIR: Path = Field(default=Path("data"), description="Report output directory")
    CHECKPOINT_DIR: Path | None = Field(
        default=None, description="Checkpoint directory (defaults to DATA_DIR/.checkpoint)"
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )

    @field_validator("BACKOFF_FACTOR")
    @classmethod
    def validate_backoff_factor(cls, v: float) -> float:
        """Backoff must grow, otherwise repeated failures never self-limit."""
        if v <= 1.0:
            raise ValueError("BACKOFF_FACTOR must be greater than 1")
        return v

    @field_validator("API_BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_delay_bounds(self) -> Settings:
        """Ensure the jitter range is well formed."""
        if self.MAX_DELAY_SECONDS < self.MIN_DELAY_SECONDS:
            raise ValueError("MAX_DELAY_SECONDS must be >= MIN_DELAY_SECONDS")
        return self

    @property
    def checkpoint_dir(self) -> Path:
        """Directory holding the two checkpoint documents."""
        if self.CHECKPOINT_DIR is not None:
            return self.CHECKPOINT_DIR
        return self.DATA_DIR / ".checkpoint"

    @property
    def report_path(self) -> Path:
        """Default location of the final report."""
        return self.DATA_DIR / "dividends.json"

    @property
    def staleness_seconds(self) -> float:
        return self.CHECKPOINT_STALENESS_HOURS * 3600.0

    def ensure_directories(self) -> None:
        """Create data and checkpoint directories if they don't exist."""
        self.DATA_DIR.mkdir(parents=True, exist_ok=True)
        self.checkpoint_dir.mkdir(parents=True, exist_ok=True)

    def display(self) -> dict[str, str | int | float | bool | None]:
        """Return settings for display."""
        return {
            "API_BASE_URL": self.API_BASE_URL,
            "LISTING_LIMIT": self.LISTING_LIMIT,
            "CONCURRENCY": self.CONCURRENCY,
            "MIN_DELAY_SECONDS": self.MIN_DELAY_SECONDS,
            "MAX_DELAY_SECONDS": self.MAX_DELAY_SECONDS,
            "MAX_RETRIES": self.MAX_RETRIES,
            "REQUEST_TIMEOUT_SECONDS": self.REQUEST_TIMEOUT_SECONDS,
            "BACKOFF_BASE_SECONDS": self.BACKOFF_BASE_SECONDS,
            "BACKOFF_FACTOR": self.BACKOFF_FACTOR,
            "RATE_LIMIT_COOLDOWN_SECONDS": self.RATE_LIMIT_COOLDOWN_SECONDS,
            "BLOCK_COOLDOWN_SECONDS": self.BLOCK_COOLDOWN_SECONDS,
            "FAILURE_CEILING": self.FAILURE_CEILING,
            "CIRCUIT_BREAKER_COOLDOWN_SECONDS": self.CIRCUIT_BREAKER_COOLDOWN_SECONDS,
            "CHECKPOINT_EVERY": self.CHECKPOINT_EVERY,
            "CHECKPOINT_STALENESS_HOURS": self.CHECKPOINT_STALENESS_HOURS,
            "SUPPLEMENT_FALLBACK": self.SUPPLEMENT_FALLBACK,
            "FILTER_MISSING_GROWTH": self.FILTER_MISSING_GROWTH,
            "TOP_N": self.TOP_N,
            "DATA_DIR": str(self.DATA_DIR),
            "CHECKPOINT_DIR": str(self.checkpoint_dir),
            "LOG_LEVEL": self.LOG_LEVEL,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
