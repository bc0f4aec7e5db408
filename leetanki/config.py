"""
Configuration settings for the LeetAnki review core.

Uses Pydantic Settings for environment variable management with .env file support.
Every scheduling constant lives here so the SM-2 policy can be tuned without
touching the algorithm.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from leetanki.review.scheduler import SM2Config

DEFAULT_DB_PATH = Path.home() / ".leetanki" / "state.db"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="LEETANKI_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Persistence
    # ========================================
    database_url: str = Field(
        default=f"sqlite:///{DEFAULT_DB_PATH}",
        description="SQLAlchemy URL of the key-value store ('memory://' keeps state in-process)",
    )

    # ========================================
    # SM-2 Policy
    # ========================================
    initial_ease: float = Field(
        default=2.5,
        description="Ease factor of a freshly initialized review state",
    )
    minimum_ease: float = Field(
        default=1.3,
        description="Ease factor floor applied after every update",
    )
    easy_bonus: float = Field(
        default=0.15,
        description="Ease added on an 'easy' outcome",
    )
    hard_penalty: float = Field(
        default=0.15,
        description="Ease removed on a 'hard' outcome",
    )
    again_penalty: float = Field(
        default=0.20,
        description="Ease removed on an 'again' outcome",
    )
    hard_interval_factor: float = Field(
        default=0.8,
        description="Interval multiplier applied on 'hard' after the streak resets",
    )
    first_interval: int = Field(
        default=1,
        description="Days until review after the first successful repetition",
    )
    second_interval: int = Field(
        default=3,
        description="Days until review after the second successful repetition",
    )
    max_interval: int = Field(
        default=365,
        description="Upper bound for any review interval (days)",
    )
    history_limit: int = Field(
        default=10,
        description="Number of (timestamp, outcome) pairs kept per item",
    )

    # ========================================
    # Review Queue
    # ========================================
    due_list_limit: int = Field(
        default=20,
        description="Default number of due items returned by a due query",
    )

    # ========================================
    # Sync
    # ========================================
    drain_poll_seconds: float = Field(
        default=0.2,
        description="Poll interval while waiting for the batch queue to drain",
    )
    ingest_batch_size: int = Field(
        default=50,
        description="Completion events per batch when ingesting from a file",
    )
    sync_interval_hours: int = Field(
        default=24,
        description="Hours after the last completed sync before a new one is needed",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    def sm2_config(self) -> SM2Config:
        """Build the scheduling policy from the configured constants."""
        from leetanki.review.scheduler import SM2Config

        return SM2Config(
            initial_easiness=self.initial_ease,
            minimum_easiness=self.minimum_ease,
            easy_bonus=self.easy_bonus,
            hard_penalty=self.hard_penalty,
            again_penalty=self.again_penalty,
            hard_interval_factor=self.hard_interval_factor,
            first_interval=self.first_interval,
            second_interval=self.second_interval,
            max_interval=self.max_interval,
            history_limit=self.history_limit,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
