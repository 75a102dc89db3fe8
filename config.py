"""
Configuration settings for the fastrev adaptive learning engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Curriculum
    # ========================================
    curriculum_path: str = Field(
        default="data/curriculum/cp2025_sample.yaml",
        description="Curriculum document (YAML or JSON) loaded at startup",
    )

    # ========================================
    # Mastery Evaluation
    # ========================================
    pass_threshold: float = Field(
        default=70.0,
        ge=0,
        le=100,
        description="Composite score at or above which an attempt counts as a success",
    )
    min_trace_samples: int = Field(
        default=5,
        ge=1,
        description="Trace attempts with fewer samples are rejected",
    )

    # ─── Mastery level thresholds (progress percent) ─────────────────────────
    practicing_threshold: int = Field(
        default=40,
        description="Progress percent for discovering -> practicing",
    )
    mastering_threshold: int = Field(
        default=70,
        description="Progress percent for practicing -> mastering",
    )
    mastered_threshold: int = Field(
        default=90,
        description="Progress percent for mastering -> mastered",
    )
    mastered_min_streak: int = Field(
        default=3,
        description="Consecutive successes also required to reach mastered",
    )
    regression_failure_streak: int = Field(
        default=2,
        description="Consecutive failures that drop practicing/mastering one level",
    )

    # ─── Adaptive difficulty ─────────────────────────────────────────────────
    difficulty_step_up: float = Field(
        default=0.1,
        description="Multiplier increase after a success streak",
    )
    difficulty_step_down: float = Field(
        default=0.15,
        description="Multiplier decrease after a failure streak",
    )
    difficulty_min: float = Field(default=0.5, description="Lower bound of the difficulty multiplier")
    difficulty_max: float = Field(default=2.0, description="Upper bound of the difficulty multiplier")
    success_streak_for_harder: int = Field(
        default=3,
        description="Consecutive successes before raising difficulty",
    )
    failure_streak_for_easier: int = Field(
        default=2,
        description="Consecutive failures before lowering difficulty",
    )

    # ========================================
    # Revision Scheduling
    # ========================================
    revision_base_delay_days: float = Field(
        default=1.0,
        description="First retry delay after a failure (doubles per failure)",
    )
    revision_max_delay_days: float = Field(
        default=14.0,
        description="Cap on the failure backoff delay",
    )
    revision_base_interval_days: float = Field(
        default=2.0,
        description="Base reinforcement interval after a success",
    )
    revision_growth_factor: float = Field(
        default=1.8,
        description="Interval growth per consecutive success",
    )
    revision_max_interval_days: float = Field(
        default=180.0,
        description="Cap on the reinforcement interval",
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

    # ========================================
    # Helper Methods
    # ========================================
    def get_level_thresholds(self) -> dict[str, int]:
        """Return the progress thresholds keyed by the level they unlock."""
        return {
            "practicing": self.practicing_threshold,
            "mastering": self.mastering_threshold,
            "mastered": self.mastered_threshold,
        }

    def get_revision_config(self) -> dict[str, float]:
        """Get revision scheduling configuration as a dictionary."""
        return {
            "base_delay_days": self.revision_base_delay_days,
            "max_delay_days": self.revision_max_delay_days,
            "base_interval_days": self.revision_base_interval_days,
            "growth_factor": self.revision_growth_factor,
            "max_interval_days": self.revision_max_interval_days,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
