"""
Configuration settings for practica-scheduler.

Uses Pydantic Settings for environment variable management with .env file support.
Every setting can be overridden with a PRACTICA_ prefixed environment variable,
e.g. PRACTICA_USE_ADAPTIVE_SYSTEMS=1 or PRACTICA_PROFILE=studio.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PRACTICA_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Storage
    # ========================================
    data_dir: Path = Field(
        default=Path.home() / ".practica",
        description="Root folder holding one sub-folder per user profile",
    )
    profile: str = Field(
        default="default",
        description="Active user profile name",
    )
    max_scheduled_sessions: int = Field(
        default=1000,
        ge=1,
        description="Maximum scheduled-session records kept in scheduled_sessions.json",
    )

    # ========================================
    # Calendar
    # ========================================
    timezone: str = Field(
        default="Europe/Brussels",
        description="Reference time zone that defines the calendar day boundary",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Minimum level written to stderr by the CLI",
    )

    # ========================================
    # Practice defaults
    # ========================================
    musical_experience: str = Field(
        default="intermediate",
        description="beginner | intermediate | advanced | professional (demographic layer)",
    )
    default_session_minutes: int = Field(
        default=5,
        ge=1,
        description="Estimated duration of a freshly scheduled practice session",
    )

    # ─── Retention calculation layers ───────────────────────────────────────────
    use_demographics: bool = Field(default=True)
    use_repetition_bonus: bool = Field(default=True)
    use_adaptive_systems: bool = Field(
        default=False,
        description="Master switch for the adaptive layer (memory stability + calibration)",
    )
    use_memory_stability: bool = Field(default=False)
    use_pmc: bool = Field(
        default=False,
        description="Personalized memory calibration sub-layer",
    )
    use_performance_trend: bool = Field(default=True)

    # ─── Diagnostics ────────────────────────────────────────────────────────────
    enable_diagnostic_logging: bool = Field(default=False)
    diagnostic_log_limit: int = Field(
        default=80,
        ge=1,
        description="Maximum [RETENTION_DIAG] lines emitted per UTC day",
    )

    def profile_dir(self, profile: str | None = None) -> Path:
        """Folder holding the stores of one profile."""
        return self.data_dir / "profiles" / (profile or self.profile)

    def get_feature_flag_defaults(self) -> dict[str, bool | int]:
        """Initial values for the feature flag registry."""
        return {
            "use_demographics": self.use_demographics,
            "use_repetition_bonus": self.use_repetition_bonus,
            "use_adaptive_systems": self.use_adaptive_systems,
            "use_memory_stability": self.use_memory_stability,
            "use_pmc": self.use_pmc,
            "use_performance_trend": self.use_performance_trend,
            "enable_diagnostic_logging": self.enable_diagnostic_logging,
            "diagnostic_log_limit": self.diagnostic_log_limit,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
