"""
Configuration Management for the Recurring Expense Engine

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The engine itself has very few knobs (the safety limit and the leap-day
policy); everything else describes where the local store lives.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LeapDayPolicy(str, Enum):
    """
    What a yearly Feb-29 pattern does in a non-leap year.

    SKIP: no occurrence for that year (the behaviour users already rely on).
    CLAMP: the occurrence lands on Feb 28 instead.
    """
    SKIP = "skip"
    CLAMP = "clamp"


class GenerationSettings(BaseSettings):
    """Catch-up generation configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RECURRING_",
        extra="ignore"
    )

    safety_limit: int = Field(
        default=365,
        ge=1,
        le=10000,
        description="Maximum occurrences materialized per pattern per run"
    )
    leap_day_policy: LeapDayPolicy = Field(
        default=LeapDayPolicy.SKIP,
        description="Handling of Feb-29 yearly patterns in non-leap years"
    )


class StorageSettings(BaseSettings):
    """Local SQLite store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="EXPENSES_DB_",
        extra="ignore"
    )

    path: str = Field(
        default="expenses.db",
        description="Path to the SQLite database file (':memory:' for a scratch store)"
    )
    busy_timeout_seconds: float = Field(
        default=5.0,
        ge=0.0,
        le=60.0,
        description="How long SQLite waits on a locked database before failing"
    )
    retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for a write that fails because the database is locked"
    )

    @field_validator('path')
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Warn if the parent directory doesn't exist (it may be created later)."""
        if v != ":memory:" and not Path(v).resolve().parent.exists():
            import warnings
            warnings.warn(
                f"Database directory not found for {v}. "
                "Make sure it exists before running the application."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for local structured logs"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def effective_log_level(self) -> str:
        """Debug mode always logs at DEBUG."""
        return "DEBUG" if self.debug_mode else self.log_level


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def generation(self) -> GenerationSettings:
        return GenerationSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, Union[bool, str]]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name}_error with the message for each invalid section.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("generation", "storage", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
