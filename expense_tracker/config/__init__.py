"""Configuration package."""

from expense_tracker.config.settings import (
    AppSettings,
    GenerationSettings,
    LeapDayPolicy,
    Settings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GenerationSettings",
    "LeapDayPolicy",
    "Settings",
    "StorageSettings",
    "get_settings",
    "validate_all_settings",
]
