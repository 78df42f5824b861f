"""Recurrence scheduling: occurrence arithmetic and catch-up generation."""

from expense_tracker.scheduling.catch_up import CatchUpGenerator, DEFAULT_SAFETY_LIMIT
from expense_tracker.scheduling.occurrence import (
    last_day_of_month,
    next_occurrence,
    preview_next,
    sunday_based_weekday,
    to_day,
)

__all__ = [
    "CatchUpGenerator",
    "DEFAULT_SAFETY_LIMIT",
    "last_day_of_month",
    "next_occurrence",
    "preview_next",
    "sunday_based_weekday",
    "to_day",
]
