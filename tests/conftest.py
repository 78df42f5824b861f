"""Shared fixtures and builders for the recurring expense tests."""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

import pytest

from expense_tracker.config import GenerationSettings, LeapDayPolicy
from expense_tracker.models.recurring import CategoryRef, Frequency, RecurringPattern
from expense_tracker.services.storage import InMemoryRecurringExpenseStorage, StorageError


SUBSCRIPTIONS = CategoryRef(id="cat-subs", name="Subscriptions", icon="repeat", color="#5856D6")


def make_pattern(
    frequency: Frequency = Frequency.MONTHLY,
    start_date: date = date(2024, 1, 1),
    amount: str = "12.99",
    **kwargs,
) -> RecurringPattern:
    """Build a pattern with sensible defaults for the given frequency."""
    defaults = {}
    if frequency == Frequency.WEEKLY:
        defaults["day_of_week"] = 3
    elif frequency == Frequency.MONTHLY:
        defaults["day_of_month"] = 31
    elif frequency == Frequency.YEARLY:
        defaults["day_of_month"] = 15
        defaults["month_of_year"] = 6
    defaults.update(kwargs)
    return RecurringPattern(
        amount=Decimal(amount),
        category=SUBSCRIPTIONS,
        note="Streaming",
        frequency=frequency,
        start_date=start_date,
        **defaults,
    )


class FailingStorage(InMemoryRecurringExpenseStorage):
    """In-memory storage that fails writes for selected patterns."""

    def __init__(
        self,
        patterns: Optional[list[RecurringPattern]] = None,
        fail_create_for: Optional[set[UUID]] = None,
        fail_checkpoint_for: Optional[set[UUID]] = None,
        fail_after: int = 0,
    ):
        super().__init__(patterns)
        self._fail_create_for = fail_create_for or set()
        self._fail_checkpoint_for = fail_checkpoint_for or set()
        self._fail_after = fail_after
        self._creates: dict[UUID, int] = {}

    async def create_expense(self, amount, category, expense_date, note, recurring_pattern_id=None):
        if recurring_pattern_id in self._fail_create_for:
            done = self._creates.get(recurring_pattern_id, 0)
            if done >= self._fail_after:
                raise StorageError("Database is busy. Please wait a moment and try again.", "create_expense")
            self._creates[recurring_pattern_id] = done + 1
        return await super().create_expense(
            amount, category, expense_date, note, recurring_pattern_id
        )

    async def set_checkpoint(self, pattern_id, checkpoint):
        if pattern_id in self._fail_checkpoint_for:
            raise StorageError("Disk I/O error", "set_checkpoint")
        await super().set_checkpoint(pattern_id, checkpoint)


@pytest.fixture
def generation_settings() -> GenerationSettings:
    return GenerationSettings(safety_limit=365, leap_day_policy=LeapDayPolicy.SKIP)
