"""Tests for the catch-up generator."""

from datetime import date, timedelta

import pytest

from expense_tracker.audit import AuditLogger
from expense_tracker.config import LeapDayPolicy
from expense_tracker.models.audit import AuditEventType
from expense_tracker.models.recurring import Frequency
from expense_tracker.scheduling import CatchUpGenerator
from expense_tracker.services.storage import InMemoryAuditStorage, InMemoryRecurringExpenseStorage

from conftest import FailingStorage, make_pattern


async def expense_dates(storage, pattern_id):
    return [e.expense_date for e in await storage.list_expenses(pattern_id)]


class TestCatchUpGeneration:

    @pytest.mark.asyncio
    async def test_monthly_scenario(self):
        """Monthly on the 31st from Jan 1st, caught up on April 15th."""
        pattern = make_pattern(Frequency.MONTHLY, day_of_month=31, start_date=date(2024, 1, 1))
        storage = InMemoryRecurringExpenseStorage([pattern])
        generator = CatchUpGenerator(storage)

        outcome = await generator.generate_for_pattern(pattern, date(2024, 4, 15))

        assert outcome.generated == 2
        assert outcome.error is None
        assert outcome.limit_reached is False
        assert await expense_dates(storage, pattern.id) == [date(2024, 2, 29), date(2024, 3, 31)]
        stored = await storage.get_pattern(pattern.id)
        assert stored.last_generated_date == date(2024, 3, 31)

    @pytest.mark.asyncio
    async def test_generated_expense_copies_payload(self):
        pattern = make_pattern(Frequency.DAILY, start_date=date(2024, 1, 1), amount="4.50")
        storage = InMemoryRecurringExpenseStorage([pattern])

        await CatchUpGenerator(storage).generate_for_pattern(pattern, date(2024, 1, 2))

        [expense] = await storage.list_expenses()
        assert expense.amount == pattern.amount
        assert expense.category == pattern.category
        assert expense.note == pattern.note
        assert expense.recurring_pattern_id == pattern.id

    @pytest.mark.asyncio
    async def test_rerun_with_same_checkpoint_generates_nothing(self):
        pattern = make_pattern(Frequency.WEEKLY, day_of_week=3, start_date=date(2024, 1, 1))
        storage = InMemoryRecurringExpenseStorage([pattern])
        generator = CatchUpGenerator(storage)

        first = await generator.generate_for_pattern(pattern, date(2024, 2, 1))
        refreshed = await storage.get_pattern(pattern.id)
        second = await generator.generate_for_pattern(refreshed, date(2024, 2, 1))

        assert first.generated == 5
        assert second.generated == 0
        assert len(await storage.list_expenses()) == 5

    @pytest.mark.asyncio
    async def test_dormant_pattern_contributes_nothing(self):
        pattern = make_pattern(Frequency.DAILY, start_date=date(2024, 6, 1))
        storage = InMemoryRecurringExpenseStorage([pattern])

        outcome = await CatchUpGenerator(storage).generate_for_pattern(pattern, date(2024, 5, 31))

        assert outcome.generated == 0
        assert (await storage.get_pattern(pattern.id)).last_generated_date is None

    @pytest.mark.asyncio
    async def test_start_date_itself_is_never_materialized(self):
        pattern = make_pattern(Frequency.DAILY, start_date=date(2024, 1, 1))
        storage = InMemoryRecurringExpenseStorage([pattern])

        outcome = await CatchUpGenerator(storage).generate_for_pattern(pattern, date(2024, 1, 1))

        assert outcome.generated == 0

    @pytest.mark.asyncio
    async def test_stops_at_end_date(self):
        pattern = make_pattern(Frequency.DAILY, start_date=date(2024, 1, 1), end_date=date(2024, 1, 5))
        storage = InMemoryRecurringExpenseStorage([pattern])

        outcome = await CatchUpGenerator(storage).generate_for_pattern(pattern, date(2024, 3, 1))

        assert outcome.generated == 4
        assert outcome.last_date == date(2024, 1, 5)

    @pytest.mark.asyncio
    async def test_malformed_pattern_generates_nothing(self):
        pattern = make_pattern(Frequency.MONTHLY, day_of_month=None)
        storage = InMemoryRecurringExpenseStorage([pattern])

        outcome = await CatchUpGenerator(storage).generate_for_pattern(pattern, date(2025, 1, 1))

        assert outcome.generated == 0
        assert outcome.error is None

    @pytest.mark.asyncio
    async def test_leap_day_pattern_under_both_policies(self):
        pattern = make_pattern(
            Frequency.YEARLY,
            month_of_year=2,
            day_of_month=29,
            start_date=date(2023, 3, 1),
        )
        skip_storage = InMemoryRecurringExpenseStorage([pattern])
        clamp_storage = InMemoryRecurringExpenseStorage([pattern])

        skipped = await CatchUpGenerator(skip_storage).generate_for_pattern(pattern, date(2026, 6, 1))
        clamped = await CatchUpGenerator(
            clamp_storage, leap_day_policy=LeapDayPolicy.CLAMP
        ).generate_for_pattern(pattern, date(2026, 6, 1))

        assert await expense_dates(skip_storage, pattern.id) == [date(2024, 2, 29)]
        assert skipped.generated == 1
        assert await expense_dates(clamp_storage, pattern.id) == [
            date(2024, 2, 29), date(2025, 2, 28), date(2026, 2, 28),
        ]
        assert clamped.generated == 3


class TestSafetyLimit:

    @pytest.mark.asyncio
    async def test_large_backlog_is_split_across_runs(self):
        """A checkpoint 400 days stale yields 365 now and the rest next time."""
        start = date(2023, 1, 1)
        as_of = start + timedelta(days=400)
        pattern = make_pattern(Frequency.DAILY, start_date=start)
        storage = InMemoryRecurringExpenseStorage([pattern])
        generator = CatchUpGenerator(storage)

        first = await generator.generate_for_pattern(pattern, as_of)
        checkpoint = (await storage.get_pattern(pattern.id)).last_generated_date

        assert first.generated == 365
        assert first.limit_reached is True
        assert checkpoint == start + timedelta(days=365)

        second = await generator.generate_for_pattern(await storage.get_pattern(pattern.id), as_of)

        assert second.generated == 35
        assert second.limit_reached is False
        assert len(await storage.list_expenses()) == 400
        assert (await storage.get_pattern(pattern.id)).last_generated_date == as_of

    @pytest.mark.asyncio
    async def test_backlog_exactly_at_limit_is_not_flagged(self):
        pattern = make_pattern(Frequency.DAILY, start_date=date(2024, 1, 1))
        storage = InMemoryRecurringExpenseStorage([pattern])

        outcome = await CatchUpGenerator(storage, safety_limit=5).generate_for_pattern(
            pattern, date(2024, 1, 6)
        )

        assert outcome.generated == 5
        assert outcome.limit_reached is False

    @pytest.mark.asyncio
    async def test_limit_is_audited(self):
        pattern = make_pattern(Frequency.DAILY, start_date=date(2024, 1, 1))
        storage = InMemoryRecurringExpenseStorage([pattern])
        audit_storage = InMemoryAuditStorage()
        generator = CatchUpGenerator(storage, AuditLogger(audit_storage), safety_limit=3)

        outcome = await generator.generate_for_pattern(pattern, date(2024, 2, 1))

        assert outcome.limit_reached is True
        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.SAFETY_LIMIT_REACHED
        assert events[0].details["checkpoint"] == "2024-01-04"
        generated = [e for e in events if e.event_type == AuditEventType.EXPENSE_GENERATED]
        assert len(generated) == 3


class TestFailures:

    @pytest.mark.asyncio
    async def test_failure_keeps_committed_progress(self):
        pattern = make_pattern(Frequency.DAILY, start_date=date(2024, 1, 1))
        storage = FailingStorage([pattern], fail_create_for={pattern.id}, fail_after=2)

        outcome = await CatchUpGenerator(storage).generate_for_pattern(pattern, date(2024, 1, 10))

        assert outcome.generated == 2
        assert outcome.error == "Database is busy. Please wait a moment and try again."
        assert (await storage.get_pattern(pattern.id)).last_generated_date == date(2024, 1, 3)
        assert len(await storage.list_expenses()) == 2

    @pytest.mark.asyncio
    async def test_failed_checkpoint_rolls_back_expense(self):
        """Insert and checkpoint advance land together or not at all."""
        pattern = make_pattern(Frequency.DAILY, start_date=date(2024, 1, 1))
        storage = FailingStorage([pattern], fail_checkpoint_for={pattern.id})

        outcome = await CatchUpGenerator(storage).generate_for_pattern(pattern, date(2024, 1, 10))

        assert outcome.generated == 0
        assert outcome.error == "Disk I/O error"
        assert await storage.list_expenses() == []
        assert (await storage.get_pattern(pattern.id)).last_generated_date is None
