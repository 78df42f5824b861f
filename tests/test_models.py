"""
Tests for the Recurring Expense Engine models

Test strategy:
1. Unit tests for models (validation, conversions)
2. Calculator and generator tests against in-memory storage
3. SQLite tests against a scratch ':memory:' database
"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from expense_tracker.models.recurring import (
    CategoryRef,
    Frequency,
    GenerationResult,
    PatternError,
    RecurringPattern,
    RecurringPatternInput,
)
from expense_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

from conftest import SUBSCRIPTIONS, make_pattern


class TestRecurringModels:
    """Tests for recurring pattern Pydantic models."""

    def test_category_strips_whitespace(self):
        """Test that whitespace is stripped from category name."""
        category = CategoryRef(id="cat-1", name="  Rent  ")
        assert category.name == "Rent"

    def test_pattern_anchor_defaults_to_start_date(self):
        """A never-generated pattern resumes from its start date."""
        pattern = make_pattern(start_date=date(2024, 1, 1))
        assert pattern.last_generated_date is None
        assert pattern.anchor_date == date(2024, 1, 1)

    def test_pattern_anchor_uses_checkpoint(self):
        pattern = make_pattern(
            start_date=date(2024, 1, 1),
            last_generated_date=date(2024, 3, 31),
        )
        assert pattern.anchor_date == date(2024, 3, 31)

    def test_stored_pattern_tolerates_missing_schedule_fields(self):
        """Malformed stored rows still load; the calculator deals with them."""
        pattern = RecurringPattern(
            amount=Decimal("5"),
            category=SUBSCRIPTIONS,
            frequency=Frequency.YEARLY,
            start_date=date(2024, 1, 1),
        )
        assert pattern.day_of_month is None
        assert pattern.month_of_year is None

    def test_input_creates_fresh_pattern(self):
        data = RecurringPatternInput(
            amount=Decimal("12.99"),
            category=SUBSCRIPTIONS,
            frequency=Frequency.MONTHLY,
            day_of_month=31,
            start_date=date(2024, 1, 1),
        )
        pattern = data.to_pattern()
        assert pattern.amount == Decimal("12.99")
        assert pattern.category == SUBSCRIPTIONS
        assert pattern.last_generated_date is None
        assert pattern.is_active is True

    def test_input_rejects_non_positive_amount(self):
        with pytest.raises(ValueError):
            RecurringPatternInput(
                amount=Decimal("0"),
                category=SUBSCRIPTIONS,
                frequency=Frequency.DAILY,
                start_date=date(2024, 1, 1),
            )

    def test_stored_pattern_rejects_non_positive_amount(self):
        with pytest.raises(ValueError):
            make_pattern(amount="-5.00")

    def test_apply_to_clears_checkpoint_before_new_start(self):
        """An edit that moves the start date past the checkpoint restarts generation there."""
        pattern = make_pattern(
            Frequency.DAILY,
            start_date=date(2024, 1, 1),
            last_generated_date=date(2024, 1, 5),
        )
        data = RecurringPatternInput(
            amount=Decimal("12.99"),
            category=SUBSCRIPTIONS,
            frequency=Frequency.DAILY,
            start_date=date(2024, 3, 1),
        )

        edited = data.apply_to(pattern)

        assert edited.id == pattern.id
        assert edited.last_generated_date is None
        assert edited.anchor_date == date(2024, 3, 1)

    def test_anchor_never_precedes_start_date(self):
        pattern = make_pattern(
            start_date=date(2024, 3, 1),
            last_generated_date=date(2024, 1, 5),
        )
        assert pattern.anchor_date == date(2024, 3, 1)

    def test_input_requires_day_of_week_for_weekly(self):
        with pytest.raises(ValueError, match="Day of week"):
            RecurringPatternInput(
                amount=Decimal("10"),
                category=SUBSCRIPTIONS,
                frequency=Frequency.WEEKLY,
                start_date=date(2024, 1, 1),
            )

    def test_input_requires_day_of_month_for_monthly(self):
        with pytest.raises(ValueError, match="Day of month"):
            RecurringPatternInput(
                amount=Decimal("10"),
                category=SUBSCRIPTIONS,
                frequency=Frequency.MONTHLY,
                start_date=date(2024, 1, 1),
            )

    def test_input_requires_month_for_yearly(self):
        with pytest.raises(ValueError, match="Month of year"):
            RecurringPatternInput(
                amount=Decimal("10"),
                category=SUBSCRIPTIONS,
                frequency=Frequency.YEARLY,
                day_of_month=29,
                start_date=date(2024, 1, 1),
            )

    def test_input_rejects_out_of_range_day_of_month(self):
        with pytest.raises(ValueError):
            RecurringPatternInput(
                amount=Decimal("10"),
                category=SUBSCRIPTIONS,
                frequency=Frequency.MONTHLY,
                day_of_month=32,
                start_date=date(2024, 1, 1),
            )

    def test_input_rejects_end_before_start(self):
        with pytest.raises(ValueError, match="End date cannot be before start date"):
            RecurringPatternInput(
                amount=Decimal("10"),
                category=SUBSCRIPTIONS,
                frequency=Frequency.DAILY,
                start_date=date(2024, 5, 1),
                end_date=date(2024, 4, 30),
            )

    def test_apply_to_keeps_identity_and_checkpoint(self):
        """Editing a pattern never rewinds generation progress."""
        existing = make_pattern(last_generated_date=date(2024, 3, 31))
        data = RecurringPatternInput(
            amount=Decimal("15.49"),
            category=SUBSCRIPTIONS,
            frequency=Frequency.MONTHLY,
            day_of_month=15,
            start_date=date(2024, 1, 1),
        )
        edited = data.apply_to(existing)
        assert edited.id == existing.id
        assert edited.last_generated_date == date(2024, 3, 31)
        assert edited.amount == Decimal("15.49")
        assert edited.day_of_month == 15


class TestGenerationResult:
    """Tests for GenerationResult."""

    def test_successful_run_is_silent(self):
        result = GenerationResult(generated=3)
        assert result.has_errors is False
        assert result.error_count == 0
        assert result.summary_message() == ""

    def test_summary_counts_failed_patterns(self):
        result = GenerationResult(
            generated=1,
            errors=[
                PatternError(pattern_id=uuid4(), message="Database is busy"),
                PatternError(pattern_id=uuid4(), message="Database is busy"),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 2
        assert result.summary_message().startswith("2 recurring expenses failed")

    def test_summary_singular(self):
        result = GenerationResult(errors=[PatternError(pattern_id=uuid4(), message="boom")])
        assert result.summary_message().startswith("1 recurring expense failed")


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.EXPENSE_GENERATED,
            description="Recurring expense generated",
        )
        assert event.event_type == AuditEventType.EXPENSE_GENERATED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.GENERATION_RUN_COMPLETED,
            description="Generation run completed",
            details={"generated": 2, "failed": 0},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "generation_run_completed"
        assert log_dict["details"]["generated"] == 2

    def test_audit_event_row_roundtrip(self):
        event = AuditEventBuilder.safety_limit_reached(
            pattern_id=uuid4(),
            limit=365,
            checkpoint=date(2024, 12, 31),
            correlation_id=uuid4(),
        )
        row = event.to_row()
        assert len(row) == 11
        assert row[2] == "safety_limit_reached"
        assert AuditEvent.from_row(row) == event

    def test_builder_expense_generated(self):
        expense_id = uuid4()
        pattern_id = uuid4()
        correlation_id = uuid4()

        event = AuditEventBuilder.expense_generated(
            expense_id=expense_id,
            pattern_id=pattern_id,
            occurrence_date=date(2024, 2, 29),
            amount="12.99",
            correlation_id=correlation_id,
        )

        assert event.entity_id == expense_id
        assert event.correlation_id == correlation_id
        assert event.details["pattern_id"] == str(pattern_id)
        assert event.details["date"] == "2024-02-29"

    def test_builder_run_completed_warns_on_failures(self):
        event = AuditEventBuilder.run_completed(
            generated=4,
            failed=1,
            as_of_date=date(2024, 4, 15),
        )
        assert event.severity == AuditSeverity.WARNING

    def test_builder_pattern_changed_is_user_action(self):
        event = AuditEventBuilder.pattern_changed(
            event_type=AuditEventType.PATTERN_DELETED,
            pattern_id=uuid4(),
            frequency="weekly",
        )
        assert event.is_user_action is True
        assert event.description == "Recurring pattern deleted"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
