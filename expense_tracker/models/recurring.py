"""
Core Data Models for the Recurring Expense Engine

These models define the schemas for everything the engine reads and writes:
1. RecurringPattern - the user's declared schedule (plus the checkpoint)
2. Expense - an ordinary expense record, optionally linked to a pattern
3. GenerationResult - the transient outcome of one generation run

DESIGN DECISION: The stored pattern is deliberately permissive about the
frequency-specific fields. A malformed row must still load so the engine can
treat it as "produces nothing" instead of failing the whole run. Strict
checks live on RecurringPatternInput, which is what user-facing code builds.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


# =============================================================================
# ENUMS
# =============================================================================

class Frequency(str, Enum):
    """How often a recurring pattern repeats."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


# =============================================================================
# SHARED VALUE OBJECTS
# =============================================================================

class CategoryRef(BaseModel):
    """
    Category snapshot carried by patterns and expenses.

    Category fields are copied by value, so renaming a category later
    does not rewrite history.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1, description="Category identifier")
    name: str = Field(..., min_length=1, max_length=100)
    icon: str = Field(default="pricetag")
    color: str = Field(default="#999999")


# =============================================================================
# RECURRING PATTERN
# =============================================================================

class RecurringPattern(BaseModel):
    """
    A stored recurring expense pattern.

    The engine only ever changes `last_generated_date` (the checkpoint),
    and only through the storage collaborator.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique pattern ID"
    )

    # Payload copied into each generated expense
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Amount of each occurrence"
    )
    category: CategoryRef
    note: str = Field(default="", max_length=500)

    # Schedule
    frequency: Frequency
    day_of_week: Optional[int] = Field(
        default=None,
        description="0=Sunday .. 6=Saturday, weekly only"
    )
    day_of_month: Optional[int] = Field(
        default=None,
        description="1-31, monthly and yearly"
    )
    month_of_year: Optional[int] = Field(
        default=None,
        description="1-12, yearly only"
    )
    start_date: date
    end_date: Optional[date] = Field(
        default=None,
        description="Inclusive cutoff; None means the pattern never ends"
    )

    # Checkpoint
    last_generated_date: Optional[date] = Field(
        default=None,
        description="Date through which occurrences have been materialized"
    )

    is_active: bool = True

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def anchor_date(self) -> date:
        """Where generation resumes: the checkpoint, or the start date if never generated."""
        if self.last_generated_date is None or self.last_generated_date < self.start_date:
            return self.start_date
        return self.last_generated_date


class RecurringPatternInput(BaseModel):
    """
    User-supplied data for creating or editing a pattern.

    Unlike RecurringPattern, this model refuses incomplete schedules:
    the fields a frequency needs must be present and in range.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Annotated[
        Decimal,
        Field(gt=0, decimal_places=2, description="Amount must be a positive number")
    ]
    category: CategoryRef
    note: str = Field(default="", max_length=500)
    frequency: Frequency
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    month_of_year: Optional[int] = Field(default=None, ge=1, le=12)
    start_date: date
    end_date: Optional[date] = None

    @model_validator(mode='after')
    def validate_schedule(self) -> 'RecurringPatternInput':
        """Validate the fields each frequency requires."""
        if self.frequency == Frequency.WEEKLY and self.day_of_week is None:
            raise ValueError("Day of week (0-6) is required for weekly frequency")

        if self.frequency in (Frequency.MONTHLY, Frequency.YEARLY) and self.day_of_month is None:
            raise ValueError("Day of month (1-31) is required for monthly/yearly frequency")

        if self.frequency == Frequency.YEARLY and self.month_of_year is None:
            raise ValueError("Month of year (1-12) is required for yearly frequency")

        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")

        return self

    def to_pattern(self) -> RecurringPattern:
        """Build a new, never-generated pattern from this input."""
        return RecurringPattern(**self.model_dump())

    def apply_to(self, pattern: RecurringPattern) -> RecurringPattern:
        """
        Return `pattern` edited with these values.

        Identity, checkpoint and active flag are kept; edits never
        rewrite already generated history. Moving the start date past the
        checkpoint clears the checkpoint, so generation restarts at the new
        start date.
        """
        edited = {**pattern.model_dump(), **self.model_dump(), "updated_at": datetime.utcnow()}
        checkpoint = pattern.last_generated_date
        if checkpoint is not None and checkpoint < self.start_date:
            edited["last_generated_date"] = None
        return RecurringPattern(**edited)


# =============================================================================
# EXPENSE
# =============================================================================

class Expense(BaseModel):
    """
    An expense record.

    `recurring_pattern_id` is a weak back-reference: deleting the pattern
    leaves its generated expenses in place.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    amount: Decimal
    category: CategoryRef
    expense_date: date
    note: str = ""
    recurring_pattern_id: Optional[UUID] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# GENERATION RESULTS
# =============================================================================

class PatternError(BaseModel):
    """A pattern that failed during a generation run."""

    pattern_id: UUID
    message: str


class CatchUpOutcome(BaseModel):
    """What one catch-up pass did for a single pattern."""

    pattern_id: UUID
    generated: int = Field(default=0, ge=0)
    last_date: Optional[date] = Field(
        default=None,
        description="Checkpoint after this pass, if anything was generated"
    )
    limit_reached: bool = Field(
        default=False,
        description="Stopped on the safety limit with backlog left over"
    )
    error: Optional[str] = None


class GenerationResult(BaseModel):
    """
    Aggregate result of generating due occurrences for all active patterns.

    Not persisted. Successful runs are silent; failures are summarized
    for a non-blocking notification.
    """

    generated: int = Field(default=0, ge=0)
    errors: list[PatternError] = Field(default_factory=list)
    limit_reached: list[UUID] = Field(
        default_factory=list,
        description="Patterns whose backlog was deferred to the next run"
    )
    as_of_date: Optional[date] = None
    correlation_id: Optional[UUID] = None

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def summary_message(self) -> str:
        """
        Short user-facing summary of failures.

        Returns an empty string when every pattern succeeded.
        """
        if not self.errors:
            return ""
        if self.error_count == 1:
            return "1 recurring expense failed to generate. It will be retried next time."
        return (
            f"{self.error_count} recurring expenses failed to generate. "
            "They will be retried next time."
        )
