"""
Catch-up Generator

Materializes every occurrence of one pattern that is due between its
checkpoint and an as-of day.

GUARANTEES:
- Each expense insert and the checkpoint advance that follows it run in
  one storage transaction: both land or neither does
- Candidates are strictly after the checkpoint, so re-running with the
  same as-of day and an unchanged checkpoint generates nothing
- At most `safety_limit` occurrences per call; the rest waits for the next
  run, starting exactly where the checkpoint stopped
"""

from datetime import date
from typing import Optional
from uuid import UUID

import structlog

from expense_tracker.audit import AuditLogger
from expense_tracker.config.settings import GenerationSettings, LeapDayPolicy
from expense_tracker.models.recurring import CatchUpOutcome, RecurringPattern
from expense_tracker.scheduling.occurrence import DateLike, next_occurrence, to_day
from expense_tracker.services.storage import RecurringExpenseStorageInterface

logger = structlog.get_logger(__name__)

DEFAULT_SAFETY_LIMIT = 365


def describe_error(error: BaseException) -> str:
    """Message recorded for a failed pattern."""
    return str(error) or type(error).__name__


class CatchUpGenerator:
    """
    Drives the occurrence calculator for a single pattern.

    The generator never touches a pattern except through
    `storage.set_checkpoint`.
    """

    def __init__(
        self,
        storage: RecurringExpenseStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        safety_limit: int = DEFAULT_SAFETY_LIMIT,
        leap_day_policy: LeapDayPolicy = LeapDayPolicy.SKIP,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._safety_limit = safety_limit
        self._leap_day_policy = leap_day_policy

    @classmethod
    def from_settings(
        cls,
        storage: RecurringExpenseStorageInterface,
        settings: GenerationSettings,
        audit_logger: Optional[AuditLogger] = None,
    ) -> "CatchUpGenerator":
        return cls(
            storage,
            audit_logger=audit_logger,
            safety_limit=settings.safety_limit,
            leap_day_policy=settings.leap_day_policy,
        )

    @property
    def safety_limit(self) -> int:
        return self._safety_limit

    async def generate_for_pattern(
        self,
        pattern: RecurringPattern,
        as_of_date: DateLike,
        correlation_id: Optional[UUID] = None,
    ) -> CatchUpOutcome:
        """
        Generate all occurrences of `pattern` due on or before `as_of_date`.

        A storage failure stops this pattern and is returned on the
        outcome together with the count generated before it; everything
        committed up to that point stays committed.
        """
        as_of = to_day(as_of_date)
        outcome = CatchUpOutcome(pattern_id=pattern.id)

        # Dormant: nothing is due before the start date
        if pattern.start_date > as_of:
            return outcome

        anchor = to_day(pattern.anchor_date)

        try:
            for _ in range(self._safety_limit):
                candidate = next_occurrence(pattern, anchor, self._leap_day_policy)
                if candidate is None or candidate > as_of:
                    break

                await self._materialize(pattern, candidate, correlation_id)

                anchor = candidate
                outcome.generated += 1
                outcome.last_date = candidate
            else:
                # Limit consumed; only a real leftover backlog counts
                leftover = next_occurrence(pattern, anchor, self._leap_day_policy)
                outcome.limit_reached = leftover is not None and leftover <= as_of
        except Exception as e:
            outcome.error = describe_error(e)
            logger.error(
                "pattern_generation_failed",
                pattern_id=str(pattern.id),
                generated=outcome.generated,
                error=outcome.error,
            )
            return outcome

        if outcome.limit_reached:
            logger.warning(
                "safety_limit_reached",
                pattern_id=str(pattern.id),
                limit=self._safety_limit,
                checkpoint=anchor.isoformat(),
            )
            if self._audit_logger:
                await self._audit_logger.log_safety_limit_reached(
                    pattern_id=pattern.id,
                    limit=self._safety_limit,
                    checkpoint=outcome.last_date,
                    correlation_id=correlation_id,
                )

        return outcome

    async def _materialize(
        self,
        pattern: RecurringPattern,
        occurrence: date,
        correlation_id: Optional[UUID],
    ) -> None:
        async with self._storage.transaction():
            expense = await self._storage.create_expense(
                amount=pattern.amount,
                category=pattern.category,
                expense_date=occurrence,
                note=pattern.note,
                recurring_pattern_id=pattern.id,
            )
            await self._storage.set_checkpoint(pattern.id, occurrence)

        if self._audit_logger:
            await self._audit_logger.log_expense_generated(
                expense_id=expense.id,
                pattern_id=pattern.id,
                occurrence_date=occurrence,
                amount=str(pattern.amount),
                correlation_id=correlation_id,
            )
