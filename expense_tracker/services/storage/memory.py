"""
In-Memory Storage Implementation

Dict-backed storage for tests and for running without a database file.
Transactions are implemented with a snapshot that is restored on error,
so the all-or-nothing guarantee matches the SQLite backend.
"""

from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import AsyncIterator, Optional
from uuid import UUID

from expense_tracker.models.audit import AuditEvent
from expense_tracker.models.recurring import CategoryRef, Expense, RecurringPattern
from expense_tracker.services.storage.interface import (
    AuditStorageInterface,
    NotFoundError,
    RecurringExpenseStorageInterface,
    StorageError,
)


class InMemoryRecurringExpenseStorage(RecurringExpenseStorageInterface):
    """
    Recurring expense storage held in process memory.

    Models are copied on the way in and out, so callers can never
    change stored state without going through this class.
    """

    def __init__(self, patterns: Optional[list[RecurringPattern]] = None):
        self._patterns: dict[UUID, RecurringPattern] = {}
        self._expenses: dict[UUID, Expense] = {}
        self._in_transaction = False
        for pattern in patterns or []:
            self._patterns[pattern.id] = pattern.model_copy()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        # Nested blocks join the outer transaction
        if self._in_transaction:
            yield
            return

        patterns_snapshot = dict(self._patterns)
        expenses_snapshot = dict(self._expenses)
        self._in_transaction = True
        try:
            yield
        except BaseException:
            self._patterns = patterns_snapshot
            self._expenses = expenses_snapshot
            raise
        finally:
            self._in_transaction = False

    async def list_active_patterns(self) -> list[RecurringPattern]:
        return [p.model_copy() for p in self._patterns.values() if p.is_active]

    async def create_expense(
        self,
        amount: Decimal,
        category: CategoryRef,
        expense_date: date,
        note: str,
        recurring_pattern_id: Optional[UUID] = None,
    ) -> Expense:
        expense = Expense(
            amount=amount,
            category=category,
            expense_date=expense_date,
            note=note,
            recurring_pattern_id=recurring_pattern_id,
        )
        self._expenses[expense.id] = expense
        return expense.model_copy()

    async def set_checkpoint(self, pattern_id: UUID, checkpoint: date) -> None:
        pattern = self._patterns.get(pattern_id)
        if pattern is None:
            raise NotFoundError(f"Recurring pattern not found: {pattern_id}", "set_checkpoint")
        if pattern.last_generated_date and checkpoint < pattern.last_generated_date:
            raise StorageError(
                f"Checkpoint cannot move backwards for pattern {pattern_id}",
                "set_checkpoint",
            )
        self._patterns[pattern_id] = pattern.model_copy(
            update={"last_generated_date": checkpoint}
        )

    async def save_pattern(self, pattern: RecurringPattern) -> RecurringPattern:
        existing = self._patterns.get(pattern.id)
        update = {"updated_at": datetime.utcnow()}
        if existing is not None:
            checkpoint = existing.last_generated_date
            # The checkpoint never precedes the start date
            if checkpoint is not None and checkpoint < pattern.start_date:
                checkpoint = None
            update["last_generated_date"] = checkpoint
        stored = pattern.model_copy(update=update)
        self._patterns[stored.id] = stored
        return stored.model_copy()

    async def get_pattern(self, pattern_id: UUID) -> Optional[RecurringPattern]:
        pattern = self._patterns.get(pattern_id)
        return pattern.model_copy() if pattern else None

    async def list_patterns(self, include_inactive: bool = False) -> list[RecurringPattern]:
        patterns = [
            p.model_copy() for p in self._patterns.values()
            if include_inactive or p.is_active
        ]
        patterns.sort(key=lambda p: p.created_at, reverse=True)
        return patterns

    async def set_pattern_active(self, pattern_id: UUID, is_active: bool) -> None:
        pattern = self._patterns.get(pattern_id)
        if pattern is None:
            raise NotFoundError(f"Recurring pattern not found: {pattern_id}", "set_pattern_active")
        self._patterns[pattern_id] = pattern.model_copy(
            update={"is_active": is_active, "updated_at": datetime.utcnow()}
        )

    async def delete_pattern(self, pattern_id: UUID) -> bool:
        return self._patterns.pop(pattern_id, None) is not None

    async def delete_generated_expenses(self, pattern_id: UUID) -> int:
        doomed = [
            e.id for e in self._expenses.values()
            if e.recurring_pattern_id == pattern_id
        ]
        for expense_id in doomed:
            del self._expenses[expense_id]
        return len(doomed)

    async def list_expenses(
        self,
        recurring_pattern_id: Optional[UUID] = None,
    ) -> list[Expense]:
        expenses = [
            e.model_copy() for e in self._expenses.values()
            if recurring_pattern_id is None or e.recurring_pattern_id == recurring_pattern_id
        ]
        expenses.sort(key=lambda e: (e.expense_date, e.created_at))
        return expenses


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log held in process memory."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
