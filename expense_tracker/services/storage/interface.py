"""
Abstract Storage Interface

DESIGN DECISION: The recurring expense engine never talks to a database
directly. It consumes three operations:
1. list_active_patterns - what to generate for
2. create_expense       - materialize one occurrence
3. set_checkpoint       - record progress for a pattern

plus a transaction boundary so that 2 and 3 commit together.

The remaining pattern CRUD lives here too so that user-facing code and
tests share one collaborator, but the engine only ever calls the four
members above.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from expense_tracker.models.recurring import (
    CategoryRef,
    Expense,
    RecurringPattern,
)
from expense_tracker.models.audit import AuditEvent


class RecurringExpenseStorageInterface(ABC):
    """
    Abstract interface for recurring expense storage.

    Any storage implementation (SQLite, in-memory, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def list_active_patterns(self) -> list[RecurringPattern]:
        """
        List all patterns with is_active == True.

        Order is irrelevant to the engine.

        Raises:
            StorageError: If the patterns cannot be read
        """
        pass

    @abstractmethod
    async def create_expense(
        self,
        amount: Decimal,
        category: CategoryRef,
        expense_date: date,
        note: str,
        recurring_pattern_id: Optional[UUID] = None,
    ) -> Expense:
        """
        Create an expense record.

        Args:
            amount: Expense amount
            category: Category snapshot
            expense_date: Day the expense applies to
            note: Free-text note
            recurring_pattern_id: Weak link to the originating pattern

        Returns:
            The created expense

        Raises:
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    async def set_checkpoint(self, pattern_id: UUID, checkpoint: date) -> None:
        """
        Advance a pattern's last_generated_date.

        Raises:
            NotFoundError: If the pattern doesn't exist
            StorageError: If the update fails or would move the checkpoint backwards
        """
        pass

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """
        Unit of work around a group of writes.

        Usage:
            async with storage.transaction():
                await storage.create_expense(...)
                await storage.set_checkpoint(...)

        Everything inside commits on normal exit and rolls back if the
        block raises.
        """
        pass

    # -------------------------------------------------------------------------
    # Pattern management (user-facing, not used by the engine)
    # -------------------------------------------------------------------------

    @abstractmethod
    async def save_pattern(self, pattern: RecurringPattern) -> RecurringPattern:
        """
        Insert a new pattern or replace an existing one with the same id.

        The stored checkpoint is preserved on replace; only the engine moves it.
        It is cleared when the new start date is after it.
        """
        pass

    @abstractmethod
    async def get_pattern(self, pattern_id: UUID) -> Optional[RecurringPattern]:
        """Retrieve a pattern by ID, or None if it doesn't exist."""
        pass

    @abstractmethod
    async def list_patterns(self, include_inactive: bool = False) -> list[RecurringPattern]:
        """List patterns, newest first."""
        pass

    @abstractmethod
    async def set_pattern_active(self, pattern_id: UUID, is_active: bool) -> None:
        """
        Pause or resume a pattern.

        Raises:
            NotFoundError: If the pattern doesn't exist
        """
        pass

    @abstractmethod
    async def delete_pattern(self, pattern_id: UUID) -> bool:
        """
        Delete a pattern.

        Generated expenses are kept; their back-reference simply dangles.

        Returns:
            True if a pattern was deleted
        """
        pass

    @abstractmethod
    async def delete_generated_expenses(self, pattern_id: UUID) -> int:
        """
        Delete every expense generated from a pattern.

        Only ever called on an explicit user request, never by the engine.

        Returns:
            Number of expenses deleted
        """
        pass

    @abstractmethod
    async def list_expenses(
        self,
        recurring_pattern_id: Optional[UUID] = None,
    ) -> list[Expense]:
        """List expenses ordered by date, optionally only those linked to a pattern."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events of one generation run, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """
    Base exception for storage operations.

    Attributes:
        operation: Storage operation that failed (e.g. 'create_expense')
        cause: The underlying driver exception, if any
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.cause = cause


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """A constraint was violated (duplicate key, missing reference, ...)."""
    pass


class DatabaseLockError(StorageError):
    """The database is busy or locked by another writer."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
