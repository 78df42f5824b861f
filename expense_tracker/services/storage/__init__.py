"""
Storage Services Package

Provides the abstract persistence interface the engine consumes, and two
implementations: SQLite (the app's local store) and in-memory.
"""

from expense_tracker.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DatabaseLockError,
    DuplicateError,
    NotFoundError,
    RecurringExpenseStorageInterface,
    StorageError,
)
from expense_tracker.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryRecurringExpenseStorage,
)
from expense_tracker.services.storage.sqlite import (
    SQLiteAuditStorage,
    SQLiteDatabase,
    SQLiteRecurringExpenseStorage,
    map_sqlite_error,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "RecurringExpenseStorageInterface",
    # Exceptions
    "ConnectionError",
    "DatabaseLockError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryRecurringExpenseStorage",
    # SQLite implementation
    "SQLiteAuditStorage",
    "SQLiteDatabase",
    "SQLiteRecurringExpenseStorage",
    "map_sqlite_error",
]
