"""Services package."""

from expense_tracker.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DatabaseLockError,
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryRecurringExpenseStorage,
    NotFoundError,
    RecurringExpenseStorageInterface,
    SQLiteAuditStorage,
    SQLiteDatabase,
    SQLiteRecurringExpenseStorage,
    StorageError,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "DatabaseLockError",
    "DuplicateError",
    "InMemoryAuditStorage",
    "InMemoryRecurringExpenseStorage",
    "NotFoundError",
    "RecurringExpenseStorageInterface",
    "SQLiteAuditStorage",
    "SQLiteDatabase",
    "SQLiteRecurringExpenseStorage",
    "StorageError",
]
