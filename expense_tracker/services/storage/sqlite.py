"""
SQLite Storage Implementation

DESIGN DECISION: SQLite is the local store of the mobile app, so it is
the production backend here as well:
1. Single file, no server
2. Real transactions, so an expense insert and the checkpoint advance
   that follows it commit together
3. Busy/locked errors are retried briefly before surfacing

Dates are stored as ISO strings and amounts as decimal text, so nothing
is lost to float rounding.
"""

import sqlite3
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import AsyncIterator, Callable, Optional, TypeVar
from uuid import UUID, uuid4

import structlog
from pydantic import ValidationError
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from expense_tracker.config import StorageSettings, get_settings
from expense_tracker.models.audit import AuditEvent
from expense_tracker.models.recurring import (
    CategoryRef,
    Expense,
    Frequency,
    RecurringPattern,
)
from expense_tracker.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DatabaseLockError,
    DuplicateError,
    NotFoundError,
    RecurringExpenseStorageInterface,
    StorageError,
)

T = TypeVar("T")

logger = structlog.get_logger(__name__)


SCHEMA = """
    CREATE TABLE IF NOT EXISTS recurring_expenses (
        id                  TEXT PRIMARY KEY NOT NULL,
        amount              TEXT NOT NULL,
        category_id         TEXT NOT NULL,
        category_name       TEXT NOT NULL,
        category_icon       TEXT NOT NULL,
        category_color      TEXT NOT NULL,
        note                TEXT,
        frequency           TEXT NOT NULL,
        day_of_week         INTEGER,
        day_of_month        INTEGER,
        month_of_year       INTEGER,
        start_date          TEXT NOT NULL,
        end_date            TEXT,
        last_generated_date TEXT,
        is_active           INTEGER NOT NULL DEFAULT 1,
        created_at          TEXT NOT NULL,
        updated_at          TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS expenses (
        id                   TEXT PRIMARY KEY NOT NULL,
        amount               TEXT NOT NULL,
        category_id          TEXT NOT NULL,
        category_name        TEXT NOT NULL,
        category_icon        TEXT NOT NULL,
        category_color       TEXT NOT NULL,
        date                 TEXT NOT NULL,
        note                 TEXT,
        recurring_expense_id TEXT,
        created_at           TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_expenses_date ON expenses(date);
    CREATE INDEX IF NOT EXISTS idx_expenses_recurring ON expenses(recurring_expense_id);

    CREATE TABLE IF NOT EXISTS audit_log (
        event_id       TEXT PRIMARY KEY NOT NULL,
        timestamp      TEXT NOT NULL,
        event_type     TEXT NOT NULL,
        severity       TEXT NOT NULL,
        entity_type    TEXT,
        entity_id      TEXT,
        correlation_id TEXT,
        description    TEXT NOT NULL,
        details_json   TEXT,
        error_message  TEXT,
        is_user_action INTEGER NOT NULL DEFAULT 0
    );

    CREATE INDEX IF NOT EXISTS idx_audit_correlation ON audit_log(correlation_id);
"""

# SQLite primary and extended result codes we translate for the user
SQLITE_NOMEM = 7
SQLITE_BUSY = 5
SQLITE_LOCKED = 6
SQLITE_CORRUPT = 11
SQLITE_FULL = 13
SQLITE_CONSTRAINT = 19
SQLITE_BUSY_RECOVERY = 261
SQLITE_CONSTRAINT_UNIQUE = 2067


def map_sqlite_error(error: sqlite3.Error, operation: str) -> StorageError:
    """
    Translate a sqlite3 exception into the storage exception taxonomy.

    The message is safe to show to a user; the original exception is
    kept on `cause`.
    """
    code = getattr(error, "sqlite_errorcode", None)
    text = str(error).lower()

    if code in (SQLITE_BUSY, SQLITE_BUSY_RECOVERY, SQLITE_LOCKED) or "locked" in text or "busy" in text:
        return DatabaseLockError(
            "Database is busy. Please wait a moment and try again.", operation, error
        )
    if code == SQLITE_CONSTRAINT_UNIQUE or "unique" in text:
        return DuplicateError("An entry with this information already exists.", operation, error)
    if code == SQLITE_CONSTRAINT or isinstance(error, sqlite3.IntegrityError):
        return DuplicateError(
            "This operation would create duplicate data. Please check your input.",
            operation,
            error,
        )
    if code == SQLITE_FULL or "disk is full" in text:
        return StorageError("Device storage is full. Please free up space and try again.", operation, error)
    if code == SQLITE_CORRUPT or "malformed" in text:
        return StorageError("Database error detected. Please contact support.", operation, error)
    if code == SQLITE_NOMEM:
        return StorageError(
            "Not enough memory available. Please close other apps and try again.", operation, error
        )

    logger.error("unmapped_sqlite_error", operation=operation, code=code, error=str(error))
    return StorageError("An unexpected error occurred. Please try again.", operation, error)


class SQLiteDatabase:
    """
    Low-level SQLite connection wrapper.

    Owns the single connection, the schema, and the transaction state.
    Writes outside a transaction are retried while the database is locked.
    """

    def __init__(self, settings: Optional[StorageSettings] = None):
        self._settings = settings or get_settings().storage
        self._conn: Optional[sqlite3.Connection] = None
        self._in_transaction = False

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    def get_connection(self) -> sqlite3.Connection:
        """Open the connection on first use and make sure the schema exists."""
        if self._conn is None:
            try:
                conn = sqlite3.connect(
                    self._settings.path,
                    timeout=self._settings.busy_timeout_seconds,
                    isolation_level=None,
                    check_same_thread=False,
                )
                conn.executescript(SCHEMA)
            except sqlite3.Error as e:
                raise ConnectionError(
                    f"Failed to open database {self._settings.path}: {e}", "connect", e
                )
            self._conn = conn
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _retrying(self) -> Retrying:
        return Retrying(
            retry=retry_if_exception_type(DatabaseLockError),
            stop=stop_after_attempt(self._settings.retry_attempts),
            wait=wait_exponential(multiplier=0.05, min=0.05, max=1),
            reraise=True,
        )

    def run(self, operation: str, fn: Callable[[sqlite3.Connection], T]) -> T:
        """
        Run `fn` against the connection, mapping driver errors.

        Inside a transaction the call is made once; the surrounding
        transaction decides what happens on failure.
        """
        def attempt() -> T:
            try:
                return fn(self.get_connection())
            except sqlite3.Error as e:
                raise map_sqlite_error(e, operation)

        if self._in_transaction:
            return attempt()
        return self._retrying()(attempt)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        # Nested blocks join the outer transaction
        if self._in_transaction:
            yield
            return

        self.run("begin", lambda conn: conn.execute("BEGIN IMMEDIATE"))
        self._in_transaction = True
        try:
            yield
        except BaseException:
            self._in_transaction = False
            self._rollback()
            raise
        self._in_transaction = False
        try:
            self.run("commit", lambda conn: conn.execute("COMMIT"))
        except BaseException:
            # A failed COMMIT leaves the transaction open on the connection
            self._rollback()
            raise

    def _rollback(self) -> None:
        try:
            self.get_connection().execute("ROLLBACK")
        except sqlite3.Error as e:
            # The original failure is what the caller needs to see
            logger.error("sqlite_rollback_failed", error=str(e))


class SQLiteRecurringExpenseStorage(RecurringExpenseStorageInterface):
    """
    SQLite implementation of recurring expense storage.

    Category fields are denormalized into both tables, matching how the
    app has always stored them.
    """

    def __init__(self, database: Optional[SQLiteDatabase] = None):
        self._db = database or SQLiteDatabase()

    @property
    def database(self) -> SQLiteDatabase:
        return self._db

    def transaction(self):
        return self._db.transaction()

    # -------------------------------------------------------------------------
    # Row mapping
    # -------------------------------------------------------------------------

    def _row_to_pattern(self, row: tuple) -> RecurringPattern:
        return RecurringPattern(
            id=UUID(row[0]),
            amount=Decimal(row[1]),
            category=CategoryRef(id=row[2], name=row[3], icon=row[4], color=row[5]),
            note=row[6] or "",
            frequency=Frequency(row[7]),
            day_of_week=row[8],
            day_of_month=row[9],
            month_of_year=row[10],
            start_date=date.fromisoformat(row[11]),
            end_date=date.fromisoformat(row[12]) if row[12] else None,
            last_generated_date=date.fromisoformat(row[13]) if row[13] else None,
            is_active=bool(row[14]),
            created_at=datetime.fromisoformat(row[15]),
            updated_at=datetime.fromisoformat(row[16]),
        )

    def _row_to_expense(self, row: tuple) -> Expense:
        return Expense(
            id=UUID(row[0]),
            amount=Decimal(row[1]),
            category=CategoryRef(id=row[2], name=row[3], icon=row[4], color=row[5]),
            expense_date=date.fromisoformat(row[6]),
            note=row[7] or "",
            recurring_pattern_id=UUID(row[8]) if row[8] else None,
            created_at=datetime.fromisoformat(row[9]),
        )

    def _rows_to_patterns(self, rows: list) -> list[RecurringPattern]:
        patterns = []
        for row in rows:
            try:
                patterns.append(self._row_to_pattern(row))
            except (ValueError, ValidationError) as e:
                # A corrupt row must not hide every other pattern
                logger.warning("skipping_malformed_pattern_row", pattern_id=row[0], error=str(e))
        return patterns

    # -------------------------------------------------------------------------
    # Engine operations
    # -------------------------------------------------------------------------

    async def list_active_patterns(self) -> list[RecurringPattern]:
        rows = self._db.run(
            "list_active_patterns",
            lambda conn: conn.execute(
                "SELECT * FROM recurring_expenses WHERE is_active = 1 ORDER BY created_at DESC"
            ).fetchall(),
        )
        return self._rows_to_patterns(rows)

    async def create_expense(
        self,
        amount: Decimal,
        category: CategoryRef,
        expense_date: date,
        note: str,
        recurring_pattern_id: Optional[UUID] = None,
    ) -> Expense:
        expense = Expense(
            id=uuid4(),
            amount=amount,
            category=category,
            expense_date=expense_date,
            note=note,
            recurring_pattern_id=recurring_pattern_id,
        )
        self._db.run(
            "create_expense",
            lambda conn: conn.execute(
                """INSERT INTO expenses (
                    id, amount, category_id, category_name, category_icon,
                    category_color, date, note, recurring_expense_id, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    str(expense.id),
                    str(expense.amount),
                    category.id,
                    category.name,
                    category.icon,
                    category.color,
                    expense_date.isoformat(),
                    note or None,
                    str(recurring_pattern_id) if recurring_pattern_id else None,
                    expense.created_at.isoformat(),
                ),
            ),
        )
        return expense

    async def set_checkpoint(self, pattern_id: UUID, checkpoint: date) -> None:
        def update(conn: sqlite3.Connection) -> None:
            row = conn.execute(
                "SELECT last_generated_date FROM recurring_expenses WHERE id = ?",
                (str(pattern_id),),
            ).fetchone()
            if row is None:
                raise NotFoundError(f"Recurring pattern not found: {pattern_id}", "set_checkpoint")
            if row[0] and checkpoint < date.fromisoformat(row[0]):
                raise StorageError(
                    f"Checkpoint cannot move backwards for pattern {pattern_id}",
                    "set_checkpoint",
                )
            conn.execute(
                "UPDATE recurring_expenses SET last_generated_date = ? WHERE id = ?",
                (checkpoint.isoformat(), str(pattern_id)),
            )

        self._db.run("set_checkpoint", update)

    # -------------------------------------------------------------------------
    # Pattern management
    # -------------------------------------------------------------------------

    async def save_pattern(self, pattern: RecurringPattern) -> RecurringPattern:
        now = datetime.utcnow()
        self._db.run(
            "save_pattern",
            lambda conn: conn.execute(
                """INSERT INTO recurring_expenses (
                    id, amount, category_id, category_name, category_icon,
                    category_color, note, frequency, day_of_week, day_of_month,
                    month_of_year, start_date, end_date, last_generated_date,
                    is_active, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    amount = excluded.amount,
                    category_id = excluded.category_id,
                    category_name = excluded.category_name,
                    category_icon = excluded.category_icon,
                    category_color = excluded.category_color,
                    note = excluded.note,
                    frequency = excluded.frequency,
                    day_of_week = excluded.day_of_week,
                    day_of_month = excluded.day_of_month,
                    month_of_year = excluded.month_of_year,
                    start_date = excluded.start_date,
                    end_date = excluded.end_date,
                    last_generated_date = CASE
                        WHEN recurring_expenses.last_generated_date < excluded.start_date THEN NULL
                        ELSE recurring_expenses.last_generated_date
                    END,
                    is_active = excluded.is_active,
                    updated_at = excluded.updated_at""",
                (
                    str(pattern.id),
                    str(pattern.amount),
                    pattern.category.id,
                    pattern.category.name,
                    pattern.category.icon,
                    pattern.category.color,
                    pattern.note or None,
                    pattern.frequency.value,
                    pattern.day_of_week,
                    pattern.day_of_month,
                    pattern.month_of_year,
                    pattern.start_date.isoformat(),
                    pattern.end_date.isoformat() if pattern.end_date else None,
                    pattern.last_generated_date.isoformat() if pattern.last_generated_date else None,
                    1 if pattern.is_active else 0,
                    pattern.created_at.isoformat(),
                    now.isoformat(),
                ),
            ),
        )
        return await self.get_pattern(pattern.id)

    async def get_pattern(self, pattern_id: UUID) -> Optional[RecurringPattern]:
        row = self._db.run(
            "get_pattern",
            lambda conn: conn.execute(
                "SELECT * FROM recurring_expenses WHERE id = ?", (str(pattern_id),)
            ).fetchone(),
        )
        return self._row_to_pattern(row) if row else None

    async def list_patterns(self, include_inactive: bool = False) -> list[RecurringPattern]:
        query = (
            "SELECT * FROM recurring_expenses ORDER BY created_at DESC"
            if include_inactive
            else "SELECT * FROM recurring_expenses WHERE is_active = 1 ORDER BY created_at DESC"
        )
        rows = self._db.run("list_patterns", lambda conn: conn.execute(query).fetchall())
        return self._rows_to_patterns(rows)

    async def set_pattern_active(self, pattern_id: UUID, is_active: bool) -> None:
        cursor = self._db.run(
            "set_pattern_active",
            lambda conn: conn.execute(
                "UPDATE recurring_expenses SET is_active = ?, updated_at = ? WHERE id = ?",
                (1 if is_active else 0, datetime.utcnow().isoformat(), str(pattern_id)),
            ),
        )
        if cursor.rowcount == 0:
            raise NotFoundError(f"Recurring pattern not found: {pattern_id}", "set_pattern_active")

    async def delete_pattern(self, pattern_id: UUID) -> bool:
        cursor = self._db.run(
            "delete_pattern",
            lambda conn: conn.execute(
                "DELETE FROM recurring_expenses WHERE id = ?", (str(pattern_id),)
            ),
        )
        return cursor.rowcount > 0

    async def delete_generated_expenses(self, pattern_id: UUID) -> int:
        cursor = self._db.run(
            "delete_generated_expenses",
            lambda conn: conn.execute(
                "DELETE FROM expenses WHERE recurring_expense_id = ?", (str(pattern_id),)
            ),
        )
        return cursor.rowcount

    async def list_expenses(
        self,
        recurring_pattern_id: Optional[UUID] = None,
    ) -> list[Expense]:
        if recurring_pattern_id is None:
            rows = self._db.run(
                "list_expenses",
                lambda conn: conn.execute(
                    "SELECT * FROM expenses ORDER BY date, created_at"
                ).fetchall(),
            )
        else:
            rows = self._db.run(
                "list_expenses",
                lambda conn: conn.execute(
                    "SELECT * FROM expenses WHERE recurring_expense_id = ? ORDER BY date, created_at",
                    (str(recurring_pattern_id),),
                ).fetchall(),
            )
        return [self._row_to_expense(row) for row in rows]


class SQLiteAuditStorage(AuditStorageInterface):
    """Append-only audit log in the same SQLite file."""

    def __init__(self, database: Optional[SQLiteDatabase] = None):
        self._db = database or SQLiteDatabase()

    async def append_event(self, event: AuditEvent) -> bool:
        self._db.run(
            "append_event",
            lambda conn: conn.execute(
                """INSERT INTO audit_log (
                    event_id, timestamp, event_type, severity, entity_type,
                    entity_id, correlation_id, description, details_json,
                    error_message, is_user_action
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                event.to_row(),
            ),
        )
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        rows = self._db.run(
            "get_events_by_correlation_id",
            lambda conn: conn.execute(
                "SELECT * FROM audit_log WHERE correlation_id = ? ORDER BY timestamp, rowid",
                (str(correlation_id),),
            ).fetchall(),
        )
        return [AuditEvent.from_row(row) for row in rows]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        rows = self._db.run(
            "get_recent_events",
            lambda conn: conn.execute(
                "SELECT * FROM audit_log ORDER BY timestamp DESC, rowid DESC LIMIT ?",
                (limit,),
            ).fetchall(),
        )
        return [AuditEvent.from_row(row) for row in rows]
