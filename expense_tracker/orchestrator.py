"""
Main Orchestrator for the Recurring Expense Engine

This module ties together all the components and defines the flows for:
1. Generation (list active patterns → catch up each → aggregate result)
2. Pattern management (create / edit / pause / delete, with auditing)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Patterns are processed one at a time, each fully finished before the next
- A failing pattern is recorded and skipped, never allowed to stop the run
- Only a failure to list patterns aborts a run
- Nothing here ever deletes or resets financial data to recover from an error

Dedup is structural (strictly-after-checkpoint), so there is no
"already running" flag: calling generate twice is safe.
"""

import inspect
from datetime import date
from typing import Any, Awaitable, Callable, Optional, Union
from uuid import UUID

import structlog

from expense_tracker.audit import AuditLogger, configure_logging, create_correlation_id
from expense_tracker.config import GenerationSettings, get_settings, validate_all_settings
from expense_tracker.models.audit import AuditEventType
from expense_tracker.models.recurring import (
    GenerationResult,
    PatternError,
    RecurringPattern,
    RecurringPatternInput,
)
from expense_tracker.scheduling import CatchUpGenerator, preview_next, to_day
from expense_tracker.scheduling.catch_up import describe_error
from expense_tracker.scheduling.occurrence import DateLike
from expense_tracker.services.storage import (
    InMemoryAuditStorage,
    InMemoryRecurringExpenseStorage,
    NotFoundError,
    RecurringExpenseStorageInterface,
    SQLiteAuditStorage,
    SQLiteDatabase,
    SQLiteRecurringExpenseStorage,
)

logger = structlog.get_logger(__name__)

Callback = Callable[..., Union[Any, Awaitable[Any]]]


async def _invoke(callback: Callback, *args) -> None:
    """Call a plain or async callback."""
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class RecurringGenerationFlow:
    """
    Orchestrates generation of due recurring expenses.

    Flow:
    1. List active patterns (failure here is fatal for the run)
    2. For each pattern, catch up inside its own failure boundary
    3. Sum generated counts, collect per-pattern errors
    4. If anything was generated, call the refresh callback
    """

    def __init__(
        self,
        storage: RecurringExpenseStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        on_refresh: Optional[Callback] = None,
        settings: Optional[GenerationSettings] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._on_refresh = on_refresh
        self._settings = settings or get_settings().generation
        self._generator = CatchUpGenerator.from_settings(
            storage, self._settings, audit_logger=audit_logger
        )

    async def generate_due_occurrences(
        self,
        as_of_date: Optional[DateLike] = None,
    ) -> GenerationResult:
        """
        Generate every occurrence due on or before `as_of_date` (default: today).

        Returns:
            GenerationResult with the number generated and one error per
            failed pattern

        Raises:
            StorageError: If the active patterns cannot be listed
        """
        as_of = to_day(as_of_date) if as_of_date is not None else date.today()
        correlation_id = create_correlation_id()

        try:
            patterns = await self._storage.list_active_patterns()
        except Exception as e:
            logger.error("generation_run_failed", error=describe_error(e))
            if self._audit_logger:
                await self._audit_logger.log_run_failed(
                    error_message=describe_error(e),
                    correlation_id=correlation_id,
                )
            raise

        result = GenerationResult(as_of_date=as_of, correlation_id=correlation_id)

        for pattern in patterns:
            try:
                outcome = await self._generator.generate_for_pattern(
                    pattern, as_of, correlation_id=correlation_id
                )
            except Exception as e:
                generated, error = 0, describe_error(e)
            else:
                generated, error = outcome.generated, outcome.error
                if outcome.limit_reached:
                    result.limit_reached.append(pattern.id)

            result.generated += generated
            if error is not None:
                result.errors.append(PatternError(pattern_id=pattern.id, message=error))
                if self._audit_logger:
                    await self._audit_logger.log_pattern_failed(
                        pattern_id=pattern.id,
                        error_message=error,
                        generated_before_failure=generated,
                        correlation_id=correlation_id,
                    )

        if result.generated > 0:
            logger.info("recurring_expenses_generated", generated=result.generated)
        if result.has_errors:
            logger.warning("recurring_expenses_failed", failed=result.error_count)

        if self._audit_logger and (result.generated or result.has_errors):
            await self._audit_logger.log_run_completed(
                generated=result.generated,
                failed=result.error_count,
                as_of_date=as_of,
                correlation_id=correlation_id,
            )

        if result.generated > 0 and self._on_refresh:
            await _invoke(self._on_refresh)

        return result

    async def generate_now(
        self,
        on_complete: Optional[Callback] = None,
        on_error: Optional[Callback] = None,
    ) -> Optional[GenerationResult]:
        """
        Start-up trigger: run a pass for today.

        The generated count goes to `on_complete`. A fatal error goes to
        `on_error` and None is returned; without `on_error` it propagates.
        """
        try:
            result = await self.generate_due_occurrences()
        except Exception as e:
            if on_error is None:
                raise
            await _invoke(on_error, e)
            return None

        if on_complete:
            await _invoke(on_complete, result.generated)
        return result

    def preview_next(
        self,
        pattern: RecurringPattern,
        today: Optional[DateLike] = None,
    ) -> Optional[date]:
        """Next occurrence for display, using the configured leap-day policy."""
        return preview_next(pattern, today, self._settings.leap_day_policy)


class PatternManagementFlow:
    """
    User-facing pattern changes.

    The checkpoint is never exposed here: only the generation flow moves it.
    """

    def __init__(
        self,
        storage: RecurringExpenseStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger

    async def _audit(self, event_type: AuditEventType, pattern: RecurringPattern) -> None:
        if self._audit_logger:
            await self._audit_logger.log_pattern_changed(
                event_type=event_type,
                pattern_id=pattern.id,
                frequency=pattern.frequency.value,
            )

    async def create_pattern(self, data: RecurringPatternInput) -> RecurringPattern:
        pattern = await self._storage.save_pattern(data.to_pattern())
        await self._audit(AuditEventType.PATTERN_CREATED, pattern)
        return pattern

    async def update_pattern(
        self,
        pattern_id: UUID,
        data: RecurringPatternInput,
    ) -> RecurringPattern:
        """
        Edit a pattern's payload and schedule.

        Already generated expenses are left untouched.

        Raises:
            NotFoundError: If the pattern doesn't exist
        """
        existing = await self._storage.get_pattern(pattern_id)
        if existing is None:
            raise NotFoundError(f"Recurring pattern not found: {pattern_id}", "update_pattern")
        pattern = await self._storage.save_pattern(data.apply_to(existing))
        await self._audit(AuditEventType.PATTERN_UPDATED, pattern)
        return pattern

    async def set_active(self, pattern_id: UUID, is_active: bool) -> None:
        await self._storage.set_pattern_active(pattern_id, is_active)

    async def delete_pattern(
        self,
        pattern_id: UUID,
        delete_history: bool = False,
    ) -> bool:
        """
        Delete a pattern.

        Generated expenses are kept unless the user explicitly asks for
        `delete_history`.
        """
        existing = await self._storage.get_pattern(pattern_id)
        if existing is None:
            return False

        async with self._storage.transaction():
            if delete_history:
                await self._storage.delete_generated_expenses(pattern_id)
            deleted = await self._storage.delete_pattern(pattern_id)

        await self._audit(AuditEventType.PATTERN_DELETED, existing)
        return deleted


def create_app_components(
    database_path: Optional[str] = None,
    on_refresh: Optional[Callback] = None,
    use_storage: bool = True,
) -> tuple[RecurringGenerationFlow, PatternManagementFlow, RecurringExpenseStorageInterface]:
    """
    Factory function to create all application components.

    Args:
        database_path: SQLite file to use instead of the configured one.
        on_refresh: Called after a run that generated expenses.
        use_storage: Set to False to run against in-memory storage
                    (tests, previews).

    Returns:
        (generation_flow, pattern_flow, storage)
    """
    settings = get_settings()
    configure_logging(settings.app.effective_log_level)

    problems = {k: v for k, v in validate_all_settings().items() if k.endswith("_error")}
    if problems:
        logger.warning("invalid_settings", **problems)

    logger.info(
        "app_components_created",
        environment=settings.app.app_environment,
        storage="sqlite" if use_storage else "memory",
    )

    if use_storage:
        storage_settings = settings.storage
        if database_path is not None:
            storage_settings = storage_settings.model_copy(update={"path": database_path})
        database = SQLiteDatabase(storage_settings)
        storage = SQLiteRecurringExpenseStorage(database)
        audit_logger = AuditLogger(SQLiteAuditStorage(database))
    else:
        storage = InMemoryRecurringExpenseStorage()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    generation_flow = RecurringGenerationFlow(
        storage,
        audit_logger=audit_logger,
        on_refresh=on_refresh,
        settings=settings.generation,
    )
    pattern_flow = PatternManagementFlow(storage, audit_logger=audit_logger)

    return generation_flow, pattern_flow, storage
