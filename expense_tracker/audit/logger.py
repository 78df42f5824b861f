"""
Audit Logger

DESIGN DECISION: Every generation run is logged.
This provides:
1. Traceability of every materialized expense back to its pattern
2. Visibility into deferred backlogs (safety limit) and failing patterns
3. Debugging capability when a user reports a missing or extra expense

The audit logger:
- Always writes a structured local log line
- Gracefully handles storage failures (a broken audit log never breaks generation)
- Supports correlation IDs to tie together all events of one run
"""

import logging
from datetime import date
from typing import Optional
from uuid import UUID, uuid4

import structlog

from expense_tracker.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from expense_tracker.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output through stdlib logging at the given level."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.INFO))


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("expense_tracker.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_expense_generated(
        self,
        expense_id: UUID,
        pattern_id: UUID,
        occurrence_date: date,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log one materialized occurrence."""
        event = AuditEventBuilder.expense_generated(
            expense_id=expense_id,
            pattern_id=pattern_id,
            occurrence_date=occurrence_date,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_safety_limit_reached(
        self,
        pattern_id: UUID,
        limit: int,
        checkpoint: Optional[date],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a catch-up pass that stopped on the safety limit."""
        event = AuditEventBuilder.safety_limit_reached(
            pattern_id=pattern_id,
            limit=limit,
            checkpoint=checkpoint,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_pattern_failed(
        self,
        pattern_id: UUID,
        error_message: str,
        generated_before_failure: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a pattern whose generation failed this run."""
        event = AuditEventBuilder.pattern_generation_failed(
            pattern_id=pattern_id,
            error_message=error_message,
            generated_before_failure=generated_before_failure,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_run_completed(
        self,
        generated: int,
        failed: int,
        as_of_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log the summary of a generation run."""
        event = AuditEventBuilder.run_completed(
            generated=generated,
            failed=failed,
            as_of_date=as_of_date,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_run_failed(
        self,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a run aborted before any pattern was processed."""
        event = AuditEventBuilder.run_failed(
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_pattern_changed(
        self,
        event_type: AuditEventType,
        pattern_id: UUID,
        frequency: Optional[str] = None,
    ) -> None:
        """Log a user creating, editing or deleting a pattern."""
        event = AuditEventBuilder.pattern_changed(
            event_type=event_type,
            pattern_id=pattern_id,
            frequency=frequency,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a generation run.
    Pass it through all subsequent operations.
    """
    return uuid4()
