"""
Audit Models for the Recurring Expense Engine

Every generation run leaves a trail:
1. Which expenses were materialized, and for which pattern
2. Which patterns hit the safety limit and were deferred
3. Which patterns failed, and why
4. A summary event per run

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Generation
    EXPENSE_GENERATED = "expense_generated"
    SAFETY_LIMIT_REACHED = "safety_limit_reached"
    PATTERN_GENERATION_FAILED = "pattern_generation_failed"
    GENERATION_RUN_COMPLETED = "generation_run_completed"
    GENERATION_RUN_FAILED = "generation_run_failed"

    # Pattern management
    PATTERN_CREATED = "pattern_created"
    PATTERN_UPDATED = "pattern_updated"
    PATTERN_DELETED = "pattern_deleted"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'pattern', 'expense', 'run')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - all events of one generation run share this
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_row(self) -> tuple:
        """
        Convert to a row for the audit table.

        Columns in order:
        (event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action)
        """
        return (
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type,
            str(self.entity_id) if self.entity_id else None,
            str(self.correlation_id) if self.correlation_id else None,
            self.description,
            json.dumps(self.details) if self.details else None,
            self.error_message,
            1 if self.is_user_action else 0,
        )

    @classmethod
    def from_row(cls, row) -> 'AuditEvent':
        """Inverse of to_row."""
        return cls(
            event_id=UUID(row[0]),
            timestamp=datetime.fromisoformat(row[1]),
            event_type=AuditEventType(row[2]),
            severity=AuditSeverity(row[3]),
            entity_type=row[4],
            entity_id=UUID(row[5]) if row[5] else None,
            correlation_id=UUID(row[6]) if row[6] else None,
            description=row[7],
            details=json.loads(row[8]) if row[8] else {},
            error_message=row[9],
            is_user_action=bool(row[10]),
        )


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_generated(expense_id, pattern_id, day, correlation_id)
        event = AuditEventBuilder.run_completed(generated, failed, as_of, correlation_id)
    """

    @staticmethod
    def expense_generated(
        expense_id: UUID,
        pattern_id: UUID,
        occurrence_date: date,
        amount: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_GENERATED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Recurring expense generated for {occurrence_date.isoformat()}",
            details={
                "pattern_id": str(pattern_id),
                "date": occurrence_date.isoformat(),
                "amount": amount,
            },
        )

    @staticmethod
    def safety_limit_reached(
        pattern_id: UUID,
        limit: int,
        checkpoint: Optional[date],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAFETY_LIMIT_REACHED,
            severity=AuditSeverity.WARNING,
            entity_type="pattern",
            entity_id=pattern_id,
            correlation_id=correlation_id,
            description=f"Reached generation limit of {limit}; remaining backlog deferred",
            details={
                "limit": limit,
                "checkpoint": checkpoint.isoformat() if checkpoint else None,
            },
        )

    @staticmethod
    def pattern_generation_failed(
        pattern_id: UUID,
        error_message: str,
        generated_before_failure: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PATTERN_GENERATION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="pattern",
            entity_id=pattern_id,
            correlation_id=correlation_id,
            description="Failed to generate recurring expenses for pattern",
            error_message=error_message,
            details={
                "generated_before_failure": generated_before_failure,
            },
        )

    @staticmethod
    def run_completed(
        generated: int,
        failed: int,
        as_of_date: date,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GENERATION_RUN_COMPLETED,
            severity=AuditSeverity.WARNING if failed else AuditSeverity.INFO,
            entity_type="run",
            entity_id=correlation_id,
            correlation_id=correlation_id,
            description=f"Generation run completed: {generated} generated, {failed} failed",
            details={
                "generated": generated,
                "failed": failed,
                "as_of_date": as_of_date.isoformat(),
            },
        )

    @staticmethod
    def run_failed(
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GENERATION_RUN_FAILED,
            severity=AuditSeverity.CRITICAL,
            entity_type="run",
            entity_id=correlation_id,
            correlation_id=correlation_id,
            description="Generation run aborted: could not list active patterns",
            error_message=error_message,
        )

    @staticmethod
    def pattern_changed(
        event_type: AuditEventType,
        pattern_id: UUID,
        frequency: Optional[str] = None,
    ) -> AuditEvent:
        verb = event_type.value.split("_")[-1]
        return AuditEvent(
            event_type=event_type,
            entity_type="pattern",
            entity_id=pattern_id,
            description=f"Recurring pattern {verb}",
            details={"frequency": frequency} if frequency else {},
            is_user_action=True,
        )
