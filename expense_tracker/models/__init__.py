"""
Data Models Package

This package contains all Pydantic models used by the recurring expense engine.
All data flowing through the engine must conform to these schemas.
"""

from expense_tracker.models.recurring import (
    CatchUpOutcome,
    CategoryRef,
    Expense,
    Frequency,
    GenerationResult,
    PatternError,
    RecurringPattern,
    RecurringPatternInput,
)
from expense_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Recurring models
    "CatchUpOutcome",
    "CategoryRef",
    "Expense",
    "Frequency",
    "GenerationResult",
    "PatternError",
    "RecurringPattern",
    "RecurringPatternInput",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
