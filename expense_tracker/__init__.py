"""
Expense Tracker - Recurring Expense Engine

Turns declarative recurring-payment patterns into concrete, dated
expense records for a personal expense tracker.

DESIGN PRINCIPLES:
1. Generation is idempotent: the checkpoint is the only source of progress
2. One broken pattern never blocks the others
3. Never delete or reset user financial data in response to an error
4. Every generation run is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Expense Tracker Team"
