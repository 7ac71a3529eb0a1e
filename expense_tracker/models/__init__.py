"""
Data Models Package

This package contains all Pydantic models used in the Expense Tracker.
All data flowing through the system must conform to these schemas.
"""

from expense_tracker.models.expense import (
    DEFAULT_CATEGORIES,
    DEFAULT_CATEGORY_COLOR,
    DEFAULT_CATEGORY_ICON,
    Category,
    CategoryStats,
    DailySummary,
    Expense,
    ExpenseDraft,
    OverallStats,
    ParseReport,
    RangeSummary,
    quantize_amount,
)
from expense_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Expense models
    "DEFAULT_CATEGORIES",
    "DEFAULT_CATEGORY_COLOR",
    "DEFAULT_CATEGORY_ICON",
    "Category",
    "CategoryStats",
    "DailySummary",
    "Expense",
    "ExpenseDraft",
    "OverallStats",
    "ParseReport",
    "RangeSummary",
    "quantize_amount",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
