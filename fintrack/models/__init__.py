"""
Data Models Package

This package contains all Pydantic models used in fintrack.
All data flowing through the system must conform to these schemas.
"""

from fintrack.models.transaction import (
    NON_RECURRING,
    AccountType,
    DashboardMetrics,
    Frequency,
    MonthlyTotals,
    ProjectedOccurrence,
    RecurringTransaction,
    Transaction,
    TransactionType,
)
from fintrack.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Transaction models
    "NON_RECURRING",
    "AccountType",
    "DashboardMetrics",
    "Frequency",
    "MonthlyTotals",
    "ProjectedOccurrence",
    "RecurringTransaction",
    "Transaction",
    "TransactionType",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
