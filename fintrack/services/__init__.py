"""Services package."""

from fintrack.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecurringTransactionStorage,
    GoogleSheetsTransactionStorage,
    InMemoryAuditStorage,
    InMemoryRecurringTransactionStorage,
    InMemoryTransactionStorage,
    NotFoundError,
    RecurringTransactionStorageInterface,
    StorageError,
    TransactionStorageInterface,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRecurringTransactionStorage",
    "GoogleSheetsTransactionStorage",
    "InMemoryAuditStorage",
    "InMemoryRecurringTransactionStorage",
    "InMemoryTransactionStorage",
    "NotFoundError",
    "RecurringTransactionStorageInterface",
    "StorageError",
    "TransactionStorageInterface",
]
