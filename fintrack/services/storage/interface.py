"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap the hosted backend without touching business logic
2. Use in-memory storage for testing
3. Keep the projection core free of I/O

Every read and mutation is scoped by user_id. A backend must never
return or modify rows belonging to another user.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional
from uuid import UUID

from fintrack.models.transaction import (
    RecurringTransaction,
    Transaction,
    TransactionType,
)
from fintrack.models.audit import AuditEvent


class RecurringTransactionStorageInterface(ABC):
    """
    Abstract interface for recurring transaction storage.

    Any storage implementation must implement these methods.
    """

    @abstractmethod
    async def list_recurring_transactions(
        self,
        user_id: str,
    ) -> list[RecurringTransaction]:
        """
        List all recurring transactions owned by a user.

        Returns:
            Definitions, newest first. Empty list if the user has none.
        """
        pass

    @abstractmethod
    async def get_recurring_transaction(
        self,
        user_id: str,
        recurring_id: str,
    ) -> Optional[RecurringTransaction]:
        """
        Retrieve one recurring transaction.

        Returns:
            The definition if found, None otherwise
        """
        pass

    @abstractmethod
    async def save_recurring_transaction(
        self,
        recurring: RecurringTransaction,
    ) -> bool:
        """
        Insert a new recurring transaction.

        Raises:
            DuplicateError: If the id already exists for this user
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def update_recurring_transaction(
        self,
        recurring: RecurringTransaction,
    ) -> bool:
        """
        Replace an existing recurring transaction.

        Raises:
            NotFoundError: If it doesn't exist for this user
            StorageError: If update fails
        """
        pass

    @abstractmethod
    async def delete_recurring_transaction(
        self,
        user_id: str,
        recurring_id: str,
    ) -> bool:
        """
        Delete a recurring transaction.

        Returns:
            True if deleted, False if it did not exist
        """
        pass


class TransactionStorageInterface(ABC):
    """Abstract interface for ledger transaction storage."""

    @abstractmethod
    async def save_transaction(self, transaction: Transaction) -> bool:
        """
        Insert a new transaction.

        Raises:
            DuplicateError: If the id already exists for this user
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_transaction(
        self,
        user_id: str,
        transaction_id: str,
    ) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def delete_transaction(
        self,
        user_id: str,
        transaction_id: str,
    ) -> bool:
        pass

    @abstractmethod
    async def list_transactions(
        self,
        user_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        transaction_type: Optional[TransactionType] = None,
        recurring_transaction_id: Optional[str] = None,
        limit: int = 1000,
        offset: int = 0,
    ) -> list[Transaction]:
        """
        List a user's transactions with optional filters.

        Args:
            user_id: Owner
            date_from: Transactions on or after this date
            date_to: Transactions on or before this date
            transaction_type: Income or Expense only
            recurring_transaction_id: Only entries recorded from this definition
            limit: Maximum number of results
            offset: Number of results to skip

        Returns:
            Matching transactions, newest first
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID.

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
