"""
In-Memory Storage Implementation

Used by tests, and as the fallback when no hosted backend is configured.
Records are deep-copied on the way in and out so callers can never
mutate stored state through a reference they hold.
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from fintrack.models.transaction import (
    RecurringTransaction,
    Transaction,
    TransactionType,
)
from fintrack.models.audit import AuditEvent
from fintrack.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    RecurringTransactionStorageInterface,
    TransactionStorageInterface,
)


class InMemoryRecurringTransactionStorage(RecurringTransactionStorageInterface):
    """Recurring transactions keyed by (user_id, id)."""

    def __init__(self, records: Optional[list[RecurringTransaction]] = None):
        self._records: dict[tuple[str, str], RecurringTransaction] = {}
        for record in records or []:
            self._records[(record.user_id, record.id)] = record.model_copy(deep=True)

    async def list_recurring_transactions(
        self,
        user_id: str,
    ) -> list[RecurringTransaction]:
        records = [
            record.model_copy(deep=True)
            for (owner, _), record in self._records.items()
            if owner == user_id
        ]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    async def get_recurring_transaction(
        self,
        user_id: str,
        recurring_id: str,
    ) -> Optional[RecurringTransaction]:
        record = self._records.get((user_id, recurring_id))
        return record.model_copy(deep=True) if record else None

    async def save_recurring_transaction(
        self,
        recurring: RecurringTransaction,
    ) -> bool:
        key = (recurring.user_id, recurring.id)
        if key in self._records:
            raise DuplicateError(f"Recurring transaction already exists: {recurring.id}")
        self._records[key] = recurring.model_copy(deep=True)
        return True

    async def update_recurring_transaction(
        self,
        recurring: RecurringTransaction,
    ) -> bool:
        key = (recurring.user_id, recurring.id)
        if key not in self._records:
            raise NotFoundError(f"Recurring transaction not found: {recurring.id}")
        self._records[key] = recurring.model_copy(
            update={"updated_at": datetime.utcnow()},
            deep=True,
        )
        return True

    async def delete_recurring_transaction(
        self,
        user_id: str,
        recurring_id: str,
    ) -> bool:
        return self._records.pop((user_id, recurring_id), None) is not None


class InMemoryTransactionStorage(TransactionStorageInterface):
    """Ledger transactions keyed by (user_id, id)."""

    def __init__(self, records: Optional[list[Transaction]] = None):
        self._records: dict[tuple[str, str], Transaction] = {}
        for record in records or []:
            self._records[(record.user_id, record.id)] = record.model_copy(deep=True)

    async def save_transaction(self, transaction: Transaction) -> bool:
        key = (transaction.user_id, transaction.id)
        if key in self._records:
            raise DuplicateError(f"Transaction already exists: {transaction.id}")
        self._records[key] = transaction.model_copy(deep=True)
        return True

    async def get_transaction(
        self,
        user_id: str,
        transaction_id: str,
    ) -> Optional[Transaction]:
        record = self._records.get((user_id, transaction_id))
        return record.model_copy(deep=True) if record else None

    async def delete_transaction(
        self,
        user_id: str,
        transaction_id: str,
    ) -> bool:
        return self._records.pop((user_id, transaction_id), None) is not None

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
        results = []
        for (owner, _), record in self._records.items():
            if owner != user_id:
                continue
            if date_from and record.date < date_from:
                continue
            if date_to and record.date > date_to:
                continue
            if transaction_type and record.type != transaction_type:
                continue
            if (
                recurring_transaction_id
                and record.recurring_transaction_id != recurring_transaction_id
            ):
                continue
            results.append(record.model_copy(deep=True))

        results.sort(key=lambda t: t.date, reverse=True)
        return results[offset:offset + limit]


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
