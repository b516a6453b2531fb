"""
Storage tests.

The in-memory backends are tested directly. The Google Sheets backends
run against a fake worksheet that mimics the gspread calls they make,
so no credentials or network access are needed.
"""

import asyncio
import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from fintrack.models.audit import AuditEventBuilder, AuditEventType
from fintrack.models.transaction import (
    NON_RECURRING,
    AccountType,
    RecurringTransaction,
    Transaction,
    TransactionType,
)
from fintrack.services.storage import (
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsRecurringTransactionStorage,
    GoogleSheetsTransactionStorage,
    InMemoryAuditStorage,
    InMemoryRecurringTransactionStorage,
    InMemoryTransactionStorage,
    NotFoundError,
    StorageError,
)
from fintrack.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    RECURRING_COLUMNS,
    TRANSACTION_COLUMNS,
)


def recurring(**overrides) -> RecurringTransaction:
    fields = {
        "id": "rt-1",
        "user_id": "user-1",
        "name": "Rent",
        "amount": Decimal("1200.00"),
        "type": TransactionType.EXPENSE,
        "account_type": AccountType.CHECKING,
        "category_id": "1",
        "category_name": "Housing",
        "frequency": "Monthly",
        "start_date": date(2023, 1, 31),
    }
    fields.update(overrides)
    return RecurringTransaction(**fields)


def transaction(**overrides) -> Transaction:
    fields = {
        "user_id": "user-1",
        "date": date(2023, 3, 1),
        "amount": Decimal("54.20"),
        "name": "Groceries",
        "type": TransactionType.EXPENSE,
        "account_type": AccountType.CASH,
    }
    fields.update(overrides)
    return Transaction(**fields)


# =============================================================================
# Fakes
# =============================================================================

class FakeWorksheet:
    """Just enough of gspread.Worksheet for the storage classes."""

    def __init__(self, header: list[str]):
        self.rows: list[list[str]] = [list(header)]

    def get_all_values(self) -> list[list[str]]:
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append([str(v) for v in values])

    def update_cell(self, row: int, col: int, value):
        target = self.rows[row - 1]
        while len(target) < col:
            target.append("")
        target[col - 1] = str(value)

    def delete_rows(self, index: int):
        del self.rows[index - 1]


class FlakyAppendWorksheet(FakeWorksheet):
    """Writes the row, then fails as if the response was lost."""

    def __init__(self, header: list[str]):
        super().__init__(header)
        self.append_calls = 0

    def append_row(self, values, value_input_option=None):
        self.append_calls += 1
        super().append_row(values, value_input_option)
        raise RuntimeError("connection reset")


class FakeSheetsClient:
    def __init__(self):
        self.recurring = FakeWorksheet(RECURRING_COLUMNS)
        self.transactions = FakeWorksheet(TRANSACTION_COLUMNS)
        self.audit = FakeWorksheet(AUDIT_COLUMNS)

    def get_recurring_sheet(self):
        return self.recurring

    def get_transactions_sheet(self):
        return self.transactions

    def get_audit_sheet(self):
        return self.audit


# =============================================================================
# In-memory backends
# =============================================================================

class TestInMemoryRecurringStorage:

    def test_crud(self):
        storage = InMemoryRecurringTransactionStorage()

        assert asyncio.run(storage.save_recurring_transaction(recurring())) is True
        fetched = asyncio.run(storage.get_recurring_transaction("user-1", "rt-1"))
        assert fetched.name == "Rent"

        asyncio.run(storage.update_recurring_transaction(
            fetched.model_copy(update={"name": "Flat"})
        ))
        assert asyncio.run(storage.get_recurring_transaction("user-1", "rt-1")).name == "Flat"

        assert asyncio.run(storage.delete_recurring_transaction("user-1", "rt-1")) is True
        assert asyncio.run(storage.get_recurring_transaction("user-1", "rt-1")) is None
        assert asyncio.run(storage.delete_recurring_transaction("user-1", "rt-1")) is False

    def test_duplicate_save(self):
        storage = InMemoryRecurringTransactionStorage([recurring()])
        with pytest.raises(DuplicateError):
            asyncio.run(storage.save_recurring_transaction(recurring()))

    def test_update_missing(self):
        storage = InMemoryRecurringTransactionStorage()
        with pytest.raises(NotFoundError):
            asyncio.run(storage.update_recurring_transaction(recurring()))

    def test_users_are_isolated(self):
        storage = InMemoryRecurringTransactionStorage([
            recurring(),
            recurring(user_id="user-2"),
        ])
        mine = asyncio.run(storage.list_recurring_transactions("user-1"))
        assert [r.user_id for r in mine] == ["user-1"]
        assert asyncio.run(storage.get_recurring_transaction("user-3", "rt-1")) is None

    def test_returns_copies(self):
        storage = InMemoryRecurringTransactionStorage([recurring()])
        fetched = asyncio.run(storage.get_recurring_transaction("user-1", "rt-1"))
        fetched.name = "Changed"
        again = asyncio.run(storage.get_recurring_transaction("user-1", "rt-1"))
        assert again.name == "Rent"


class TestInMemoryTransactionStorage:

    def test_filters_and_orders_newest_first(self):
        storage = InMemoryTransactionStorage([
            transaction(id="a", date=date(2023, 3, 1)),
            transaction(id="b", date=date(2023, 3, 15), type=TransactionType.INCOME),
            transaction(id="c", date=date(2023, 4, 1), recurring_transaction_id="rt-1"),
            transaction(id="d", date=date(2023, 3, 10), user_id="user-2"),
        ])

        everything = asyncio.run(storage.list_transactions("user-1"))
        assert [t.id for t in everything] == ["c", "b", "a"]

        march = asyncio.run(storage.list_transactions(
            "user-1", date_from=date(2023, 3, 1), date_to=date(2023, 3, 31)
        ))
        assert [t.id for t in march] == ["b", "a"]

        income = asyncio.run(storage.list_transactions(
            "user-1", transaction_type=TransactionType.INCOME
        ))
        assert [t.id for t in income] == ["b"]

        linked = asyncio.run(storage.list_transactions(
            "user-1", recurring_transaction_id="rt-1"
        ))
        assert [t.id for t in linked] == ["c"]

    def test_pagination(self):
        storage = InMemoryTransactionStorage([
            transaction(id=str(day), date=date(2023, 3, day)) for day in range(1, 6)
        ])
        page = asyncio.run(storage.list_transactions("user-1", limit=2, offset=1))
        assert [t.id for t in page] == ["4", "3"]

    def test_delete(self):
        storage = InMemoryTransactionStorage([transaction(id="a")])
        assert asyncio.run(storage.delete_transaction("user-1", "a")) is True
        assert asyncio.run(storage.get_transaction("user-1", "a")) is None


class TestInMemoryAuditStorage:

    def test_correlation_lookup(self):
        storage = InMemoryAuditStorage()
        correlation_id = uuid4()
        asyncio.run(storage.append_event(AuditEventBuilder.recurring_deleted(
            user_id="user-1", recurring_id="rt-1", correlation_id=correlation_id
        )))
        asyncio.run(storage.append_event(AuditEventBuilder.recurring_deleted(
            user_id="user-1", recurring_id="rt-2", correlation_id=uuid4()
        )))

        related = asyncio.run(storage.get_events_by_correlation_id(correlation_id))
        assert [e.entity_id for e in related] == ["rt-1"]
        assert len(asyncio.run(storage.get_recent_events(limit=1))) == 1


# =============================================================================
# Google Sheets backends
# =============================================================================

class TestGoogleSheetsRecurringStorage:

    @pytest.fixture
    def client(self):
        return FakeSheetsClient()

    @pytest.fixture
    def storage(self, client):
        return GoogleSheetsRecurringTransactionStorage(client)

    def test_row_round_trip(self):
        original = recurring(end_date=date(2023, 12, 31), description="Flat 4")
        row = GoogleSheetsRecurringTransactionStorage.recurring_to_row(original)

        assert len(row) == len(RECURRING_COLUMNS)
        restored = GoogleSheetsRecurringTransactionStorage.row_to_recurring(row)
        assert restored.model_dump() == original.model_dump()

    def test_save_and_list(self, storage, client):
        asyncio.run(storage.save_recurring_transaction(recurring()))
        asyncio.run(storage.save_recurring_transaction(recurring(id="rt-2", user_id="user-2")))

        assert len(client.recurring.rows) == 3
        mine = asyncio.run(storage.list_recurring_transactions("user-1"))
        assert [r.id for r in mine] == ["rt-1"]
        assert mine[0].start_date == date(2023, 1, 31)

    def test_duplicate_save(self, storage):
        asyncio.run(storage.save_recurring_transaction(recurring()))
        with pytest.raises(DuplicateError):
            asyncio.run(storage.save_recurring_transaction(recurring()))

    def test_same_id_for_other_user_is_not_duplicate(self, storage):
        asyncio.run(storage.save_recurring_transaction(recurring()))
        assert asyncio.run(
            storage.save_recurring_transaction(recurring(user_id="user-2"))
        ) is True

    def test_update_rewrites_row(self, storage):
        asyncio.run(storage.save_recurring_transaction(recurring()))
        asyncio.run(storage.update_recurring_transaction(
            recurring(frequency="Quarterly")
        ))
        fetched = asyncio.run(storage.get_recurring_transaction("user-1", "rt-1"))
        assert fetched.frequency == "Quarterly"

    def test_update_missing(self, storage):
        with pytest.raises(NotFoundError):
            asyncio.run(storage.update_recurring_transaction(recurring()))

    def test_failed_append_is_not_replayed(self, storage, client):
        """A save whose append errors is reported once, never as a duplicate."""
        client.recurring = FlakyAppendWorksheet(RECURRING_COLUMNS)

        with pytest.raises(StorageError) as excinfo:
            asyncio.run(storage.save_recurring_transaction(recurring()))

        assert not isinstance(excinfo.value, DuplicateError)
        assert client.recurring.append_calls == 1
        assert len(client.recurring.rows) == 2

    def test_update_scoped_to_owner(self, storage):
        asyncio.run(storage.save_recurring_transaction(recurring()))
        with pytest.raises(NotFoundError):
            asyncio.run(storage.update_recurring_transaction(recurring(user_id="user-2")))

    def test_delete(self, storage, client):
        asyncio.run(storage.save_recurring_transaction(recurring()))
        assert asyncio.run(storage.delete_recurring_transaction("user-2", "rt-1")) is False
        assert asyncio.run(storage.delete_recurring_transaction("user-1", "rt-1")) is True
        assert client.recurring.rows == [RECURRING_COLUMNS]

    def test_malformed_rows_are_skipped(self, storage, client):
        asyncio.run(storage.save_recurring_transaction(recurring()))
        client.recurring.rows.append(["rt-bad", "user-1", "Broken", "", "not-a-number"])
        mine = asyncio.run(storage.list_recurring_transactions("user-1"))
        assert [r.id for r in mine] == ["rt-1"]


class TestGoogleSheetsTransactionStorage:

    @pytest.fixture
    def storage(self):
        return GoogleSheetsTransactionStorage(FakeSheetsClient())

    def test_row_defaults_to_non_recurring(self):
        row = GoogleSheetsTransactionStorage.transaction_to_row(transaction())
        row[10] = ""
        restored = GoogleSheetsTransactionStorage.row_to_transaction(row)
        assert restored.recurring_frequency == NON_RECURRING

    def test_save_list_and_filter(self, storage):
        asyncio.run(storage.save_transaction(transaction(id="a", date=date(2023, 3, 1))))
        asyncio.run(storage.save_transaction(transaction(
            id="b", date=date(2023, 3, 20), recurring_transaction_id="rt-1"
        )))

        all_rows = asyncio.run(storage.list_transactions("user-1"))
        assert [t.id for t in all_rows] == ["b", "a"]
        linked = asyncio.run(storage.list_transactions(
            "user-1", recurring_transaction_id="rt-1"
        ))
        assert [t.id for t in linked] == ["b"]
        assert linked[0].amount == Decimal("54.20")

    def test_failed_append_is_not_replayed(self):
        client = FakeSheetsClient()
        client.transactions = FlakyAppendWorksheet(TRANSACTION_COLUMNS)
        storage = GoogleSheetsTransactionStorage(client)

        with pytest.raises(StorageError) as excinfo:
            asyncio.run(storage.save_transaction(transaction(id="a")))

        assert not isinstance(excinfo.value, DuplicateError)
        assert client.transactions.append_calls == 1

    def test_duplicate_save(self, storage):
        asyncio.run(storage.save_transaction(transaction(id="a")))
        with pytest.raises(DuplicateError):
            asyncio.run(storage.save_transaction(transaction(id="a")))


class TestGoogleSheetsAuditStorage:

    def test_append_and_read_back(self):
        storage = GoogleSheetsAuditStorage(FakeSheetsClient())
        correlation_id = uuid4()
        event = AuditEventBuilder.frequency_fallback(
            user_id="user-1",
            recurring_id="rt-1",
            raw_frequency="Fortnightly",
            correlation_id=correlation_id,
        )

        assert asyncio.run(storage.append_event(event)) is True

        events = asyncio.run(storage.get_events_by_correlation_id(correlation_id))
        assert len(events) == 1
        assert events[0].event_id == event.event_id
        assert events[0].event_type == AuditEventType.FREQUENCY_FALLBACK
        assert events[0].details["raw_frequency"] == "Fortnightly"

    def test_failed_append_is_written_once(self):
        client = FakeSheetsClient()
        client.audit = FlakyAppendWorksheet(AUDIT_COLUMNS)
        storage = GoogleSheetsAuditStorage(client)
        event = AuditEventBuilder.recurring_deleted(
            user_id="user-1", recurring_id="rt-1", correlation_id=uuid4()
        )

        with pytest.raises(StorageError):
            asyncio.run(storage.append_event(event))

        assert client.audit.append_calls == 1
        assert len(client.audit.rows) == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
