"""
Google Sheets Storage Implementation

DESIGN DECISION: A spreadsheet is the hosted backend because:
1. Users can view and export their own data directly
2. No database setup required
3. Authentication and backups are handled by the provider

TRADEOFFS:
- Not suitable for high-volume data (fine for personal finance)
- No transactions (we handle this with careful ordering)
- Limited query capabilities (we filter in Python)

Every row carries its user_id, and every lookup matches on both
user_id and id, so one spreadsheet can safely hold several users.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from fintrack.config import get_settings
from fintrack.models.transaction import (
    NON_RECURRING,
    AccountType,
    RecurringTransaction,
    Transaction,
    TransactionType,
)
from fintrack.models.audit import AuditEvent, AuditEventType, AuditSeverity
from fintrack.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    RecurringTransactionStorageInterface,
    StorageError,
    TransactionStorageInterface,
)


# Column mappings for the RecurringTransactions sheet
RECURRING_COLUMNS = [
    "id",
    "user_id",
    "name",
    "description",
    "amount",
    "type",
    "account_type",
    "category_id",
    "category_name",
    "frequency",
    "start_date",
    "end_date",
    "created_at",
    "updated_at",
]

# Column mappings for the Transactions sheet
TRANSACTION_COLUMNS = [
    "id",
    "user_id",
    "date",
    "amount",
    "name",
    "type",
    "account_type",
    "category_id",
    "category_name",
    "description",
    "recurring_frequency",
    "recurring_transaction_id",
    "created_at",
    "updated_at",
]

# Column mappings for the Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

# Row appends are not idempotent and must never be wrapped in this.
# Lookup misses are answers, not transient errors.
_storage_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_not_exception_type((NotFoundError, DuplicateError)),
    reraise=True,
)


def _cell(row: list, index: int, default: str = "") -> str:
    """Read a cell, tolerating short rows."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_recurring_sheet(self) -> gspread.Worksheet:
        """Get or create the RecurringTransactions worksheet."""
        return self._get_or_create(
            self._settings.recurring_sheet_name, RECURRING_COLUMNS, rows=500
        )

    def get_transactions_sheet(self) -> gspread.Worksheet:
        """Get or create the Transactions worksheet."""
        return self._get_or_create(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS, rows=2000
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


def _find_row(all_rows: list[list], user_id: str, record_id: str) -> Optional[int]:
    """1-based sheet row number of a user's record, skipping the header."""
    for idx, row in enumerate(all_rows[1:], start=2):
        if row and _cell(row, 0) == record_id and _cell(row, 1) == user_id:
            return idx
    return None


class GoogleSheetsRecurringTransactionStorage(RecurringTransactionStorageInterface):
    """
    Google Sheets implementation of recurring transaction storage.

    One definition per row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @staticmethod
    def recurring_to_row(recurring: RecurringTransaction) -> list:
        """Convert a RecurringTransaction to a spreadsheet row."""
        return [
            recurring.id,
            recurring.user_id,
            recurring.name,
            recurring.description or "",
            str(recurring.amount),
            recurring.type.value,
            recurring.account_type.value,
            recurring.category_id or "",
            recurring.category_name or "",
            recurring.frequency,
            recurring.start_date.isoformat(),
            recurring.end_date.isoformat() if recurring.end_date else "",
            recurring.created_at.isoformat(),
            recurring.updated_at.isoformat(),
        ]

    @staticmethod
    def row_to_recurring(row: list) -> RecurringTransaction:
        """Convert a spreadsheet row to a RecurringTransaction."""
        return RecurringTransaction(
            id=_cell(row, 0),
            user_id=_cell(row, 1),
            name=_cell(row, 2),
            description=_cell(row, 3) or None,
            amount=Decimal(_cell(row, 4)),
            type=TransactionType(_cell(row, 5)),
            account_type=AccountType(_cell(row, 6)),
            category_id=_cell(row, 7) or None,
            category_name=_cell(row, 8) or None,
            frequency=_cell(row, 9),
            start_date=_cell(row, 10),
            end_date=_cell(row, 11) or None,
            created_at=datetime.fromisoformat(_cell(row, 12)),
            updated_at=datetime.fromisoformat(_cell(row, 13)),
        )

    async def list_recurring_transactions(
        self,
        user_id: str,
    ) -> list[RecurringTransaction]:
        try:
            sheet = self._client.get_recurring_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header

            records = []
            for row in all_rows:
                if not row or _cell(row, 1) != user_id:
                    continue
                try:
                    records.append(self.row_to_recurring(row))
                except Exception:
                    continue  # Skip malformed rows

            records.sort(key=lambda r: r.created_at, reverse=True)
            return records
        except Exception as e:
            raise StorageError(f"Failed to list recurring transactions: {e}")

    async def get_recurring_transaction(
        self,
        user_id: str,
        recurring_id: str,
    ) -> Optional[RecurringTransaction]:
        try:
            sheet = self._client.get_recurring_sheet()
            all_rows = sheet.get_all_values()
            idx = _find_row(all_rows, user_id, recurring_id)
            return self.row_to_recurring(all_rows[idx - 1]) if idx else None
        except Exception as e:
            raise StorageError(f"Failed to get recurring transaction: {e}")

    async def save_recurring_transaction(
        self,
        recurring: RecurringTransaction,
    ) -> bool:
        try:
            sheet = self._client.get_recurring_sheet()
            if _find_row(sheet.get_all_values(), recurring.user_id, recurring.id):
                raise DuplicateError(f"Recurring transaction already exists: {recurring.id}")
            sheet.append_row(self.recurring_to_row(recurring), value_input_option="RAW")
            return True
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save recurring transaction: {e}")

    @_storage_retry
    async def update_recurring_transaction(
        self,
        recurring: RecurringTransaction,
    ) -> bool:
        try:
            sheet = self._client.get_recurring_sheet()
            idx = _find_row(sheet.get_all_values(), recurring.user_id, recurring.id)
            if idx is None:
                raise NotFoundError(f"Recurring transaction not found: {recurring.id}")

            recurring = recurring.model_copy(update={"updated_at": datetime.utcnow()})
            new_row = self.recurring_to_row(recurring)
            for col_idx, value in enumerate(new_row, start=1):
                sheet.update_cell(idx, col_idx, value)
            return True
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update recurring transaction: {e}")

    async def delete_recurring_transaction(
        self,
        user_id: str,
        recurring_id: str,
    ) -> bool:
        try:
            sheet = self._client.get_recurring_sheet()
            idx = _find_row(sheet.get_all_values(), user_id, recurring_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete recurring transaction: {e}")


class GoogleSheetsTransactionStorage(TransactionStorageInterface):
    """Google Sheets implementation of ledger transaction storage."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @staticmethod
    def transaction_to_row(transaction: Transaction) -> list:
        """Convert a Transaction to a spreadsheet row."""
        return [
            transaction.id,
            transaction.user_id,
            transaction.date.isoformat(),
            str(transaction.amount),
            transaction.name,
            transaction.type.value,
            transaction.account_type.value,
            transaction.category_id or "",
            transaction.category_name or "",
            transaction.description or "",
            transaction.recurring_frequency,
            transaction.recurring_transaction_id or "",
            transaction.created_at.isoformat(),
            transaction.updated_at.isoformat(),
        ]

    @staticmethod
    def row_to_transaction(row: list) -> Transaction:
        """Convert a spreadsheet row to a Transaction."""
        return Transaction(
            id=_cell(row, 0),
            user_id=_cell(row, 1),
            date=_cell(row, 2),
            amount=Decimal(_cell(row, 3)),
            name=_cell(row, 4),
            type=TransactionType(_cell(row, 5)),
            account_type=AccountType(_cell(row, 6)),
            category_id=_cell(row, 7) or None,
            category_name=_cell(row, 8) or None,
            description=_cell(row, 9) or None,
            recurring_frequency=_cell(row, 10, NON_RECURRING),
            recurring_transaction_id=_cell(row, 11) or None,
            created_at=datetime.fromisoformat(_cell(row, 12)),
            updated_at=datetime.fromisoformat(_cell(row, 13)),
        )

    async def save_transaction(self, transaction: Transaction) -> bool:
        try:
            sheet = self._client.get_transactions_sheet()
            if _find_row(sheet.get_all_values(), transaction.user_id, transaction.id):
                raise DuplicateError(f"Transaction already exists: {transaction.id}")
            sheet.append_row(self.transaction_to_row(transaction), value_input_option="RAW")
            return True
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}")

    async def get_transaction(
        self,
        user_id: str,
        transaction_id: str,
    ) -> Optional[Transaction]:
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()
            idx = _find_row(all_rows, user_id, transaction_id)
            return self.row_to_transaction(all_rows[idx - 1]) if idx else None
        except Exception as e:
            raise StorageError(f"Failed to get transaction: {e}")

    async def delete_transaction(
        self,
        user_id: str,
        transaction_id: str,
    ) -> bool:
        try:
            sheet = self._client.get_transactions_sheet()
            idx = _find_row(sheet.get_all_values(), user_id, transaction_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete transaction: {e}")

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
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header

            transactions = []
            for row in all_rows:
                if not row or _cell(row, 1) != user_id:
                    continue

                try:
                    transaction = self.row_to_transaction(row)
                except Exception:
                    continue  # Skip malformed rows

                # Apply filters
                if date_from and transaction.date < date_from:
                    continue
                if date_to and transaction.date > date_to:
                    continue
                if transaction_type and transaction.type != transaction_type:
                    continue
                if (
                    recurring_transaction_id
                    and transaction.recurring_transaction_id != recurring_transaction_id
                ):
                    continue

                transactions.append(transaction)

            # Sort by date descending (newest first)
            transactions.sort(key=lambda t: t.date, reverse=True)

            return transactions[offset:offset + limit]
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @staticmethod
    def row_to_event(row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            user_id=_cell(row, 4) or None,
            entity_type=_cell(row, 5) or None,
            entity_id=_cell(row, 6) or None,
            correlation_id=UUID(_cell(row, 7)) if _cell(row, 7) else None,
            description=_cell(row, 8),
            details=json.loads(_cell(row, 9)) if _cell(row, 9) else {},
            error_message=_cell(row, 10) or None,
            is_user_action=_cell(row, 11).lower() == "true",
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def _all_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self.row_to_event(row))
            except Exception:
                continue
        return events

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            events = [
                e for e in await self._all_events()
                if e.correlation_id == correlation_id
            ]
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            events = await self._all_events()
            # Sort newest first
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
