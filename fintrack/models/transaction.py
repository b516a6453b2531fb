"""
Core Data Models for fintrack

These models define the schemas for all data flowing through the system:
1. Recurring transaction definitions (owned by the persistence store)
2. Real ledger transactions
3. Projected occurrences (computed, never persisted)
4. Dashboard metrics

DESIGN DECISION: Recurring transactions keep their frequency as the raw
string from the store. An unrecognized value must survive loading so the
projector can apply its Monthly fallback instead of the whole list failing
validation.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of money movement."""
    INCOME = "Income"
    EXPENSE = "Expense"


class AccountType(str, Enum):
    """Account a transaction is booked against."""
    CASH = "Cash"
    SAVINGS = "Savings"
    CHECKING = "Checking"


class Frequency(str, Enum):
    """
    Supported recurrence frequencies.

    The "Never" sentinel is deliberately NOT a member: it marks a
    one-time transaction and has no step size.
    """
    DAILY = "Daily"
    WEEKLY = "Weekly"
    BI_WEEKLY = "Bi-Weekly"
    TRI_WEEKLY = "Tri-Weekly"
    MONTHLY = "Monthly"
    BI_MONTHLY = "Bi-Monthly"
    QUARTERLY = "Quarterly"
    SEMI_ANNUALLY = "Semi-Annually"
    ANNUALLY = "Annually"


# Frequency value stored for transactions that do not repeat
NON_RECURRING = "Never"


def _coerce_calendar_date(value: Any) -> Any:
    """Drop time-of-day from datetimes and ISO datetime strings."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str):
        text = value.strip()
        if len(text) > 10:
            # "2023-01-01T10:00:00Z", "2023-01-01 10:00:00+00:00"
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        return text
    return value


# =============================================================================
# RECURRING TRANSACTION DEFINITION
# =============================================================================

class RecurringTransaction(BaseModel):
    """
    A template for a repeating financial event.

    Read-only to the projector. Owned by the persistence store, which
    scopes every definition to its user.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        coerce_numbers_to_str=True,
    )

    # Identity
    id: str = Field(
        default_factory=lambda: str(uuid4()),
        min_length=1,
        description="Identifier, unique per owning user"
    )
    user_id: str = Field(
        ...,
        min_length=1,
        description="Owner identity"
    )

    # Display fields
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Display name"
    )
    description: Optional[str] = Field(
        default=None,
        max_length=1000,
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Amount per occurrence (currency-agnostic)"
    )
    type: TransactionType
    account_type: AccountType
    category_id: Optional[str] = Field(
        default=None,
        description="Reference to a category owned elsewhere"
    )
    category_name: Optional[str] = None

    # Recurrence rule
    frequency: str = Field(
        ...,
        min_length=1,
        description="Raw frequency value, e.g. 'Monthly' or 'Never'"
    )
    start_date: date = Field(
        ...,
        description="Anchor for all projections"
    )
    end_date: Optional[date] = Field(
        default=None,
        description="Inclusive upper bound; None means unbounded"
    )

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator('start_date', 'end_date', mode='before')
    @classmethod
    def normalize_dates(cls, v: Any) -> Any:
        """Projection compares calendar days only."""
        return _coerce_calendar_date(v)


# =============================================================================
# LEDGER TRANSACTION
# =============================================================================

class Transaction(BaseModel):
    """A real, persisted income or expense entry."""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        coerce_numbers_to_str=True,
    )

    id: str = Field(default_factory=lambda: str(uuid4()), min_length=1)
    user_id: str = Field(..., min_length=1)
    date: date
    amount: Decimal = Field(..., gt=0)
    name: str = Field(..., min_length=1, max_length=200)
    type: TransactionType
    account_type: AccountType
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=1000)
    recurring_frequency: str = Field(
        default=NON_RECURRING,
        description="Frequency label; 'Never' for one-time entries"
    )
    recurring_transaction_id: Optional[str] = Field(
        default=None,
        description="Recurring transaction this entry was recorded from"
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator('date', mode='before')
    @classmethod
    def normalize_date(cls, v: Any) -> Any:
        return _coerce_calendar_date(v)


# =============================================================================
# PROJECTION MODELS
# =============================================================================

class ProjectedOccurrence(BaseModel):
    """
    One upcoming occurrence of a recurring transaction.

    CRITICAL: This is derived state. It is rebuilt on every projection
    and must never be persisted or cached as truth.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(
        ...,
        description="Synthetic identifier '{source_id}-{ISO date}'"
    )
    source_id: str
    sequence_index: int = Field(..., ge=0)
    occurrence_date: date

    # Copied verbatim from the source definition
    user_id: str
    name: str
    description: Optional[str] = None
    amount: Decimal
    type: TransactionType
    account_type: AccountType
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    frequency: str

    predicted: bool = True

    @classmethod
    def from_definition(
        cls,
        definition: RecurringTransaction,
        occurrence_date: date,
        sequence_index: int,
    ) -> "ProjectedOccurrence":
        return cls(
            id=f"{definition.id}-{occurrence_date.isoformat()}",
            source_id=definition.id,
            sequence_index=sequence_index,
            occurrence_date=occurrence_date,
            user_id=definition.user_id,
            name=definition.name,
            description=definition.description,
            amount=definition.amount,
            type=definition.type,
            account_type=definition.account_type,
            category_id=definition.category_id,
            category_name=definition.category_name,
            frequency=definition.frequency,
        )


# =============================================================================
# DASHBOARD MODELS
# =============================================================================

class MonthlyTotals(BaseModel):
    """Income and expenses for one calendar month."""

    month: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    income: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")

    @property
    def net(self) -> Decimal:
        return self.income - self.expenses


class DashboardMetrics(BaseModel):
    """
    Deterministic totals over a date range.

    Everything here is computed from stored transactions and the
    current projection. The presentation layer only formats it.
    """

    user_id: str
    date_from: date
    date_to: date
    computed_at: datetime = Field(default_factory=datetime.utcnow)
    currency_code: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="ISO currency the presentation layer formats amounts in"
    )

    total_income: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    transaction_count: int = Field(default=0, ge=0)

    by_category: dict[str, Decimal] = Field(
        default_factory=dict,
        description="Expense totals keyed by category name (or id)"
    )
    by_month: list[MonthlyTotals] = Field(
        default_factory=list,
        description="Per-month totals in chronological order"
    )

    upcoming_income: Decimal = Decimal("0")
    upcoming_expenses: Decimal = Decimal("0")
    upcoming_count: int = Field(default=0, ge=0)

    @model_validator(mode='after')
    def validate_range(self) -> 'DashboardMetrics':
        if self.date_to < self.date_from:
            raise ValueError("Range end cannot be before range start")
        return self

    @property
    def net(self) -> Decimal:
        """Income minus expenses."""
        return self.total_income - self.total_expenses

    @property
    def savings_rate(self) -> Optional[Decimal]:
        """Share of income kept, or None when there was no income."""
        if not self.total_income:
            return None
        return self.net / self.total_income
