"""
Dashboard Metrics Execution

DESIGN DECISION: Metrics are DETERMINISTIC.
Every number on the dashboard is computed here from stored transactions
(and, for upcoming totals, from the current projection). The presentation
layer only formats what this engine returns.

Amounts are summed as Decimal; nothing is converted to float.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from fintrack.models.transaction import (
    DashboardMetrics,
    MonthlyTotals,
    ProjectedOccurrence,
    Transaction,
    TransactionType,
)
from fintrack.services.storage import TransactionStorageInterface


UNCATEGORIZED = "Uncategorized"

DEFAULT_CURRENCY = "USD"

# Rows requested per storage call while aggregating a range
PAGE_SIZE = 1000


class QueryExecutionError(Exception):
    """Error during metrics computation."""
    pass


def _category_key(entry: Transaction) -> str:
    return entry.category_name or entry.category_id or UNCATEGORIZED


def summarize(
    user_id: str,
    transactions: Iterable[Transaction],
    date_from: date,
    date_to: date,
    upcoming: Optional[Iterable[ProjectedOccurrence]] = None,
    currency_code: str = DEFAULT_CURRENCY,
) -> DashboardMetrics:
    """
    Build dashboard metrics from already-fetched data.

    Transactions outside [date_from, date_to] are ignored, so callers may
    pass a wider list than the range.
    """
    if date_from > date_to:
        raise QueryExecutionError(
            f"Invalid range: {date_from.isoformat()} is after {date_to.isoformat()}"
        )

    income = Decimal("0")
    expenses = Decimal("0")
    count = 0
    by_category: dict[str, Decimal] = defaultdict(Decimal)
    by_month: dict[str, MonthlyTotals] = {}

    for entry in transactions:
        if entry.date < date_from or entry.date > date_to:
            continue
        count += 1

        month_key = entry.date.strftime("%Y-%m")
        month = by_month.setdefault(month_key, MonthlyTotals(month=month_key))

        if entry.type == TransactionType.INCOME:
            income += entry.amount
            month.income += entry.amount
        else:
            expenses += entry.amount
            month.expenses += entry.amount
            by_category[_category_key(entry)] += entry.amount

    upcoming_income = Decimal("0")
    upcoming_expenses = Decimal("0")
    upcoming_count = 0
    for occurrence in upcoming or []:
        upcoming_count += 1
        if occurrence.type == TransactionType.INCOME:
            upcoming_income += occurrence.amount
        else:
            upcoming_expenses += occurrence.amount

    return DashboardMetrics(
        user_id=user_id,
        date_from=date_from,
        date_to=date_to,
        currency_code=currency_code,
        total_income=income,
        total_expenses=expenses,
        transaction_count=count,
        # Largest spend first
        by_category=dict(
            sorted(by_category.items(), key=lambda item: (-item[1], item[0]))
        ),
        by_month=[by_month[key] for key in sorted(by_month)],
        upcoming_income=upcoming_income,
        upcoming_expenses=upcoming_expenses,
        upcoming_count=upcoming_count,
    )


class MetricsExecutor:
    """
    Computes dashboard metrics against transaction storage.

    GUARANTEES:
    - Only real stored data feeds the totals
    - Date bounds are inclusive on both ends
    - Upcoming totals come only from the projection passed in
    """

    def __init__(
        self,
        storage: TransactionStorageInterface,
        page_size: int = PAGE_SIZE,
        currency_code: str = DEFAULT_CURRENCY,
    ):
        self._storage = storage
        self._page_size = page_size
        self._currency_code = currency_code

    async def _fetch_range(
        self,
        user_id: str,
        date_from: date,
        date_to: date,
    ) -> list[Transaction]:
        """Read every transaction in the range, one page at a time."""
        transactions: list[Transaction] = []
        offset = 0
        while True:
            page = await self._storage.list_transactions(
                user_id=user_id,
                date_from=date_from,
                date_to=date_to,
                limit=self._page_size,
                offset=offset,
            )
            transactions.extend(page)
            if len(page) < self._page_size:
                return transactions
            offset += self._page_size

    async def compute(
        self,
        user_id: str,
        date_from: date,
        date_to: date,
        upcoming: Optional[Iterable[ProjectedOccurrence]] = None,
    ) -> DashboardMetrics:
        """
        Fetch all of the user's transactions for the range and summarize them.

        Raises:
            QueryExecutionError: If date_from is after date_to
        """
        if date_from > date_to:
            raise QueryExecutionError(
                f"Invalid range: {date_from.isoformat()} is after {date_to.isoformat()}"
            )

        transactions = await self._fetch_range(user_id, date_from, date_to)
        return summarize(
            user_id,
            transactions,
            date_from,
            date_to,
            upcoming,
            currency_code=self._currency_code,
        )

    @staticmethod
    def describe_range(date_from: date, date_to: date) -> str:
        """Format a date range for dashboard headings."""
        if date_from == date_to:
            return f"on {date_from.strftime('%d %b %Y')}"
        elif date_from.month == date_to.month and date_from.year == date_to.year:
            return f"in {date_from.strftime('%B %Y')}"
        elif date_from.year == date_to.year:
            return f"from {date_from.strftime('%b')} to {date_to.strftime('%b %Y')}"
        return f"from {date_from.strftime('%b %Y')} to {date_to.strftime('%b %Y')}"
