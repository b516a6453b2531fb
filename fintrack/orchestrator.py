"""
Main Orchestrator for fintrack

This module ties together storage, the projection core and auditing,
and defines the end-to-end flows for:
1. Upcoming transactions (fetch definitions → filter → project)
2. Recurring transaction changes (persist → audit → re-project)
3. Recording a due occurrence as a real transaction
4. Dashboard metrics (transactions + projection → totals)

DESIGN DECISION: The orchestrator is the only place that reads the
clock. It resolves "today" once per call and hands it to the pure
projection functions, so one request never mixes two different days.
"""

from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

import structlog

from fintrack.audit import AuditLogger, create_correlation_id
from fintrack.config import ProjectionSettings, get_settings
from fintrack.models.transaction import (
    NON_RECURRING,
    DashboardMetrics,
    ProjectedOccurrence,
    RecurringTransaction,
    Transaction,
)
from fintrack.projection import is_recurring, project_transactions, resolve_frequency
from fintrack.queries import MetricsExecutor
from fintrack.services.storage import (
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecurringTransactionStorage,
    GoogleSheetsTransactionStorage,
    InMemoryRecurringTransactionStorage,
    InMemoryTransactionStorage,
    NotFoundError,
    RecurringTransactionStorageInterface,
    StorageError,
    TransactionStorageInterface,
)


logger = structlog.get_logger(__name__)


class OccurrenceNotDueError(Exception):
    """Attempted to record an occurrence whose date has not arrived."""
    pass


def _resolve_today(today: Optional[date]) -> date:
    """Calendar day for a request; reads the clock only when none is given."""
    if today is None:
        return date.today()
    if isinstance(today, datetime):
        return today.date()
    return today


class UpcomingTransactionsFlow:
    """
    Produces the upcoming-transactions list for a user.

    Flow:
    1. Fetch the user's recurring transactions
    2. Drop one-time ("Never") definitions
    3. Project the next N occurrences of each
    4. Audit the run, flagging definitions that fell back to Monthly
    """

    def __init__(
        self,
        recurring_storage: RecurringTransactionStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[ProjectionSettings] = None,
    ):
        self._recurring_storage = recurring_storage
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().projection

    async def get_upcoming(
        self,
        user_id: str,
        count: Optional[int] = None,
        today: Optional[date] = None,
        limit: Optional[int] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[ProjectedOccurrence]:
        """
        Project upcoming transactions for a user.

        Args:
            user_id: Owner of the recurring transactions
            count: Occurrences per definition (default from settings)
            today: Reference day (default: the local system date)
            limit: Truncate the sorted result (default from settings)

        Returns:
            Occurrences sorted by date, earliest first
        """
        correlation_id = correlation_id or create_correlation_id()
        today = _resolve_today(today)
        if count is None:
            count = self._settings.default_count
        if limit is None:
            limit = self._settings.upcoming_limit

        definitions = await self._recurring_storage.list_recurring_transactions(user_id)
        recurring = [d for d in definitions if is_recurring(d)]

        projected = project_transactions(
            recurring,
            count,
            today=today,
            safety_factor=self._settings.safety_factor,
        )
        if limit is not None:
            projected = projected[:limit]

        if self._audit_logger:
            for definition in recurring:
                if resolve_frequency(definition.frequency) is None:
                    await self._audit_logger.log_frequency_fallback(
                        user_id=user_id,
                        recurring_id=definition.id,
                        raw_frequency=definition.frequency,
                        correlation_id=correlation_id,
                    )
            await self._audit_logger.log_projection_completed(
                user_id=user_id,
                definition_count=len(recurring),
                occurrence_count=len(projected),
                today=today,
                correlation_id=correlation_id,
            )

        return projected


class RecurringTransactionFlow:
    """
    Creates, updates and deletes recurring transactions.

    Every change returns the refreshed upcoming projection, so the
    caller never shows occurrences computed from a stale definition.
    """

    def __init__(
        self,
        recurring_storage: RecurringTransactionStorageInterface,
        upcoming_flow: Optional[UpcomingTransactionsFlow] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._recurring_storage = recurring_storage
        self._audit_logger = audit_logger
        self._upcoming_flow = upcoming_flow or UpcomingTransactionsFlow(
            recurring_storage,
            audit_logger=audit_logger,
        )

    async def create(
        self,
        recurring: RecurringTransaction,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[RecurringTransaction, list[ProjectedOccurrence]]:
        """
        Save a new recurring transaction.

        Returns:
            (saved_definition, refreshed_upcoming)
        """
        correlation_id = correlation_id or create_correlation_id()

        await self._recurring_storage.save_recurring_transaction(recurring)

        if self._audit_logger:
            await self._audit_logger.log_recurring_created(
                user_id=recurring.user_id,
                recurring_id=recurring.id,
                name=recurring.name,
                frequency=recurring.frequency,
                correlation_id=correlation_id,
            )

        upcoming = await self._upcoming_flow.get_upcoming(
            recurring.user_id,
            today=today,
            correlation_id=correlation_id,
        )
        return recurring, upcoming

    async def update(
        self,
        user_id: str,
        recurring_id: str,
        changes: dict[str, Any],
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[RecurringTransaction, list[ProjectedOccurrence]]:
        """
        Apply field changes to an existing recurring transaction.

        Identity fields (id, user_id, created_at) cannot be changed.
        Changes are re-validated against the model.

        Raises:
            NotFoundError: If the definition does not exist for this user
        """
        correlation_id = correlation_id or create_correlation_id()

        existing = await self._recurring_storage.get_recurring_transaction(
            user_id, recurring_id
        )
        if existing is None:
            raise NotFoundError(f"Recurring transaction not found: {recurring_id}")

        allowed = {
            key: value for key, value in changes.items()
            if key not in ("id", "user_id", "created_at")
        }
        updated = RecurringTransaction.model_validate(
            {**existing.model_dump(), **allowed}
        )

        await self._recurring_storage.update_recurring_transaction(updated)

        if self._audit_logger:
            await self._audit_logger.log_recurring_updated(
                user_id=user_id,
                recurring_id=recurring_id,
                changed_fields=sorted(allowed),
                correlation_id=correlation_id,
            )

        upcoming = await self._upcoming_flow.get_upcoming(
            user_id,
            today=today,
            correlation_id=correlation_id,
        )
        return updated, upcoming

    async def delete(
        self,
        user_id: str,
        recurring_id: str,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[ProjectedOccurrence]:
        """
        Delete a recurring transaction.

        Returns:
            The refreshed upcoming projection

        Raises:
            NotFoundError: If the definition does not exist for this user
        """
        correlation_id = correlation_id or create_correlation_id()

        deleted = await self._recurring_storage.delete_recurring_transaction(
            user_id, recurring_id
        )
        if not deleted:
            raise NotFoundError(f"Recurring transaction not found: {recurring_id}")

        if self._audit_logger:
            await self._audit_logger.log_recurring_deleted(
                user_id=user_id,
                recurring_id=recurring_id,
                correlation_id=correlation_id,
            )

        return await self._upcoming_flow.get_upcoming(
            user_id,
            today=today,
            correlation_id=correlation_id,
        )


class OccurrenceRecordingFlow:
    """
    Turns a projected occurrence into a real ledger transaction.

    CRITICAL: Only occurrences whose date has arrived may be recorded,
    and each occurrence can be recorded at most once.
    """

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._transaction_storage = transaction_storage
        self._audit_logger = audit_logger

    async def record_occurrence(
        self,
        occurrence: ProjectedOccurrence,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Persist an occurrence as a one-time transaction.

        Raises:
            OccurrenceNotDueError: If the occurrence is still in the future
            DuplicateError: If this occurrence was already recorded
        """
        correlation_id = correlation_id or create_correlation_id()
        today = _resolve_today(today)

        if occurrence.occurrence_date > today:
            raise OccurrenceNotDueError(
                f"Occurrence {occurrence.id} is due on "
                f"{occurrence.occurrence_date.isoformat()}"
            )

        already_recorded = await self._transaction_storage.list_transactions(
            user_id=occurrence.user_id,
            date_from=occurrence.occurrence_date,
            date_to=occurrence.occurrence_date,
            recurring_transaction_id=occurrence.source_id,
            limit=1,
        )
        if already_recorded:
            raise DuplicateError(f"Occurrence already recorded: {occurrence.id}")

        transaction = Transaction(
            user_id=occurrence.user_id,
            date=occurrence.occurrence_date,
            amount=occurrence.amount,
            name=occurrence.name,
            type=occurrence.type,
            account_type=occurrence.account_type,
            category_id=occurrence.category_id,
            category_name=occurrence.category_name,
            description=occurrence.description,
            recurring_frequency=NON_RECURRING,
            recurring_transaction_id=occurrence.source_id,
        )

        try:
            await self._transaction_storage.save_transaction(transaction)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_storage_error(
                    operation="record_occurrence",
                    error_message=str(e),
                    user_id=occurrence.user_id,
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_occurrence_recorded(
                user_id=occurrence.user_id,
                transaction_id=transaction.id,
                occurrence_id=occurrence.id,
                amount=str(occurrence.amount),
                correlation_id=correlation_id,
            )

        return transaction


class DashboardFlow:
    """
    Builds dashboard metrics for a date range.

    Combines stored transactions with the current upcoming projection.
    """

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        upcoming_flow: UpcomingTransactionsFlow,
        audit_logger: Optional[AuditLogger] = None,
        currency_code: Optional[str] = None,
    ):
        self._executor = MetricsExecutor(
            transaction_storage,
            currency_code=currency_code or get_settings().app.currency_code,
        )
        self._upcoming_flow = upcoming_flow
        self._audit_logger = audit_logger

    async def get_metrics(
        self,
        user_id: str,
        date_from: date,
        date_to: date,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[DashboardMetrics, list[ProjectedOccurrence]]:
        """
        Returns:
            (metrics, upcoming)
        """
        correlation_id = correlation_id or create_correlation_id()
        today = _resolve_today(today)

        upcoming = await self._upcoming_flow.get_upcoming(
            user_id,
            today=today,
            correlation_id=correlation_id,
        )
        metrics = await self._executor.compute(
            user_id,
            date_from,
            date_to,
            upcoming=upcoming,
        )

        if self._audit_logger:
            await self._audit_logger.log_metrics_computed(
                user_id=user_id,
                date_from=date_from,
                date_to=date_to,
                transaction_count=metrics.transaction_count,
                correlation_id=correlation_id,
            )

        return metrics, upcoming


def create_app_components(
    use_storage: bool = True,
) -> tuple[
    UpcomingTransactionsFlow,
    RecurringTransactionFlow,
    OccurrenceRecordingFlow,
    DashboardFlow,
]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False (or leave Sheets unconfigured) to run
                    on in-memory storage with local-only audit logging.

    Returns:
        (upcoming_flow, recurring_flow, recording_flow, dashboard_flow)
    """
    recurring_storage: RecurringTransactionStorageInterface
    transaction_storage: TransactionStorageInterface

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            recurring_storage = GoogleSheetsRecurringTransactionStorage(sheets_client)
            transaction_storage = GoogleSheetsTransactionStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
            use_storage = False

    if not use_storage:
        recurring_storage = InMemoryRecurringTransactionStorage()
        transaction_storage = InMemoryTransactionStorage()
        audit_logger = AuditLogger()  # Local-only logging

    upcoming_flow = UpcomingTransactionsFlow(
        recurring_storage,
        audit_logger=audit_logger,
    )
    recurring_flow = RecurringTransactionFlow(
        recurring_storage,
        upcoming_flow=upcoming_flow,
        audit_logger=audit_logger,
    )
    recording_flow = OccurrenceRecordingFlow(
        transaction_storage,
        audit_logger=audit_logger,
    )
    dashboard_flow = DashboardFlow(
        transaction_storage,
        upcoming_flow,
        audit_logger=audit_logger,
    )

    return upcoming_flow, recurring_flow, recording_flow, dashboard_flow
