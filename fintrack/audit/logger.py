"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Traceability of changes to recurring transactions
2. Visibility into misconfigured data (frequency fallbacks)
3. Debugging capability

The audit logger:
- Is async so it composes with the async storage layer
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from datetime import date
from typing import Optional
from uuid import UUID, uuid4

import structlog

from fintrack.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from fintrack.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_recurring_created(
        self,
        user_id: str,
        recurring_id: str,
        name: str,
        frequency: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.recurring_created(
            user_id=user_id,
            recurring_id=recurring_id,
            name=name,
            frequency=frequency,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_recurring_updated(
        self,
        user_id: str,
        recurring_id: str,
        changed_fields: list[str],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.recurring_updated(
            user_id=user_id,
            recurring_id=recurring_id,
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_recurring_deleted(
        self,
        user_id: str,
        recurring_id: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.recurring_deleted(
            user_id=user_id,
            recurring_id=recurring_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_projection_completed(
        self,
        user_id: str,
        definition_count: int,
        occurrence_count: int,
        today: date,
        correlation_id: UUID,
    ) -> None:
        """Log a completed projection run."""
        event = AuditEventBuilder.projection_completed(
            user_id=user_id,
            definition_count=definition_count,
            occurrence_count=occurrence_count,
            today=today,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_frequency_fallback(
        self,
        user_id: str,
        recurring_id: str,
        raw_frequency: str,
        correlation_id: UUID,
    ) -> None:
        """Log a definition projected with the Monthly fallback."""
        event = AuditEventBuilder.frequency_fallback(
            user_id=user_id,
            recurring_id=recurring_id,
            raw_frequency=raw_frequency,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_occurrence_recorded(
        self,
        user_id: str,
        transaction_id: str,
        occurrence_id: str,
        amount: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.occurrence_recorded(
            user_id=user_id,
            transaction_id=transaction_id,
            occurrence_id=occurrence_id,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_metrics_computed(
        self,
        user_id: str,
        date_from: date,
        date_to: date,
        transaction_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.metrics_computed(
            user_id=user_id,
            date_from=date_from,
            date_to=date_to,
            transaction_count=transaction_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a storage backend failure."""
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., editing a
    recurring transaction). Pass it through all subsequent operations.
    """
    return uuid4()
