"""
Audit Models for fintrack

Every significant action in the system is logged for audit purposes:
1. Changes to recurring transactions
2. Occurrences recorded as real transactions
3. Projection runs, including frequency fallbacks on bad data
4. Errors from the storage backend

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Recurring transaction lifecycle
    RECURRING_CREATED = "recurring_created"
    RECURRING_UPDATED = "recurring_updated"
    RECURRING_DELETED = "recurring_deleted"

    # Projection
    PROJECTION_COMPLETED = "projection_completed"
    FREQUENCY_FALLBACK = "frequency_fallback"

    # Ledger
    OCCURRENCE_RECORDED = "occurrence_recorded"

    # Dashboard
    METRICS_COMPUTED = "metrics_computed"

    # System events
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - who and what is this about?
    user_id: Optional[str] = Field(
        default=None,
        description="Owner of the affected data"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'recurring_transaction', 'transaction')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., an update and its re-projection)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, user_id, entity_type,
         entity_id, correlation_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.user_id or "",
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.recurring_created(user_id, recurring_id, name, frequency, correlation_id)
        event = AuditEventBuilder.frequency_fallback(user_id, recurring_id, raw_value, correlation_id)
    """

    @staticmethod
    def recurring_created(
        user_id: str,
        recurring_id: str,
        name: str,
        frequency: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_CREATED,
            user_id=user_id,
            entity_type="recurring_transaction",
            entity_id=recurring_id,
            correlation_id=correlation_id,
            description=f"Recurring transaction created: {name} ({frequency})",
            details={
                "name": name,
                "frequency": frequency,
            },
            is_user_action=True,
        )

    @staticmethod
    def recurring_updated(
        user_id: str,
        recurring_id: str,
        changed_fields: list[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_UPDATED,
            user_id=user_id,
            entity_type="recurring_transaction",
            entity_id=recurring_id,
            correlation_id=correlation_id,
            description=f"Recurring transaction updated ({len(changed_fields)} fields)",
            details={
                "changed_fields": changed_fields,
            },
            is_user_action=True,
        )

    @staticmethod
    def recurring_deleted(
        user_id: str,
        recurring_id: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_DELETED,
            user_id=user_id,
            entity_type="recurring_transaction",
            entity_id=recurring_id,
            correlation_id=correlation_id,
            description="Recurring transaction deleted",
            is_user_action=True,
        )

    @staticmethod
    def projection_completed(
        user_id: str,
        definition_count: int,
        occurrence_count: int,
        today: date,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROJECTION_COMPLETED,
            severity=AuditSeverity.DEBUG,
            user_id=user_id,
            entity_type="projection",
            correlation_id=correlation_id,
            description=(
                f"Projected {occurrence_count} upcoming transactions "
                f"from {definition_count} recurring transactions"
            ),
            details={
                "definition_count": definition_count,
                "occurrence_count": occurrence_count,
                "today": today.isoformat(),
            },
        )

    @staticmethod
    def frequency_fallback(
        user_id: str,
        recurring_id: str,
        raw_frequency: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FREQUENCY_FALLBACK,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="recurring_transaction",
            entity_id=recurring_id,
            correlation_id=correlation_id,
            description=f"Unrecognized frequency '{raw_frequency}' projected as Monthly",
            details={
                "raw_frequency": raw_frequency,
                "fallback": "Monthly",
            },
        )

    @staticmethod
    def occurrence_recorded(
        user_id: str,
        transaction_id: str,
        occurrence_id: str,
        amount: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OCCURRENCE_RECORDED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Upcoming transaction {occurrence_id} recorded: {amount}",
            details={
                "occurrence_id": occurrence_id,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def metrics_computed(
        user_id: str,
        date_from: date,
        date_to: date,
        transaction_count: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.METRICS_COMPUTED,
            severity=AuditSeverity.DEBUG,
            user_id=user_id,
            entity_type="dashboard",
            correlation_id=correlation_id,
            description=f"Dashboard metrics computed over {transaction_count} transactions",
            details={
                "date_from": date_from.isoformat(),
                "date_to": date_to.isoformat(),
                "transaction_count": transaction_count,
            },
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={
                "operation": operation,
            },
            correlation_id=correlation_id,
        )
