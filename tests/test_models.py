"""
Tests for fintrack

Test strategy:
1. Unit tests for individual components (models, projection)
2. Flow tests on in-memory storage
3. No real API calls in tests (use fakes)
"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from fintrack.models.transaction import (
    NON_RECURRING,
    AccountType,
    DashboardMetrics,
    Frequency,
    MonthlyTotals,
    ProjectedOccurrence,
    RecurringTransaction,
    Transaction,
    TransactionType,
)
from fintrack.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


def recurring(**overrides) -> RecurringTransaction:
    fields = {
        "user_id": "user-1",
        "name": "Gym",
        "amount": Decimal("45.00"),
        "type": TransactionType.EXPENSE,
        "account_type": AccountType.CASH,
        "frequency": "Weekly",
        "start_date": date(2024, 1, 10),
    }
    fields.update(overrides)
    return RecurringTransaction(**fields)


class TestRecurringTransactionModel:
    """Tests for the recurring transaction definition."""

    def test_creation(self):
        """Test RecurringTransaction model creation."""
        definition = recurring()
        assert definition.name == "Gym"
        assert definition.end_date is None
        assert definition.id  # generated

    def test_rejects_non_positive_amount(self):
        """Test that zero and negative amounts are rejected."""
        with pytest.raises(ValueError):
            recurring(amount=Decimal("0"))
        with pytest.raises(ValueError):
            recurring(amount=Decimal("-10"))

    def test_strips_whitespace(self):
        definition = recurring(name="  Gym  ", frequency=" Monthly ")
        assert definition.name == "Gym"
        assert definition.frequency == "Monthly"

    def test_numeric_ids_become_strings(self):
        """Store rows may carry integer ids."""
        definition = recurring(id=17, category_id=3)
        assert definition.id == "17"
        assert definition.category_id == "3"

    def test_datetime_start_is_normalized(self):
        definition = recurring(start_date=datetime(2024, 1, 10, 22, 15))
        assert definition.start_date == date(2024, 1, 10)
        assert not isinstance(definition.start_date, datetime)

    def test_iso_datetime_string_is_normalized(self):
        definition = recurring(
            start_date="2024-01-10T10:00:00Z",
            end_date="2024-06-30T23:59:59+00:00",
        )
        assert definition.start_date == date(2024, 1, 10)
        assert definition.end_date == date(2024, 6, 30)

    def test_unknown_frequency_is_kept(self):
        """Unrecognized values survive loading for the projector to handle."""
        definition = recurring(frequency="Working Days Only")
        assert definition.frequency == "Working Days Only"

    def test_end_before_start_is_accepted(self):
        """The model does not enforce date order; projection handles it."""
        definition = recurring(start_date=date(2024, 2, 1), end_date=date(2024, 1, 1))
        assert definition.end_date < definition.start_date

    def test_rejects_unknown_type(self):
        with pytest.raises(ValueError):
            recurring(type="Transfer")


class TestTransactionModel:
    """Tests for ledger transactions."""

    def test_defaults_to_non_recurring(self):
        transaction = Transaction(
            user_id="user-1",
            date=date(2024, 3, 1),
            amount=Decimal("12.50"),
            name="Coffee",
            type=TransactionType.EXPENSE,
            account_type=AccountType.CASH,
        )
        assert transaction.recurring_frequency == NON_RECURRING
        assert transaction.recurring_transaction_id is None

    def test_date_string_with_time(self):
        transaction = Transaction(
            user_id="user-1",
            date="2024-03-01T08:00:00Z",
            amount=Decimal("12.50"),
            name="Coffee",
            type=TransactionType.EXPENSE,
            account_type=AccountType.CASH,
        )
        assert transaction.date == date(2024, 3, 1)


class TestProjectedOccurrence:
    """Tests for ProjectedOccurrence."""

    def test_from_definition_builds_synthetic_id(self):
        definition = recurring(id="rt-5")
        occurrence = ProjectedOccurrence.from_definition(definition, date(2024, 2, 7), 3)
        assert occurrence.id == "rt-5-2024-02-07"
        assert occurrence.source_id == "rt-5"
        assert occurrence.sequence_index == 3
        assert occurrence.frequency == "Weekly"
        assert occurrence.predicted is True

    def test_is_frozen(self):
        occurrence = ProjectedOccurrence.from_definition(recurring(), date(2024, 2, 7), 0)
        with pytest.raises(ValidationError):
            occurrence.amount = Decimal("1")


class TestDashboardMetricsModel:

    def test_net_and_savings_rate(self):
        metrics = DashboardMetrics(
            user_id="user-1",
            date_from=date(2024, 1, 1),
            date_to=date(2024, 1, 31),
            total_income=Decimal("4000"),
            total_expenses=Decimal("3000"),
        )
        assert metrics.net == Decimal("1000")
        assert metrics.savings_rate == Decimal("0.25")

    def test_savings_rate_without_income(self):
        metrics = DashboardMetrics(
            user_id="user-1",
            date_from=date(2024, 1, 1),
            date_to=date(2024, 1, 31),
        )
        assert metrics.savings_rate is None

    def test_range_validation(self):
        with pytest.raises(ValueError, match="Range end cannot be before range start"):
            DashboardMetrics(
                user_id="user-1",
                date_from=date(2024, 2, 1),
                date_to=date(2024, 1, 1),
            )

    def test_monthly_totals_net(self):
        month = MonthlyTotals(month="2024-01", income=Decimal("10"), expenses=Decimal("4"))
        assert month.net == Decimal("6")

    def test_monthly_totals_key_format(self):
        with pytest.raises(ValueError):
            MonthlyTotals(month="January")


class TestFrequencyEnum:
    """Tests for the frequency enum."""

    def test_all_frequencies_exist(self):
        expected = [
            "Daily", "Weekly", "Bi-Weekly", "Tri-Weekly", "Monthly",
            "Bi-Monthly", "Quarterly", "Semi-Annually", "Annually",
        ]
        for value in expected:
            assert Frequency(value) is not None

    def test_never_is_not_a_frequency(self):
        with pytest.raises(ValueError):
            Frequency(NON_RECURRING)


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.PROJECTION_COMPLETED,
            description="Projected",
        )
        assert event.event_type == AuditEventType.PROJECTION_COMPLETED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.RECURRING_CREATED,
            user_id="user-1",
            entity_id="rt-1",
            description="Created",
            details={"frequency": "Monthly"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "recurring_created"
        assert log_dict["user_id"] == "user-1"
        assert log_dict["details"]["frequency"] == "Monthly"

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEvent(
            event_type=AuditEventType.OCCURRENCE_RECORDED,
            description="Recorded",
            is_user_action=True,
        )
        row = event.to_sheets_row()
        assert len(row) == 12  # Expected number of columns
        assert row[2] == "occurrence_recorded"
        assert row[11] == "True"

    def test_builder_frequency_fallback(self):
        correlation_id = uuid4()
        event = AuditEventBuilder.frequency_fallback(
            user_id="user-1",
            recurring_id="rt-1",
            raw_frequency="Fortnightly",
            correlation_id=correlation_id,
        )
        assert event.event_type == AuditEventType.FREQUENCY_FALLBACK
        assert event.severity == AuditSeverity.WARNING
        assert event.entity_id == "rt-1"
        assert event.correlation_id == correlation_id
        assert event.details["raw_frequency"] == "Fortnightly"

    def test_builder_recurring_created(self):
        event = AuditEventBuilder.recurring_created(
            user_id="user-1",
            recurring_id="rt-1",
            name="Rent",
            frequency="Monthly",
            correlation_id=uuid4(),
        )
        assert event.event_type == AuditEventType.RECURRING_CREATED
        assert event.is_user_action is True

    def test_builder_projection_completed(self):
        event = AuditEventBuilder.projection_completed(
            user_id="user-1",
            definition_count=3,
            occurrence_count=6,
            today=date(2024, 1, 1),
            correlation_id=uuid4(),
        )
        assert event.severity == AuditSeverity.DEBUG
        assert event.details == {
            "definition_count": 3,
            "occurrence_count": 6,
            "today": "2024-01-01",
        }


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
