"""
Tests for Pocket Ledger models

Test strategy:
1. Unit tests for individual components (models, builders)
2. Integration tests for flows live next to them (storage, view, feed)
3. No real API calls in tests (use fakes)
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from pocket_ledger.models import (
    AnalyticsEvent,
    AnalyticsEventBuilder,
    AnalyticsEventName,
    IndexPath,
    LedgerUpdate,
    LedgerUpdateType,
    Transaction,
    TransactionCategory,
    TransactionKind,
    as_utc,
    start_of_day,
)


NOW = datetime(2026, 10, 13, 12, 30, tzinfo=timezone.utc)


class TestCalendarHelpers:
    """Tests for UTC normalization and day truncation."""

    def test_as_utc_treats_naive_as_utc(self):
        """Test that naive datetimes are taken as UTC."""
        value = as_utc(datetime(2026, 10, 13, 12, 30))
        assert value == NOW
        assert value.tzinfo == timezone.utc

    def test_as_utc_converts_other_zones(self):
        """Test that aware datetimes are converted, not relabelled."""
        local = datetime(2026, 10, 13, 14, 30, tzinfo=ZoneInfo("Europe/Berlin"))
        assert as_utc(local) == NOW

    def test_start_of_day_in_utc(self):
        """Test truncation in the UTC calendar."""
        assert start_of_day(NOW, timezone.utc) == datetime(2026, 10, 13, tzinfo=timezone.utc)

    def test_start_of_day_in_other_zone(self):
        """Test that the day is taken from the zone's calendar."""
        # 03:00 UTC is still the 12th in New York
        value = datetime(2026, 10, 13, 3, 0, tzinfo=timezone.utc)
        bucket = start_of_day(value, ZoneInfo("America/New_York"))
        assert bucket == datetime(2026, 10, 12, 4, 0, tzinfo=timezone.utc)


class TestTransaction:
    """Tests for the Transaction model."""

    def test_create_derives_day_bucket(self):
        """Test that create() fills in the day bucket."""
        txn = Transaction.create(
            kind=TransactionKind.DEBIT,
            amount=Decimal("2.50"),
            category=TransactionCategory.TAXI,
            timestamp=NOW,
        )
        assert txn.day_bucket == datetime(2026, 10, 13, tzinfo=timezone.utc)
        assert txn.sequence is None

    def test_transaction_is_immutable(self):
        """Test that a created transaction cannot be modified."""
        txn = Transaction.create(
            kind=TransactionKind.CREDIT,
            amount=Decimal("1"),
            category=TransactionCategory.OTHER,
            timestamp=NOW,
        )
        with pytest.raises(ValidationError):
            txn.amount = Decimal("2")

    def test_rejects_negative_amount(self):
        """Test that negative amounts are rejected."""
        with pytest.raises(ValidationError):
            Transaction.create(
                kind=TransactionKind.CREDIT,
                amount=Decimal("-1"),
                category=TransactionCategory.OTHER,
                timestamp=NOW,
            )

    def test_rejects_too_many_decimals(self):
        """Test that amounts finer than the stored precision are rejected."""
        with pytest.raises(ValidationError):
            Transaction.create(
                kind=TransactionKind.CREDIT,
                amount=Decimal("0.000000001"),
                category=TransactionCategory.OTHER,
                timestamp=NOW,
            )

    def test_rejects_day_bucket_of_another_day(self):
        """Test that the bucket must open the timestamp's day."""
        with pytest.raises(ValidationError):
            Transaction(
                kind=TransactionKind.DEBIT,
                amount=Decimal("1"),
                timestamp=NOW,
                day_bucket=NOW + timedelta(days=1),
            )

    def test_balance_effect(self):
        """Test that credits add, debits subtract and unknown is neutral."""
        def make(kind):
            return Transaction.create(
                kind=kind,
                amount=Decimal("4"),
                category=TransactionCategory.OTHER,
                timestamp=NOW,
            )

        assert make(TransactionKind.CREDIT).balance_effect == Decimal("4")
        assert make(TransactionKind.DEBIT).balance_effect == Decimal("-4")
        assert make(TransactionKind.UNKNOWN).balance_effect == Decimal("0")

    def test_signed_amount_shows_unknown_as_recorded(self):
        """Test that only debits are displayed negative."""
        txn = Transaction.create(
            kind=TransactionKind.UNKNOWN,
            amount=Decimal("4"),
            category=TransactionCategory.OTHER,
            timestamp=NOW,
        )
        assert txn.signed_amount == Decimal("4")

    def test_sort_key_breaks_ties_by_sequence(self):
        """Test that a later insertion sorts first on identical timestamps."""
        first = Transaction.create(
            kind=TransactionKind.DEBIT,
            amount=Decimal("1"),
            category=TransactionCategory.OTHER,
            timestamp=NOW,
        ).model_copy(update={"sequence": 1})
        second = first.model_copy(update={"sequence": 2})
        ordered = sorted([first, second], key=lambda t: t.sort_key, reverse=True)
        assert ordered == [second, first]


class TestCategories:
    """Tests for the closed set of categories."""

    def test_all_categories_present(self):
        """Test the category set."""
        assert {c.value for c in TransactionCategory} == {
            "groceries", "taxi", "electronics", "restaurant", "other",
        }

    def test_category_title(self):
        """Test display titles."""
        assert TransactionCategory.GROCERIES.title == "Groceries"
        assert TransactionCategory.OTHER.title == "Other"


class TestLedgerUpdate:
    """Tests for change-notification values."""

    def test_insert_row_carries_index_path(self):
        """Test the insert_row builder."""
        update = LedgerUpdate.insert_row(IndexPath(1, 2))
        assert update.type == LedgerUpdateType.INSERT_ROW
        assert update.index_path == IndexPath(section=1, row=2)

    def test_insert_section_carries_index(self):
        """Test the insert_section builder."""
        update = LedgerUpdate.insert_section(3)
        assert update.type == LedgerUpdateType.INSERT_SECTION
        assert update.section == 3

    def test_updates_compare_by_value(self):
        """Test that equal updates are equal."""
        assert LedgerUpdate.reload() == LedgerUpdate.reload()
        assert LedgerUpdate.begin_batch() != LedgerUpdate.end_batch()


class TestAnalyticsModels:
    """Tests for analytics models."""

    def test_rate_update_event(self):
        """Test that rates are formatted with two decimals."""
        event = AnalyticsEventBuilder.rate_update(117290.61)
        assert event.name == "bitcoin_rate_update"
        assert event.name == AnalyticsEventName.RATE_UPDATE.value
        assert event.parameters == {"rate": "117290.61"}

    def test_rate_formatting_rounds(self):
        """Test rounding of the rate parameter."""
        assert AnalyticsEventBuilder.format_rate(1.005) in {"1.00", "1.01"}
        assert AnalyticsEventBuilder.format_rate(42) == "42.00"

    def test_transaction_created_event(self):
        """Test the transaction_created parameters."""
        txn = Transaction.create(
            kind=TransactionKind.DEBIT,
            amount=Decimal("2.5"),
            category=TransactionCategory.RESTAURANT,
            timestamp=NOW,
        )
        event = AnalyticsEventBuilder.transaction_created(txn)
        assert event.name == "transaction_created"
        assert event.parameters == {
            "transaction_id": str(txn.id),
            "kind": "debit",
            "category": "restaurant",
            "amount": "2.5",
        }

    def test_event_timestamp_defaults_to_now(self):
        """Test default timestamp is aware UTC."""
        event = AnalyticsEvent(name="x")
        assert event.timestamp.tzinfo == timezone.utc

    def test_event_requires_name(self):
        """Test that an empty name is rejected."""
        with pytest.raises(ValidationError):
            AnalyticsEvent(name="")

    def test_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AnalyticsEvent(name="x", parameters={"a": "1"}, timestamp=NOW)
        assert event.to_log_dict() == {
            "event_name": "x",
            "timestamp": NOW.isoformat(),
            "parameters": {"a": "1"},
        }


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
