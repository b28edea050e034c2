"""Tests for installment schedule normalization."""

import json
from datetime import date, datetime
from decimal import Decimal

import pytest

from arrears.core.observability.metrics import get_count
from arrears.reminders.config import ReminderConfig
from arrears.reminders.dto import Contract, Installment
from arrears.reminders.errors import DataError
from arrears.reminders.normalizer import (
    coerce_amount,
    contract_installments,
    decode_schedule,
    normalize_installments,
    parse_amount,
    parse_due_date,
    parse_timestamp,
)


class TestParseAmount:
    """Test amount parsing."""

    def test_parses_numbers_and_strings(self):
        assert parse_amount(100) == Decimal("100.00")
        assert parse_amount("99.999") == Decimal("100.00")
        assert parse_amount(12.5) == Decimal("12.50")
        assert parse_amount(Decimal("0.005")) == Decimal("0.01")

    @pytest.mark.parametrize("value", [None, True, "abc", "", "NaN", "Infinity", [1]])
    def test_rejects_unusable_values(self, value):
        with pytest.raises(DataError) as exc_info:
            parse_amount(value)
        assert exc_info.value.reason == "invalid_amount"

    def test_coerce_amount_falls_back_to_zero(self):
        assert coerce_amount("n/a", "C1") == Decimal("0.00")
        assert get_count("overdue_data_errors_total", {"reason": "invalid_amount"}) == 1


class TestParseDates:
    """Test due date and timestamp parsing."""

    def test_due_date_variants(self):
        assert parse_due_date("2025-01-15") == date(2025, 1, 15)
        assert parse_due_date("2025-01-15T10:00:00Z") == date(2025, 1, 15)
        assert parse_due_date(datetime(2025, 1, 15, 23, 0)) == date(2025, 1, 15)
        assert parse_due_date(date(2025, 1, 15)) == date(2025, 1, 15)

    def test_due_date_invalid(self):
        with pytest.raises(DataError):
            parse_due_date("15/01/2025")
        with pytest.raises(DataError):
            parse_due_date(None)

    def test_naive_timestamp_becomes_utc(self):
        ts = parse_timestamp("2025-01-15T10:00:00")
        assert ts.tzinfo is not None
        assert ts.utcoffset().total_seconds() == 0


class TestDecodeSchedule:
    """Test raw schedule decoding."""

    def test_absent_schedule(self):
        assert decode_schedule(None) == []
        assert decode_schedule("") == []

    def test_json_text(self):
        raw = json.dumps([{"amount": 100, "dueDate": "2025-01-01"}])
        assert decode_schedule(raw) == [{"amount": 100, "dueDate": "2025-01-01"}]

    def test_invalid_json_raises(self):
        with pytest.raises(DataError):
            decode_schedule("{not json")

    def test_non_list_raises(self):
        with pytest.raises(DataError):
            decode_schedule('{"amount": 100}')
        with pytest.raises(DataError):
            decode_schedule(42)


class TestNormalizeInstallments:
    """Test schedule normalization."""

    def test_malformed_schedule_yields_no_installments(self):
        """A broken payload is contained: empty list, logged and counted."""
        assert normalize_installments("C1", "[[[") == []
        assert get_count("overdue_data_errors_total", {"reason": "malformed_schedule"}) == 1

    def test_filters_entries_without_due_date(self):
        raw = [
            {"amount": 100, "dueDate": "2025-01-01", "description": "First"},
            {"amount": 50},
            {"amount": 75, "due_date": "2025-02-01"},
            {"amount": 20, "dueDate": "not a date"},
            "garbage",
        ]

        installments = normalize_installments("C1", raw, ReminderConfig())

        assert installments == [
            Installment(amount=Decimal("100.00"), due_date=date(2025, 1, 1), description="First"),
            Installment(amount=Decimal("75.00"), due_date=date(2025, 2, 1), description="Installment"),
        ]
        assert get_count("overdue_data_errors_total", {"reason": "missing_due_date"}) == 1
        assert get_count("overdue_data_errors_total", {"reason": "invalid_due_date"}) == 1
        assert get_count("overdue_data_errors_total", {"reason": "invalid_entry"}) == 1

    def test_keeps_input_order(self):
        raw = [
            {"amount": 1, "dueDate": "2025-03-01"},
            {"amount": 2, "dueDate": "2025-01-01"},
        ]
        installments = normalize_installments("C1", raw)
        assert [i.amount for i in installments] == [Decimal("1.00"), Decimal("2.00")]

    def test_non_numeric_amount_becomes_zero(self):
        installments = normalize_installments("C1", [{"amount": "abc", "dueDate": "2025-01-01"}])
        assert installments[0].amount == Decimal("0.00")

    def test_contract_prefers_decoded_installments(self):
        decoded = [Installment(amount=Decimal("10.00"), due_date=date(2025, 1, 1))]
        contract = Contract(id="C1", installments=decoded, raw_schedule="[[[")
        assert contract_installments(contract) == decoded

    def test_contract_decodes_raw_schedule(self):
        contract = Contract(id="C1", raw_schedule='[{"amount": "10", "dueDate": "2025-01-01"}]')
        assert contract_installments(contract)[0].amount == Decimal("10.00")
