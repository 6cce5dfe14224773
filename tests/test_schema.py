"""Tests for pydantic models and enums."""

from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from loanledger.schema import LedgerConfig, LoanSchedule, LoanTerms, PaymentEntry
from loanledger.types import PaymentFrequency, PaymentStatus
from tests.conftest import make_entry, make_schedule


class TestPaymentFrequency:
    """Tests for frequency helpers."""

    @pytest.mark.parametrize(
        "frequency,months,per_year",
        [
            (PaymentFrequency.MONTHLY, 1, 12),
            (PaymentFrequency.QUARTERLY, 3, 4),
            (PaymentFrequency.SEMI_ANNUAL, 6, 2),
            (PaymentFrequency.ANNUAL, 12, 1),
        ],
    )
    def test_period_lengths(self, frequency, months, per_year):
        assert frequency.months == months
        assert frequency.periods_per_year == per_year


class TestPaymentEntry:
    """Tests for PaymentEntry validation."""

    def test_defaults(self):
        entry = PaymentEntry(sequence_number=1, scheduled_date=date(2024, 1, 1))

        assert entry.status == PaymentStatus.SCHEDULED
        assert entry.actual_date is None
        assert entry.total_amount == 0

    def test_sequence_number_is_one_based(self):
        with pytest.raises(ValidationError, match="sequence_number must be >= 1"):
            PaymentEntry(sequence_number=0, scheduled_date=date(2024, 1, 1))

    def test_actuals_only_on_paid_entries(self):
        with pytest.raises(ValidationError, match="only allowed when status is paid"):
            PaymentEntry(
                sequence_number=1,
                scheduled_date=date(2024, 1, 1),
                actual_amount=Decimal("100"),
            )

    def test_paid_entry_with_actuals(self):
        entry = PaymentEntry(
            sequence_number=1,
            scheduled_date=date(2024, 1, 1),
            status="paid",
            actual_date=date(2024, 1, 2),
            actual_amount="100.00",
        )

        assert entry.status == PaymentStatus.PAID
        assert entry.actual_amount == Decimal("100.00")

    def test_is_overdue(self):
        entry = make_entry(1, date(2024, 2, 15))

        assert entry.is_overdue(date(2024, 2, 16))
        assert not entry.is_overdue(date(2024, 2, 15))
        missed = entry.model_copy(update={"status": PaymentStatus.MISSED})
        assert not missed.is_overdue(date(2024, 3, 1))

    def test_is_balanced(self):
        entry = make_entry(1, date(2024, 2, 15), "300.00", "50.00")

        assert entry.is_balanced()
        drifted = entry.model_copy(update={"total_amount": Decimal("350.02")})
        assert not drifted.is_balanced()


class TestLoanTerms:
    """Tests for LoanTerms validation."""

    @pytest.mark.parametrize(
        "field,value",
        [("principal", "0"), ("principal", "-1"), ("rate", "-0.5"), ("term_periods", 0)],
    )
    def test_invalid_values(self, field, value):
        data = {
            "principal": "1000",
            "rate": "5",
            "term_periods": 12,
            "start_date": "2024-01-01",
        }
        data[field] = value

        with pytest.raises(ValidationError):
            LoanTerms(**data)

    def test_parses_strings(self):
        terms = LoanTerms(
            principal="1000", rate="5", term_periods=12, start_date="2024-01-01", frequency="annual"
        )

        assert terms.principal == Decimal("1000")
        assert terms.start_date == date(2024, 1, 1)
        assert terms.frequency == PaymentFrequency.ANNUAL


class TestLoanSchedule:
    """Tests for LoanSchedule validation."""

    def test_empty_liability_id(self):
        with pytest.raises(ValidationError, match="liability_id cannot be empty"):
            make_schedule("  ")

    def test_assignment_is_validated(self):
        schedule = make_schedule()

        with pytest.raises(ValidationError):
            schedule.payments_made = -1

    def test_imported_raw_holds_plain_rows(self):
        schedule = make_schedule(imported_raw=[{"scheduled_date": "2024-01-15"}])

        assert schedule.imported_raw == [{"scheduled_date": "2024-01-15"}]

    def test_unknown_frequency(self):
        with pytest.raises(ValidationError):
            LoanSchedule(
                liability_id="x",
                principal="1",
                start_date="2024-01-01",
                end_date="2024-02-01",
                term_periods=1,
                frequency="weekly",
            )


class TestLedgerConfig:
    def test_upcoming_limit_must_be_positive(self):
        with pytest.raises(ValidationError):
            LedgerConfig(upcoming_limit=0)
