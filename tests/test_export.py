"""Tests for CSV and Beancount export."""

from datetime import date
from decimal import Decimal

from loanledger.export import (
    CSV_HEADER,
    META_BALANCE_AFTER,
    META_PAYMENT_NUMBER,
    META_SCHEDULE_ID,
    entries_to_beancount,
    entries_to_csv,
    entry_to_transaction,
    format_entries,
)
from loanledger.schema import LedgerConfig
from loanledger.types import PaymentStatus
from tests.conftest import make_entry, make_schedule, three_month_entries


def _paid(entry, amount=None, on=None):
    return entry.model_copy(
        update={
            "status": PaymentStatus.PAID,
            "actual_date": on or entry.scheduled_date,
            "actual_amount": amount if amount is not None else entry.total_amount,
        }
    )


def _units(txn):
    return {p.account: p.units.number for p in txn.postings}


class TestEntriesToCsv:
    """Tests for CSV export."""

    def test_layout(self):
        lines = entries_to_csv(three_month_entries()).splitlines()

        assert lines[0] == ",".join(CSV_HEADER)
        assert lines[1] == "1,2024-02-15,335.00,330.00,5.00,670.00"
        assert len(lines) == 4

    def test_empty(self):
        assert entries_to_csv([]) == "#,Date,Payment,Principal,Interest,Balance\n"


class TestEntryToTransaction:
    """Tests for converting single entries."""

    def test_scheduled_entry_is_forecast(self, ledger_config):
        schedule = make_schedule(id="abc")
        entry = three_month_entries()[0]

        txn = entry_to_transaction(schedule, entry, ledger_config)

        assert txn.flag == "#"
        assert txn.date == date(2024, 2, 15)
        assert txn.narration == "Loan payment #1 (mortgage)"
        assert _units(txn) == {
            "Liabilities:Loans": Decimal("330.00"),
            "Expenses:Interest": Decimal("5.00"),
            "Assets:Bank:Checking": Decimal("-335.00"),
        }
        assert txn.meta[META_SCHEDULE_ID] == "abc"
        assert txn.meta[META_PAYMENT_NUMBER] == 1
        assert txn.meta[META_BALANCE_AFTER] == Decimal("670.00")

    def test_paid_entry_uses_actuals(self, ledger_config):
        """The principal posting absorbs an overpayment."""
        entry = _paid(three_month_entries()[0], amount=Decimal("400.00"), on=date(2024, 2, 13))

        txn = entry_to_transaction(make_schedule(id="abc"), entry, ledger_config)

        assert txn.flag == "*"
        assert txn.date == date(2024, 2, 13)
        assert _units(txn) == {
            "Liabilities:Loans": Decimal("395.00"),
            "Expenses:Interest": Decimal("5.00"),
            "Assets:Bank:Checking": Decimal("-400.00"),
        }

    def test_postings_balance(self, ledger_config):
        entry = _paid(three_month_entries()[1], amount=Decimal("300.00"))

        txn = entry_to_transaction(make_schedule(id="abc"), entry, ledger_config)

        assert sum(p.units.number for p in txn.postings) == 0

    def test_interest_free_entry_has_two_postings(self, ledger_config):
        entry = make_entry(1, date(2024, 2, 1), "100.00", "0.00", "200.00")

        txn = entry_to_transaction(make_schedule(id="abc"), entry, ledger_config)

        assert len(txn.postings) == 2
        assert "Expenses:Interest" not in _units(txn)

    def test_configured_accounts_and_currency(self):
        config = LedgerConfig(
            default_currency="USD",
            liability_account="Liabilities:Mortgage",
            interest_account="Expenses:Mortgage:Interest",
            payment_account="Assets:Savings",
        )

        txn = entry_to_transaction(make_schedule(id="abc"), three_month_entries()[0], config)

        assert {p.account for p in txn.postings} == {
            "Liabilities:Mortgage",
            "Expenses:Mortgage:Interest",
            "Assets:Savings",
        }
        assert all(p.units.currency == "USD" for p in txn.postings)


class TestEntriesToBeancount:
    """Tests for converting whole schedules."""

    def test_all_entries(self, ledger_config):
        entries = three_month_entries()
        entries[0] = _paid(entries[0])

        txns = entries_to_beancount(make_schedule(id="abc"), entries, ledger_config)

        assert [t.flag for t in txns] == ["*", "#", "#"]

    def test_paid_only(self, ledger_config):
        entries = three_month_entries()
        entries[0] = _paid(entries[0])

        txns = entries_to_beancount(
            make_schedule(id="abc"), entries, ledger_config, include_scheduled=False
        )

        assert [t.meta[META_PAYMENT_NUMBER] for t in txns] == [1]

    def test_missed_entries_are_skipped(self, ledger_config):
        entries = three_month_entries()
        entries[1] = entries[1].model_copy(update={"status": PaymentStatus.MISSED})

        txns = entries_to_beancount(make_schedule(id="abc"), entries, ledger_config)

        assert [t.meta[META_PAYMENT_NUMBER] for t in txns] == [1, 3]

    def test_format_entries(self, ledger_config):
        entries = three_month_entries()
        entries[0] = _paid(entries[0])
        txns = entries_to_beancount(make_schedule(id="abc"), entries, ledger_config)

        text = format_entries(txns)

        assert '2024-02-15 * "Loan payment #1 (mortgage)"' in text
        assert '2024-03-15 # "Loan payment #2 (mortgage)"' in text
        assert "Liabilities:Loans" in text
        assert "loan_schedule_id" in text
