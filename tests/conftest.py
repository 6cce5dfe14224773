"""Pytest configuration and shared fixtures for loanledger tests."""

from datetime import date
from decimal import Decimal

import pytest
from click.testing import CliRunner

from loanledger.schema import LedgerConfig, LoanSchedule, LoanTerms, PaymentEntry
from loanledger.store import InMemoryScheduleStore
from loanledger.types import PaymentFrequency, PaymentStatus

# ============================================================================
# Entry and Schedule Builders
# ============================================================================


def make_entry(
    sequence_number: int,
    scheduled_date: date,
    principal: str = "300.00",
    interest: str = "50.00",
    balance: str = "0.00",
    status: PaymentStatus = PaymentStatus.SCHEDULED,
    **kwargs,
) -> PaymentEntry:
    """Create a PaymentEntry whose total is principal + interest."""
    principal_portion = Decimal(principal)
    interest_portion = Decimal(interest)
    return PaymentEntry(
        sequence_number=sequence_number,
        scheduled_date=scheduled_date,
        principal_portion=principal_portion,
        interest_portion=interest_portion,
        total_amount=principal_portion + interest_portion,
        remaining_principal_after=Decimal(balance),
        status=status,
        **kwargs,
    )


def make_schedule(liability_id: str = "mortgage", **kwargs) -> LoanSchedule:
    """Create a LoanSchedule with sensible defaults."""
    defaults = {
        "liability_id": liability_id,
        "principal": Decimal("1000.00"),
        "rate": Decimal("6"),
        "start_date": date(2024, 1, 15),
        "end_date": date(2024, 4, 15),
        "term_periods": 3,
        "frequency": PaymentFrequency.MONTHLY,
    }
    defaults.update(kwargs)
    return LoanSchedule(**defaults)


def three_month_entries() -> list[PaymentEntry]:
    """Three monthly entries repaying 1000.00."""
    return [
        make_entry(1, date(2024, 2, 15), "330.00", "5.00", "670.00"),
        make_entry(2, date(2024, 3, 15), "331.65", "3.35", "338.35"),
        make_entry(3, date(2024, 4, 15), "338.35", "1.69", "0.00"),
    ]


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def store():
    """Empty in-memory schedule store."""
    return InMemoryScheduleStore()


@pytest.fixture
def standard_terms():
    """240000 at 4.5% over 180 monthly payments starting 2021-03-15."""
    return LoanTerms(
        principal=Decimal("240000"),
        rate=Decimal("4.5"),
        term_periods=180,
        start_date=date(2021, 3, 15),
        frequency=PaymentFrequency.MONTHLY,
    )


@pytest.fixture
def ledger_config():
    """Default configuration."""
    return LedgerConfig()


@pytest.fixture
def bank_export_text():
    """Semicolon separated bank export with its own row numbering."""
    return (
        "Nr;Payment Date;Payment;Principal;Interest;Remaining Balance\n"
        "1;15/01/2024;350.00;300.00;50.00;9700.00\n"
        "2;15/02/2024;350.00;301.50;48.50;9398.50\n"
        "3;15/03/2024;350.00;303.01;46.99;9095.49\n"
    )


@pytest.fixture
def isolated_env(tmp_path, monkeypatch):
    """Run in an empty directory with no loanledger environment variables."""
    monkeypatch.delenv("LOANLEDGER_CONFIG", raising=False)
    monkeypatch.delenv("LOANLEDGER_STORE", raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def cli_runner():
    """Create a Click test runner."""
    return CliRunner()
