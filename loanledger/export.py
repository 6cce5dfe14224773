"""Export of payment entries as CSV or Beancount transactions."""

import csv
import io
import logging
from decimal import Decimal

from beancount.core import amount, data
from beancount.parser import printer

from . import constants
from .schema import LedgerConfig, LoanSchedule, PaymentEntry
from .types import PaymentStatus

logger = logging.getLogger(__name__)

CSV_HEADER = ["#", "Date", "Payment", "Principal", "Interest", "Balance"]

META_SCHEDULE_ID = "loan_schedule_id"
META_PAYMENT_NUMBER = "loan_payment_number"
META_BALANCE_AFTER = "loan_balance_after"


def entries_to_csv(entries: list[PaymentEntry]) -> str:
    """Render entries in the same column layout the import parser reads.

    Args:
        entries: Payment entries in sequence order

    Returns:
        CSV text with a header row
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)

    for entry in entries:
        writer.writerow(
            [
                entry.sequence_number,
                entry.scheduled_date.strftime("%Y-%m-%d"),
                f"{entry.total_amount:.2f}",
                f"{entry.principal_portion:.2f}",
                f"{entry.interest_portion:.2f}",
                f"{entry.remaining_principal_after:.2f}",
            ]
        )

    return buffer.getvalue()


def _posting(account: str, number: Decimal, currency: str) -> data.Posting:
    return data.Posting(
        account=account,
        units=amount.Amount(number, currency),
        cost=None,
        price=None,
        flag=None,
        meta=None,
    )


def entry_to_transaction(
    schedule: LoanSchedule,
    entry: PaymentEntry,
    config: LedgerConfig,
) -> data.Transaction:
    """Build a Beancount transaction for one payment entry.

    Paid entries are cleared (``*``) and use the actual date and amount;
    anything else is a forecast (``#``) at the scheduled date and total.
    The interest posting is taken from the schedule and the principal
    posting absorbs any difference between the amount paid and the
    scheduled total, so the transaction always balances.
    """
    currency = config.default_currency
    if entry.status == PaymentStatus.PAID:
        flag = constants.CLEARED_FLAG
        txn_date = entry.actual_date or entry.scheduled_date
        paid = entry.actual_amount if entry.actual_amount is not None else entry.total_amount
    else:
        flag = constants.FORECAST_FLAG
        txn_date = entry.scheduled_date
        paid = entry.total_amount

    principal = paid - entry.interest_portion
    postings = [_posting(config.liability_account, principal, currency)]
    if entry.interest_portion:
        postings.append(_posting(config.interest_account, entry.interest_portion, currency))
    postings.append(_posting(config.payment_account, -paid, currency))

    meta = data.new_metadata("<loanledger>", entry.sequence_number)
    meta[META_SCHEDULE_ID] = schedule.id or schedule.liability_id
    meta[META_PAYMENT_NUMBER] = Decimal(entry.sequence_number)
    meta[META_BALANCE_AFTER] = entry.remaining_principal_after

    return data.Transaction(
        meta=meta,
        date=txn_date,
        flag=flag,
        payee=None,
        narration=f"Loan payment #{entry.sequence_number} ({schedule.liability_id})",
        tags=frozenset(),
        links=frozenset(),
        postings=postings,
    )


def entries_to_beancount(
    schedule: LoanSchedule,
    entries: list[PaymentEntry],
    config: LedgerConfig,
    include_scheduled: bool = True,
) -> list[data.Transaction]:
    """Convert a schedule's payment entries to Beancount transactions.

    Args:
        schedule: Owning schedule
        entries: Its payment entries
        config: Supplies the accounts and currency
        include_scheduled: Also emit forecast transactions for unpaid entries

    Returns:
        Transactions in sequence order; missed entries are never exported
    """
    transactions = []
    for entry in sorted(entries, key=lambda e: e.sequence_number):
        if entry.status == PaymentStatus.MISSED:
            continue
        if entry.status == PaymentStatus.SCHEDULED and not include_scheduled:
            continue
        transactions.append(entry_to_transaction(schedule, entry, config))

    logger.debug("Exported %d transactions for schedule %s", len(transactions), schedule.id)
    return transactions


def format_entries(transactions: list[data.Transaction]) -> str:
    """Render transactions as Beancount ledger text."""
    return "\n".join(printer.format_entry(txn) for txn in transactions)
