"""Construction of schedule aggregates from generated or imported payments.

Both builders are pure: they return a new LoanSchedule together with the
PaymentEntry list that belongs to it, ready to be persisted as one unit.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union

from . import constants
from .amortization import AmortizationSchedule, summarize_schedule, to_cents
from .errors import NoValidRowsError, ScheduleImportError, UnsupportedLoanTypeError
from .importer import infer_frequency
from .schema import LoanSchedule, LoanTerms, PaymentEntry
from .types import LoanType, PaymentStatus, RateType

logger = logging.getLogger(__name__)


def build_generated_schedule(
    liability_id: str,
    terms: LoanTerms,
) -> tuple[LoanSchedule, list[PaymentEntry]]:
    """Build a schedule and its entries from loan terms.

    Args:
        liability_id: Liability the schedule belongs to
        terms: Validated loan terms

    Returns:
        Tuple of (schedule, entries); nothing is paid yet. The stored
        periodic_payment is the calculator payment rounded to cents, and the
        principal is the cent-rounded financed amount

    Raises:
        UnsupportedLoanTypeError: If the loan type is not amortizing
    """
    if terms.loan_type != LoanType.AMORTIZING:
        raise UnsupportedLoanTypeError(
            f"Cannot generate a schedule for loan type '{terms.loan_type.value}'; "
            "import the lender's schedule instead"
        )

    amort = AmortizationSchedule(
        principal=terms.principal,
        annual_rate_percent=terms.rate,
        term_periods=terms.term_periods,
        start_date=terms.start_date,
        frequency=terms.frequency,
    )
    entries = amort.generate_full_schedule()
    totals = summarize_schedule(entries)

    schedule = LoanSchedule(
        liability_id=liability_id,
        loan_type=terms.loan_type,
        principal=amort.principal,
        rate=terms.rate,
        rate_type=terms.rate_type,
        start_date=terms.start_date,
        end_date=amort.end_date,
        term_periods=terms.term_periods,
        frequency=terms.frequency,
        periodic_payment=to_cents(amort.payment),
        total_interest=totals.total_interest,
        total_cost=amort.principal + totals.total_interest,
        payments_made=0,
        next_due_date=entries[0].scheduled_date,
        remaining_principal=amort.principal,
        imported_raw=None,
        is_imported=False,
        notes=terms.notes,
    )

    logger.info(
        "Built schedule for %s: %d payments of %s, total interest %s",
        liability_id,
        len(entries),
        schedule.periodic_payment,
        schedule.total_interest,
    )
    return schedule, entries


def build_imported_schedule(
    liability_id: str,
    entries: list[PaymentEntry],
    now: Union[date, datetime],
    source_name: Optional[str] = None,
) -> tuple[LoanSchedule, list[PaymentEntry]]:
    """Build a schedule from parsed import rows.

    Totals come from the rows themselves, not from the calculator. Rows
    dated strictly before ``now`` are taken as already paid (with the
    scheduled date and amount as actuals); the rest stay scheduled. No row
    is ever classified as missed here.

    Args:
        liability_id: Liability the schedule belongs to
        entries: Rows from parse_import_file, in file order (not modified)
        now: Import time; only its date is used
        source_name: File name recorded in the schedule notes

    Returns:
        Tuple of (schedule, entries with statuses assigned)

    Raises:
        NoValidRowsError: If entries is empty
    """
    if not entries:
        raise NoValidRowsError("No valid payment rows found in the file")

    today = now.date() if isinstance(now, datetime) else now
    imported_raw = [
        entry.model_dump(mode="json", exclude={"id", "schedule_id"}) for entry in entries
    ]

    classified: list[PaymentEntry] = []
    for entry in entries:
        if entry.scheduled_date < today:
            update = {
                "status": PaymentStatus.PAID,
                "actual_date": entry.scheduled_date,
                "actual_amount": entry.total_amount,
            }
        else:
            update = {"status": PaymentStatus.SCHEDULED, "actual_date": None, "actual_amount": None}
        classified.append(PaymentEntry.model_validate({**entry.model_dump(), **update}))

    totals = summarize_schedule(classified)
    last = classified[-1]
    principal = derived_principal(classified)
    if principal <= 0:
        raise ScheduleImportError(
            "Imported rows carry no principal; include a principal or balance column"
        )

    next_index = next(
        (idx for idx, entry in enumerate(classified) if entry.status != PaymentStatus.PAID), None
    )
    if next_index is None:
        next_due_date = None
        remaining_principal = last.remaining_principal_after
    elif next_index == 0:
        next_due_date = classified[0].scheduled_date
        remaining_principal = principal
    else:
        next_due_date = classified[next_index].scheduled_date
        remaining_principal = classified[next_index - 1].remaining_principal_after

    payments_made = sum(1 for entry in classified if entry.status == PaymentStatus.PAID)

    schedule = LoanSchedule(
        liability_id=liability_id,
        loan_type=LoanType.AMORTIZING,
        principal=principal,
        rate=None,
        rate_type=RateType.FIXED,
        start_date=classified[0].scheduled_date,
        end_date=last.scheduled_date,
        term_periods=len(classified),
        frequency=infer_frequency([entry.scheduled_date for entry in classified]),
        periodic_payment=totals.periodic_payment,
        total_interest=totals.total_interest,
        total_cost=principal + totals.total_interest,
        payments_made=payments_made,
        next_due_date=next_due_date,
        remaining_principal=remaining_principal,
        imported_raw=imported_raw,
        is_imported=True,
        notes=constants.IMPORT_NOTES_TEMPLATE.format(source=source_name) if source_name else None,
    )

    logger.info(
        "Built imported schedule for %s: %d payments (%d already paid)",
        liability_id,
        len(classified),
        payments_made,
    )
    return schedule, classified


def derived_principal(entries: list[PaymentEntry]) -> Decimal:
    """Principal implied by imported rows: repaid principal plus the closing balance."""
    if not entries:
        return Decimal("0")
    return summarize_schedule(entries).total_principal + entries[-1].remaining_principal_after
