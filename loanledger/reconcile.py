"""Reconciliation services: create, mark paid, recompute progress, delete.

The async functions here are the only writers of a schedule's progress
counters (``payments_made``, ``next_due_date``, ``remaining_principal``).
They are recomputed from the full payment ledger after every change, never
taken from the caller.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union

from .builders import build_generated_schedule, build_imported_schedule
from .errors import (
    InvalidStatusTransitionError,
    PaymentEntryNotFoundError,
    ScheduleNotFoundError,
)
from .importer import parse_import_file
from .schema import LoanSchedule, LoanTerms, PaymentEntry, ScheduleProgress
from .store import ScheduleStore
from .types import PaymentStatus

logger = logging.getLogger(__name__)


# Pure projections


def recompute_progress(schedule: LoanSchedule, entries: list[PaymentEntry]) -> ScheduleProgress:
    """Derive progress counters from a schedule's payment entries.

    Args:
        schedule: The owning schedule (supplies the principal)
        entries: All of its payment entries, in any order

    Returns:
        ScheduleProgress with the count of paid entries, the earliest
        scheduled date, and the balance after the highest-numbered paid
        entry (the full principal when nothing is paid)
    """
    paid = [e for e in entries if e.status == PaymentStatus.PAID]
    scheduled = [e for e in entries if e.status == PaymentStatus.SCHEDULED]

    next_due_date = min((e.scheduled_date for e in scheduled), default=None)
    if paid:
        last_paid = max(paid, key=lambda e: e.sequence_number)
        remaining_principal = last_paid.remaining_principal_after
    else:
        remaining_principal = schedule.principal

    return ScheduleProgress(
        payments_made=len(paid),
        next_due_date=next_due_date,
        remaining_principal=remaining_principal,
    )


def overdue_entries(entries: list[PaymentEntry], today: date) -> list[PaymentEntry]:
    """Scheduled entries whose due date has passed, in sequence order."""
    return sorted(
        (e for e in entries if e.is_overdue(today)), key=lambda e: e.sequence_number
    )


def upcoming_payments(
    entries: list[PaymentEntry], today: date, limit: Optional[int] = 5
) -> list[PaymentEntry]:
    """Scheduled entries due today or later, soonest first."""
    upcoming = sorted(
        (e for e in entries if e.status == PaymentStatus.SCHEDULED and e.scheduled_date >= today),
        key=lambda e: (e.scheduled_date, e.sequence_number),
    )
    return upcoming[:limit] if limit is not None else upcoming


def progress_percent(entries: list[PaymentEntry]) -> Decimal:
    """Share of entries paid, in percent with one decimal place."""
    if not entries:
        return Decimal("0.0")
    paid = sum(1 for e in entries if e.status == PaymentStatus.PAID)
    return (Decimal(paid) * Decimal("100") / Decimal(len(entries))).quantize(Decimal("0.1"))


# Persisted operations


async def create_schedule_with_entries(
    store: ScheduleStore,
    schedule: LoanSchedule,
    entries: list[PaymentEntry],
) -> LoanSchedule:
    """Persist a schedule and its entries as one unit.

    If the entries cannot be stored, the freshly created schedule is deleted
    again before the original error is re-raised, so no empty schedule is
    left behind.

    Returns:
        The persisted schedule (with its id)
    """
    created = await store.create_schedule(schedule)
    stamped = [e.model_copy(update={"schedule_id": created.id, "id": None}) for e in entries]

    try:
        await store.create_payment_entries(stamped)
    except Exception:
        logger.warning(
            "Storing payments for schedule %s failed, removing the schedule", created.id
        )
        try:
            await store.delete_schedule(created.id)
        except Exception as cleanup_error:
            logger.error(
                "Could not remove schedule %s after failed payment insert: %s",
                created.id,
                cleanup_error,
            )
        raise

    logger.info(
        "Created schedule %s for liability %s with %d payments",
        created.id,
        created.liability_id,
        len(stamped),
    )
    return created


async def _replace_existing(store: ScheduleStore, liability_id: str) -> None:
    existing = await store.get_schedule_for_liability(liability_id)
    if existing is not None:
        logger.info("Replacing schedule %s of liability %s", existing.id, liability_id)
        await delete_schedule(store, existing.id)


async def generate_and_persist(
    store: ScheduleStore,
    liability_id: str,
    terms: LoanTerms,
    replace: bool = False,
) -> LoanSchedule:
    """Generate an amortization schedule from loan terms and store it.

    Args:
        store: Persistence backend
        liability_id: Liability the schedule belongs to
        terms: Loan terms
        replace: Delete an existing schedule for the liability first;
            otherwise an existing schedule makes the store refuse the new one

    Returns:
        The persisted schedule
    """
    schedule, entries = build_generated_schedule(liability_id, terms)
    if replace:
        await _replace_existing(store, liability_id)
    return await create_schedule_with_entries(store, schedule, entries)


async def import_and_persist(
    store: ScheduleStore,
    liability_id: str,
    raw_text: str,
    now: Optional[Union[date, datetime]] = None,
    source_name: Optional[str] = None,
    replace: bool = False,
) -> LoanSchedule:
    """Parse a bank schedule export and store it.

    Parsing happens before anything is written, so a file that cannot be
    parsed leaves the store untouched.

    Args:
        store: Persistence backend
        liability_id: Liability the schedule belongs to
        raw_text: File content
        now: Import time used to pre-classify past rows as paid (default: today)
        source_name: File name for the schedule notes
        replace: Delete an existing schedule for the liability first

    Returns:
        The persisted schedule
    """
    entries = parse_import_file(raw_text)
    schedule, classified = build_imported_schedule(
        liability_id, entries, now or date.today(), source_name
    )
    if replace:
        await _replace_existing(store, liability_id)
    return await create_schedule_with_entries(store, schedule, classified)


async def refresh_schedule_progress(store: ScheduleStore, schedule_id: str) -> LoanSchedule:
    """Recompute a schedule's progress counters from its ledger and store them."""
    schedule = await store.get_schedule(schedule_id)
    if schedule is None:
        raise ScheduleNotFoundError(f"Schedule '{schedule_id}' not found")

    entries = await store.list_payment_entries(schedule_id)
    progress = recompute_progress(schedule, entries)
    return await store.update_schedule(schedule_id, progress._asdict())


async def mark_payment_paid(
    store: ScheduleStore,
    schedule_id: str,
    entry_id: str,
    actual_amount: Optional[Decimal] = None,
    actual_date: Optional[date] = None,
    today: Optional[date] = None,
) -> LoanSchedule:
    """Record a scheduled payment as paid and roll the schedule forward.

    Args:
        store: Persistence backend
        schedule_id: Owning schedule
        entry_id: Payment entry to mark
        actual_amount: Amount paid (default: the scheduled total)
        actual_date: Date paid (default: today)
        today: Overrides the current date

    Returns:
        The schedule with recomputed progress counters

    Raises:
        PaymentEntryNotFoundError: If the entry is not part of the schedule
        InvalidStatusTransitionError: If the entry is already paid or missed
    """
    entries = await store.list_payment_entries(schedule_id)
    entry = next((e for e in entries if e.id == entry_id), None)
    if entry is None:
        raise PaymentEntryNotFoundError(
            f"Payment entry '{entry_id}' not found in schedule '{schedule_id}'"
        )

    if entry.status != PaymentStatus.SCHEDULED:
        raise InvalidStatusTransitionError(
            f"Payment #{entry.sequence_number} is already {entry.status.value}"
        )

    paid_amount = entry.total_amount if actual_amount is None else Decimal(str(actual_amount))
    paid_date = actual_date or today or date.today()

    await store.update_payment_entry(
        entry_id,
        {"status": PaymentStatus.PAID, "actual_date": paid_date, "actual_amount": paid_amount},
    )
    logger.info(
        "Marked payment #%d of schedule %s paid: %s on %s",
        entry.sequence_number,
        schedule_id,
        paid_amount,
        paid_date,
    )

    return await refresh_schedule_progress(store, schedule_id)


async def delete_schedule(store: ScheduleStore, schedule_id: str) -> None:
    """Delete a schedule and all of its payment entries."""
    await store.delete_schedule(schedule_id)
    logger.info("Deleted schedule %s", schedule_id)
