"""Loanledger - Loan amortization and payment reconciliation.

This package generates amortization schedules from loan terms, imports the
payment schedules banks hand out, and keeps each schedule's progress in step
with the payments recorded against it.

Main exports:
    generate_schedule: Payment-by-payment breakdown of an amortizing loan
    parse_import_file: Parser for delimited bank schedule exports
    mark_payment_paid: Record a payment and roll the schedule forward
    compare_loans: Side-by-side cost of alternative loan scenarios
"""

__version__ = "1.0.0"

from .amortization import LoanScenario, compare_loans, compute_periodic_payment, generate_schedule
from .importer import parse_import_file
from .reconcile import (
    delete_schedule,
    generate_and_persist,
    import_and_persist,
    mark_payment_paid,
    recompute_progress,
)
from .schema import LoanSchedule, LoanTerms, PaymentEntry
from .store import InMemoryScheduleStore, ScheduleStore, YamlScheduleStore

__all__ = [
    "InMemoryScheduleStore",
    "LoanScenario",
    "LoanSchedule",
    "LoanTerms",
    "PaymentEntry",
    "ScheduleStore",
    "YamlScheduleStore",
    "compare_loans",
    "compute_periodic_payment",
    "delete_schedule",
    "generate_and_persist",
    "generate_schedule",
    "import_and_persist",
    "mark_payment_paid",
    "parse_import_file",
    "recompute_progress",
]
