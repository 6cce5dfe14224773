"""Command-line interface for loanledger."""

import asyncio
import json
import logging
import sys
import traceback
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

import click

from . import __version__
from .amortization import (
    AmortizationSchedule,
    LoanScenario,
    compare_loans,
    payoff_with_extra_payment,
    summarize_schedule,
)
from .errors import ScheduleNotFoundError
from .export import entries_to_beancount, entries_to_csv, format_entries
from .loader import load_config
from .reconcile import (
    delete_schedule,
    generate_and_persist,
    import_and_persist,
    mark_payment_paid,
    overdue_entries,
    progress_percent,
    upcoming_payments,
)
from .schema import LedgerConfig, LoanSchedule, LoanTerms, PaymentEntry
from .store import YamlScheduleStore
from .types import LoanType, PaymentFrequency, PaymentStatus, RateType

logger = logging.getLogger(__name__)

DATE_FORMAT = ["%Y-%m-%d"]


class DecimalType(click.ParamType):
    """Click parameter type that parses a decimal amount."""

    name = "decimal"

    def convert(self, value, param, ctx):
        if isinstance(value, Decimal):
            return value
        try:
            return Decimal(str(value))
        except InvalidOperation:
            self.fail(f"{value!r} is not a valid amount", param, ctx)


DECIMAL = DecimalType()


class ScenarioType(click.ParamType):
    """Click parameter type for NAME:PRINCIPAL:RATE:TERM[:CLOSING_COSTS]."""

    name = "scenario"

    def convert(self, value, param, ctx):
        if isinstance(value, LoanScenario):
            return value
        parts = [part.strip() for part in value.split(":")]
        if len(parts) not in (4, 5) or not parts[0]:
            self.fail(
                f"{value!r} is not NAME:PRINCIPAL:RATE:TERM[:CLOSING_COSTS]", param, ctx
            )
        name, principal, rate, term = parts[:4]
        try:
            return LoanScenario(
                name=name,
                principal=Decimal(principal),
                annual_rate_percent=Decimal(rate),
                term_periods=int(term),
                closing_costs=Decimal(parts[4]) if len(parts) == 5 else Decimal("0"),
            )
        except (InvalidOperation, ValueError):
            self.fail(f"{value!r} has a non-numeric amount, rate or term", param, ctx)


SCENARIO = ScenarioType()


def _frequency_choice() -> click.Choice:
    return click.Choice([f.value for f in PaymentFrequency], case_sensitive=False)


def _fail(error: Exception) -> None:
    """Report an error and exit with status 1."""
    click.echo(f"Error: {error}", err=True)
    if logger.isEnabledFor(logging.DEBUG):
        traceback.print_exc()
    sys.exit(1)


def _open_store(ctx: click.Context) -> YamlScheduleStore:
    config: LedgerConfig = ctx.obj["config"]
    return YamlScheduleStore(config.store_path)


async def _require_schedule(store: YamlScheduleStore, liability_id: str) -> LoanSchedule:
    schedule = await store.get_schedule_for_liability(liability_id)
    if schedule is None:
        raise ScheduleNotFoundError(f"No payment schedule for liability '{liability_id}'")
    return schedule


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Path to configuration file (default: auto-discover)",
)
@click.option(
    "--store",
    "store_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to the schedule store file (overrides configuration)",
)
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_path: Optional[str], store_path: Optional[str]):
    """Loanledger - loan amortization and payment reconciliation."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")

    ctx.ensure_object(dict)
    try:
        config = load_config(Path(config_path) if config_path else None)
    except Exception as e:
        _fail(e)
    if store_path:
        config = config.model_copy(update={"store_path": store_path})
    ctx.obj["config"] = config


@main.command()
@click.argument("principal", type=DECIMAL)
@click.argument("rate", type=DECIMAL)
@click.argument("term", type=int)
@click.option("--frequency", type=_frequency_choice(), default=None, help="Payment frequency")
@click.option(
    "--start",
    "start_date",
    type=click.DateTime(formats=DATE_FORMAT),
    default=None,
    help="Schedule start date (default: today)",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "csv", "json"], case_sensitive=False),
    default="table",
    help="Output format (default: table)",
)
@click.option(
    "--limit", type=click.IntRange(min=1), default=None, help="Limit number of payments to display"
)
@click.option("--summary-only", is_flag=True, help="Show only summary statistics")
@click.option(
    "--extra",
    type=DECIMAL,
    default=None,
    help="Compare payoff with this extra principal amount per period",
)
@click.pass_context
def calc(
    ctx: click.Context,
    principal: Decimal,
    rate: Decimal,
    term: int,
    frequency: Optional[str],
    start_date,
    output_format: str,
    limit: Optional[int],
    summary_only: bool,
    extra: Optional[Decimal],
):
    """Calculate an amortization schedule without storing it.

    PRINCIPAL is the financed amount, RATE the nominal annual rate in
    percent and TERM the number of payments.

    Examples:
        loanledger calc 240000 4.5 180 --start 2021-03-15
        loanledger calc 30000 5 60 --summary-only
        loanledger calc 20000 6 20 --frequency quarterly --format csv
        loanledger calc 240000 4.5 180 --extra 200
    """
    config: LedgerConfig = ctx.obj["config"]
    try:
        amort = AmortizationSchedule(
            principal=principal,
            annual_rate_percent=rate,
            term_periods=term,
            start_date=start_date.date() if start_date else date.today(),
            frequency=PaymentFrequency(frequency) if frequency else config.default_frequency,
        )
        entries = amort.generate_full_schedule()
        totals = summarize_schedule(entries)

        summary_info = {
            "principal": str(amort.principal),
            "annual_rate_percent": str(amort.annual_rate_percent),
            "term_periods": amort.term_periods,
            "frequency": amort.frequency.value,
            "periodic_payment": str(totals.periodic_payment),
            "total_interest": str(totals.total_interest),
            "total_cost": str(totals.total_cost),
            "end_date": str(amort.end_date),
        }

        if output_format == "table" or summary_only:
            click.echo(f"Loan Amount: {amort.principal:,.2f}")
            click.echo(f"Interest Rate: {amort.annual_rate_percent:.3f}%")
            click.echo(f"Term: {amort.term_periods} {amort.frequency.value} payments")
            click.echo(f"Periodic Payment: {totals.periodic_payment:,.2f}")
            click.echo(f"Total Interest: {totals.total_interest:,.2f}")
            click.echo(f"Total Cost: {totals.total_cost:,.2f}")
            click.echo(f"Final Payment: {amort.end_date}")

            if extra:
                comparison = payoff_with_extra_payment(
                    principal, rate, term, extra, amort.frequency
                )
                click.echo(f"\nWith {extra:,.2f} extra per payment:")
                click.echo(
                    f"  Paid off after {comparison.accelerated_periods} payments "
                    f"({comparison.periods_saved} fewer)"
                )
                click.echo(f"  Interest saved: {comparison.interest_saved:,.2f}")
            click.echo()

        if summary_only:
            return

        display = entries[:limit] if limit else entries

        if output_format == "table":
            _print_payment_table(display)
            if limit and len(entries) > limit:
                click.echo(f"\n... {len(entries) - limit} more payments")
        elif output_format == "csv":
            click.echo(entries_to_csv(display), nl=False)
        elif output_format == "json":
            output = {
                "summary": summary_info,
                "payments": [
                    e.model_dump(mode="json", exclude={"id", "schedule_id"}) for e in display
                ],
            }
            click.echo(json.dumps(output, indent=2))

    except Exception as e:
        _fail(e)


@main.command()
@click.option(
    "--scenario",
    "scenarios",
    type=SCENARIO,
    multiple=True,
    required=True,
    help="NAME:PRINCIPAL:RATE:TERM[:CLOSING_COSTS]; the first is the baseline",
)
@click.option("--frequency", type=_frequency_choice(), default=None, help="Payment frequency")
@click.pass_context
def compare(ctx: click.Context, scenarios: tuple[LoanScenario, ...], frequency: Optional[str]):
    """Compare loan scenarios side by side.

    The first scenario is the baseline; the others are measured against it,
    including when their closing costs are recovered by lower payments.

    Examples:
        loanledger compare --scenario Current:500000:4.5:240 \\
            --scenario Refinance:500000:3.5:240:5000
        loanledger compare --scenario A:20000:6:20 --scenario B:20000:5:24 --frequency quarterly
    """
    config: LedgerConfig = ctx.obj["config"]
    period = PaymentFrequency(frequency) if frequency else config.default_frequency
    try:
        results = compare_loans([s._replace(frequency=period) for s in scenarios])

        click.echo(
            f"{'Scenario':<20} {'Payment':>12} {'Total Interest':>16} "
            f"{'Total Cost':>16} {'Closing':>12}"
        )
        click.echo("-" * 80)
        for result in results:
            click.echo(
                f"{result.scenario.name[:20]:<20} "
                f"{result.periodic_payment:>12,.2f} "
                f"{result.total_interest:>16,.2f} "
                f"{result.total_payment:>16,.2f} "
                f"{result.scenario.closing_costs:>12,.2f}"
            )

        baseline = results[0].scenario.name
        for result in results[1:]:
            click.echo(f"\n{result.scenario.name} vs {baseline}:")
            if result.payment_savings <= 0:
                extra = -result.payment_savings
                click.echo(f"  No payment savings ({extra:,.2f} more per payment)")
                continue
            click.echo(f"  Saves {result.payment_savings:,.2f} per payment")
            if result.break_even_periods:
                click.echo(f"  Closing costs recovered after {result.break_even_periods} payments")
            click.echo(f"  Net savings over the term: {result.net_savings:,.2f}")

    except Exception as e:
        _fail(e)


@main.command()
@click.argument("liability_id")
@click.option("--principal", type=DECIMAL, required=True, help="Financed amount")
@click.option("--rate", type=DECIMAL, default=None, help="Nominal annual rate in percent")
@click.option("--term", type=int, required=True, help="Number of payments")
@click.option("--frequency", type=_frequency_choice(), default=None, help="Payment frequency")
@click.option(
    "--start",
    "start_date",
    type=click.DateTime(formats=DATE_FORMAT),
    default=None,
    help="Schedule start date (default: today)",
)
@click.option(
    "--rate-type",
    type=click.Choice([r.value for r in RateType]),
    default=RateType.FIXED.value,
    help="Rate type (default: fixed)",
)
@click.option("--notes", default=None, help="Notes stored with the schedule")
@click.option("--replace", is_flag=True, help="Replace an existing schedule for this liability")
@click.pass_context
def generate(
    ctx: click.Context,
    liability_id: str,
    principal: Decimal,
    rate: Optional[Decimal],
    term: int,
    frequency: Optional[str],
    start_date,
    rate_type: str,
    notes: Optional[str],
    replace: bool,
):
    """Generate and store an amortization schedule for a liability.

    Examples:
        loanledger generate mortgage --principal 240000 --rate 4.5 --term 180 --start 2021-03-15
        loanledger generate car --principal 30000 --rate 5 --term 60 --replace
    """
    config: LedgerConfig = ctx.obj["config"]
    try:
        terms = LoanTerms(
            principal=principal,
            rate=rate,
            term_periods=term,
            start_date=start_date.date() if start_date else date.today(),
            frequency=PaymentFrequency(frequency) if frequency else config.default_frequency,
            loan_type=LoanType.AMORTIZING,
            rate_type=RateType(rate_type),
            notes=notes,
        )
        store = _open_store(ctx)
        schedule = asyncio.run(generate_and_persist(store, liability_id, terms, replace=replace))

        click.echo(f"✓ Created schedule for {liability_id}")
        click.echo(f"  Payments: {schedule.term_periods} ({schedule.frequency.value})")
        click.echo(f"  Periodic payment: {schedule.periodic_payment:,.2f}")
        click.echo(f"  Total interest: {schedule.total_interest:,.2f}")
        click.echo(f"  First payment due: {schedule.next_due_date}")

    except Exception as e:
        _fail(e)


@main.command(name="import")
@click.argument("liability_id")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--today",
    type=click.DateTime(formats=DATE_FORMAT),
    default=None,
    help="Treat rows before this date as paid (default: today)",
)
@click.option("--replace", is_flag=True, help="Replace an existing schedule for this liability")
@click.pass_context
def import_schedule(ctx: click.Context, liability_id: str, file: str, today, replace: bool):
    """Import a payment schedule exported by the lender.

    FILE is a comma, semicolon or tab separated file with a header row. A
    column whose header contains "date" is required; payment, principal,
    interest and balance columns are used when present.

    Examples:
        loanledger import mortgage bank-export.csv
        loanledger import mortgage bank-export.csv --replace
    """
    try:
        path = Path(file)
        raw_text = path.read_text(encoding="utf-8-sig")
        store = _open_store(ctx)
        schedule = asyncio.run(
            import_and_persist(
                store,
                liability_id,
                raw_text,
                now=today.date() if today else None,
                source_name=path.name,
                replace=replace,
            )
        )

        click.echo(f"✓ Imported {schedule.term_periods} payments for {liability_id}")
        click.echo(f"  Already paid: {schedule.payments_made}")
        click.echo(f"  Next payment due: {schedule.next_due_date or '-'}")
        click.echo(f"  Total interest: {schedule.total_interest:,.2f}")

    except Exception as e:
        _fail(e)


@main.command()
@click.argument("liability_id")
@click.option(
    "--limit", type=click.IntRange(min=1), default=None, help="Limit number of payments to display"
)
@click.option(
    "--today",
    type=click.DateTime(formats=DATE_FORMAT),
    default=None,
    help="Reference date for overdue payments (default: today)",
)
@click.pass_context
def show(ctx: click.Context, liability_id: str, limit: Optional[int], today):
    """Show a liability's schedule, progress and payments.

    Examples:
        loanledger show mortgage
        loanledger show mortgage --limit 12
    """
    reference = today.date() if today else date.today()
    try:
        store = _open_store(ctx)

        async def load() -> tuple[LoanSchedule, list[PaymentEntry]]:
            schedule = await _require_schedule(store, liability_id)
            return schedule, await store.list_payment_entries(schedule.id)

        schedule, entries = asyncio.run(load())

        click.echo(f"Liability: {schedule.liability_id}")
        click.echo(f"Loan type: {schedule.loan_type.value}")
        click.echo(f"Principal: {schedule.principal:,.2f}")
        rate = "-"
        if schedule.rate is not None:
            rate = f"{schedule.rate:.3f}% ({schedule.rate_type.value})"
        click.echo(f"Rate: {rate}")
        click.echo(f"Period: {schedule.start_date} to {schedule.end_date}")
        if schedule.periodic_payment is not None:
            click.echo(f"Periodic payment: {schedule.periodic_payment:,.2f}")
        click.echo(
            f"Progress: {schedule.payments_made}/{len(entries)} paid "
            f"({progress_percent(entries)}%)"
        )
        if schedule.remaining_principal is not None:
            click.echo(f"Remaining principal: {schedule.remaining_principal:,.2f}")
        click.echo(f"Next payment due: {schedule.next_due_date or '-'}")
        if schedule.is_imported:
            click.echo(f"Imported: yes{f' ({schedule.notes})' if schedule.notes else ''}")

        overdue = overdue_entries(entries, reference)
        if overdue:
            click.echo(f"\n⚠ {len(overdue)} overdue payment(s)")
        click.echo()

        display = entries[:limit] if limit else entries
        _print_payment_table(display, today=reference)
        if limit and len(entries) > limit:
            click.echo(f"\n... {len(entries) - limit} more payments")

    except Exception as e:
        _fail(e)


@main.command()
@click.argument("liability_id")
@click.argument("sequence", type=int)
@click.option("--amount", type=DECIMAL, default=None, help="Amount paid (default: scheduled)")
@click.option(
    "--date",
    "paid_on",
    type=click.DateTime(formats=DATE_FORMAT),
    default=None,
    help="Date paid (default: today)",
)
@click.pass_context
def pay(ctx: click.Context, liability_id: str, sequence: int, amount: Optional[Decimal], paid_on):
    """Record payment number SEQUENCE of a liability as paid.

    Examples:
        loanledger pay mortgage 1
        loanledger pay mortgage 2 --amount 1900 --date 2021-05-14
    """
    try:
        store = _open_store(ctx)

        async def record() -> tuple[PaymentEntry, LoanSchedule]:
            schedule = await _require_schedule(store, liability_id)
            entries = await store.list_payment_entries(schedule.id)
            entry = next((e for e in entries if e.sequence_number == sequence), None)
            if entry is None:
                raise click.BadParameter(
                    f"Schedule has no payment #{sequence}", param_hint="SEQUENCE"
                )
            updated = await mark_payment_paid(
                store,
                schedule.id,
                entry.id,
                actual_amount=amount,
                actual_date=paid_on.date() if paid_on else None,
            )
            return entry, updated

        entry, schedule = asyncio.run(record())

        paid_amount = amount if amount is not None else entry.total_amount
        click.echo(f"✓ Payment #{entry.sequence_number} recorded: {paid_amount:,.2f}")
        click.echo(f"  Payments made: {schedule.payments_made}/{schedule.term_periods}")
        click.echo(f"  Remaining principal: {schedule.remaining_principal:,.2f}")
        click.echo(f"  Next payment due: {schedule.next_due_date or '-'}")

    except Exception as e:
        _fail(e)


@main.command()
@click.argument("liability_id")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete(ctx: click.Context, liability_id: str, yes: bool):
    """Delete a liability's schedule and all of its payment records."""
    try:
        store = _open_store(ctx)
        schedule = asyncio.run(_require_schedule(store, liability_id))

        if not yes:
            click.confirm(
                f"Delete the payment schedule and all payment records for {liability_id}?",
                abort=True,
            )

        asyncio.run(delete_schedule(store, schedule.id))
        click.echo(f"✓ Deleted schedule for {liability_id}")

    except click.Abort:
        raise
    except Exception as e:
        _fail(e)


@main.command()
@click.option(
    "--limit",
    type=click.IntRange(min=1),
    default=None,
    help="Number of payments (default: from config)",
)
@click.option(
    "--today",
    type=click.DateTime(formats=DATE_FORMAT),
    default=None,
    help="Reference date (default: today)",
)
@click.pass_context
def upcoming(ctx: click.Context, limit: Optional[int], today):
    """List the next scheduled payments across all liabilities."""
    config: LedgerConfig = ctx.obj["config"]
    reference = today.date() if today else date.today()
    count = limit if limit is not None else config.upcoming_limit
    try:
        store = _open_store(ctx)

        async def collect() -> list[tuple[str, PaymentEntry]]:
            rows = []
            for schedule in await store.list_schedules():
                entries = await store.list_payment_entries(schedule.id)
                for entry in upcoming_payments(entries, reference, limit=None):
                    rows.append((schedule.liability_id, entry))
            rows.sort(key=lambda row: (row[1].scheduled_date, row[0]))
            return rows[:count]

        rows = asyncio.run(collect())
        if not rows:
            click.echo("No upcoming payments")
            return

        click.echo(f"{'Date':<12}  {'Liability':<20}  {'#':>4}  {'Amount':>12}")
        click.echo("-" * 54)
        for liability_id, entry in rows:
            click.echo(
                f"{entry.scheduled_date!s:<12}  {liability_id:<20}  "
                f"{entry.sequence_number:>4}  {entry.total_amount:>12,.2f}"
            )

    except Exception as e:
        _fail(e)


@main.command()
@click.argument("liability_id")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["csv", "beancount"], case_sensitive=False),
    default="csv",
    help="Output format (default: csv)",
)
@click.option("--paid-only", is_flag=True, help="Beancount: skip forecast transactions")
@click.pass_context
def export(ctx: click.Context, liability_id: str, output_format: str, paid_only: bool):
    """Export a liability's payments as CSV or Beancount transactions.

    Examples:
        loanledger export mortgage > mortgage.csv
        loanledger export mortgage --format beancount --paid-only >> ledger.beancount
    """
    config: LedgerConfig = ctx.obj["config"]
    try:
        store = _open_store(ctx)

        async def load() -> tuple[LoanSchedule, list[PaymentEntry]]:
            schedule = await _require_schedule(store, liability_id)
            return schedule, await store.list_payment_entries(schedule.id)

        schedule, entries = asyncio.run(load())

        if output_format == "csv":
            click.echo(entries_to_csv(entries), nl=False)
        else:
            transactions = entries_to_beancount(
                schedule, entries, config, include_scheduled=not paid_only
            )
            click.echo(format_entries(transactions), nl=False)

    except Exception as e:
        _fail(e)


def _print_payment_table(entries: list[PaymentEntry], today: Optional[date] = None) -> None:
    """Print payment entries as a formatted table.

    Args:
        entries: Entries in sequence order
        today: When given, a status column is added with overdue markers
    """
    header = (
        f"{'#':>4} {'Date':>12} {'Payment':>12} {'Principal':>12} {'Interest':>12} {'Balance':>14}"
    )
    if today is not None:
        header += f"  {'Status':<10}"
    click.echo(header)
    click.echo("-" * len(header))

    for entry in entries:
        row = (
            f"{entry.sequence_number:>4} "
            f"{entry.scheduled_date.strftime('%Y-%m-%d'):>12} "
            f"{entry.total_amount:>12,.2f} "
            f"{entry.principal_portion:>12,.2f} "
            f"{entry.interest_portion:>12,.2f} "
            f"{entry.remaining_principal_after:>14,.2f}"
        )
        if today is not None:
            status = "overdue" if entry.is_overdue(today) else entry.status.value
            if entry.status == PaymentStatus.PAID and entry.actual_date:
                status = f"paid {entry.actual_date}"
            row += f"  {status:<10}"
        click.echo(row)
