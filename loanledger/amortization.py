"""Amortization calculations for loan payments.

Computes the fixed periodic payment of an amortizing loan and the full
payment-by-payment split into principal and interest using the standard
annuity formula.
"""

import logging
from datetime import date
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import NamedTuple, Optional, Union

from dateutil.relativedelta import relativedelta

from . import constants
from .errors import InvalidLoanTermsError, UnsupportedLoanTypeError
from .schema import PaymentEntry
from .types import LoanType, PaymentFrequency

logger = logging.getLogger(__name__)

Number = Union[Decimal, int, float, str]


class ScheduleTotals(NamedTuple):
    """Aggregate amounts of a list of payment entries."""

    periodic_payment: Optional[Decimal]
    total_interest: Decimal
    total_principal: Decimal
    total_cost: Decimal


class PayoffComparison(NamedTuple):
    """Effect of paying a fixed extra amount of principal every period."""

    regular_periods: int
    regular_interest: Decimal
    accelerated_periods: int
    accelerated_interest: Decimal

    @property
    def periods_saved(self) -> int:
        return self.regular_periods - self.accelerated_periods

    @property
    def interest_saved(self) -> Decimal:
        return self.regular_interest - self.accelerated_interest


def to_cents(value: Decimal) -> Decimal:
    """Round an amount to currency-minor-unit precision."""
    return value.quantize(constants.CENTS_PRECISION, rounding=ROUND_HALF_UP)


def _to_decimal(value: Optional[Number], name: str) -> Decimal:
    """Convert a user-supplied number to a finite Decimal.

    Floats go through ``str`` so 4.5 becomes Decimal("4.5"), not its binary
    expansion.
    """
    if value is None:
        return constants.ZERO_AMOUNT
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as e:
            raise InvalidLoanTermsError(f"{name} is not a number: {value!r}") from e
    if not result.is_finite():
        raise InvalidLoanTermsError(f"{name} must be finite, got {value!r}")
    return result


class AmortizationSchedule:
    """Calculate the amortization schedule for a loan.

    Example:
        >>> schedule = AmortizationSchedule(
        ...     principal=Decimal("240000"),
        ...     annual_rate_percent=Decimal("4.5"),
        ...     term_periods=180,
        ...     start_date=date(2021, 3, 15),
        ... )
        >>> entries = schedule.generate_full_schedule()
        >>> entries[0].interest_portion
        Decimal('900.00')
    """

    def __init__(
        self,
        principal: Number,
        annual_rate_percent: Optional[Number],
        term_periods: int,
        start_date: Optional[date] = None,
        frequency: PaymentFrequency = PaymentFrequency.MONTHLY,
    ):
        """Initialize amortization schedule.

        Args:
            principal: Financed amount (must be positive), rounded to cents
            annual_rate_percent: Nominal annual rate in percent (e.g. 4.5);
                None or 0 for interest-free loans
            term_periods: Number of payments (must be positive)
            start_date: Schedule start; payment i falls i periods later.
                Only needed for generating dated entries.
            frequency: Payment frequency

        Raises:
            InvalidLoanTermsError: If principal, rate or term is unusable
        """
        self.principal = to_cents(_to_decimal(principal, "principal"))
        self.annual_rate_percent = _to_decimal(annual_rate_percent, "annual_rate_percent")

        if (
            isinstance(term_periods, bool)
            or not isinstance(term_periods, (int, float, Decimal))
            or term_periods != int(term_periods)
        ):
            raise InvalidLoanTermsError(
                f"term_periods must be a whole number, got {term_periods!r}"
            )
        self.term_periods = int(term_periods)

        if self.principal <= 0:
            raise InvalidLoanTermsError(f"principal must be positive, got {self.principal}")
        if self.term_periods <= 0:
            raise InvalidLoanTermsError(f"term_periods must be positive, got {self.term_periods}")
        if self.annual_rate_percent < 0:
            raise InvalidLoanTermsError(
                f"annual_rate_percent must be non-negative, got {self.annual_rate_percent}"
            )

        self.frequency = PaymentFrequency(frequency)
        self.start_date = start_date
        self.periodic_rate = (
            self.annual_rate_percent / constants.PERCENT / Decimal(self.frequency.periods_per_year)
        )

        self.payment = self._calculate_payment()

        logger.debug(
            "Amortization schedule created: principal=%s, rate=%s%%, "
            "term=%d %s periods, payment=%s",
            self.principal,
            self.annual_rate_percent,
            self.term_periods,
            self.frequency.value,
            self.payment,
        )

    def _calculate_payment(self) -> Decimal:
        """Calculate the fixed periodic payment using the PMT formula.

        Formula: PMT = P * [r(1+r)^n] / [(1+r)^n - 1]
        Where:
            P = principal
            r = periodic interest rate
            n = number of payments
        """
        if self.periodic_rate == 0:
            # No interest - exact division, left unrounded
            return self.principal / Decimal(self.term_periods)

        r = self.periodic_rate
        factor = (Decimal("1") + r) ** self.term_periods
        payment = self.principal * (r * factor) / (factor - Decimal("1"))

        return to_cents(payment)

    def payment_date(self, payment_number: int) -> date:
        """Due date of a payment: start date plus ``payment_number`` periods.

        Each date is computed from the start date rather than from the
        previous payment so that a day clamped in a short month (Jan 31 ->
        Feb 28) does not carry forward.
        """
        if self.start_date is None:
            raise InvalidLoanTermsError("start_date is required to date payments")
        return self.start_date + relativedelta(months=payment_number * self.frequency.months)

    @property
    def end_date(self) -> date:
        """Date of the final payment."""
        return self.payment_date(self.term_periods)

    def generate_full_schedule(self) -> list[PaymentEntry]:
        """Generate the complete amortization schedule.

        Interest is computed on the running balance and rounded to cents
        each period; principal is the payment minus that interest. The final
        period pays off whatever balance is left, so rounding drift lands on
        the last principal portion and the closing balance is exactly zero.

        Returns:
            One scheduled PaymentEntry per period, numbered 1..term_periods
        """
        payment = to_cents(self.payment)
        balance = self.principal
        entries: list[PaymentEntry] = []

        for number in range(1, self.term_periods + 1):
            interest = to_cents(balance * self.periodic_rate)

            if number == self.term_periods:
                principal = balance
            else:
                # Rounded-up payments on tiny balances must not overshoot
                principal = min(payment - interest, balance)

            total = principal + interest
            balance = balance - principal

            entries.append(
                PaymentEntry(
                    sequence_number=number,
                    scheduled_date=self.payment_date(number),
                    principal_portion=principal,
                    interest_portion=interest,
                    total_amount=total,
                    remaining_principal_after=balance,
                )
            )

        logger.debug(
            "Generated %d payments, final payment %s", len(entries), entries[-1].total_amount
        )
        return entries

    def get_total_interest(self) -> Decimal:
        """Total interest paid over the life of the loan."""
        return sum(
            (entry.interest_portion for entry in self.generate_full_schedule()), Decimal("0")
        )

    def simulate_payoff(self, extra_payment: Decimal) -> tuple[int, Decimal]:
        """Walk the balance down with an extra principal amount each period.

        Args:
            extra_payment: Additional principal paid on top of the regular payment

        Returns:
            Tuple of (number of payments until payoff, total interest paid)
        """
        payment = to_cents(self.payment) + extra_payment
        balance = self.principal
        total_interest = Decimal("0")
        periods = 0

        while balance > 0 and periods < self.term_periods:
            periods += 1
            interest = to_cents(balance * self.periodic_rate)
            total_interest += interest
            if periods == self.term_periods:
                balance = Decimal("0")
            else:
                balance -= min(payment - interest, balance)

        return periods, total_interest


def compute_periodic_payment(
    principal: Number,
    annual_rate_percent: Optional[Number],
    term_periods: int,
    frequency: PaymentFrequency = PaymentFrequency.MONTHLY,
) -> Decimal:
    """Fixed periodic payment of an amortizing loan.

    Args:
        principal: Financed amount (positive)
        annual_rate_percent: Nominal annual rate in percent; None means 0
        term_periods: Number of payments (positive)
        frequency: Payment frequency, sets the periodic rate divisor

    Returns:
        Payment rounded to cents, or exactly principal / term_periods when
        the rate is zero

    Raises:
        InvalidLoanTermsError: For non-positive principal or term, or a
            negative rate
    """
    return AmortizationSchedule(
        principal, annual_rate_percent, term_periods, frequency=frequency
    ).payment


def generate_schedule(
    principal: Number,
    annual_rate_percent: Optional[Number],
    term_periods: int,
    start_date: date,
    frequency: PaymentFrequency = PaymentFrequency.MONTHLY,
    loan_type: LoanType = LoanType.AMORTIZING,
) -> list[PaymentEntry]:
    """Generate the payment-by-payment breakdown of a loan.

    Only amortizing loans are computed; the other loan types are modelled
    but have no generator.

    Raises:
        InvalidLoanTermsError: For non-positive principal or term, or a
            negative rate
        UnsupportedLoanTypeError: For bullet, balloon and interest-only loans
    """
    if LoanType(loan_type) != LoanType.AMORTIZING:
        raise UnsupportedLoanTypeError(
            f"Cannot generate a schedule for loan type '{LoanType(loan_type).value}'; "
            "import the lender's schedule instead"
        )
    return AmortizationSchedule(
        principal, annual_rate_percent, term_periods, start_date, frequency
    ).generate_full_schedule()


def compute_end_date(
    start_date: date,
    term_periods: int,
    frequency: PaymentFrequency = PaymentFrequency.MONTHLY,
) -> date:
    """Start date plus ``term_periods`` payment periods."""
    return start_date + relativedelta(months=term_periods * PaymentFrequency(frequency).months)


def summarize_schedule(entries: list[PaymentEntry]) -> ScheduleTotals:
    """Sum principal and interest across payment entries.

    Args:
        entries: Payment entries in sequence order

    Returns:
        ScheduleTotals; periodic_payment is the first entry's total, or None
        for an empty list
    """
    total_interest = sum((e.interest_portion for e in entries), Decimal("0"))
    total_principal = sum((e.principal_portion for e in entries), Decimal("0"))
    return ScheduleTotals(
        periodic_payment=entries[0].total_amount if entries else None,
        total_interest=total_interest,
        total_principal=total_principal,
        total_cost=total_principal + total_interest,
    )


def payoff_with_extra_payment(
    principal: Number,
    annual_rate_percent: Optional[Number],
    term_periods: int,
    extra_payment: Number,
    frequency: PaymentFrequency = PaymentFrequency.MONTHLY,
) -> PayoffComparison:
    """Compare the regular payoff with one that adds extra principal each period.

    Raises:
        InvalidLoanTermsError: For invalid loan terms or a negative extra payment
    """
    extra = _to_decimal(extra_payment, "extra_payment")
    if extra < 0:
        raise InvalidLoanTermsError(f"extra_payment must be non-negative, got {extra}")

    schedule = AmortizationSchedule(
        principal, annual_rate_percent, term_periods, frequency=frequency
    )
    regular_periods, regular_interest = schedule.simulate_payoff(Decimal("0"))
    accelerated_periods, accelerated_interest = schedule.simulate_payoff(extra)

    return PayoffComparison(
        regular_periods=regular_periods,
        regular_interest=regular_interest,
        accelerated_periods=accelerated_periods,
        accelerated_interest=accelerated_interest,
    )


class LoanScenario(NamedTuple):
    """One set of loan terms to compare against others."""

    name: str
    principal: Decimal
    annual_rate_percent: Optional[Decimal]
    term_periods: int
    closing_costs: Decimal = Decimal("0")
    frequency: PaymentFrequency = PaymentFrequency.MONTHLY


class ScenarioResult(NamedTuple):
    """Cost of a scenario and how it stands against the baseline scenario.

    ``break_even_periods`` is the number of payments whose savings cover the
    closing costs; it is 0 without closing costs and None when the scenario
    saves nothing per period.
    """

    scenario: LoanScenario
    periodic_payment: Decimal
    total_payment: Decimal
    total_interest: Decimal
    payment_savings: Decimal
    break_even_periods: Optional[int]
    net_savings: Decimal


def compare_loans(scenarios: list[LoanScenario]) -> list[ScenarioResult]:
    """Compare loan scenarios side by side.

    The first scenario is the baseline (typically the current loan); every
    other scenario is measured against it, e.g. a refinance with closing
    costs. Totals come from the generated schedule, so they include the
    final-period rounding adjustment.

    Args:
        scenarios: At least one scenario; the first is the baseline

    Returns:
        One ScenarioResult per scenario, in input order

    Raises:
        InvalidLoanTermsError: For an empty list, invalid terms or negative
            closing costs
    """
    if not scenarios:
        raise InvalidLoanTermsError("at least one loan scenario is required")

    computed = []
    for scenario in scenarios:
        closing_costs = to_cents(_to_decimal(scenario.closing_costs, "closing_costs"))
        if closing_costs < 0:
            raise InvalidLoanTermsError(
                f"closing_costs must be non-negative, got {closing_costs} ({scenario.name})"
            )
        schedule = AmortizationSchedule(
            scenario.principal,
            scenario.annual_rate_percent,
            scenario.term_periods,
            frequency=scenario.frequency,
        )
        interest = schedule.get_total_interest()
        computed.append((scenario, closing_costs, to_cents(schedule.payment), interest, schedule))

    baseline_payment = computed[0][2]
    results = []
    for scenario, closing_costs, payment, interest, schedule in computed:
        savings = baseline_payment - payment
        if savings <= 0:
            break_even = None if closing_costs > 0 else 0
            net_savings = Decimal("0.00")
        else:
            break_even = int((closing_costs / savings).to_integral_value(rounding=ROUND_CEILING))
            net_savings = savings * schedule.term_periods - closing_costs

        results.append(
            ScenarioResult(
                scenario=scenario,
                periodic_payment=payment,
                total_payment=schedule.principal + interest,
                total_interest=interest,
                payment_savings=savings,
                break_even_periods=break_even,
                net_savings=net_savings,
            )
        )

    logger.debug("Compared %d loan scenarios against '%s'", len(results), scenarios[0].name)
    return results
