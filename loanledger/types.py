"""Type definitions and enums for loanledger."""

from enum import Enum


class LoanType(str, Enum):
    """Repayment shape of a loan."""

    AMORTIZING = "amortizing"
    BULLET = "bullet"
    BALLOON = "balloon"
    INTEREST_ONLY = "interest_only"


class RateType(str, Enum):
    """How the nominal rate behaves over the life of the loan."""

    FIXED = "fixed"
    VARIABLE = "variable"
    CAPPED = "capped"


class PaymentFrequency(str, Enum):
    """Payment frequency for a loan schedule."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMI_ANNUAL = "semi_annual"
    ANNUAL = "annual"

    @property
    def months(self) -> int:
        """Number of calendar months between two payments."""
        return _MONTHS_PER_PERIOD[self]

    @property
    def periods_per_year(self) -> int:
        """Number of payments in a year (divisor for the periodic rate)."""
        return 12 // _MONTHS_PER_PERIOD[self]


_MONTHS_PER_PERIOD = {
    PaymentFrequency.MONTHLY: 1,
    PaymentFrequency.QUARTERLY: 3,
    PaymentFrequency.SEMI_ANNUAL: 6,
    PaymentFrequency.ANNUAL: 12,
}


class PaymentStatus(str, Enum):
    """Lifecycle state of a single payment entry.

    ``scheduled`` is the initial state; ``paid`` and ``missed`` are terminal.
    """

    SCHEDULED = "scheduled"
    PAID = "paid"
    MISSED = "missed"


class ColumnRole(str, Enum):
    """Meaning of a column in an imported bank schedule.

    Declaration order is the detection priority.
    """

    DATE = "date"
    PAYMENT = "payment"
    PRINCIPAL = "principal"
    INTEREST = "interest"
    BALANCE = "balance"
