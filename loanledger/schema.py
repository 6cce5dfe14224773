"""Pydantic models for loan schedules and their payment entries."""

from datetime import date
from decimal import Decimal
from typing import Any, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from . import constants
from .types import LoanType, PaymentFrequency, PaymentStatus, RateType


class PaymentEntry(BaseModel):
    """One period's expected (and possibly actual) payment within a schedule."""

    id: Optional[str] = Field(None, description="Identifier assigned by the store")
    schedule_id: Optional[str] = Field(None, description="Owning schedule (set when persisted)")
    sequence_number: int = Field(..., description="1-based position in the schedule")
    scheduled_date: date = Field(..., description="Date the payment is due")
    principal_portion: Decimal = Field(Decimal("0"), description="Principal repaid")
    interest_portion: Decimal = Field(Decimal("0"), description="Interest paid")
    total_amount: Decimal = Field(Decimal("0"), description="Scheduled payment amount")
    remaining_principal_after: Decimal = Field(
        Decimal("0"), description="Outstanding principal once this payment is made"
    )
    status: PaymentStatus = Field(PaymentStatus.SCHEDULED, description="Lifecycle state")
    actual_date: Optional[date] = Field(None, description="Date actually paid")
    actual_amount: Optional[Decimal] = Field(None, description="Amount actually paid")
    notes: Optional[str] = Field(None, description="Free-form notes")

    @field_validator("sequence_number")
    @classmethod
    def validate_sequence_number(cls, v: int) -> int:
        """Ensure sequence_number is 1-based."""
        if v < 1:
            raise ValueError("sequence_number must be >= 1")
        return v

    @model_validator(mode="after")
    def validate_actuals(self) -> "PaymentEntry":
        """Actual date and amount only exist on paid entries."""
        if self.status != PaymentStatus.PAID and (
            self.actual_date is not None or self.actual_amount is not None
        ):
            raise ValueError("actual_date and actual_amount are only allowed when status is paid")
        return self

    def is_overdue(self, today: date) -> bool:
        """Whether the entry is past due but still unpaid.

        Overdue is derived at read time; it is never stored as a status.
        """
        return self.status == PaymentStatus.SCHEDULED and self.scheduled_date < today

    def is_balanced(self) -> bool:
        """Whether total_amount equals principal + interest within a cent."""
        drift = self.total_amount - (self.principal_portion + self.interest_portion)
        return abs(drift) <= constants.AMOUNT_TOLERANCE


class LoanTerms(BaseModel):
    """Validated input for generating an amortizing schedule."""

    principal: Decimal = Field(..., description="Financed amount")
    rate: Optional[Decimal] = Field(None, description="Nominal annual rate in percent")
    term_periods: int = Field(..., description="Number of payments")
    start_date: date = Field(..., description="Schedule start; first payment is one period later")
    frequency: PaymentFrequency = Field(PaymentFrequency.MONTHLY, description="Payment frequency")
    loan_type: LoanType = Field(LoanType.AMORTIZING, description="Repayment shape")
    rate_type: RateType = Field(RateType.FIXED, description="Rate behaviour")
    notes: Optional[str] = Field(None, description="Free-form notes")

    @field_validator("principal")
    @classmethod
    def validate_principal_positive(cls, v: Decimal) -> Decimal:
        """Ensure principal is positive."""
        if v <= 0:
            raise ValueError("principal must be positive")
        return v

    @field_validator("rate")
    @classmethod
    def validate_rate_nonnegative(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        """Ensure rate is non-negative if provided."""
        if v is not None and v < 0:
            raise ValueError("rate must be non-negative")
        return v

    @field_validator("term_periods")
    @classmethod
    def validate_term_positive(cls, v: int) -> int:
        """Ensure term_periods is positive."""
        if v <= 0:
            raise ValueError("term_periods must be positive")
        return v


class LoanSchedule(BaseModel):
    """One liability's loan terms, derived totals and progress counters.

    ``payments_made``, ``next_due_date`` and ``remaining_principal`` are a
    cached projection of the payment entries; only the reconciliation
    functions write them.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: Optional[str] = Field(None, description="Identifier assigned by the store")
    liability_id: str = Field(..., description="Owning liability")
    loan_type: LoanType = Field(LoanType.AMORTIZING, description="Repayment shape")
    principal: Decimal = Field(..., description="Original financed amount")
    rate: Optional[Decimal] = Field(None, description="Nominal annual rate in percent")
    rate_type: RateType = Field(RateType.FIXED, description="Rate behaviour")
    start_date: date = Field(..., description="Schedule start date")
    end_date: date = Field(..., description="Date of the final payment")
    term_periods: int = Field(..., description="Number of payments")
    frequency: PaymentFrequency = Field(PaymentFrequency.MONTHLY, description="Payment frequency")
    periodic_payment: Optional[Decimal] = Field(None, description="Regular payment amount")
    total_interest: Optional[Decimal] = Field(None, description="Interest over the whole term")
    total_cost: Optional[Decimal] = Field(None, description="Principal plus total interest")
    payments_made: int = Field(0, description="Entries in state paid")
    next_due_date: Optional[date] = Field(None, description="Earliest scheduled entry")
    remaining_principal: Optional[Decimal] = Field(
        None, description="Balance after the last paid entry"
    )
    imported_raw: Optional[list[dict[str, Any]]] = Field(
        None, description="Snapshot of the parsed import rows (audit only)"
    )
    is_imported: bool = Field(False, description="Created by the import parser")
    notes: Optional[str] = Field(None, description="Free-form notes")

    @field_validator("liability_id")
    @classmethod
    def validate_liability_id(cls, v: str) -> str:
        """Ensure liability_id is not empty."""
        if not v or not v.strip():
            raise ValueError("liability_id cannot be empty")
        return v

    @field_validator("principal")
    @classmethod
    def validate_principal_positive(cls, v: Decimal) -> Decimal:
        """Ensure principal is positive."""
        if v <= 0:
            raise ValueError("principal must be positive")
        return v

    @field_validator("rate")
    @classmethod
    def validate_rate_nonnegative(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        """Ensure rate is non-negative if provided."""
        if v is not None and v < 0:
            raise ValueError("rate must be non-negative")
        return v

    @field_validator("term_periods")
    @classmethod
    def validate_term_positive(cls, v: int) -> int:
        """Ensure term_periods is positive."""
        if v <= 0:
            raise ValueError("term_periods must be positive")
        return v

    @field_validator("payments_made")
    @classmethod
    def validate_payments_made(cls, v: int) -> int:
        """Ensure payments_made is not negative."""
        if v < 0:
            raise ValueError("payments_made must be non-negative")
        return v


class ScheduleProgress(NamedTuple):
    """Progress counters derived from a schedule's payment entries."""

    payments_made: int
    next_due_date: Optional[date]
    remaining_principal: Decimal


class LedgerConfig(BaseModel):
    """Global configuration for loanledger."""

    store_path: str = Field(
        constants.DEFAULT_STORE_FILENAME, description="YAML file holding schedules"
    )
    default_currency: str = Field(constants.DEFAULT_CURRENCY, description="Currency for export")
    default_frequency: PaymentFrequency = Field(
        PaymentFrequency.MONTHLY, description="Frequency used when none is given"
    )
    upcoming_limit: int = Field(
        constants.DEFAULT_UPCOMING_LIMIT, description="Rows shown by 'upcoming'"
    )
    liability_account: str = Field(
        constants.DEFAULT_LIABILITY_ACCOUNT, description="Account credited by principal"
    )
    interest_account: str = Field(
        constants.DEFAULT_INTEREST_ACCOUNT, description="Account charged with interest"
    )
    payment_account: str = Field(
        constants.DEFAULT_PAYMENT_ACCOUNT, description="Account the payment leaves from"
    )

    @field_validator("upcoming_limit")
    @classmethod
    def validate_upcoming_limit(cls, v: int) -> int:
        """Ensure upcoming_limit is positive."""
        if v < 1:
            raise ValueError("upcoming_limit must be at least 1")
        return v
