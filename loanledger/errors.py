"""Exception hierarchy for loanledger."""


class LoanLedgerError(Exception):
    """Base exception for all loanledger errors."""


class InvalidLoanTermsError(LoanLedgerError, ValueError):
    """Raised when principal, rate or term cannot produce a schedule."""


class UnsupportedLoanTypeError(LoanLedgerError, ValueError):
    """Raised when a schedule is requested for a loan type the generator does not compute."""


class ScheduleImportError(LoanLedgerError, ValueError):
    """Raised when an imported schedule file cannot be used at all."""


class MissingDateColumnError(ScheduleImportError):
    """Raised when no header cell identifies a date column."""


class NoValidRowsError(ScheduleImportError):
    """Raised when every data row was skipped during import."""


class InvalidStatusTransitionError(LoanLedgerError, ValueError):
    """Raised when a payment entry is moved out of a terminal state."""


class ConfigurationError(LoanLedgerError):
    """Raised when configuration is invalid or missing."""


class StorageError(LoanLedgerError):
    """Raised when the persistence layer fails."""


class ScheduleNotFoundError(StorageError):
    """Raised when a referenced schedule does not exist."""


class PaymentEntryNotFoundError(StorageError):
    """Raised when a referenced payment entry does not exist."""


class DuplicateScheduleError(StorageError):
    """Raised when a liability already owns a schedule."""
