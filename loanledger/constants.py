"""
Global constants for loanledger.

This module centralizes magic strings, thresholds, and default values
shared by the calculator, the import parser and the CLI.
"""

from decimal import Decimal

# ============================================================================
# Files and Environment
# ============================================================================

DEFAULT_CONFIG_FILENAME = "loanledger.config.yaml"
DEFAULT_STORE_FILENAME = "loanledger.yaml"
STORE_FILE_VERSION = "1.0"

ENV_CONFIG_FILE = "LOANLEDGER_CONFIG"
ENV_STORE_FILE = "LOANLEDGER_STORE"

# ============================================================================
# Financial/Decimal Constants
# ============================================================================

CENTS_PRECISION = Decimal("0.01")  # Currency rounding precision
ZERO_AMOUNT = Decimal("0")
PERCENT = Decimal("100")
AMOUNT_TOLERANCE = Decimal("0.01")  # Allowed drift between total and P+I

# ============================================================================
# Import Parser
# ============================================================================

# Any of these characters separates cells; rows may mix them
CELL_DELIMITERS = r"[,;\t]"
QUOTE_CHARS = "'\""
MIN_CELLS_PER_ROW = 2

# Header keywords per column role (substring match on the lower-cased cell)
DATE_KEYWORDS = ("date",)
PAYMENT_KEYWORDS = ("payment",)
PRINCIPAL_KEYWORDS = ("principal",)
INTEREST_KEYWORDS = ("interest",)
BALANCE_KEYWORDS = ("balance", "remaining")

# Frequency inference gap ranges (in days, inclusive)
MONTHLY_GAP_RANGE = (25, 35)
QUARTERLY_GAP_RANGE = (85, 95)
SEMIANNUAL_GAP_RANGE = (175, 190)
YEARLY_GAP_RANGE = (355, 375)

# ============================================================================
# Defaults
# ============================================================================

DEFAULT_CURRENCY = "EUR"
DEFAULT_UPCOMING_LIMIT = 5
DEFAULT_LIABILITY_ACCOUNT = "Liabilities:Loans"
DEFAULT_INTEREST_ACCOUNT = "Expenses:Interest"
DEFAULT_PAYMENT_ACCOUNT = "Assets:Bank:Checking"
IMPORT_NOTES_TEMPLATE = "Imported from {source}"

# Beancount flags for exported payments
CLEARED_FLAG = "*"
FORECAST_FLAG = "#"

