"""Parser for payment schedules exported by banks.

Bank exports have no fixed schema: the delimiter, the column order and the
date format vary from lender to lender. The parser classifies header cells by
keyword into a small set of column roles, then reads every data row through
that column map. Rows that cannot be dated are dropped rather than failing
the import, because partial and messy files are the norm.

Example input::

    Nr;Payment Date;Payment;Principal;Interest;Remaining Balance
    1;15/04/2021;1835.98;935.98;900.00;239064.02
    2;15/05/2021;1835.98;939.49;896.49;238124.53
"""

import logging
import re
import statistics
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional, Union

from dateutil import parser as date_parser

from . import constants
from .errors import MissingDateColumnError, NoValidRowsError
from .schema import PaymentEntry
from .types import ColumnRole, PaymentFrequency

logger = logging.getLogger(__name__)

_YEAR_FIRST_RE = re.compile(r"^(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})(?:[T ].*)?$")
_DAY_FIRST_RE = re.compile(r"^(\d{1,2})[-/.](\d{1,2})[-/.](\d{4})(?:[T ].*)?$")
_HAS_LETTERS_RE = re.compile(r"[A-Za-z]")
_HAS_YEAR_RE = re.compile(r"\b\d{4}\b")
_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")
_LEADING_NUMBER_RE = re.compile(r"^-?(?:\d+(?:\.\d*)?|\.\d+)")


@dataclass(frozen=True)
class ColumnMap:
    """Index of each column role in the header row (None when absent)."""

    date: int
    payment: Optional[int] = None
    principal: Optional[int] = None
    interest: Optional[int] = None
    balance: Optional[int] = None


def split_cells(line: str) -> list[str]:
    """Split one row on any supported delimiter and strip quoting."""
    cells = re.split(constants.CELL_DELIMITERS, line)
    return [_strip_quotes(cell.strip()).strip() for cell in cells]


def _strip_quotes(cell: str) -> str:
    for quote in constants.QUOTE_CHARS:
        cell = cell.replace(quote, "")
    return cell


def _matches(cell: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword in cell for keyword in keywords)


def _classify(cell: str) -> set[ColumnRole]:
    """Return every role a header cell qualifies for."""
    roles = set()
    if _matches(cell, constants.DATE_KEYWORDS):
        roles.add(ColumnRole.DATE)
    if _matches(cell, constants.PAYMENT_KEYWORDS) and not (
        _matches(cell, constants.PRINCIPAL_KEYWORDS) or _matches(cell, constants.INTEREST_KEYWORDS)
    ):
        roles.add(ColumnRole.PAYMENT)
    if _matches(cell, constants.PRINCIPAL_KEYWORDS):
        roles.add(ColumnRole.PRINCIPAL)
    if _matches(cell, constants.INTEREST_KEYWORDS):
        roles.add(ColumnRole.INTEREST)
    if _matches(cell, constants.BALANCE_KEYWORDS):
        roles.add(ColumnRole.BALANCE)
    return roles


def detect_columns(header_cells: list[str]) -> ColumnMap:
    """Map column roles to header positions.

    Roles are assigned in priority order (date, payment, principal,
    interest, balance). Each role takes the first header cell that qualifies
    and is not already taken, so "Payment Date" is the date column and never
    the payment column, and "Remaining Principal" can still serve as the
    balance when an earlier "Principal" column exists.

    Args:
        header_cells: Header row cells (case is ignored)

    Returns:
        ColumnMap with the date index and any optional indices found

    Raises:
        MissingDateColumnError: If no header cell contains "date"
    """
    candidates = [_classify(cell.lower()) for cell in header_cells]
    found: dict[ColumnRole, int] = {}
    for role in ColumnRole:
        for idx, roles in enumerate(candidates):
            if role in roles and idx not in found.values():
                found[role] = idx
                break

    if ColumnRole.DATE not in found:
        raise MissingDateColumnError(
            "Could not find date column. Please include a column with \"date\" in the header."
        )

    column_map = ColumnMap(**{role.value: idx for role, idx in found.items()})
    logger.debug("Detected import columns: %s", column_map)
    return column_map


def parse_date_token(token: str) -> Optional[date]:
    """Parse a date cell from a bank export.

    Supported shapes:
        2024-03-15, 2024/03/15, 2024.03.15   (4-digit year first)
        15/03/2024, 15-03-2024, 15.03.2024   (4-digit year last, day first)
        15 Mar 2024, 15 March 2024           (month names with a 4-digit year)

    Returns:
        The date, or None when the token is not a recognisable date
    """
    token = token.strip()
    if not token:
        return None

    match = _YEAR_FIRST_RE.match(token)
    if match:
        year, month, day = match.groups()
        return _safe_date(int(year), int(month), int(day))

    match = _DAY_FIRST_RE.match(token)
    if match:
        day, month, year = match.groups()
        return _safe_date(int(year), int(month), int(day))

    if _HAS_LETTERS_RE.search(token) and _HAS_YEAR_RE.search(token):
        try:
            return date_parser.parse(token, dayfirst=True).date()
        except (ValueError, OverflowError):
            return None

    return None


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_amount(cell: Optional[str]) -> Decimal:
    """Read a money amount from a cell.

    Every character other than digits, '.' and '-' is removed (currency
    symbols, thousands separators, spaces), then the longest leading decimal
    number is read. Anything unreadable is zero.
    """
    if not cell:
        return Decimal("0")
    match = _LEADING_NUMBER_RE.match(_NON_NUMERIC_RE.sub("", cell))
    if match is None:
        return Decimal("0")
    try:
        return Decimal(match.group(0))
    except InvalidOperation:
        return Decimal("0")


def _cell(cells: list[str], idx: Optional[int]) -> Optional[str]:
    if idx is None or idx >= len(cells):
        return None
    return cells[idx]


def parse_import_file(raw_text: str) -> list[PaymentEntry]:
    """Parse a delimited bank schedule into payment entries.

    Args:
        raw_text: Full text of the file, header row first

    Returns:
        Scheduled PaymentEntry objects numbered 1..N in file order

    Raises:
        MissingDateColumnError: If the header has no date column
        NoValidRowsError: If no data row could be parsed
    """
    lines = raw_text.lstrip("\ufeff").strip().splitlines()
    header = split_cells(lines[0]) if lines else []
    columns = detect_columns(header)

    has_payment = columns.payment is not None
    has_principal = columns.principal is not None

    entries: list[PaymentEntry] = []
    skipped = 0

    for line_number, line in enumerate(lines[1:], start=2):
        cells = split_cells(line)
        if len(cells) < constants.MIN_CELLS_PER_ROW:
            continue

        scheduled_date = parse_date_token(_cell(cells, columns.date) or "")
        if scheduled_date is None:
            logger.debug("Skipping line %d: unparseable date %r", line_number, line)
            skipped += 1
            continue

        total = parse_amount(_cell(cells, columns.payment))
        interest = parse_amount(_cell(cells, columns.interest))
        if has_principal:
            principal = parse_amount(_cell(cells, columns.principal))
        elif has_payment:
            principal = total - interest
        else:
            principal = Decimal("0")

        if not has_payment or total == 0:
            total = principal + interest

        entries.append(
            PaymentEntry(
                # Position among parsed rows; any numbering in the file is ignored
                sequence_number=len(entries) + 1,
                scheduled_date=scheduled_date,
                principal_portion=principal,
                interest_portion=interest,
                total_amount=total,
                remaining_principal_after=parse_amount(_cell(cells, columns.balance)),
            )
        )

    if not entries:
        raise NoValidRowsError("No valid payment rows found in the file")

    logger.info("Parsed %d payment rows (%d skipped)", len(entries), skipped)
    return entries


def parse_import_path(path: Union[str, Path]) -> list[PaymentEntry]:
    """Read a schedule file from disk and parse it.

    A UTF-8 byte order mark, as written by spreadsheet exports, is ignored.
    """
    text = Path(path).read_text(encoding="utf-8-sig")
    return parse_import_file(text)


def infer_frequency(dates: list[date]) -> PaymentFrequency:
    """Guess the payment frequency from the median gap between payment dates.

    Falls back to monthly when there are fewer than two dates or the gap
    matches no known frequency.
    """
    ordered = sorted(dates)
    gaps = [(later - earlier).days for earlier, later in zip(ordered, ordered[1:])]
    if not gaps:
        return PaymentFrequency.MONTHLY

    median_gap = statistics.median(gaps)
    ranges = (
        (constants.MONTHLY_GAP_RANGE, PaymentFrequency.MONTHLY),
        (constants.QUARTERLY_GAP_RANGE, PaymentFrequency.QUARTERLY),
        (constants.SEMIANNUAL_GAP_RANGE, PaymentFrequency.SEMI_ANNUAL),
        (constants.YEARLY_GAP_RANGE, PaymentFrequency.ANNUAL),
    )
    for (low, high), frequency in ranges:
        if low <= median_gap <= high:
            return frequency

    logger.debug("No frequency matches median gap of %s days, assuming monthly", median_gap)
    return PaymentFrequency.MONTHLY
