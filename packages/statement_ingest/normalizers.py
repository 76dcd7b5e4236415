"""Amount, date and record normalization.

Turns parser output (:class:`RawExtractedRecord` plus its
:class:`Classification`) into :class:`CanonicalTransaction` candidates:

- amounts become unsigned two-decimal strings, the direction moving into
  ``type`` (non-negative ⇒ income, negative ⇒ expense);
- dates become ISO ``YYYY-MM-DD`` when they parse as one of the supported
  day-first, year-first or month-name forms; anything else is kept verbatim
  (stripped);
- descriptions are stripped and capped at 500 characters.

Also exposes the month-name table shared with the statement-period
extractor.
"""

from __future__ import annotations

import re
from datetime import date as _date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .models import CanonicalTransaction, Classification, RawExtractedRecord, TransactionType

MAX_DESCRIPTION_LENGTH = 500

# ---------------------------------------------------------------------------
# Month names (Spanish and English, full and abbreviated)
# ---------------------------------------------------------------------------

MONTH_NAMES: dict[str, int] = {
    # Spanish
    "enero": 1,
    "ene": 1,
    "febrero": 2,
    "feb": 2,
    "marzo": 3,
    "mar": 3,
    "abril": 4,
    "abr": 4,
    "mayo": 5,
    "may": 5,
    "junio": 6,
    "jun": 6,
    "julio": 7,
    "jul": 7,
    "agosto": 8,
    "ago": 8,
    "septiembre": 9,
    "setiembre": 9,
    "sep": 9,
    "sept": 9,
    "octubre": 10,
    "oct": 10,
    "noviembre": 11,
    "nov": 11,
    "diciembre": 12,
    "dic": 12,
    # English (abbreviations shared with Spanish are listed once above)
    "january": 1,
    "jan": 1,
    "february": 2,
    "march": 3,
    "april": 4,
    "apr": 4,
    "june": 6,
    "july": 7,
    "august": 8,
    "aug": 8,
    "september": 9,
    "october": 10,
    "november": 11,
    "december": 12,
    "dec": 12,
}


def month_number(token: str) -> int | None:
    return MONTH_NAMES.get(token.strip().lower().rstrip("."))


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------

_NON_NUMERIC_RE = re.compile(r"[^\d.,+\-]")
_DECIMAL_TAIL_RE = re.compile(r"[.,](\d{1,2})$")


def parse_amount(raw: str | int | float | Decimal) -> Decimal:
    """Parse a signed amount from a number or free-form string.

    Strings may carry currency symbols or codes, thousands separators,
    surrounding parentheses (negative) or a trailing minus. The right-most
    ``.`` or ``,`` followed by one or two digits is the decimal point; every
    other separator is a thousands separator. Raises ``ValueError`` for
    anything that does not yield a finite number.

    >>> parse_amount("$1,234.56")
    Decimal('1234.56')
    >>> parse_amount("(1.234,5)")
    Decimal('-1234.5')
    """

    if isinstance(raw, bool):
        raise ValueError(f"invalid amount: {raw!r}")
    if isinstance(raw, Decimal):
        d = raw
    elif isinstance(raw, int | float):
        d = Decimal(str(raw))
    elif isinstance(raw, str):
        d = _parse_amount_text(raw)
    else:
        raise ValueError(f"invalid amount: {raw!r}")
    if not d.is_finite():
        raise ValueError(f"amount is not finite: {raw!r}")
    return d


def _parse_amount_text(raw: str) -> Decimal:
    s = raw.strip()
    if not s:
        raise ValueError("amount is empty")
    negative = False
    if s.startswith("(") and s.endswith(")"):
        negative = True
        s = s[1:-1]
    s = _NON_NUMERIC_RE.sub("", s)
    if s.endswith("-"):
        negative = True
        s = s[:-1]
    while s[:1] in ("+", "-"):
        if s[0] == "-":
            negative = True
        s = s[1:]
    if not s or any(c in "+-" for c in s):
        raise ValueError(f"invalid amount: {raw!r}")

    tail = _DECIMAL_TAIL_RE.search(s)
    if tail is not None:
        whole = s[: tail.start()].replace(".", "").replace(",", "")
        s = f"{whole or '0'}.{tail.group(1)}"
    else:
        s = s.replace(".", "").replace(",", "")

    try:
        d = Decimal(s)
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {raw!r}") from exc
    return -d if negative else d


def format_unsigned(d: Decimal) -> str:
    # Exactly two decimals; ASCII dot; never negative.
    q = abs(d).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{q:.2f}"


def transaction_type(amount: Decimal) -> TransactionType:
    return "expense" if amount < 0 else "income"


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

_YMD_RE = re.compile(r"^(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})(?:[T\s].*)?$")
_DMY_RE = re.compile(r"^(\d{1,2})[-/.](\d{1,2})[-/.](\d{2}|\d{4})(?:\s.*)?$")
_D_MON_Y_RE = re.compile(r"^(\d{1,2})[\s\-/.]+([A-Za-zÁÉÍÓÚáéíóú]+)\.?[\s\-/.]+(\d{2}|\d{4})$")


def _full_year(y: str) -> int:
    return 2000 + int(y) if len(y) == 2 else int(y)


def _iso(year: int, month: int, day: int) -> str | None:
    try:
        return _date(year, month, day).isoformat()
    except ValueError:
        return None


def parse_date(raw: str | None) -> _date | None:
    """Return a :class:`datetime.date` for supported forms, else ``None``.

    Supported: ``YYYY-MM-DD`` (optionally followed by a time), ``YYYY/MM/DD``,
    day-first ``DD/MM/YYYY``, ``DD-MM-YY`` and ``DD.MM.YYYY``, and
    ``DD MON YYYY`` with Spanish or English month names.
    """

    iso = normalize_date(raw)
    try:
        return _date.fromisoformat(iso)
    except ValueError:
        return None


def normalize_date(raw: str | None) -> str:
    """Return ``raw`` as ISO ``YYYY-MM-DD`` when parseable, else stripped."""

    s = (raw or "").strip()
    if not s:
        return ""
    m = _YMD_RE.match(s)
    if m:
        return _iso(int(m.group(1)), int(m.group(2)), int(m.group(3))) or s
    m = _DMY_RE.match(s)
    if m:
        return _iso(_full_year(m.group(3)), int(m.group(2)), int(m.group(1))) or s
    m = _D_MON_Y_RE.match(s)
    if m:
        month = month_number(m.group(2))
        if month is not None:
            return _iso(_full_year(m.group(3)), month, int(m.group(1))) or s
    return s


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


def canonicalize(
    record: RawExtractedRecord,
    classification: Classification,
    *,
    currency: str,
    bank: str | None = None,
) -> CanonicalTransaction:
    """Build an unsaved :class:`CanonicalTransaction` candidate."""

    return CanonicalTransaction(
        date=normalize_date(record.date),
        description=" ".join(record.description.split())[:MAX_DESCRIPTION_LENGTH],
        amount=format_unsigned(record.amount),
        type=transaction_type(record.amount),
        category=classification.category,
        merchant=classification.merchant,
        currency=currency,
        bank=bank,
    )


__all__ = [
    "MAX_DESCRIPTION_LENGTH",
    "MONTH_NAMES",
    "month_number",
    "parse_amount",
    "format_unsigned",
    "transaction_type",
    "parse_date",
    "normalize_date",
    "canonicalize",
]
