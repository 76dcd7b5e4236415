"""Statement-period extraction and the already-processed check.

A statement period is the ``(month, year)`` a file covers, combined with
the bank into a :class:`StatementPeriodKey`. When the key of an incoming
upload is already present among the keys derived from persisted
transactions, the upload can be skipped before any parsing or model call.

Public API:
    - :func:`extract_period_from_filename`
    - :func:`extract_period_from_content`
    - :func:`extract_statement_period`
    - :func:`period_key`
    - :func:`existing_period_keys`
    - :func:`is_period_processed`
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any, Literal

from .models import CanonicalTransaction, StatementPeriod, StatementPeriodKey
from .normalizers import month_number, parse_date

# Only the head of a document is scanned; the period is printed on the
# first page header.
CONTENT_SCAN_LIMIT = 2000

_WORD_RE = re.compile(r"[a-záéíóúñ]+")
_YEAR_RE = re.compile(r"(?<!\d)(20\d{2})(?!\d)")
_MONTH_YEAR_RE = re.compile(r"(?<!\d)(0?[1-9]|1[0-2])[/\-_.](20\d{2})(?!\d)")
_YEAR_MONTH_RE = re.compile(r"(?<!\d)(20\d{2})[/\-_.](0?[1-9]|1[0-2])(?!\d)")
_PERIODO_RE = re.compile(r"periodo[:\s]+([a-záéíóúñ]+)\.?\s+(?:del?\s+)?(20\d{2})(?!\d)")


def _first_month_name(text: str) -> int | None:
    for m in _WORD_RE.finditer(text):
        month = month_number(m.group(0))
        if month is not None:
            return month
    return None


def _numeric_period(text: str) -> tuple[int, int] | None:
    m = _MONTH_YEAR_RE.search(text)
    if m:
        return int(m.group(1)), int(m.group(2))
    m = _YEAR_MONTH_RE.search(text)
    if m:
        return int(m.group(2)), int(m.group(1))
    return None


def _extract(text: str, source: Literal["filename", "content"]) -> StatementPeriod:
    month = _first_month_name(text)
    year_match = _YEAR_RE.search(text)
    year = int(year_match.group(1)) if year_match else None

    numeric = _numeric_period(text)
    if numeric is not None:
        n_month, n_year = numeric
        if month is None:
            month, year = n_month, n_year
        elif year is None:
            year = n_year

    found = month is not None or year is not None
    return StatementPeriod(month=month, year=year, source=source if found else None)


def extract_period_from_filename(filename: str) -> StatementPeriod:
    """Return the period named in ``filename``.

    >>> extract_period_from_filename("BBVA_Septiembre_2024.pdf")
    StatementPeriod(month=9, year=2024, source='filename')
    """

    return _extract((filename or "").lower(), "filename")


def extract_period_from_content(text: str | None) -> StatementPeriod:
    head = (text or "")[:CONTENT_SCAN_LIMIT].lower()
    m = _PERIODO_RE.search(head)
    if m:
        month = month_number(m.group(1))
        if month is not None:
            return StatementPeriod(month=month, year=int(m.group(2)), source="content")
    return _extract(head, "content")


def extract_statement_period(filename: str, content: str | None = None) -> StatementPeriod:
    """Combine both sources: filename values first, gaps filled from content."""

    from_name = extract_period_from_filename(filename)
    if from_name.is_complete or not content:
        return from_name
    from_content = extract_period_from_content(content)
    month = from_name.month if from_name.month is not None else from_content.month
    year = from_name.year if from_name.year is not None else from_content.year
    source = from_name.source or from_content.source
    return StatementPeriod(month=month, year=year, source=source)


def period_key(year: int, month: int, bank: str | None) -> StatementPeriodKey:
    return StatementPeriodKey(year=year, month=month, bank=(bank or "").strip().lower())


def _date_and_bank(tx: CanonicalTransaction | Mapping[str, Any]) -> tuple[str | None, str | None]:
    if isinstance(tx, CanonicalTransaction):
        return tx.date, tx.bank
    return tx.get("date"), tx.get("bank")


def existing_period_keys(
    transactions: Iterable[CanonicalTransaction | Mapping[str, Any]],
) -> set[StatementPeriodKey]:
    """Derive the set of period keys covered by persisted transactions.

    Transactions whose date cannot be parsed contribute nothing.
    """

    keys: set[StatementPeriodKey] = set()
    for tx in transactions:
        raw_date, bank = _date_and_bank(tx)
        d = parse_date(raw_date)
        if d is None:
            continue
        keys.add(period_key(d.year, d.month, bank))
    return keys


def is_period_processed(
    existing: Iterable[CanonicalTransaction | Mapping[str, Any]],
    year: int | None,
    month: int | None,
    bank: str | None,
) -> bool:
    if not month or not year:
        return False
    return period_key(year, month, bank) in existing_period_keys(existing)


__all__ = [
    "CONTENT_SCAN_LIMIT",
    "extract_period_from_filename",
    "extract_period_from_content",
    "extract_statement_period",
    "period_key",
    "existing_period_keys",
    "is_period_processed",
]
