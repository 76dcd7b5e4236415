"""Record-level duplicate detection.

Public surface:
- ``fingerprint``: normalized ``date|description|amount|type`` key for one
  transaction; stable under casing and surrounding-whitespace differences.
- ``fingerprint_transaction``: the same key for a canonical transaction or a
  store record mapping.
- ``filter_duplicates``: split candidates into fresh ones and a duplicate
  count against existing persisted transactions. Repeats within one upload
  are kept; only the store may reject them.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal
from typing import Any, NamedTuple

from .models import CanonicalTransaction
from .normalizers import format_unsigned, parse_amount

# Descriptions longer than this compare equal on their prefix.
FINGERPRINT_DESCRIPTION_LENGTH = 100


def _amount_part(amount: Any) -> str:
    try:
        return format_unsigned(parse_amount(amount))
    except ValueError:
        return str(amount).strip()


def fingerprint(date: str, description: str, amount: str | Decimal | float, type: str) -> str:
    """Return the duplicate-detection key for one transaction.

    >>> fingerprint(" 2024-01-01 ", "Supermercado X ", "-45.2", "Expense")
    '2024-01-01|supermercado x|45.20|expense'
    """

    desc = (description or "").strip().lower()[:FINGERPRINT_DESCRIPTION_LENGTH]
    return "|".join(
        [
            (date or "").strip(),
            desc,
            _amount_part(amount),
            (type or "").strip().lower(),
        ]
    )


def fingerprint_transaction(tx: CanonicalTransaction | Mapping[str, Any]) -> str:
    if isinstance(tx, CanonicalTransaction):
        return fingerprint(tx.date, tx.description, tx.amount, tx.type)
    return fingerprint(
        str(tx.get("date") or ""),
        str(tx.get("description") or ""),
        tx.get("amount") if tx.get("amount") is not None else "",
        str(tx.get("type") or ""),
    )


def fingerprint_digest(fp: str) -> str:
    """SHA-256 hex digest of a fingerprint, for fixed-width storage columns."""

    return hashlib.sha256(fp.encode("utf-8")).hexdigest()


class DuplicateFilterResult(NamedTuple):
    fresh: list[CanonicalTransaction]
    duplicate_count: int


def filter_duplicates(
    candidates: Sequence[CanonicalTransaction],
    existing: Iterable[CanonicalTransaction | Mapping[str, Any]],
) -> DuplicateFilterResult:
    seen = {fingerprint_transaction(tx) for tx in existing}
    fresh: list[CanonicalTransaction] = []
    duplicates = 0
    for tx in candidates:
        fp = fingerprint_transaction(tx)
        if fp in seen:
            duplicates += 1
            continue
        fresh.append(tx)
    return DuplicateFilterResult(fresh=fresh, duplicate_count=duplicates)


__all__ = [
    "FINGERPRINT_DESCRIPTION_LENGTH",
    "DuplicateFilterResult",
    "fingerprint",
    "fingerprint_transaction",
    "fingerprint_digest",
    "filter_duplicates",
]
