"""Data models for ``statement_ingest``.

- :class:`RawExtractedRecord`: what a parser pulls out of a file (signed
  amount, free-form date). Ephemeral, never persisted directly.
- :class:`Classification`: validated category/merchant decision attached 1:1
  to a raw record, whether produced by the model or by the fallback rules.
- :class:`CanonicalTransaction`: the persisted ledger row. The pipeline only
  builds candidates (``id``/``created_at`` unset); the store owns them after
  insertion.
- :class:`StatementPeriodKey`, :class:`InsertResult`, :class:`UploadResult`:
  small value types passed between the detector, the store and the caller.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Literal, NamedTuple

from pydantic import BaseModel, ConfigDict, field_validator

type TransactionType = Literal["income", "expense"]


@dataclass(frozen=True, slots=True)
class RawExtractedRecord:
    date: str
    description: str
    amount: Decimal


class Classification(BaseModel):
    """Typed, validated categorization decision for one transaction.

    ``confidence`` is clamped into ``[0, 1]`` rather than rejected because
    model replies occasionally drift outside the range; ``tags`` are
    normalized to a tuple of non-blank strings.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", str_strip_whitespace=True)

    category: str
    merchant: str
    subcategory: str | None = None
    confidence: float
    tags: tuple[str, ...] = ()

    @field_validator("category", "merchant")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("must be a non-empty string")
        return v

    @field_validator("subcategory")
    @classmethod
    def _blank_subcategory_is_none(cls, v: str | None) -> str | None:
        return v or None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v: object) -> float:
        fv = float(v)  # type: ignore[arg-type]
        if math.isnan(fv):
            raise ValueError("confidence must be a number")
        return min(1.0, max(0.0, fv))

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, v: object) -> tuple[str, ...]:
        if v is None:
            return ()
        if isinstance(v, str):
            v = [v]
        return tuple(s.strip() for s in v if isinstance(s, str) and s.strip())  # type: ignore[union-attr]


@dataclass(frozen=True, slots=True)
class CanonicalTransaction:
    """A sign-normalized, currency-tagged ledger row.

    ``amount`` is an unsigned decimal string with two places; the direction
    lives in ``type``.
    """

    date: str
    description: str
    amount: str
    type: TransactionType
    category: str
    merchant: str
    currency: str
    bank: str | None = None
    id: str | None = None
    created_at: datetime | None = None

    def to_record(self) -> dict[str, object]:
        """Return the JSON-friendly payload sent to a record store."""

        out: dict[str, object] = {
            "date": self.date,
            "description": self.description,
            "amount": self.amount,
            "type": self.type,
            "category": self.category,
            "merchant": self.merchant,
            "currency": self.currency,
        }
        if self.bank:
            out["bank"] = self.bank
        return out


class StatementPeriodKey(NamedTuple):
    year: int
    month: int
    bank: str


class InsertResult(NamedTuple):
    saved: list[CanonicalTransaction]
    duplicates: int
    skipped: int


class ParsedStatement(NamedTuple):
    """Parser output: raw records aligned 1:1 with their classifications."""

    records: list[RawExtractedRecord]
    classifications: list[Classification]
    currency: str


class SourceKind(StrEnum):
    CSV = "csv"
    DOCUMENT = "document"


@dataclass(frozen=True, slots=True)
class StatementPeriod:
    month: int | None
    year: int | None
    source: Literal["filename", "content"] | None = None

    @property
    def is_complete(self) -> bool:
        return self.month is not None and self.year is not None


@dataclass(frozen=True, slots=True)
class UploadResult:
    """Outcome of one upload.

    ``already_processed`` is set both when the statement period was already
    ingested and when every candidate turned out to be a duplicate.
    """

    records_created: list[CanonicalTransaction]
    duplicate_count: int
    already_processed: bool
    bank: str | None = None
    currency: str | None = None
    period: StatementPeriod | None = None
    skipped: int = 0
    warnings: tuple[str, ...] = field(default_factory=tuple)


__all__ = [
    "TransactionType",
    "RawExtractedRecord",
    "Classification",
    "CanonicalTransaction",
    "StatementPeriodKey",
    "StatementPeriod",
    "InsertResult",
    "ParsedStatement",
    "SourceKind",
    "UploadResult",
]
