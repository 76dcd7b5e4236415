"""Delimited-text statement parser.

Expected layout: one header line, then ``date,description,amount[,...]``
rows. Extra columns are ignored. Rows whose third column is not a number
are skipped (data-quality policy, not an error), so the number of records
returned always equals the number of rows with a parseable amount.
"""

from __future__ import annotations

import csv

from openai import OpenAI

from .classify import classify_batch
from .currency import identify_currency
from .logging_setup import get_logger
from .models import ParsedStatement, RawExtractedRecord
from .normalizers import parse_amount
from .settings import IngestSettings

_MIN_COLUMNS = 3
_QUOTES = "\"'"

_logger = get_logger("statement_ingest.csv_parser")


def _clean(field: str) -> str:
    s = field.strip()
    if len(s) >= 2 and s[0] in _QUOTES and s[-1] == s[0]:
        s = s[1:-1].strip()
    elif s[:1] in _QUOTES:
        s = s[1:].strip()
    elif s[-1:] in _QUOTES:
        s = s[:-1].strip()
    return s


def _split_line(line: str) -> list[str]:
    # One line at a time keeps a stray quote from swallowing later rows.
    return next(csv.reader([line], skipinitialspace=True), [])


def split_csv_rows(text: str) -> list[RawExtractedRecord]:
    """Return one :class:`RawExtractedRecord` per data row with a numeric amount."""

    lines = text.strip().splitlines()
    records: list[RawExtractedRecord] = []
    skipped = 0
    for line_no, line in enumerate(lines[1:], start=2):
        if not line.strip():
            continue
        cols = [_clean(c) for c in _split_line(line)]
        if len(cols) < _MIN_COLUMNS:
            skipped += 1
            _logger.debug("csv:row_skipped line=%d reason=too_few_columns", line_no)
            continue
        try:
            amount = parse_amount(cols[2])
        except ValueError:
            skipped += 1
            _logger.debug("csv:row_skipped line=%d reason=non_numeric_amount", line_no)
            continue
        records.append(RawExtractedRecord(date=cols[0], description=cols[1], amount=amount))
    _logger.info("csv:parsed rows=%d skipped=%d", len(records), skipped)
    return records


def parse_csv(
    text: str,
    *,
    settings: IngestSettings,
    client: OpenAI | None = None,
) -> ParsedStatement:
    records = split_csv_rows(text)
    currency = identify_currency(text, settings.default_currency)
    classifications = classify_batch(records, settings=settings, client=client)
    return ParsedStatement(records=records, classifications=classifications, currency=currency)


__all__ = ["split_csv_rows", "parse_csv"]
