"""Upload entry point for the ``statement_ingest`` package.

:func:`ingest_upload` runs one uploaded statement end to end:

1. route by format (unsupported formats fail immediately);
2. identify the bank and the statement period from the filename and the text
   available before extraction (the CSV body, or the first page's text
   layer);
3. fetch existing transactions for duplicate checks (best-effort: a failing
   fetch skips both checks and is only logged);
4. short-circuit when the statement period of an identified bank is already
   ingested, before any model call;
5. parse and classify, canonicalize, drop candidates without a date or
   description;
6. drop fingerprint duplicates and hand the rest to the store.
"""

from __future__ import annotations

from collections.abc import Sequence

from openai import OpenAI

from .banks import identify_bank
from .dispatch import decode_text, detect_source_kind, document_filetype, parse_upload
from .duplicates import filter_duplicates
from .errors import (
    DuplicateCheckUnavailableError,
    MissingCredentialError,
    NoTransactionsExtractedError,
)
from .logging_setup import get_logger
from .models import CanonicalTransaction, ParsedStatement, SourceKind, UploadResult
from .normalizers import canonicalize
from .periods import extract_statement_period, is_period_processed
from .settings import IngestSettings
from .store import RecordStore
from .vision import first_page_text

_logger = get_logger("statement_ingest.api")


def _fetch_existing(store: RecordStore) -> list[CanonicalTransaction] | None:
    try:
        return store.list_all()
    except Exception as e:  # noqa: BLE001 - duplicate checks are best-effort
        err = DuplicateCheckUnavailableError(f"{e.__class__.__name__}: {e}")
        _logger.warning("ingest:duplicate_check_unavailable error=%s", err)
        return None


def _build_candidates(parsed: ParsedStatement, *, bank: str | None) -> list[CanonicalTransaction]:
    out: list[CanonicalTransaction] = []
    for pos, (record, classification) in enumerate(
        zip(parsed.records, parsed.classifications, strict=True)
    ):
        if not record.date.strip() or not record.description.strip():
            _logger.info("ingest:candidate_dropped pos=%d reason=missing_date_or_description", pos)
            continue
        out.append(canonicalize(record, classification, currency=parsed.currency, bank=bank))
    return out


def ingest_upload(
    data: bytes,
    filename: str,
    media_type: str | None,
    *,
    store: RecordStore,
    settings: IngestSettings | None = None,
    client: OpenAI | None = None,
) -> UploadResult:
    """Ingest one uploaded statement and persist its new transactions.

    Parameters
    ----------
    data, filename, media_type:
        The uploaded bytes, original filename and declared media type.
    store:
        Record store collaborator used for duplicate checks and insertion.
    settings:
        Pipeline configuration; defaults to :meth:`IngestSettings.from_env`.
    client:
        Optional OpenAI client (tests inject a stub).

    Returns
    -------
    UploadResult
        ``already_processed`` is true when the statement period was already
        ingested or when every candidate was a duplicate.

    Raises
    ------
    UnsupportedFormatError, MissingCredentialError, DocumentRenderError,
    NoTransactionsExtractedError, StoreError
    """

    if settings is None:
        settings = IngestSettings.from_env()

    kind = detect_source_kind(filename, media_type)
    if kind is SourceKind.CSV:
        full_text: str | None = decode_text(data)
        first_page: str | None = None
    else:
        if not settings.has_credential:
            raise MissingCredentialError(
                "document extraction requires OPENAI_API_KEY; upload a CSV instead"
            )
        full_text = None
        first_page = first_page_text(data, document_filetype(filename, media_type))

    match = identify_bank(filename, full_text, first_page)
    bank = match.bank.name if match.bank is not None else None
    period = extract_statement_period(filename, full_text if full_text is not None else first_page)
    _logger.info(
        "ingest:start filename=%s kind=%s bank=%s confidence=%.0f month=%s year=%s",
        filename,
        kind,
        bank,
        match.confidence,
        period.month,
        period.year,
    )

    warnings: list[str] = []
    existing = _fetch_existing(store)
    if existing is None:
        warnings.append("duplicate check unavailable; existing transactions were not consulted")
    elif (
        bank is not None
        and period.is_complete
        and is_period_processed(existing, period.year, period.month, bank)
    ):
        _logger.info(
            "ingest:period_already_processed bank=%s month=%s year=%s",
            bank,
            period.month,
            period.year,
        )
        return UploadResult(
            records_created=[],
            duplicate_count=0,
            already_processed=True,
            bank=bank,
            period=period,
        )

    parsed = parse_upload(data, filename, media_type, settings=settings, client=client)
    if not parsed.records:
        raise NoTransactionsExtractedError(f"no transactions found in {filename!r}")

    candidates = _build_candidates(parsed, bank=bank)
    if not candidates:
        raise NoTransactionsExtractedError(
            f"no valid transactions found in {filename!r} (every row lacks a date or description)"
        )

    fresh: Sequence[CanonicalTransaction] = candidates
    duplicate_count = 0
    if existing is not None:
        fresh, duplicate_count = filter_duplicates(candidates, existing)
        if not fresh:
            _logger.info("ingest:all_duplicates count=%d", duplicate_count)
            return UploadResult(
                records_created=[],
                duplicate_count=duplicate_count,
                already_processed=True,
                bank=bank,
                currency=parsed.currency,
                period=period,
            )

    inserted = store.insert_many(fresh)
    duplicate_count += inserted.duplicates
    _logger.info(
        "ingest:done saved=%d duplicates=%d skipped=%d",
        len(inserted.saved),
        duplicate_count,
        inserted.skipped,
    )
    return UploadResult(
        records_created=list(inserted.saved),
        duplicate_count=duplicate_count,
        already_processed=not inserted.saved and duplicate_count > 0,
        bank=bank,
        currency=parsed.currency,
        period=period,
        skipped=inserted.skipped,
        warnings=tuple(warnings),
    )


__all__ = ["ingest_upload"]
