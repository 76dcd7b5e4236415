"""Exception taxonomy for the ingestion pipeline.

Fatal errors (surfaced verbatim to the caller of
:func:`statement_ingest.api.ingest_upload`):

- :class:`UnsupportedFormatError`
- :class:`NoTransactionsExtractedError`
- :class:`DocumentRenderError`
- :class:`MissingCredentialError`

Recovered locally and only ever logged:

- :class:`ClassificationBatchMismatchError` (batch → fallback rules)
- :class:`MalformedRecordError` (record dropped)
- :class:`DuplicateCheckUnavailableError` (duplicate checks skipped)
"""

from __future__ import annotations


class IngestError(Exception):
    """Base class for every error raised by ``statement_ingest``."""


class UnsupportedFormatError(IngestError):
    def __init__(self, filename: str, media_type: str | None) -> None:
        self.filename = filename
        self.media_type = media_type
        super().__init__(
            f"Unsupported file format for {filename!r} (media type {media_type!r}); "
            "upload a CSV, PDF or page image"
        )


class NoTransactionsExtractedError(IngestError):
    """No usable transaction could be produced from the whole upload."""


class DocumentRenderError(IngestError):
    """A document page could not be opened or rasterized."""


class MissingCredentialError(IngestError):
    """The completion-service credential is absent for a path that needs it."""


class ClassificationBatchMismatchError(ValueError):
    def __init__(self, expected: int, got: int | None) -> None:
        self.expected = expected
        self.got = got
        super().__init__(f"classification reply has {got} items, expected {expected}")


class MalformedRecordError(ValueError):
    """A single extracted record failed validation."""


class DuplicateCheckUnavailableError(IngestError):
    """Existing transactions could not be fetched for duplicate checks."""


class StoreError(IngestError):
    """The record store rejected a request or could not be reached."""


__all__ = [
    "IngestError",
    "UnsupportedFormatError",
    "NoTransactionsExtractedError",
    "DocumentRenderError",
    "MissingCredentialError",
    "ClassificationBatchMismatchError",
    "MalformedRecordError",
    "DuplicateCheckUnavailableError",
    "StoreError",
]
