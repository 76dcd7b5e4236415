"""Route an uploaded file to the parser for its format.

``detect_source_kind`` is pure routing on the declared media type (which
wins) and the filename extension; ``parse_upload`` decodes and hands the
bytes to the CSV parser or the document pipeline.
"""

from __future__ import annotations

from pathlib import PurePath

from openai import OpenAI

from .csv_parser import parse_csv
from .errors import UnsupportedFormatError
from .logging_setup import get_logger
from .models import ParsedStatement, SourceKind
from .settings import IngestSettings
from .vision import parse_document

_logger = get_logger("statement_ingest.dispatch")

_CSV_MEDIA_TYPES = frozenset({"text/csv", "application/csv", "text/plain"})
# Browsers on Windows label .csv uploads with the Excel media type.
_EXCEL_MEDIA_TYPE = "application/vnd.ms-excel"
_CSV_EXTENSIONS = frozenset({".csv", ".txt"})

_DOCUMENT_MEDIA_TYPES: dict[str, str] = {
    "application/pdf": "pdf",
    "image/png": "png",
    "image/jpeg": "jpeg",
    "image/jpg": "jpeg",
    "image/tiff": "tiff",
    "image/webp": "webp",
}
_DOCUMENT_EXTENSIONS: dict[str, str] = {
    ".pdf": "pdf",
    ".png": "png",
    ".jpg": "jpeg",
    ".jpeg": "jpeg",
    ".tif": "tiff",
    ".tiff": "tiff",
    ".webp": "webp",
}


def _bare_media_type(media_type: str | None) -> str:
    return (media_type or "").split(";", 1)[0].strip().lower()


def _extension(filename: str) -> str:
    return PurePath(filename or "").suffix.lower()


def detect_source_kind(filename: str, media_type: str | None) -> SourceKind:
    mt = _bare_media_type(media_type)
    ext = _extension(filename)

    if mt in _CSV_MEDIA_TYPES or (mt == _EXCEL_MEDIA_TYPE and ext == ".csv"):
        return SourceKind.CSV
    if mt in _DOCUMENT_MEDIA_TYPES:
        return SourceKind.DOCUMENT
    if ext in _CSV_EXTENSIONS:
        return SourceKind.CSV
    if ext in _DOCUMENT_EXTENSIONS:
        return SourceKind.DOCUMENT
    raise UnsupportedFormatError(filename, media_type)


def document_filetype(filename: str, media_type: str | None) -> str:
    """Return the PyMuPDF ``filetype`` hint for a document upload."""

    mt = _bare_media_type(media_type)
    if mt in _DOCUMENT_MEDIA_TYPES:
        return _DOCUMENT_MEDIA_TYPES[mt]
    return _DOCUMENT_EXTENSIONS.get(_extension(filename), "pdf")


def decode_text(data: bytes) -> str:
    """Decode CSV bytes as UTF-8 (BOM stripped), falling back to Latin-1."""

    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def parse_upload(
    data: bytes,
    filename: str,
    media_type: str | None,
    *,
    settings: IngestSettings,
    client: OpenAI | None = None,
) -> ParsedStatement:
    kind = detect_source_kind(filename, media_type)
    _logger.info("dispatch:route filename=%s kind=%s bytes=%d", filename, kind, len(data))
    if kind is SourceKind.CSV:
        return parse_csv(decode_text(data), settings=settings, client=client)
    return parse_document(
        data, document_filetype(filename, media_type), settings=settings, client=client
    )


__all__ = [
    "detect_source_kind",
    "document_filetype",
    "decode_text",
    "parse_upload",
]
