"""Page-by-page document extraction through a vision-capable model.

Flow for one document:

1. Refuse early (``MissingCredentialError``) when no completion credential
   is configured; document extraction has no offline alternative.
2. Rasterize every page with PyMuPDF at a fixed upscale factor into PNG
   bytes. Any page that cannot be opened or rendered fails the whole
   document (``DocumentRenderError``).
3. Send one request per page, sequentially, with a fixed pause between
   pages. A failing request or an unparseable reply yields zero records for
   that page only.
4. Validate each returned object; malformed ones are dropped and logged.
5. Zero records across all pages ⇒ ``NoTransactionsExtractedError``.
6. Infer the currency from the joined descriptions and classify all records
   as one batch.
"""

from __future__ import annotations

import base64
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import fitz  # PyMuPDF
from openai import OpenAI

from . import prompting
from .classify import classify_batch
from .completions import create_client, extract_first_json_array, response_text
from .currency import identify_currency
from .errors import (
    DocumentRenderError,
    MalformedRecordError,
    MissingCredentialError,
    NoTransactionsExtractedError,
)
from .logging_setup import get_logger
from .models import ParsedStatement, RawExtractedRecord
from .normalizers import parse_amount
from .settings import IngestSettings

_MIN_ZOOM = 2.0

_logger = get_logger("statement_ingest.vision")


@dataclass(frozen=True, slots=True)
class RenderedPage:
    page_number: int  # 1-based
    png: bytes
    text: str

    def data_url(self) -> str:
        return "data:image/png;base64," + base64.b64encode(self.png).decode("ascii")


def _open(data: bytes, filetype: str) -> fitz.Document:
    try:
        doc = fitz.open(stream=data, filetype=filetype)
    except Exception as e:  # noqa: BLE001 - PyMuPDF raises several unrelated types
        raise DocumentRenderError(f"could not open {filetype} document: {e}") from e
    if doc.needs_pass:
        doc.close()
        raise DocumentRenderError("document is password-protected")
    if doc.page_count == 0:
        doc.close()
        raise DocumentRenderError("document has no pages")
    return doc


def first_page_text(data: bytes, filetype: str = "pdf") -> str:
    """Return the embedded text layer of the first page ('' for images)."""

    doc = _open(data, filetype)
    try:
        return doc[0].get_text()
    except Exception as e:  # noqa: BLE001
        raise DocumentRenderError(f"could not read page 1: {e}") from e
    finally:
        doc.close()


def render_pages(data: bytes, filetype: str = "pdf", *, zoom: float = _MIN_ZOOM) -> list[RenderedPage]:
    """Rasterize every page to PNG at ``zoom`` (at least 2.0)."""

    if zoom < _MIN_ZOOM:
        raise ValueError(f"zoom must be at least {_MIN_ZOOM}")
    doc = _open(data, filetype)
    pages: list[RenderedPage] = []
    try:
        matrix = fitz.Matrix(zoom, zoom)
        for index in range(doc.page_count):
            try:
                page = doc[index]
                pix = page.get_pixmap(matrix=matrix)
                pages.append(
                    RenderedPage(page_number=index + 1, png=pix.tobytes("png"), text=page.get_text())
                )
            except Exception as e:  # noqa: BLE001
                raise DocumentRenderError(f"could not render page {index + 1}: {e}") from e
    finally:
        doc.close()
    _logger.info("vision:rendered pages=%d zoom=%.1f", len(pages), zoom)
    return pages


def coerce_page_record(raw: Any) -> RawExtractedRecord:
    """Validate one model-returned object into a signed raw record.

    ``type`` fixes the sign when it is ``income`` or ``expense``; otherwise
    the amount's own sign is kept. Raises ``MalformedRecordError`` for a
    missing description or a zero/non-numeric amount.
    """

    if not isinstance(raw, Mapping):
        raise MalformedRecordError("record is not an object")
    description = raw.get("description")
    if not isinstance(description, str) or not description.strip():
        raise MalformedRecordError("record has no description")
    try:
        amount = parse_amount(raw.get("amount"))  # type: ignore[arg-type]
    except ValueError as e:
        raise MalformedRecordError(f"record amount is not numeric: {raw.get('amount')!r}") from e
    if amount == 0:
        raise MalformedRecordError("record amount is zero")

    kind = str(raw.get("type") or "").strip().lower()
    if kind == "income":
        amount = abs(amount)
    elif kind == "expense":
        amount = -abs(amount)

    date = raw.get("date")
    return RawExtractedRecord(
        date=str(date).strip() if date is not None else "",
        description=description.strip(),
        amount=amount,
    )


def extract_page_records(
    client: OpenAI,
    page: RenderedPage,
    *,
    total_pages: int,
    settings: IngestSettings,
) -> list[RawExtractedRecord]:
    """Return the valid records found on one page; never raises for a bad page."""

    t0 = time.perf_counter()
    try:
        resp = client.responses.create(
            model=settings.vision_model,
            input=[
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "input_text",
                            "text": prompting.build_page_extraction_prompt(
                                page.page_number, total_pages
                            ),
                        },
                        {"type": "input_image", "image_url": page.data_url()},
                    ],
                }
            ],
        )
        text = response_text(resp)
    except Exception as e:  # noqa: BLE001 - one failing page must not fail the document
        _logger.error(
            "vision:page_failed page=%d error=%s", page.page_number, e.__class__.__name__
        )
        return []

    items = extract_first_json_array(text)
    if items is None:
        _logger.warning("vision:page_unparseable page=%d preview=%r", page.page_number, text[:200])
        return []

    records: list[RawExtractedRecord] = []
    for pos, raw in enumerate(items):
        try:
            records.append(coerce_page_record(raw))
        except MalformedRecordError as e:
            _logger.info("vision:record_dropped page=%d pos=%d reason=%s", page.page_number, pos, e)
    _logger.info(
        "vision:page_done page=%d records=%d latency_ms=%.2f",
        page.page_number,
        len(records),
        (time.perf_counter() - t0) * 1000.0,
    )
    return records


def parse_document(
    data: bytes,
    filetype: str = "pdf",
    *,
    settings: IngestSettings,
    client: OpenAI | None = None,
) -> ParsedStatement:
    if not settings.has_credential:
        raise MissingCredentialError(
            "document extraction requires OPENAI_API_KEY; upload a CSV instead"
        )

    pages = render_pages(data, filetype, zoom=settings.render_zoom)
    if client is None:
        client = create_client(settings)

    records: list[RawExtractedRecord] = []
    for i, page in enumerate(pages):
        if i and settings.page_delay_seconds > 0:
            time.sleep(settings.page_delay_seconds)
        records.extend(
            extract_page_records(client, page, total_pages=len(pages), settings=settings)
        )

    if not records:
        raise NoTransactionsExtractedError(
            f"no transactions could be extracted from {len(pages)} page(s)"
        )

    currency = identify_currency(
        " ".join(r.description for r in records), settings.default_currency
    )
    classifications = classify_batch(records, settings=settings, client=client)
    return ParsedStatement(records=records, classifications=classifications, currency=currency)


__all__ = [
    "RenderedPage",
    "first_page_text",
    "render_pages",
    "coerce_page_record",
    "extract_page_records",
    "parse_document",
]
