from __future__ import annotations

import json
from dataclasses import replace
from decimal import Decimal

import fitz  # PyMuPDF
import pytest

from statement_ingest import vision
from statement_ingest.errors import (
    DocumentRenderError,
    MalformedRecordError,
    MissingCredentialError,
    NoTransactionsExtractedError,
)
from statement_ingest.settings import IngestSettings
from statement_ingest.vision import coerce_page_record, first_page_text, parse_document, render_pages

from tests.helpers.openai_stub import OpenAIStub, classification_reply


def _pdf(*pages: str) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def test_first_page_text_reads_the_text_layer() -> None:
    data = _pdf("BBVA Mexico - Periodo: septiembre 2024", "page two")
    text = first_page_text(data)
    assert "BBVA Mexico" in text
    assert "page two" not in text


def test_render_pages_produces_one_png_per_page() -> None:
    pages = render_pages(_pdf("one", "two"), zoom=2.0)
    assert [p.page_number for p in pages] == [1, 2]
    assert all(p.png.startswith(b"\x89PNG") for p in pages)
    assert pages[1].text.strip() == "two"
    assert pages[0].data_url().startswith("data:image/png;base64,")


def test_render_zoom_below_two_is_rejected() -> None:
    with pytest.raises(ValueError):
        render_pages(_pdf("one"), zoom=1.0)


@pytest.mark.parametrize("data", [b"", b"definitely not a pdf"])
def test_unreadable_documents_fail_to_render(data: bytes) -> None:
    with pytest.raises(DocumentRenderError):
        render_pages(data)


def test_password_protected_pdf_fails_to_render() -> None:
    doc = fitz.open()
    doc.new_page().insert_text((72, 72), "secret")
    data = doc.tobytes(encryption=fitz.PDF_ENCRYPT_AES_256, owner_pw="owner", user_pw="user")
    doc.close()
    with pytest.raises(DocumentRenderError, match="password"):
        first_page_text(data)


@pytest.mark.parametrize(
    ("raw", "amount"),
    [
        ({"date": "2024-09-01", "description": "Abono SPEI", "amount": "200.00", "type": "income"}, "200.00"),
        ({"date": "2024-09-01", "description": "Cargo OXXO", "amount": 35.5, "type": "expense"}, "-35.5"),
        ({"date": "2024-09-01", "description": "Cargo OXXO", "amount": "-35.50", "type": "income"}, "35.50"),
        ({"description": "Retiro", "amount": "-1,000.00"}, "-1000.00"),
    ],
)
def test_coerce_page_record_sign_follows_type(raw: dict, amount: str) -> None:
    record = coerce_page_record(raw)
    assert record.amount == Decimal(amount)


def test_coerce_page_record_keeps_missing_date_empty() -> None:
    assert coerce_page_record({"description": " Retiro ", "amount": -5}).date == ""
    assert coerce_page_record({"description": " Retiro ", "amount": -5}).description == "Retiro"


@pytest.mark.parametrize(
    "raw",
    [
        "not an object",
        {"amount": "10"},
        {"description": "  ", "amount": "10"},
        {"description": "x", "amount": "ten"},
        {"description": "x", "amount": 0},
    ],
)
def test_coerce_page_record_rejects_malformed(raw: object) -> None:
    with pytest.raises(MalformedRecordError):
        coerce_page_record(raw)


def _page_reply(*items: dict) -> str:
    return "Extracted:\n" + json.dumps(list(items))


def test_parse_document_tolerates_bad_pages(settings: IngestSettings) -> None:
    stub = OpenAIStub(
        classification_reply("Alimentación", "OXXO"),
        vision=[
            _page_reply(
                {"date": "2024-09-01", "description": "Compra OXXO", "amount": "35.50", "type": "expense"},
                {"description": "", "amount": "1"},
            ),
            RuntimeError("timeout"),
            "I could not read this page",
        ],
    )
    parsed = parse_document(_pdf("p1", "p2", "p3"), settings=settings, client=stub)

    assert len(stub.vision_calls) == 3
    assert len(stub.text_calls) == 1
    assert [(r.description, r.amount) for r in parsed.records] == [("Compra OXXO", Decimal("-35.50"))]
    assert parsed.classifications[0].category == "Alimentación"
    assert parsed.currency == "MXN"


def test_vision_request_shape(settings: IngestSettings) -> None:
    stub = OpenAIStub(
        classification_reply(),
        vision=[_page_reply({"date": "2024-09-01", "description": "Pago EUR", "amount": -3, "type": "expense"})],
    )
    parsed = parse_document(_pdf("only"), settings=replace(settings, vision_model="vision-x"), client=stub)

    (call,) = stub.vision_calls
    assert call["model"] == "vision-x"
    text_part, image_part = call["input"][0]["content"]
    assert "page 1 of 1" in text_part["text"]
    assert image_part["type"] == "input_image"
    assert image_part["image_url"].startswith("data:image/png;base64,")
    assert parsed.currency == "EUR"


def test_every_page_empty_means_no_transactions(settings: IngestSettings) -> None:
    stub = OpenAIStub(classification_reply(), vision=["[]", "[]"])
    with pytest.raises(NoTransactionsExtractedError):
        parse_document(_pdf("a", "b"), settings=settings, client=stub)
    assert stub.text_calls == []


def test_pages_are_paced(settings: IngestSettings, monkeypatch: pytest.MonkeyPatch) -> None:
    sleeps: list[float] = []
    monkeypatch.setattr(vision.time, "sleep", sleeps.append)
    stub = OpenAIStub(classification_reply(), vision=["[]", "[]", "[]"])
    with pytest.raises(NoTransactionsExtractedError):
        parse_document(_pdf("a", "b", "c"), settings=replace(settings, page_delay_seconds=0.25), client=stub)
    assert sleeps == [0.25, 0.25]


def test_missing_credential_is_refused_before_rendering(offline_settings: IngestSettings) -> None:
    with pytest.raises(MissingCredentialError):
        parse_document(b"not even a pdf", settings=offline_settings)
