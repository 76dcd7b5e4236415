from __future__ import annotations

import pytest

from statement_ingest.dispatch import decode_text, detect_source_kind, document_filetype, parse_upload
from statement_ingest.errors import MissingCredentialError, UnsupportedFormatError
from statement_ingest.models import SourceKind
from statement_ingest.settings import IngestSettings


@pytest.mark.parametrize(
    ("filename", "media_type", "kind"),
    [
        ("movs.csv", "text/csv", SourceKind.CSV),
        ("movs.csv", "text/csv; charset=utf-8", SourceKind.CSV),
        ("movs.csv", "application/vnd.ms-excel", SourceKind.CSV),
        ("movs.txt", None, SourceKind.CSV),
        ("MOVS.CSV", "application/octet-stream", SourceKind.CSV),
        ("estado.pdf", "application/pdf", SourceKind.DOCUMENT),
        ("scan", "image/png", SourceKind.DOCUMENT),
        ("scan.JPG", None, SourceKind.DOCUMENT),
        ("scan.webp", "", SourceKind.DOCUMENT),
        # declared media type wins over the extension
        ("statement.pdf", "text/csv", SourceKind.CSV),
    ],
)
def test_detect_source_kind(filename: str, media_type: str | None, kind: SourceKind) -> None:
    assert detect_source_kind(filename, media_type) is kind


@pytest.mark.parametrize(
    ("filename", "media_type"),
    [
        ("book.xlsx", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"),
        ("data.xls", "application/vnd.ms-excel"),
        ("notes.docx", None),
        ("noextension", None),
    ],
)
def test_unsupported_formats(filename: str, media_type: str | None) -> None:
    with pytest.raises(UnsupportedFormatError) as exc:
        detect_source_kind(filename, media_type)
    assert exc.value.filename == filename
    assert exc.value.media_type == media_type


def test_document_filetype_hints() -> None:
    assert document_filetype("x.pdf", None) == "pdf"
    assert document_filetype("x", "image/jpg") == "jpeg"
    assert document_filetype("x.tif", None) == "tiff"
    assert document_filetype("x.bin", "image/webp") == "webp"


def test_decode_text_strips_bom_and_falls_back_to_latin1() -> None:
    assert decode_text("\ufeffdate,desc\n".encode()) == "date,desc\n"
    assert decode_text("Nómina".encode("latin-1")) == "Nómina"


def test_parse_upload_routes_csv_offline(offline_settings: IngestSettings) -> None:
    data = b"date,description,amount\n2024-01-01,UBER TRIP,-98.00\n"
    parsed = parse_upload(data, "movs.csv", "text/csv", settings=offline_settings)
    assert [r.description for r in parsed.records] == ["UBER TRIP"]
    assert parsed.classifications[0].category == "Transporte"


def test_parse_upload_refuses_documents_without_credential(offline_settings: IngestSettings) -> None:
    with pytest.raises(MissingCredentialError):
        parse_upload(b"%PDF-1.4", "estado.pdf", "application/pdf", settings=offline_settings)
