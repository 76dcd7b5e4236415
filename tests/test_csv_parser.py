from __future__ import annotations

from decimal import Decimal

from statement_ingest.csv_parser import parse_csv, split_csv_rows
from statement_ingest.settings import IngestSettings

from tests.helpers.openai_stub import OpenAIStub, classification_reply

SAMPLE = """date,description,amount
2024-01-01,Supermercado X,-45.20
2024-01-02,Salary,3000.00
"""


def test_rows_become_signed_records() -> None:
    records = split_csv_rows(SAMPLE)
    assert [(r.date, r.description, r.amount) for r in records] == [
        ("2024-01-01", "Supermercado X", Decimal("-45.20")),
        ("2024-01-02", "Salary", Decimal("3000.00")),
    ]


def test_record_count_equals_rows_with_numeric_amount() -> None:
    text = "\n".join(
        [
            "Fecha,Concepto,Importe,Saldo",
            "01/02/2024,OXXO,-35.50,1000",
            "02/02/2024,Saldo inicial,N/A",
            "",
            "only,two",
            '03/02/2024,"UBER, TRIP",$-120.00',
            "'04/02/2024','SPEI RECIBIDO',\"1,500.00\"",
        ]
    )
    records = split_csv_rows(text)
    assert [r.description for r in records] == ["OXXO", "UBER, TRIP", "SPEI RECIBIDO"]
    assert records[1].amount == Decimal("-120.00")
    assert records[2].date == "04/02/2024"
    assert records[2].amount == Decimal("1500.00")


def test_header_only_or_empty_text_yields_nothing() -> None:
    assert split_csv_rows("date,description,amount\n") == []
    assert split_csv_rows("") == []


def test_stray_quote_does_not_swallow_later_rows() -> None:
    text = 'h1,h2,h3\n2024-01-01,"Broken quote,-10\n2024-01-02,Fine,-20\n'
    records = split_csv_rows(text)
    assert records[-1].description == "Fine"
    assert records[-1].amount == Decimal("-20")


def test_parse_csv_classifies_and_detects_currency(settings: IngestSettings) -> None:
    stub = OpenAIStub(classification_reply("Alimentación", "Super X"))
    parsed = parse_csv("fecha,concepto,importe EUR\n" + SAMPLE.split("\n", 1)[1], settings=settings, client=stub)

    assert len(parsed.records) == len(parsed.classifications) == 2
    assert parsed.currency == "EUR"
    assert parsed.classifications[0].merchant == "Super X"
    assert len(stub.calls) == 1


def test_parse_csv_offline_uses_default_currency(offline_settings: IngestSettings) -> None:
    parsed = parse_csv(SAMPLE, settings=offline_settings)
    assert parsed.currency == "MXN"
    assert [c.category for c in parsed.classifications] == ["Alimentación", "Salario"]
