from __future__ import annotations

from statement_ingest.banks import SUPPORTED_BANKS, identify_bank, supported_banks


def test_filename_alone_identifies_bbva() -> None:
    match = identify_bank("BBVA_Septiembre.pdf")
    assert match.bank is not None
    assert match.bank.id == "bbva"
    assert match.confidence > 0
    # keyword 2 + pattern 3 + filename bonus 5
    assert match.confidence == 100.0


def test_text_identifies_bank_when_filename_is_generic() -> None:
    match = identify_bank("statement.csv", "Fecha,Concepto,Importe\nBanorte nómina,...")
    assert match.bank is not None
    assert match.bank.name == "Banorte"
    # one keyword and one pattern occurrence
    assert match.confidence == 50.0


def test_first_page_text_is_searched_too() -> None:
    match = identify_bank("scan.png", None, "HSBC MÉXICO, S.A.\nEstado de cuenta")
    assert match.bank is not None
    assert match.bank.id == "hsbc"


def test_no_match_means_no_bank_and_zero_confidence() -> None:
    match = identify_bank("export.csv", "date,description,amount")
    assert match.bank is None
    assert match.confidence == 0.0


def test_longer_brand_outscores_embedded_one() -> None:
    match = identify_bank("citibanamex_2024.pdf")
    assert match.bank is not None
    assert match.bank.id == "banamex"


def test_tie_keeps_the_bank_registered_first() -> None:
    match = identify_bank("notes.csv", "transferencia santander a hsbc")
    assert match.bank is not None
    assert match.bank.id == "santander"


def test_supported_banks_lists_every_registered_bank() -> None:
    listed = supported_banks()
    assert len(listed) == len(SUPPORTED_BANKS)
    assert ("nu", "Nu México", "México") in listed
    assert {country for _id, _name, country in listed} >= {"México", "EEUU", "Brasil"}
