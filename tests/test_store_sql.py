from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from db.client import dispose_engines
from statement_ingest.api import ingest_upload
from statement_ingest.errors import StoreError
from statement_ingest.models import CanonicalTransaction
from statement_ingest.settings import IngestSettings
from statement_ingest.store import RecordStore, SqlRecordStore, store_from_settings


@pytest.fixture
def store(tmp_path: Path) -> Iterator[SqlRecordStore]:
    yield SqlRecordStore(f"sqlite:///{tmp_path / 'ledger.db'}")
    dispose_engines()


def _tx(description: str, amount: str = "35.50", **overrides: object) -> CanonicalTransaction:
    fields: dict[str, object] = {
        "date": "2024-01-01",
        "description": description,
        "amount": amount,
        "type": "expense",
        "category": "Alimentación",
        "merchant": "OXXO",
        "currency": "MXN",
    }
    fields.update(overrides)
    return CanonicalTransaction(**fields)  # type: ignore[arg-type]


def test_insert_assigns_ids_and_counts_conflicts(store: SqlRecordStore) -> None:
    assert isinstance(store, RecordStore)
    first = store.insert_many([_tx("OXXO"), _tx("UBER", "98.00", bank="BBVA México")])
    assert len(first.saved) == 2
    assert all(t.id and t.created_at for t in first.saved)
    assert first.saved[1].bank == "BBVA México"

    # same fingerprint (case and whitespace differ) and a bad amount
    second = store.insert_many([_tx(" oxxo "), _tx("Nuevo", "n/a"), _tx("Nuevo", "10")])
    assert (len(second.saved), second.duplicates, second.skipped) == (1, 1, 1)
    assert len(store.list_all()) == 3


def test_update_one_recomputes_the_fingerprint(store: SqlRecordStore) -> None:
    saved = store.insert_many([_tx("OXXO"), _tx("UBER")]).saved
    updated = store.update_one(saved[0].id or "", {"category": "Transporte", "amount": "-40"})
    assert (updated.category, updated.amount) == ("Transporte", "40.00")

    # the old fingerprint is free again
    assert len(store.insert_many([_tx("OXXO")]).saved) == 1

    with pytest.raises(StoreError):
        store.update_one(saved[1].id or "", {"description": "OXXO", "amount": "40.00"})
    with pytest.raises(StoreError):
        store.update_one("missing", {"category": "Salud"})
    with pytest.raises(ValueError):
        store.update_one(saved[1].id or "", {"fingerprint_sha256": "x"})


def test_delete_one_and_delete_all(store: SqlRecordStore) -> None:
    saved = store.insert_many([_tx("A"), _tx("B"), _tx("C")]).saved
    store.delete_one(saved[0].id or "")
    assert sorted(t.description for t in store.list_all()) == ["B", "C"]
    assert store.delete_all() == 2
    assert store.list_all() == []


def test_reupload_through_the_sql_store(tmp_path: Path) -> None:
    settings = IngestSettings(
        database_url=f"sqlite:///{tmp_path / 'ingest.db'}",
        fallback_delay_seconds=0.0,
        page_delay_seconds=0.0,
    )
    store = store_from_settings(settings)
    data = b"date,description,amount\n2024-01-01,Supermercado X,-45.20\n2024-01-02,Salary,3000.00\n"
    try:
        first = ingest_upload(data, "movs.csv", "text/csv", store=store, settings=settings)
        again = ingest_upload(data, "movs.csv", "text/csv", store=store, settings=settings)
    finally:
        dispose_engines()

    assert [t.amount for t in first.records_created] == ["45.20", "3000.00"]
    assert again.records_created == []
    assert again.duplicate_count == 2
    assert again.already_processed
