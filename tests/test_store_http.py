from __future__ import annotations

import json
from typing import Any

import pytest
import requests

from statement_ingest.duplicates import fingerprint, fingerprint_digest, fingerprint_transaction
from statement_ingest.errors import StoreError
from statement_ingest.models import CanonicalTransaction
from statement_ingest.settings import IngestSettings
from statement_ingest.store import HttpRecordStore, RecordStore, store_from_settings

BASE = "http://pb.local"
RECORDS = f"{BASE}/api/collections/transactions/records"


class _Resp:
    def __init__(self, status_code: int, body: Any = None) -> None:
        self.status_code = status_code
        self._body = body
        self.text = json.dumps(body) if body is not None else ""

    def json(self) -> Any:
        return self._body


class FakeSession:
    """Records requests and answers from a queue of ``_Resp`` objects."""

    def __init__(self, *responses: _Resp | Exception) -> None:
        self.responses = list(responses)
        self.requests: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> _Resp:
        self.requests.append({"method": method, "url": url, **kwargs})
        answer = self.responses.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer


def _item(id: str, **overrides: Any) -> dict[str, Any]:
    item = {
        "id": id,
        "date": "2024-01-01",
        "description": "OXXO",
        "amount": 35.5,
        "type": "expense",
        "category": "Alimentación",
        "merchant": "OXXO",
        "currency": "MXN",
        "created": "2024-01-05 10:00:00.000Z",
    }
    item.update(overrides)
    return item


def _tx(description: str) -> CanonicalTransaction:
    return CanonicalTransaction(
        date="2024-01-01",
        description=description,
        amount="35.50",
        type="expense",
        category="Alimentación",
        merchant="OXXO",
        currency="MXN",
        bank="BBVA México",
    )


def test_satisfies_the_record_store_protocol() -> None:
    assert isinstance(HttpRecordStore(BASE, session=FakeSession()), RecordStore)


def test_admin_ui_suffix_is_dropped() -> None:
    store = HttpRecordStore("http://pb.local/_/", session=FakeSession())
    assert store.records_url == RECORDS


def test_list_all_follows_pages_and_maps_records() -> None:
    session = FakeSession(
        _Resp(200, {"items": [_item("a")], "totalPages": 2}),
        _Resp(200, {"items": [_item("b", type="income", category="", bank="Banorte")], "totalPages": 2}),
    )
    store = HttpRecordStore(BASE, token="tok", session=session)
    records = store.list_all()

    assert [r.id for r in records] == ["a", "b"]
    assert records[0].amount == "35.50"
    assert records[0].created_at is not None and records[0].created_at.year == 2024
    assert (records[1].type, records[1].category, records[1].bank) == ("income", "General", "Banorte")
    assert [r["params"]["page"] for r in session.requests] == [1, 2]
    assert session.requests[0]["params"]["perPage"] == 500
    assert session.requests[0]["headers"]["Authorization"] == "Bearer tok"


def test_insert_many_counts_duplicates_and_skips() -> None:
    session = FakeSession(
        _Resp(200, _item("new1")),
        _Resp(400, {"data": {"fingerprint": {"code": "validation_not_unique"}}}),
        _Resp(400, {"data": {"amount": {"code": "validation_required"}}}),
    )
    store = HttpRecordStore(BASE, session=session)
    result = store.insert_many([_tx("OXXO"), _tx("OXXO again"), _tx("broken")])

    assert [t.id for t in result.saved] == ["new1"]
    assert (result.duplicates, result.skipped) == (1, 1)
    first = session.requests[0]
    assert first["method"] == "POST"
    assert first["json"]["bank"] == "BBVA México"
    assert first["json"]["fingerprint"] == fingerprint_digest(fingerprint_transaction(_tx("OXXO")))


def test_server_errors_raise_store_error() -> None:
    store = HttpRecordStore(BASE, session=FakeSession(_Resp(500, {"message": "boom"})))
    with pytest.raises(StoreError):
        store.insert_many([_tx("OXXO")])


def test_transport_errors_raise_store_error() -> None:
    store = HttpRecordStore(BASE, session=FakeSession(requests.ConnectionError("refused")))
    with pytest.raises(StoreError):
        store.list_all()


def test_update_delete_and_delete_all() -> None:
    session = FakeSession(
        _Resp(200, _item("a", category="Salud")),
        _Resp(204),
        _Resp(200, {"items": [_item("x"), _item("y")], "totalPages": 1}),
        _Resp(204),
        _Resp(204),
    )
    store = HttpRecordStore(BASE, session=session)

    updated = store.update_one("a", {"category": "Salud"})
    assert updated.category == "Salud"
    assert session.requests[0]["method"] == "PATCH"
    assert session.requests[0]["json"] == {"category": "Salud"}

    store.delete_one("a")
    assert (session.requests[1]["method"], session.requests[1]["url"]) == ("DELETE", f"{RECORDS}/a")

    assert store.delete_all() == 2
    assert [r["url"] for r in session.requests[3:]] == [f"{RECORDS}/x", f"{RECORDS}/y"]


def test_update_of_a_fingerprint_field_refreshes_the_digest() -> None:
    session = FakeSession(
        _Resp(200, _item("a")),
        _Resp(200, _item("a", amount=12.5)),
    )
    store = HttpRecordStore(BASE, session=session)

    updated = store.update_one("a", {"category": "Salud", "amount": "-12.5"})
    assert updated.amount == "12.50"

    get, patch = session.requests
    assert (get["method"], get["url"]) == ("GET", f"{RECORDS}/a")
    assert patch["method"] == "PATCH"
    expected = fingerprint_digest(fingerprint("2024-01-01", "OXXO", "12.50", "expense"))
    assert patch["json"] == {"category": "Salud", "amount": "12.50", "fingerprint": expected}


def test_update_that_collides_raises_store_error() -> None:
    session = FakeSession(
        _Resp(200, _item("a")),
        _Resp(400, {"data": {"fingerprint": {"code": "validation_not_unique"}}}),
    )
    store = HttpRecordStore(BASE, session=session)
    with pytest.raises(StoreError, match="duplicate"):
        store.update_one("a", {"description": "UBER"})


def test_update_rejects_unknown_fields_and_bad_type() -> None:
    store = HttpRecordStore(BASE, session=FakeSession())
    with pytest.raises(ValueError):
        store.update_one("a", {"id": "b"})
    with pytest.raises(ValueError):
        store.update_one("a", {"type": "refund"})


def test_store_from_settings_prefers_http(tmp_path) -> None:
    settings = IngestSettings(store_url=BASE, database_url=f"sqlite:///{tmp_path / 'x.db'}")
    assert isinstance(store_from_settings(settings), HttpRecordStore)
    with pytest.raises(StoreError):
        store_from_settings(IngestSettings())
