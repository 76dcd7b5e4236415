"""Record-store collaborators.

The pipeline talks to persistence only through the :class:`RecordStore`
protocol:

- ``list_all()``: every persisted transaction (used for duplicate checks);
- ``insert_many(candidates)``: insert and report ``saved``/``duplicates``/
  ``skipped``;
- ``update_one(id, partial)``, ``delete_one(id)``, ``delete_all()``.

Two implementations ship with the package:

- :class:`HttpRecordStore`: a PocketBase-style REST collection reached with
  ``requests`` and a bearer token supplied by configuration.
- :class:`SqlRecordStore`: the shared ``db`` library's
  ``ledger_transactions`` table through SQLAlchemy.

Transport failures raise :class:`~statement_ingest.errors.StoreError`.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

import requests
from sqlalchemy import delete, desc, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from db.client import create_schema, session_scope
from db.models.ledger import LedgerTransaction

from .categories import GENERAL
from .duplicates import fingerprint, fingerprint_digest, fingerprint_transaction
from .errors import StoreError
from .fallback import UNKNOWN_MERCHANT
from .logging_setup import get_logger
from .models import CanonicalTransaction, InsertResult
from .normalizers import format_unsigned, parse_amount
from .settings import IngestSettings

_logger = get_logger("statement_ingest.store")

# Fields a caller may change through ``update_one``.
UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {"date", "description", "amount", "type", "category", "merchant", "currency", "bank"}
)

# Fields that make up the duplicate-detection fingerprint.
FINGERPRINT_FIELDS: frozenset[str] = frozenset({"date", "description", "amount", "type"})


@runtime_checkable
class RecordStore(Protocol):
    def list_all(self) -> list[CanonicalTransaction]: ...

    def insert_many(self, candidates: Sequence[CanonicalTransaction]) -> InsertResult: ...

    def update_one(self, id: str, partial: Mapping[str, Any]) -> CanonicalTransaction: ...

    def delete_one(self, id: str) -> None: ...

    def delete_all(self) -> int: ...


def _check_partial(partial: Mapping[str, Any]) -> dict[str, Any]:
    unknown = sorted(set(partial) - UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"cannot update fields: {', '.join(unknown)}")
    out = dict(partial)
    if "amount" in out:
        out["amount"] = format_unsigned(parse_amount(out["amount"]))
    if "type" in out and out["type"] not in ("income", "expense"):
        raise ValueError("type must be 'income' or 'expense'")
    return out


def _parse_timestamp(raw: Any) -> datetime | None:
    if isinstance(raw, datetime):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        return datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# HTTP (PocketBase-style collection)
# ---------------------------------------------------------------------------


def _record_to_transaction(item: Mapping[str, Any]) -> CanonicalTransaction:
    raw_amount = item.get("amount")
    try:
        amount = format_unsigned(parse_amount(raw_amount))  # type: ignore[arg-type]
    except ValueError:
        amount = str(raw_amount or "0.00")
    return CanonicalTransaction(
        id=item.get("id"),
        date=str(item.get("date") or ""),
        description=str(item.get("description") or ""),
        amount=amount,
        type="income" if item.get("type") == "income" else "expense",
        category=item.get("category") or GENERAL,
        merchant=item.get("merchant") or UNKNOWN_MERCHANT,
        currency=item.get("currency") or "MXN",
        bank=item.get("bank") or None,
        created_at=_parse_timestamp(item.get("created")),
    )


class HttpRecordStore:
    """Transactions collection on a PocketBase-compatible REST server.

    Parameters
    ----------
    base_url:
        Server root. A trailing ``/_/`` (the admin UI path) is dropped.
    token:
        Optional bearer token; authentication itself happens elsewhere.
    collection:
        Collection name (default ``transactions``).
    session:
        Optional ``requests.Session`` (tests inject a fake).
    """

    PER_PAGE = 500

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        collection: str = "transactions",
        session: requests.Session | None = None,
        timeout: float = 30.0,
    ) -> None:
        root = base_url.strip()
        if root.endswith("/_/"):
            root = root[: -len("/_/")]
        self._root = root.rstrip("/")
        self._collection = collection
        self._session = session or requests.Session()
        self._timeout = timeout
        self._headers = {"Content-Type": "application/json"}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"

    @property
    def records_url(self) -> str:
        return f"{self._root}/api/collections/{self._collection}/records"

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            return self._session.request(
                method, url, headers=self._headers, timeout=self._timeout, **kwargs
            )
        except requests.RequestException as e:
            raise StoreError(f"could not reach record store at {self._root}: {e}") from e

    @staticmethod
    def _raise_for_status(resp: requests.Response, action: str) -> None:
        if resp.status_code >= 400:
            raise StoreError(f"{action} failed: HTTP {resp.status_code} {resp.text[:200]}")

    def list_all(self) -> list[CanonicalTransaction]:
        out: list[CanonicalTransaction] = []
        page = 1
        while True:
            resp = self._request(
                "GET",
                self.records_url,
                params={"page": page, "perPage": self.PER_PAGE, "sort": "-created"},
            )
            self._raise_for_status(resp, "list records")
            body = resp.json()
            out.extend(_record_to_transaction(item) for item in body.get("items") or [])
            total_pages = int(body.get("totalPages") or 1)
            if page >= total_pages:
                break
            page += 1
        return out

    def insert_many(self, candidates: Sequence[CanonicalTransaction]) -> InsertResult:
        saved: list[CanonicalTransaction] = []
        duplicates = 0
        skipped = 0
        for tx in candidates:
            payload = tx.to_record()
            payload["fingerprint"] = fingerprint_digest(fingerprint_transaction(tx))
            resp = self._request("POST", self.records_url, json=payload)
            if resp.status_code == 400:
                if "validation_not_unique" in resp.text:
                    duplicates += 1
                else:
                    skipped += 1
                    _logger.warning("store:insert_rejected body=%s", resp.text[:200])
                continue
            self._raise_for_status(resp, "create record")
            saved.append(_record_to_transaction(resp.json()))
        return InsertResult(saved=saved, duplicates=duplicates, skipped=skipped)

    def update_one(self, id: str, partial: Mapping[str, Any]) -> CanonicalTransaction:
        """Patch one record, refreshing its fingerprint digest when needed."""

        changes = _check_partial(partial)
        url = f"{self.records_url}/{id}"
        if FINGERPRINT_FIELDS & changes.keys():
            resp = self._request("GET", url)
            self._raise_for_status(resp, f"fetch record {id}")
            merged = replace(_record_to_transaction(resp.json()), **changes)
            changes["fingerprint"] = fingerprint_digest(fingerprint_transaction(merged))
        resp = self._request("PATCH", url, json=changes)
        if resp.status_code == 400 and "validation_not_unique" in resp.text:
            raise StoreError(f"update of {id} would duplicate an existing transaction")
        self._raise_for_status(resp, f"update record {id}")
        return _record_to_transaction(resp.json())

    def delete_one(self, id: str) -> None:
        resp = self._request("DELETE", f"{self.records_url}/{id}")
        self._raise_for_status(resp, f"delete record {id}")

    def delete_all(self) -> int:
        ids = [tx.id for tx in self.list_all() if tx.id]
        for id in ids:
            self.delete_one(id)
        return len(ids)


# ---------------------------------------------------------------------------
# SQL (shared ``db`` library)
# ---------------------------------------------------------------------------


def _row_to_transaction(row: LedgerTransaction) -> CanonicalTransaction:
    return CanonicalTransaction(
        id=row.id,
        date=row.date,
        description=row.description,
        amount=format_unsigned(Decimal(row.amount)),
        type="income" if row.type == "income" else "expense",
        category=row.category,
        merchant=row.merchant,
        currency=row.currency,
        bank=row.bank,
        created_at=row.created_at,
    )


def _row_fingerprint(row: LedgerTransaction) -> str:
    return fingerprint_digest(fingerprint(row.date, row.description, row.amount, row.type))


class SqlRecordStore:
    """Ledger table in the shared workspace database.

    The unique ``fingerprint_sha256`` column turns a re-imported row into an
    integrity conflict, which is counted as a duplicate. Each insert commits
    on its own so one conflict never rolls back its neighbours.
    """

    def __init__(self, database_url: str | None = None, *, create: bool = True) -> None:
        self._database_url = database_url
        if create:
            create_schema(database_url=database_url)

    def list_all(self) -> list[CanonicalTransaction]:
        try:
            with session_scope(database_url=self._database_url) as session:
                rows = session.scalars(
                    select(LedgerTransaction).order_by(desc(LedgerTransaction.created_at))
                ).all()
                return [_row_to_transaction(r) for r in rows]
        except SQLAlchemyError as e:
            raise StoreError(f"list records failed: {e}") from e

    def insert_many(self, candidates: Sequence[CanonicalTransaction]) -> InsertResult:
        saved: list[CanonicalTransaction] = []
        duplicates = 0
        skipped = 0
        for tx in candidates:
            try:
                amount = parse_amount(tx.amount)
            except ValueError:
                skipped += 1
                _logger.warning("store:insert_skipped reason=bad_amount amount=%r", tx.amount)
                continue
            row = LedgerTransaction(
                fingerprint_sha256=fingerprint_digest(fingerprint_transaction(tx)),
                date=tx.date,
                description=tx.description,
                amount=abs(amount),
                type=tx.type,
                category=tx.category,
                merchant=tx.merchant,
                currency=tx.currency,
                bank=tx.bank,
            )
            try:
                with session_scope(database_url=self._database_url) as session:
                    session.add(row)
                    session.flush()
            except IntegrityError:
                duplicates += 1
                continue
            except SQLAlchemyError as e:
                raise StoreError(f"create record failed: {e}") from e
            saved.append(_row_to_transaction(row))
        return InsertResult(saved=saved, duplicates=duplicates, skipped=skipped)

    def update_one(self, id: str, partial: Mapping[str, Any]) -> CanonicalTransaction:
        changes = _check_partial(partial)
        try:
            with session_scope(database_url=self._database_url) as session:
                row = session.get(LedgerTransaction, id)
                if row is None:
                    raise StoreError(f"transaction {id} not found")
                for key, value in changes.items():
                    setattr(row, key, Decimal(value) if key == "amount" else value)
                row.fingerprint_sha256 = _row_fingerprint(row)
                session.flush()
                return _row_to_transaction(row)
        except IntegrityError as e:
            raise StoreError(f"update of {id} would duplicate an existing transaction") from e
        except SQLAlchemyError as e:
            raise StoreError(f"update record {id} failed: {e}") from e

    def delete_one(self, id: str) -> None:
        try:
            with session_scope(database_url=self._database_url) as session:
                session.execute(delete(LedgerTransaction).where(LedgerTransaction.id == id))
        except SQLAlchemyError as e:
            raise StoreError(f"delete record {id} failed: {e}") from e

    def delete_all(self) -> int:
        try:
            with session_scope(database_url=self._database_url) as session:
                result = session.execute(delete(LedgerTransaction))
                return int(result.rowcount or 0)
        except SQLAlchemyError as e:
            raise StoreError(f"delete records failed: {e}") from e


def store_from_settings(settings: IngestSettings) -> RecordStore:
    """Pick the HTTP store when a URL is configured, else the SQL store."""

    if settings.store_url:
        return HttpRecordStore(
            settings.store_url,
            token=settings.store_token,
            collection=settings.store_collection,
        )
    if settings.database_url:
        return SqlRecordStore(settings.database_url)
    raise StoreError("no record store configured; set STATEMENT_INGEST_STORE_URL or DATABASE_URL")


__all__ = [
    "UPDATABLE_FIELDS",
    "FINGERPRINT_FIELDS",
    "RecordStore",
    "HttpRecordStore",
    "SqlRecordStore",
    "store_from_settings",
]
