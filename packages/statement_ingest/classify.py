"""Batch transaction classification.

Public API:
    - :func:`classify_batch`
    - :func:`classify_transaction`

``classify_batch`` always returns exactly one :class:`Classification` per
input, in input order. Without a completion credential every item goes
through the offline fallback rules; with one, items are sent in sequential
fixed-size batches and any batch whose reply cannot be aligned item-for-item
is classified by the fallback rules instead. A batch whose request fails is
retried item by item through :func:`classify_transaction`, pausing between
requests. Classification failures are never surfaced to the caller.
"""

from __future__ import annotations

import math
import time
from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal
from typing import Any, NamedTuple

from openai import OpenAI

from . import prompting
from .categories import coerce_category
from .completions import (
    create_client,
    extract_first_json_array,
    extract_first_json_object,
    response_text,
)
from .errors import ClassificationBatchMismatchError
from .fallback import extract_merchant, fallback_classify
from .logging_setup import get_logger
from .models import Classification, RawExtractedRecord
from .normalizers import parse_amount
from .settings import IngestSettings

type ClassifiableItem = Mapping[str, Any] | RawExtractedRecord

_DEFAULT_CONFIDENCE = 0.8

_logger = get_logger("statement_ingest.classify")


class _Item(NamedTuple):
    description: str
    amount: Decimal
    date: str | None


def _to_decimal(value: Any) -> Decimal:
    try:
        return parse_amount(value)
    except ValueError:
        return Decimal(0)


def _coerce_item(item: ClassifiableItem) -> _Item:
    if isinstance(item, RawExtractedRecord):
        return _Item(item.description, item.amount, item.date)
    if not isinstance(item, Mapping):
        raise TypeError(
            "classify_batch expects RawExtractedRecord values or mappings with "
            "'description' and 'amount' keys"
        )
    date = item.get("date")
    return _Item(
        str(item.get("description") or ""),
        _to_decimal(item.get("amount")),
        str(date) if date else None,
    )


def _paginate(n_total: int, page_size: int) -> Iterable[tuple[int, int, int]]:
    """Yield ``(batch_index, base, end)`` half-open ranges over ``n_total`` items."""

    for k in range(math.ceil(n_total / page_size)):
        base = k * page_size
        yield (k, base, min(base + page_size, n_total))


def _confidence_of(raw: Any) -> float:
    if raw is None or isinstance(raw, bool):
        return _DEFAULT_CONFIDENCE
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return _DEFAULT_CONFIDENCE
    return _DEFAULT_CONFIDENCE if math.isnan(value) else value


def _to_classification(raw: Any, description: str) -> Classification:
    """Build a validated :class:`Classification` from one reply object.

    Unknown categories become ``General``; a missing merchant is derived from
    the description; a missing confidence defaults to 0.8.
    """

    if not isinstance(raw, Mapping):
        raise ValueError("classification reply item is not an object")
    merchant = raw.get("merchant")
    if not isinstance(merchant, str) or not merchant.strip():
        merchant = extract_merchant(description)
    subcategory = raw.get("subcategory")
    tags = raw.get("tags")
    return Classification(
        category=coerce_category(raw.get("category")),
        merchant=merchant,
        subcategory=subcategory if isinstance(subcategory, str) else None,
        confidence=_confidence_of(raw.get("confidence")),
        tags=tags if isinstance(tags, list | tuple | str) else (),
    )


def _request_text(client: OpenAI, *, model: str, instructions: str, content: str) -> str:
    resp = client.responses.create(model=model, instructions=instructions, input=content)
    return response_text(resp)


def _parse_batch_reply(text: str, batch: Sequence[_Item]) -> list[Classification]:
    parsed = extract_first_json_array(text)
    if parsed is None or len(parsed) != len(batch):
        raise ClassificationBatchMismatchError(len(batch), None if parsed is None else len(parsed))
    return [_to_classification(raw, it.description) for raw, it in zip(parsed, batch, strict=True)]


def _classify_singly(
    client: OpenAI, batch: Sequence[_Item], *, settings: IngestSettings
) -> list[Classification]:
    out: list[Classification] = []
    for i, it in enumerate(batch):
        if i and settings.fallback_delay_seconds > 0:
            time.sleep(settings.fallback_delay_seconds)
        out.append(
            classify_transaction(it.description, it.amount, it.date, settings=settings, client=client)
        )
    return out


def classify_batch(
    items: Iterable[ClassifiableItem],
    *,
    settings: IngestSettings,
    client: OpenAI | None = None,
) -> list[Classification]:
    """Classify ``items`` and return exactly one result per item, in order.

    Parameters
    ----------
    items:
        ``RawExtractedRecord`` values or mappings with ``description``,
        ``amount`` and optional ``date``.
    settings:
        Supplies the credential, model name, batch size and the pause
        between per-item retries.
    client:
        Optional pre-built OpenAI client (tests inject a stub). Ignored when
        no credential is configured.
    """

    rows = [_coerce_item(it) for it in items]
    if not rows:
        return []

    if not settings.has_credential:
        _logger.info("classify:offline num_transactions=%d", len(rows))
        return [fallback_classify(it.description, it.amount) for it in rows]

    if client is None:
        client = create_client(settings)

    out: list[Classification] = []
    for batch_index, base, end in _paginate(len(rows), settings.batch_size):
        batch = rows[base:end]
        t0 = time.perf_counter()
        try:
            text = _request_text(
                client,
                model=settings.text_model,
                instructions=prompting.build_system_instructions(batch=True),
                content=prompting.build_batch_content(
                    [(it.description, it.amount) for it in batch]
                ),
            )
        except Exception as e:  # noqa: BLE001 - a failed request is retried item by item
            _logger.warning(
                "classify:batch_request_failed batch_index=%d num_transactions=%d error=%s",
                batch_index,
                len(batch),
                e.__class__.__name__,
            )
            out.extend(_classify_singly(client, batch, settings=settings))
            continue
        try:
            results = _parse_batch_reply(text, batch)
        except ValueError as e:
            _logger.warning(
                "classify:batch_fallback batch_index=%d num_transactions=%d error=%s",
                batch_index,
                len(batch),
                e.__class__.__name__,
            )
            results = [fallback_classify(it.description, it.amount) for it in batch]
        else:
            _logger.info(
                "classify:batch_done batch_index=%d num_transactions=%d latency_ms=%.2f",
                batch_index,
                len(results),
                (time.perf_counter() - t0) * 1000.0,
            )
        out.extend(results)
    return out


def classify_transaction(
    description: str,
    amount: Decimal | float | int,
    date: str | None = None,
    *,
    settings: IngestSettings,
    client: OpenAI | None = None,
) -> Classification:
    """Classify a single transaction, degrading to the fallback rules."""

    amt = _to_decimal(amount)
    if not settings.has_credential:
        return fallback_classify(description, amt)
    if client is None:
        client = create_client(settings)
    try:
        text = _request_text(
            client,
            model=settings.text_model,
            instructions=prompting.build_system_instructions(batch=False),
            content=prompting.build_single_content(description, amt, date),
        )
        parsed = extract_first_json_object(text)
        if parsed is None:
            raise ValueError("no JSON object in classification reply")
        return _to_classification(parsed, description)
    except Exception as e:  # noqa: BLE001 - single-item failures degrade to the fallback
        _logger.warning("classify:single_fallback error=%s", e.__class__.__name__)
        return fallback_classify(description, amt)


__all__ = ["ClassifiableItem", "classify_batch", "classify_transaction"]
