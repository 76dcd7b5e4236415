"""Process configuration for the ingestion pipeline.

All knobs are read from environment variables (the CLI loads a local ``.env``
through ``python-dotenv`` first). Nothing is read at import time; callers
build an :class:`IngestSettings` with :meth:`IngestSettings.from_env` or
construct one directly (tests do this to zero out the rate-limit sleeps).
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace

_DEFAULT_MODEL = "gpt-5"


def _env_str(env: Mapping[str, str], name: str) -> str | None:
    raw = env.get(name)
    if raw is None:
        return None
    s = raw.strip()
    return s or None


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = _env_str(env, name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _env_str(env, name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


@dataclass(frozen=True, slots=True)
class IngestSettings:
    """Typed view over the pipeline's environment configuration.

    Attributes
    ----------
    api_key:
        Completion-service credential. ``None`` switches classification to
        the offline fallback and disables document extraction.
    base_url:
        Optional OpenAI-compatible endpoint override.
    text_model, vision_model:
        Model names for batch classification and page extraction.
    default_currency:
        Currency used when nothing in the text identifies one.
    batch_size:
        Transactions per classification request.
    page_delay_seconds, fallback_delay_seconds:
        Fixed sleeps between page requests and between per-item fallback
        calls.
    render_zoom:
        Page rasterization upscale factor (at least 2).
    store_url, store_token, store_collection:
        HTTP record store location and bearer token.
    database_url:
        SQLAlchemy URL for the local record store.
    """

    api_key: str | None = None
    base_url: str | None = None
    text_model: str = _DEFAULT_MODEL
    vision_model: str = _DEFAULT_MODEL
    default_currency: str = "MXN"
    batch_size: int = 10
    page_delay_seconds: float = 0.5
    fallback_delay_seconds: float = 0.1
    render_zoom: float = 2.0
    store_url: str | None = None
    store_token: str | None = None
    store_collection: str = "transactions"
    database_url: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.batch_size, bool) or self.batch_size < 1:
            raise ValueError("batch_size must be a positive integer")
        if self.render_zoom < 2.0:
            raise ValueError("render_zoom must be at least 2.0 to keep text legible")
        if self.page_delay_seconds < 0 or self.fallback_delay_seconds < 0:
            raise ValueError("delays must be non-negative")
        if len(self.default_currency.strip()) != 3:
            raise ValueError("default_currency must be a 3-letter code")

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> IngestSettings:
        """Build settings from ``env`` (defaults to ``os.environ``)."""

        e = os.environ if env is None else env
        return cls(
            api_key=_env_str(e, "OPENAI_API_KEY"),
            base_url=_env_str(e, "OPENAI_BASE_URL"),
            text_model=_env_str(e, "STATEMENT_INGEST_TEXT_MODEL") or _DEFAULT_MODEL,
            vision_model=_env_str(e, "STATEMENT_INGEST_VISION_MODEL") or _DEFAULT_MODEL,
            default_currency=(_env_str(e, "STATEMENT_INGEST_DEFAULT_CURRENCY") or "MXN").upper(),
            batch_size=_env_int(e, "STATEMENT_INGEST_BATCH_SIZE", 10),
            page_delay_seconds=_env_float(e, "STATEMENT_INGEST_PAGE_DELAY", 0.5),
            fallback_delay_seconds=_env_float(e, "STATEMENT_INGEST_FALLBACK_DELAY", 0.1),
            render_zoom=_env_float(e, "STATEMENT_INGEST_RENDER_ZOOM", 2.0),
            store_url=_env_str(e, "STATEMENT_INGEST_STORE_URL"),
            store_token=_env_str(e, "STATEMENT_INGEST_STORE_TOKEN"),
            store_collection=_env_str(e, "STATEMENT_INGEST_STORE_COLLECTION") or "transactions",
            database_url=_env_str(e, "DATABASE_URL"),
        )

    def without_credential(self) -> IngestSettings:
        return replace(self, api_key=None)


__all__ = ["IngestSettings"]
