"""Pytest configuration for test isolation.

Makes the workspace packages importable without an install (``packages/``
for ``statement_ingest`` and ``libs/db/src`` for the shared ``db`` library)
and keeps every test hermetic:

- no ambient ``OPENAI_API_KEY`` or store configuration leaks in from the
  developer's shell or a local ``.env``;
- the ``settings`` fixture zeroes the rate-limit sleeps so page and
  fallback delays never slow the suite down.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
# Ensure local packages precede anything installed on sys.path.
sys.path[:0] = [
    p
    for p in [str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT)]
    if p not in sys.path
]

from statement_ingest.settings import IngestSettings  # noqa: E402

_ENV_VARS = (
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "DATABASE_URL",
    "STATEMENT_INGEST_STORE_URL",
    "STATEMENT_INGEST_STORE_TOKEN",
    "STATEMENT_INGEST_DEFAULT_CURRENCY",
    "STATEMENT_INGEST_BATCH_SIZE",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings() -> IngestSettings:
    """Online settings (a fake key) with every delay zeroed."""

    return IngestSettings(
        api_key="test-key",
        page_delay_seconds=0.0,
        fallback_delay_seconds=0.0,
    )


@pytest.fixture
def offline_settings(settings: IngestSettings) -> IngestSettings:
    return settings.without_credential()
