"""CLI for the ``statement_ingest`` package.

Typer-based console interface. Environment variables (notably
``OPENAI_API_KEY`` and the ``STATEMENT_INGEST_*`` knobs) are loaded from a
local ``.env`` using ``python-dotenv`` before any command runs. Business
logic lives in ``statement_ingest.api`` and related modules.
"""

from __future__ import annotations

import mimetypes
import sys
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import ArgumentInfo

from .logging_setup import configure_logging

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Ingest bank statements (CSV, PDF or page images) into a categorized, "
        "deduplicated transaction ledger. Loads OPENAI_API_KEY from a local .env."
    ),
)

# Module-level argument object to satisfy ruff B008 (no calls in parameter
# defaults).
STATEMENT_PATH_ARGUMENT: ArgumentInfo = typer.Argument(
    ...,
    help="Statement file (CSV, PDF, PNG, JPEG, TIFF or WebP).",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports missing files itself
)


def _fail(message: str) -> typer.Exit:
    print(f"Error: {message}", file=sys.stderr)
    return typer.Exit(1)


def _read(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        raise _fail(f"File not found: {path}") from None
    except PermissionError:
        raise _fail(f"Permission denied: {path}") from None


def _guess_media_type(path: Path, media_type: str | None) -> str | None:
    if media_type:
        return media_type
    guessed, _encoding = mimetypes.guess_type(path.name)
    return guessed


@app.command("ingest")
def ingest_cmd(
    path: Annotated[Path, STATEMENT_PATH_ARGUMENT],
    *,
    media_type: str | None = typer.Option(
        None, help="Declared media type (guessed from the extension when omitted)."
    ),
    store_url: str | None = typer.Option(
        None, help="Override STATEMENT_INGEST_STORE_URL (HTTP record store)."
    ),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (SQL record store, used when no store URL is set)."
    ),
    offline: bool = typer.Option(
        False, help="Ignore OPENAI_API_KEY and classify with the offline rules (CSV only)."
    ),
) -> None:
    """Ingest one statement file and print the created transactions."""

    from .api import ingest_upload
    from .errors import IngestError
    from .settings import IngestSettings
    from .store import store_from_settings

    try:
        settings = IngestSettings.from_env()
    except ValueError as e:
        raise _fail(str(e)) from None
    if store_url:
        settings = replace(settings, store_url=store_url)
    if database_url:
        settings = replace(settings, database_url=database_url)
    if offline:
        settings = settings.without_credential()

    data = _read(path)
    try:
        store = store_from_settings(settings)
        result = ingest_upload(
            data,
            path.name,
            _guess_media_type(path, media_type),
            store=store,
            settings=settings,
        )
    except IngestError as e:
        raise _fail(str(e)) from None

    for note in result.warnings:
        print(f"Warning: {note}", file=sys.stderr)
    period = result.period
    period_label = (
        f"{period.year:04d}-{period.month:02d}" if period is not None and period.is_complete else "-"
    )
    print(
        f"bank={result.bank or '-'} currency={result.currency or '-'} period={period_label} "
        f"created={len(result.records_created)} duplicates={result.duplicate_count} "
        f"skipped={result.skipped} already_processed={str(result.already_processed).lower()}"
    )
    # date, type, amount, currency, category, merchant, description
    for tx in result.records_created:
        print(
            "\t".join(
                [tx.date, tx.type, tx.amount, tx.currency, tx.category, tx.merchant, tx.description]
            )
        )


@app.command("classify")
def classify_cmd(
    description: str,
    amount: str,
    *,
    date: str | None = typer.Option(None, help="Optional transaction date."),
    offline: bool = typer.Option(False, help="Use the offline rules only."),
) -> None:
    """Classify a single transaction description and signed amount."""

    from .classify import classify_transaction
    from .settings import IngestSettings

    try:
        value = Decimal(amount)
    except InvalidOperation:
        raise _fail(f"amount must be a number, got {amount!r}") from None
    try:
        settings = IngestSettings.from_env()
    except ValueError as e:
        raise _fail(str(e)) from None
    if offline:
        settings = settings.without_credential()

    c = classify_transaction(description, value, date, settings=settings)
    print(f"category\t{c.category}")
    print(f"merchant\t{c.merchant}")
    if c.subcategory:
        print(f"subcategory\t{c.subcategory}")
    print(f"confidence\t{c.confidence:.2f}")
    if c.tags:
        print(f"tags\t{', '.join(c.tags)}")


@app.command("detect")
def detect_cmd(
    path: Annotated[Path, STATEMENT_PATH_ARGUMENT],
    *,
    media_type: str | None = typer.Option(None, help="Declared media type."),
) -> None:
    """Print the detected bank, currency and statement period without any model call."""

    from .banks import identify_bank
    from .currency import identify_currency
    from .dispatch import decode_text, detect_source_kind, document_filetype
    from .errors import IngestError
    from .models import SourceKind
    from .periods import extract_statement_period
    from .vision import first_page_text

    data = _read(path)
    mt = _guess_media_type(path, media_type)
    try:
        kind = detect_source_kind(path.name, mt)
        if kind is SourceKind.CSV:
            text = decode_text(data)
            match = identify_bank(path.name, text)
        else:
            text = first_page_text(data, document_filetype(path.name, mt))
            match = identify_bank(path.name, None, text)
    except IngestError as e:
        raise _fail(str(e)) from None

    period = extract_statement_period(path.name, text)
    bank = f"{match.bank.name} ({match.confidence:.0f}%)" if match.bank is not None else "-"
    print(f"kind\t{kind}")
    print(f"bank\t{bank}")
    print(f"currency\t{identify_currency(text)}")
    print(f"month\t{period.month if period.month is not None else '-'}")
    print(f"year\t{period.year if period.year is not None else '-'}")


@app.command("banks")
def banks_cmd() -> None:
    """List the supported banks as ``<id>\\t<name>\\t<country>``."""

    from .banks import supported_banks

    for bank_id, name, country in supported_banks():
        print(f"{bank_id}\t{name}\t{country or ''}")


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    # override=False keeps variables already set in the environment
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover - exercised via the console script
    main()
