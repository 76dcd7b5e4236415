"""Prompt construction for batch classification and page extraction.

This module builds:
- The system instructions for batch and single-item classification.
- The numbered user content for one classification batch, embedding the
  controlled category vocabulary and the worked classification rules.
- The page-extraction instruction sent with each rendered document page.

All builders are pure string functions; no client or environment access.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from .categories import CATEGORIES

CLASSIFICATION_RULES: tuple[str, ...] = (
    'Mentions of "AMAZON" or "AMZN" → category "Amazon".',
    'Mentions of "MERCADOLIBRE", "MERCADO LIBRE" or "ML" → category "MercadoLibre".',
    'Supermarkets, groceries or food shopping → category "Alimentación".',
    'Restaurants, cafés or fast food → category "Restaurantes".',
    '"NETFLIX", "SPOTIFY", "DISNEY", "HBO" → category "Streaming".',
    '"UBER", "DIDI", "CABIFY", "RAPPI" → category "Transporte".',
    '"STRIPE", "PAYPAL", "MERCADO PAGO" → category "Transferencias".',
    "A large positive amount (> 5000) is most likely "
    '"Salario", "Freelance" or "Transferencias".',
    '"CASHBACK" or "DEVOLUCIÓN" → the matching category.',
    "Recurring subscriptions → the specific category (Streaming, Gimnasio, ...).",
    "Extract a clean merchant name from the description (no reference codes).",
    "confidence must be a number between 0 and 1.",
    'Use a subcategory when relevant (e.g. "Restaurantes - Comida Rápida").',
)

_ITEM_SHAPE = (
    "{\n"
    '  "category": "category name",\n'
    '  "merchant": "merchant name",\n'
    '  "subcategory": "optional subcategory",\n'
    '  "confidence": 0.95,\n'
    '  "tags": ["tag1"]\n'
    "}"
)


def _signed(amount: Decimal | float | int) -> str:
    value = Decimal(str(amount))
    return f"{'+' if value > 0 else ''}{value:.2f}"


def build_system_instructions(*, batch: bool = True) -> str:
    """Return concise system instructions for the classification task."""

    if batch:
        return (
            "You are a financial analysis expert. Classify multiple bank transactions "
            "precisely and consistently using only the provided Spanish category names. "
            "Respond ONLY with valid JSON."
        )
    return (
        "You are a financial analysis expert. Classify bank transactions precisely and "
        "consistently using only the provided Spanish category names."
    )


def _rules_block() -> str:
    return "\n".join(f"- {r}" for r in CLASSIFICATION_RULES)


def build_batch_content(
    items: Sequence[tuple[str, Decimal | float | int]],
    categories: Sequence[str] = CATEGORIES,
) -> str:
    """Build the numbered user content for one batch.

    ``items`` are ``(description, amount)`` pairs; numbering is 1-based and
    the reply must contain exactly one object per line, in order.
    """

    lines = [f'{i}. "{desc}" - {_signed(amount)}' for i, (desc, amount) in enumerate(items, 1)]
    return (
        f"Classify these {len(items)} bank transactions:\n\n"
        + "\n".join(lines)
        + f"\n\nAvailable categories: {', '.join(categories)}\n\n"
        + "Rules:\n"
        + _rules_block()
        + f"\n\nRespond ONLY with a valid JSON array of exactly {len(items)} objects, "
        + "in the same order as the list above, each shaped like:\n"
        + _ITEM_SHAPE
    )


def build_single_content(
    description: str,
    amount: Decimal | float | int,
    date: str | None = None,
    categories: Sequence[str] = CATEGORIES,
) -> str:
    parts = [
        "Analyze this bank transaction and classify it:",
        "",
        f'Description: "{description}"',
        f"Amount: {_signed(amount)}",
    ]
    if date:
        parts.append(f"Date: {date}")
    parts += [
        "",
        f"Available categories: {', '.join(categories)}",
        "",
        "Respond ONLY with a valid JSON object in exactly this format:",
        _ITEM_SHAPE,
        "",
        "Rules:",
        _rules_block(),
    ]
    return "\n".join(parts)


def build_page_extraction_prompt(page_number: int, total_pages: int) -> str:
    """Return the instruction sent alongside one rendered statement page."""

    return (
        f"This image is page {page_number} of {total_pages} of a bank statement. "
        "Extract EVERY transaction visible on the page.\n\n"
        "For each transaction return:\n"
        '- "date": the transaction date, converted to "YYYY-MM-DD" when possible\n'
        '- "description": complete but concise\n'
        '- "amount": the exact number with an explicit sign '
        "(positive for money in, negative for money out), no thousands separators\n"
        '- "type": "income" or "expense"\n\n'
        "Direction rules:\n"
        "- An explicit sign on the page governs.\n"
        '- Wording such as "abono", "depósito", "deposit" or "credit" means income.\n'
        '- Wording such as "cargo", "charge", "compra", "retiro" or "debit" means expense.\n'
        "- When ambiguous, follow the direction the wording implies; otherwise use expense.\n\n"
        "Ignore balances, totals, interest summaries and headers.\n\n"
        "Respond ONLY with a JSON array (no extra text), for example:\n"
        '[{"date": "2025-09-01", "description": "Cargo - Transferencia enviada", '
        '"amount": -200.00, "type": "expense"}]\n'
        "If the page has no transactions respond with []."
    )


__all__ = [
    "CLASSIFICATION_RULES",
    "build_system_instructions",
    "build_batch_content",
    "build_single_content",
    "build_page_extraction_prompt",
]
