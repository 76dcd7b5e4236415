"""Bank identification from a filename and whatever text is available.

Public API:
    - :data:`SUPPORTED_BANKS`
    - :func:`identify_bank`
    - :func:`supported_banks`

Scoring is additive per registered institution: each keyword occurrence is
worth 2, each pattern occurrence 3, and a filename that names the bank earns
a flat bonus of 5. The best strictly-greater score wins, so ties keep the
institution registered first.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import NamedTuple

from .logging_setup import get_logger

_logger = get_logger("statement_ingest.banks")

_KEYWORD_WEIGHT = 2
_PATTERN_WEIGHT = 3
_FILENAME_BONUS = 5
_MIN_SCORE = 2
# Score at which confidence saturates at 100.
_FULL_CONFIDENCE_SCORE = 10


@dataclass(frozen=True, slots=True)
class BankInfo:
    id: str
    name: str
    keywords: tuple[str, ...]
    patterns: tuple[re.Pattern[str], ...]
    country: str | None = None


def _bank(
    id: str, name: str, keywords: tuple[str, ...], patterns: tuple[str, ...], country: str
) -> BankInfo:
    return BankInfo(
        id=id,
        name=name,
        keywords=keywords,
        patterns=tuple(re.compile(p, re.IGNORECASE) for p in patterns),
        country=country,
    )


SUPPORTED_BANKS: tuple[BankInfo, ...] = (
    # Mexico
    _bank(
        "banamex",
        "Banamex",
        ("banamex", "citibanamex", "citibank méxico"),
        (r"banamex", r"citibanamex"),
        "México",
    ),
    _bank("bbva", "BBVA México", ("bbva", "bbva bancomer"), (r"bbva", r"bancomer"), "México"),
    _bank(
        "santander",
        "Santander México",
        ("santander", "banco santander"),
        (r"santander",),
        "México",
    ),
    _bank("hsbc", "HSBC México", ("hsbc",), (r"hsbc",), "México"),
    _bank("banorte", "Banorte", ("banorte",), (r"banorte",), "México"),
    _bank(
        "scotiabank",
        "Scotiabank México",
        ("scotiabank", "scotia"),
        (r"scotiabank", r"scotia"),
        "México",
    ),
    _bank("inbursa", "Banco Inbursa", ("inbursa",), (r"inbursa",), "México"),
    _bank(
        "mercadolibre",
        "Mercado Pago / Mercado Libre",
        ("mercado pago", "mercado libre", "mercadopago", "mercadolibre"),
        (r"mercado\s*(?:pago|libre)", r"mercadopago", r"mercadolibre"),
        "México/Latinoamérica",
    ),
    _bank(
        "openbank", "Open Bank", ("open bank", "openbank"), (r"open\s*bank", r"openbank"), "México"
    ),
    _bank("a-banco", "A Banco", ("a banco", "abanco"), (r"\ba\s*banco", r"abanco"), "México"),
    _bank(
        "nu",
        "Nu México",
        ("nu mexico", "nu bank", "nubank"),
        (r"\bnu\s*(?:mexico|bank)", r"nubank"),
        "México",
    ),
    _bank("stori", "Stori", ("stori",), (r"stori",), "México"),
    _bank("uala", "Ualá", ("uala", "ualá"), (r"uala", r"ualá"), "México/Argentina"),
    # United States
    _bank("chase", "Chase Bank", ("chase", "jpmorgan chase"), (r"chase", r"jpmorgan"), "EEUU"),
    _bank(
        "bank-of-america",
        "Bank of America",
        ("bank of america", "bofa"),
        (r"bank\s*of\s*america", r"bofa"),
        "EEUU",
    ),
    _bank("wells-fargo", "Wells Fargo", ("wells fargo",), (r"wells\s*fargo",), "EEUU"),
    _bank("citi", "Citibank", ("citibank", "citi"), (r"citibank", r"^citi\b"), "EEUU"),
    _bank("us-bank", "U.S. Bank", ("us bank", "u.s. bank"), (r"u\.?s\.?\s*bank",), "EEUU"),
    # Rest of Latin America
    _bank("bancolombia", "Bancolombia", ("bancolombia",), (r"bancolombia",), "Colombia"),
    _bank(
        "banco-de-chile",
        "Banco de Chile",
        ("banco de chile",),
        (r"banco\s*de\s*chile",),
        "Chile",
    ),
    _bank("itau", "Itaú", ("itau", "itaú"), (r"itau", r"itaú"), "Brasil"),
    _bank("bradesco", "Bradesco", ("bradesco",), (r"bradesco",), "Brasil"),
)


class BankMatch(NamedTuple):
    bank: BankInfo | None
    confidence: float


def _filename_names_bank(filename_lower: str, bank: BankInfo) -> bool:
    if bank.name.lower() in filename_lower:
        return True
    return re.search(rf"(?<![a-z0-9]){re.escape(bank.id)}(?![a-z0-9])", filename_lower) is not None


def _score(bank: BankInfo, search_text: str, filename_lower: str) -> int:
    score = 0
    for kw in bank.keywords:
        score += search_text.count(kw) * _KEYWORD_WEIGHT
    for pattern in bank.patterns:
        score += sum(1 for _ in pattern.finditer(search_text)) * _PATTERN_WEIGHT
    if _filename_names_bank(filename_lower, bank):
        score += _FILENAME_BONUS
    return score


def identify_bank(
    filename: str,
    full_text: str | None = None,
    first_page_text: str | None = None,
) -> BankMatch:
    """Return the best-scoring registered bank, or ``BankMatch(None, 0)``.

    ``confidence`` is ``min(100, score / 10 * 100)``; a best score below 2
    means no identification.
    """

    filename_lower = (filename or "").lower()
    search_text = " ".join(
        [filename_lower, (full_text or "").lower(), (first_page_text or "").lower()]
    )

    best: BankInfo | None = None
    best_score = 0
    for bank in SUPPORTED_BANKS:
        score = _score(bank, search_text, filename_lower)
        if score > best_score:
            best, best_score = bank, score

    if best is None or best_score < _MIN_SCORE:
        _logger.debug("banks:no_match filename=%s", filename)
        return BankMatch(bank=None, confidence=0.0)

    confidence = min(100.0, best_score / _FULL_CONFIDENCE_SCORE * 100.0)
    _logger.debug("banks:match id=%s score=%d confidence=%.0f", best.id, best_score, confidence)
    return BankMatch(bank=best, confidence=confidence)


def supported_banks() -> list[tuple[str, str, str | None]]:
    return [(b.id, b.name, b.country) for b in SUPPORTED_BANKS]


__all__ = ["BankInfo", "BankMatch", "SUPPORTED_BANKS", "identify_bank", "supported_banks"]
