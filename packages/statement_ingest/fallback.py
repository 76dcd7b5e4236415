"""Deterministic, offline transaction classifier.

Used for 100% of input when no completion credential is configured, and per
item whenever a classification batch fails. Pure: no I/O, no logging.

Rules are lower-cased substring tests evaluated in a fixed priority order;
the first matching tier decides the category and its fixed confidence.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from decimal import Decimal
from typing import NamedTuple

from .categories import GENERAL
from .models import Classification

UNKNOWN_MERCHANT = "Desconocido"

_GENERAL_CONFIDENCE = 0.5
_SALARY_MIN_AMOUNT = Decimal(1000)

_MERCHANT_SPLIT_RE = re.compile(r"[\s\-_*/,;:|]+")
_MERCHANT_TOKENS = 3


class _Rule(NamedTuple):
    category: str
    confidence: float
    matches: Callable[[str, Decimal], bool]


def _any_of(*keywords: str) -> Callable[[str, Decimal], bool]:
    def _match(desc: str, _amount: Decimal) -> bool:
        return any(k in desc for k in keywords)

    return _match


def _marketplace(desc: str, _amount: Decimal) -> bool:
    return (
        "mercadolibre" in desc
        or "mercado libre" in desc
        or " ml " in desc
        or desc.startswith("ml ")
    )


def _salary(desc: str, amount: Decimal) -> bool:
    if amount > _SALARY_MIN_AMOUNT and "nomina" in desc:
        return True
    return any(k in desc for k in ("salario", "sueldo", "paga", "nómina", "payroll", "salary"))


_RULES: tuple[_Rule, ...] = (
    _Rule("Amazon", 0.95, _any_of("amazon", "amzn")),
    _Rule("MercadoLibre", 0.95, _marketplace),
    _Rule(
        "Alimentación",
        0.9,
        _any_of(
            "mercadona",
            "carrefour",
            "lidl",
            "dia",
            "eroski",
            "alcampo",
            "supermercado",
            "super",
            "hipercor",
            "walmart",
            "soriana",
            "chedraui",
            "costco",
        ),
    ),
    _Rule(
        "Restaurantes",
        0.85,
        _any_of(
            "restaurante",
            "vips",
            "mcdonalds",
            "burger",
            "pizza",
            "cafe",
            "bar",
            "comida",
            "starbucks",
        ),
    ),
    _Rule(
        "Transporte",
        0.85,
        _any_of(
            "uber",
            "cabify",
            "didi",
            "gasolinera",
            "repsol",
            "cepsa",
            "pemex",
            "metro",
            "renfe",
            "taxi",
        ),
    ),
    _Rule(
        "Compras Online",
        0.8,
        _any_of("zara", "h&m", "corte inglés", "fnac", "media markt", "el corte", "liverpool"),
    ),
    _Rule("Salario", 0.9, _salary),
    _Rule(
        "Salud",
        0.85,
        _any_of("farmacia", "hospital", "medico", "médico", "clinica", "clínica", "dentista"),
    ),
    _Rule(
        "Vivienda",
        0.9,
        _any_of(
            "alquiler",
            "hipoteca",
            "renta",
            "luz",
            "agua",
            "gas",
            "internet",
            "electricidad",
            "cfe",
        ),
    ),
)


def extract_merchant(description: str) -> str:
    """Return up to three significant tokens of ``description``.

    Tokens shorter than three characters or purely numeric are ignored.

    >>> extract_merchant("OXXO 1234 CDMX-SUC 55")
    'OXXO CDMX SUC'
    >>> extract_merchant("12 34")
    'Desconocido'
    """

    words = [
        w for w in _MERCHANT_SPLIT_RE.split(description or "") if len(w) > 2 and not w.isdigit()
    ]
    return " ".join(words[:_MERCHANT_TOKENS]) or UNKNOWN_MERCHANT


def fallback_classify(description: str, amount: Decimal | float | int) -> Classification:
    desc = (description or "").lower()
    amt = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    category, confidence = GENERAL, _GENERAL_CONFIDENCE
    for rule in _RULES:
        if rule.matches(desc, amt):
            category, confidence = rule.category, rule.confidence
            break
    return Classification(
        category=category,
        merchant=extract_merchant(description),
        confidence=confidence,
        tags=(),
    )


__all__ = ["UNKNOWN_MERCHANT", "extract_merchant", "fallback_classify"]
