"""Controlled category vocabulary shared by the model prompts and the
offline fallback rules.

Exports
-------
- ``CATEGORIES``: the ordered vocabulary (Spanish display names).
- ``GENERAL``: the catch-all category.
- ``coerce_category(value)``: map a free-form model answer onto the
  vocabulary, case- and accent-insensitively, returning ``GENERAL`` for
  anything unknown.
"""

from __future__ import annotations

import unicodedata

GENERAL = "General"

CATEGORIES: tuple[str, ...] = (
    # Income
    "Salario",
    "Freelance",
    "Transferencias",
    "Inversiones",
    "Devoluciones",
    "Cashback",
    # Essentials
    "Alimentación",
    "Restaurantes",
    "Transporte",
    "Vivienda",
    "Servicios",
    "Salud",
    "Educación",
    # Shopping
    "Amazon",
    "MercadoLibre",
    "Compras Online",
    "Ropa",
    "Tecnología",
    "Electrónica",
    "Hogar",
    # Lifestyle
    "Entretenimiento",
    "Streaming",
    "Gimnasio",
    "Viajes",
    "Turismo",
    # Finance
    "Tarjetas",
    "Comisiones",
    "Préstamos",
    GENERAL,
)


def _fold(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.split()).casefold()


_BY_FOLDED: dict[str, str] = {_fold(c): c for c in CATEGORIES}


def coerce_category(value: object) -> str:
    if not isinstance(value, str):
        return GENERAL
    return _BY_FOLDED.get(_fold(value), GENERAL)


__all__ = ["CATEGORIES", "GENERAL", "coerce_category"]
