"""Currency inference from unstructured statement text.

Public API:
    - :func:`identify_currency`
    - :func:`get_currency_info`
    - :func:`format_amount`

Detection is a first-match cascade over four signals (ISO code, unambiguous
symbol, geographic/institution context, dominant number format) with a
configurable default. The bare ``$`` sign is deliberately not a signal: it is
shared by half the registry.
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import NamedTuple

from .logging_setup import get_logger

_logger = get_logger("statement_ingest.currency")


class CurrencyInfo(NamedTuple):
    code: str
    symbol: str
    name: str
    # Thousands and decimal separators used when formatting amounts.
    grouping: str = ","
    decimal: str = "."


SUPPORTED_CURRENCIES: tuple[CurrencyInfo, ...] = (
    CurrencyInfo("MXN", "$", "Peso Mexicano"),
    CurrencyInfo("USD", "$", "Dólar Estadounidense"),
    CurrencyInfo("EUR", "€", "Euro", ".", ","),
    CurrencyInfo("GBP", "£", "Libra Esterlina"),
    CurrencyInfo("CAD", "C$", "Dólar Canadiense"),
    CurrencyInfo("ARS", "$", "Peso Argentino", ".", ","),
    CurrencyInfo("CLP", "$", "Peso Chileno", ".", ","),
    CurrencyInfo("COP", "$", "Peso Colombiano", ".", ","),
    CurrencyInfo("PEN", "S/", "Sol Peruano"),
    CurrencyInfo("BRL", "R$", "Real Brasileño", ".", ","),
)

_BY_CODE: dict[str, CurrencyInfo] = {c.code: c for c in SUPPORTED_CURRENCIES}

_FALLBACK_CODE = "MXN"

_ISO_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = tuple(
    (c.code, re.compile(rf"\b{c.code}\b", re.IGNORECASE)) for c in SUPPORTED_CURRENCIES
)

# Order matters: multi-character symbols that embed ``$`` are listed, the
# plain dollar sign is not.
_SYMBOLS: tuple[tuple[str, str], ...] = (
    ("€", "EUR"),
    ("£", "GBP"),
    ("R$", "BRL"),
    ("S/", "PEN"),
    ("C$", "CAD"),
)

_CONTEXT_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("MXN", ("MEXICO", "MÉXICO", "BANAMEX", "BANCOMER", "BBVA", "SANTANDER MEXICO")),
    ("USD", ("USA", "UNITED STATES", "AMERICAN", "US BANK")),
    ("EUR", ("EUROPA", "SPAIN", "ESPAÑA", "FRANCE", "GERMANY", "ITALY")),
    ("GBP", ("UK", "UNITED KINGDOM", "BRITISH")),
    ("ARS", ("ARGENTINA", "BANCO NACION")),
    ("CLP", ("CHILE", "BANCO DE CHILE")),
    ("COP", ("COLOMBIA", "BANCO DE BOGOTA")),
)

_CONTEXT_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = tuple(
    (code, re.compile(r"(?<!\w)(?:" + "|".join(re.escape(k) for k in kws) + r")(?!\w)"))
    for code, kws in _CONTEXT_KEYWORDS
)

# ``1,234.56`` and ``1.234,56``; anchored so neither matches inside the other.
_COMMA_THOUSANDS = re.compile(r"(?<![\d.,])\d{1,3}(?:,\d{3})*\.\d{2}(?!\d)")
_DOT_THOUSANDS = re.compile(r"(?<![\d.,])\d{1,3}(?:\.\d{3})*,\d{2}(?!\d)")

# More than this many matches of one number style decides the currency.
_FORMAT_THRESHOLD = 3


def _normalize_default(default: str | None) -> str:
    code = (default or "").strip().upper()
    return code if code in _BY_CODE else _FALLBACK_CODE


def identify_currency(text: str | None, default: str = _FALLBACK_CODE) -> str:
    """Return the 3-letter currency code most likely used by ``text``.

    First match wins: supported ISO code as a whole word, then an unambiguous
    symbol, then whole-word context keywords, then the dominant number
    format (comma thousands ⇒ MXN, dot thousands ⇒ EUR). Otherwise
    ``default`` (an unsupported default degrades to MXN).
    """

    fallback = _normalize_default(default)
    if not text:
        return fallback

    for code, pattern in _ISO_PATTERNS:
        if pattern.search(text):
            _logger.debug("currency:detected code=%s via=iso", code)
            return code

    for symbol, code in _SYMBOLS:
        if symbol in text:
            _logger.debug("currency:detected code=%s via=symbol", code)
            return code

    upper = text.upper()
    for code, pattern in _CONTEXT_PATTERNS:
        if pattern.search(upper):
            _logger.debug("currency:detected code=%s via=context", code)
            return code

    if len(_COMMA_THOUSANDS.findall(text)) > _FORMAT_THRESHOLD:
        _logger.debug("currency:detected code=MXN via=number_format")
        return "MXN"
    if len(_DOT_THOUSANDS.findall(text)) > _FORMAT_THRESHOLD:
        _logger.debug("currency:detected code=EUR via=number_format")
        return "EUR"

    _logger.debug("currency:default code=%s", fallback)
    return fallback


def get_currency_info(code: str) -> CurrencyInfo:
    """Return registry info for ``code``; unknown codes resolve to MXN."""

    return _BY_CODE.get((code or "").strip().upper(), _BY_CODE[_FALLBACK_CODE])


def format_amount(amount: Decimal | float | int | str, code: str) -> str:
    """Format ``amount`` with the currency's symbol and separators.

    >>> format_amount(Decimal("1234.5"), "EUR")
    '€1.234,50'
    """

    info = get_currency_info(code)
    value = Decimal(str(amount))
    sign = "-" if value < 0 else ""
    plain = f"{abs(value):,.2f}"
    if (info.grouping, info.decimal) != (",", "."):
        plain = plain.translate(str.maketrans({",": info.grouping, ".": info.decimal}))
    return f"{sign}{info.symbol}{plain}"


__all__ = [
    "CurrencyInfo",
    "SUPPORTED_CURRENCIES",
    "identify_currency",
    "get_currency_info",
    "format_amount",
]
