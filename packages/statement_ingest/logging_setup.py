"""Process-wide logging for ``statement_ingest``.

Modules log through ``get_logger("statement_ingest.<module>")`` with short
``component:event key=value`` messages (``classify:batch_done
batch_index=0 latency_ms=812.40``) and never attach handlers themselves.
Until a host calls :func:`configure_logging` the package logger only holds a
``NullHandler``, so importing the library stays silent.

:func:`configure_logging` installs one stderr handler on the package logger
and turns down the HTTP client libraries underneath the OpenAI SDK and the
REST store, whose per-request DEBUG lines would otherwise drown the
pipeline's own events. The level comes from the ``level`` argument, then
``STATEMENT_INGEST_LOG_LEVEL``, then ``INFO``.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "statement_ingest"
_LEVEL_ENV = "STATEMENT_INGEST_LOG_LEVEL"
_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

# Transport loggers that are capped at WARNING unless the package runs at DEBUG.
_CHATTY_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "openai", "urllib3")


class _PackageHandler(logging.StreamHandler):
    """Marker type so repeated configuration finds the installed handler."""


def _level_from_string(value: str) -> int | None:
    s = value.strip().upper()
    if s.isdigit():
        return int(s)
    numeric = getattr(logging, s, None)
    return numeric if isinstance(numeric, int) else None


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    for candidate in (level, os.getenv(_LEVEL_ENV)):
        if isinstance(candidate, str) and candidate.strip():
            parsed = _level_from_string(candidate)
            if parsed is not None:
                return parsed
    return logging.INFO


def _installed_handler(logger: logging.Logger) -> _PackageHandler | None:
    for h in logger.handlers:
        if isinstance(h, _PackageHandler):
            return h
    return None


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> logging.Logger:
    """Install the package handler once and return the package logger.

    A second call leaves the existing handler, level and format untouched.
    """

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    if _installed_handler(logger) is not None:
        return logger

    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    resolved = _parse_level(level)
    handler = _PackageHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FORMAT))
    logger.setLevel(resolved)
    logger.addHandler(handler)
    logger.propagate = False

    if resolved > logging.DEBUG:
        for name in _CHATTY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
    return logger


def get_logger(name: str) -> logging.Logger:
    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger"]
