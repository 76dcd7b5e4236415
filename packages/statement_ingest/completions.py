"""Thin helpers around the OpenAI Responses API.

- ``create_client(settings)``: build an ``openai.OpenAI`` client from the
  configured credential and optional base URL.
- ``response_text(resp)``: locate the text output of a Responses result.
- ``extract_first_json_array(text)`` / ``extract_first_json_object(text)``:
  pull the first well-formed JSON value of the given kind out of free text
  (models often wrap JSON in prose or code fences).

No client is created at import time.
"""

from __future__ import annotations

import json
from typing import Any

from openai import OpenAI

from .errors import MissingCredentialError
from .settings import IngestSettings

_decoder = json.JSONDecoder()


def create_client(settings: IngestSettings) -> OpenAI:
    if not settings.has_credential:
        raise MissingCredentialError("OPENAI_API_KEY is not configured")
    kwargs: dict[str, Any] = {"api_key": settings.api_key}
    if settings.base_url:
        kwargs["base_url"] = settings.base_url
    return OpenAI(**kwargs)


def response_text(resp: Any) -> str:
    """Return the text output of a Responses SDK result.

    Prefers ``resp.output_text``; falls back to
    ``resp.output[0].content[0].text``. Raises ``ValueError`` when no text can
    be located.
    """

    text: str | None = getattr(resp, "output_text", None)
    if not text:
        try:
            first = resp.output[0] if getattr(resp, "output", None) else None
            content = getattr(first, "content", None)
            if content:
                txt_obj = getattr(content[0], "text", None)
                if isinstance(txt_obj, str):
                    text = txt_obj
                else:
                    # Some SDK versions wrap the string in an object with ``value``.
                    maybe_val = getattr(txt_obj, "value", None)
                    if isinstance(maybe_val, str):
                        text = maybe_val
        except (AttributeError, IndexError, TypeError):
            text = None
    if not text or not isinstance(text, str):
        raise ValueError("Unexpected Responses API shape; unable to locate text output")
    return text


def _first_json_of(text: str, opener: str, kind: type) -> Any | None:
    pos = text.find(opener)
    while pos != -1:
        try:
            value, _end = _decoder.raw_decode(text, pos)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, kind):
            return value
        pos = text.find(opener, pos + 1)
    return None


def extract_first_json_array(text: str | None) -> list[Any] | None:
    """Return the first well-formed JSON array embedded in ``text``.

    >>> extract_first_json_array('Sure! [1, 2] and [3]')
    [1, 2]
    >>> extract_first_json_array('nothing here') is None
    True
    """

    if not text:
        return None
    return _first_json_of(text, "[", list)


def extract_first_json_object(text: str | None) -> dict[str, Any] | None:
    if not text:
        return None
    return _first_json_of(text, "{", dict)


__all__ = [
    "create_client",
    "response_text",
    "extract_first_json_array",
    "extract_first_json_object",
]
