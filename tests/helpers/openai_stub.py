"""Test helpers to stub the OpenAI Responses client.

The pipeline only ever calls ``client.responses.create(**kwargs)`` and reads
``output_text`` from the result. The stub records every call and answers
through a ``reply`` callable, which receives the call kwargs and returns
either the reply text or an exception instance to raise.

Two shapes of request reach the stub:

- text classification: ``kwargs["input"]`` is the numbered batch string,
  or the single-transaction prompt when a failed batch is retried per item;
- page extraction: ``kwargs["input"]`` is a list with one user message
  holding an ``input_text`` and an ``input_image`` part.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Iterable
from typing import Any

Reply = Callable[[dict[str, Any]], "str | BaseException"]

_NUMBERED_LINE = re.compile(r"^\d+\.\s", re.MULTILINE)


def is_vision_call(kwargs: dict[str, Any]) -> bool:
    return isinstance(kwargs.get("input"), list)


def batch_size_of(kwargs: dict[str, Any]) -> int:
    """Number of transactions listed in a classification request."""

    return len(_NUMBERED_LINE.findall(str(kwargs.get("input") or "")))


def is_single_call(kwargs: dict[str, Any]) -> bool:
    return "Analyze this bank transaction" in str(kwargs.get("input") or "")


def classification_reply(category: str = "Alimentación", merchant: str = "Tienda") -> Reply:
    """Answer every classification batch with one object per listed item."""

    def _reply(kwargs: dict[str, Any]) -> str:
        n = batch_size_of(kwargs)
        return json.dumps(
            [{"category": category, "merchant": merchant, "confidence": 0.9} for _ in range(n)]
        )

    return _reply


class _Resp:
    def __init__(self, text: str) -> None:
        self.output_text = text


class OpenAIStub:
    """Minimal stub matching the ``openai.OpenAI`` shape used by the pipeline.

    Parameters
    ----------
    reply:
        Callable mapping the call kwargs to reply text (or an exception to
        raise).
    vision:
        Optional queue of page replies; when given, vision calls pop from it
        (in page order) instead of going through ``reply``.
    """

    def __init__(self, reply: Reply, *, vision: Iterable[str | BaseException] | None = None) -> None:
        self._reply = reply
        self._vision = list(vision) if vision is not None else None
        self.calls: list[dict[str, Any]] = []

        class _Responses:
            def __init__(self, outer: OpenAIStub) -> None:
                self._outer = outer

            def create(self, **kwargs: Any) -> _Resp:
                return self._outer._create(kwargs)

        self.responses = _Responses(self)

    def _create(self, kwargs: dict[str, Any]) -> _Resp:
        self.calls.append(kwargs)
        if is_vision_call(kwargs) and self._vision is not None:
            answer: str | BaseException = self._vision.pop(0)
        else:
            answer = self._reply(kwargs)
        if isinstance(answer, BaseException):
            raise answer
        return _Resp(answer)

    @property
    def text_calls(self) -> list[dict[str, Any]]:
        return [c for c in self.calls if not is_vision_call(c)]

    @property
    def vision_calls(self) -> list[dict[str, Any]]:
        return [c for c in self.calls if is_vision_call(c)]
