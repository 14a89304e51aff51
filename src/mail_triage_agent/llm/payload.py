"""Shapes a model response may take, and their normalization.

The contract asks for one JSON object keyed by local id, but the model
sometimes answers with a list of single-key objects instead. Both shapes are
classified once here and flattened into a single mapping.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Union

from mail_triage_agent.exceptions import LLMResponseError

_FENCE_OPEN_RE = re.compile(r"^\s*```[a-zA-Z]*[ \t]*\n?")
_FENCE_CLOSE_RE = re.compile(r"\n?```\s*$")


@dataclass(frozen=True)
class KeyedPayload:
    """``{"msg_0": {...}, "msg_1": {...}}``"""

    entries: dict[str, Any]


@dataclass(frozen=True)
class ListPayload:
    """``[{"msg_0": {...}}, {"msg_1": {...}}]``"""

    items: list[dict[str, Any]]


ResponsePayload = Union[KeyedPayload, ListPayload]


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence, if present."""

    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped
    stripped = _FENCE_OPEN_RE.sub("", stripped, count=1)
    stripped = _FENCE_CLOSE_RE.sub("", stripped, count=1)
    return stripped.strip()


def classify_payload(parsed: Any) -> ResponsePayload:
    """Tag decoded JSON as one of the accepted response shapes.

    Raises:
        LLMResponseError: If the value is neither an object nor a list of objects.
    """

    if isinstance(parsed, dict):
        return KeyedPayload(entries=parsed)

    if isinstance(parsed, list):
        for index, item in enumerate(parsed):
            if not isinstance(item, dict):
                raise LLMResponseError(
                    f"List item {index} is {type(item).__name__}, expected an object"
                )
        return ListPayload(items=parsed)

    raise LLMResponseError(f"Unexpected top-level JSON type: {type(parsed).__name__}")


def flatten_payload(payload: ResponsePayload) -> dict[str, Any]:
    """Merge a payload into one mapping; later duplicate keys win."""

    if isinstance(payload, KeyedPayload):
        return dict(payload.entries)

    merged: dict[str, Any] = {}
    for item in payload.items:
        merged.update(item)
    return merged


def decode_response_text(text: str) -> dict[str, Any]:
    """Parse model output text into a flat ``local_id -> entry`` mapping.

    Raises:
        LLMResponseError: If the text is not valid JSON of an accepted shape.
    """

    try:
        parsed = json.loads(strip_code_fence(text))
    except json.JSONDecodeError as exc:
        raise LLMResponseError(f"Invalid JSON: {exc}") from exc
    return flatten_payload(classify_payload(parsed))
