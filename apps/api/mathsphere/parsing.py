from __future__ import annotations

import json
import logging
import re
from typing import Any

from .errors import DecodeFailure
from .escaping import repair, sanitize_invalid_escapes

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")


def strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_OPEN.sub("", cleaned)
        cleaned = _FENCE_CLOSE.sub("", cleaned)
    return cleaned.strip()


def extract_json_block(text: str) -> str:
    first = text.find("{")
    last = text.rfind("}")
    if first != -1 and last > first:
        return text[first : last + 1]
    return text


def clean_json(text: str) -> str:
    return re.sub(r",\s*([}\]])", r"\1", text).strip()


def prepare_payload(raw: str) -> str:
    """Fence stripping, object extraction and escape repair, in that order."""
    return repair(extract_json_block(strip_code_fences(raw)))


def _loads_object(text: str) -> dict[str, Any]:
    data = json.loads(text)
    if not isinstance(data, dict):
        raise DecodeFailure(f"Expected a JSON object, got {type(data).__name__}")
    return data


def decode_structured(raw: str) -> dict[str, Any]:
    if not raw or not raw.strip():
        raise DecodeFailure("Empty response")

    payload = prepare_payload(raw)
    try:
        return _loads_object(payload)
    except json.JSONDecodeError as exc:
        last_error: json.JSONDecodeError = exc
        logger.debug("Direct decode failed: %s", exc)

    if "escape" in last_error.msg.lower():
        payload = sanitize_invalid_escapes(payload)
        try:
            return _loads_object(payload)
        except json.JSONDecodeError as exc:
            last_error = exc
            logger.debug("Decode after escape sanitizing failed: %s", exc)

    try:
        return _loads_object(clean_json(payload))
    except json.JSONDecodeError as exc:
        last_error = exc

    raise DecodeFailure(f"{last_error.msg} (line {last_error.lineno}, column {last_error.colno})")
