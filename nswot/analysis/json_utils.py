"""Utilities for turning LLM replies into validated JSON payloads."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError

from nswot.core.exceptions import LLMParseError

M = TypeVar("M", bound=BaseModel)

FENCE_PATTERN = re.compile(r"```(?:json)?\s*\n?(.*?)```", re.DOTALL)


def extract_json_text(text: Optional[str]) -> Optional[str]:
    """
    Find the JSON text in an LLM reply.

    Prefers the first fenced code block, then falls back to the span from the
    first ``{`` to the last ``}``.
    """
    if not text:
        return None

    match = FENCE_PATTERN.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()

    start = text.find("{")
    if start != -1:
        end = text.rfind("}")
        if end > start:
            return text[start : end + 1]
    return None


def coerce_json_payload(text: Optional[str], label: str = "LLM") -> Dict[str, Any]:
    """Extract and parse a JSON object, raising LLMParseError on any failure."""
    candidate = extract_json_text(text)
    if candidate is None:
        raise LLMParseError(f"No JSON block found in {label} response.")

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise LLMParseError(f"Invalid JSON in {label} response: {e}") from e

    if not isinstance(parsed, dict):
        raise LLMParseError(f"{label.capitalize()} response is not a JSON object.")
    return parsed


def format_error_path(loc: Sequence[Any]) -> str:
    """Render a pydantic error location as ``weaknesses[1].evidence[0].sourceType``."""
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path


def describe_validation_error(error: Dict[str, Any]) -> str:
    path = format_error_path(error.get("loc", ()))
    message = error.get("msg", "invalid value")
    return f"{path}: {message}" if path else message


def validate_payload(model: Type[M], payload: Dict[str, Any], label: str = "LLM") -> M:
    """Validate ``payload`` against ``model``; the first error becomes an LLMParseError."""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        raise LLMParseError(
            f"Invalid {label} response: {describe_validation_error(first)}",
            path=format_error_path(first.get("loc", ())),
        ) from e
