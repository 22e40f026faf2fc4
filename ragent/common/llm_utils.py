"""Shared utilities for parsing untrusted LLM responses."""

from __future__ import annotations

import json
from typing import Any, List


def _strip_fences(raw: str) -> str:
    text = raw.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        lines = [l for l in lines if not l.strip().startswith("```")]
        text = "\n".join(lines)
    return text


def _loads_between(raw: str, open_char: str, close_char: str) -> Any:
    start = raw.find(open_char)
    end = raw.rfind(close_char) + 1
    if start >= 0 and end > start:
        try:
            return json.loads(raw[start:end])
        except json.JSONDecodeError:
            return None
    return None


def parse_llm_json(raw: str) -> dict:
    """Parse a JSON object from an LLM response, handling code fences and preamble text.

    Tries in order:
    1. Strip markdown code fences, then json.loads
    2. Extract substring between first '{' and last '}', then json.loads
    3. Return empty dict

    Anything that is not a JSON object yields an empty dict.
    """
    if not raw:
        return {}

    try:
        data = json.loads(_strip_fences(raw))
    except json.JSONDecodeError:
        data = _loads_between(raw, "{", "}")

    return data if isinstance(data, dict) else {}


def parse_llm_list(raw: str) -> list:
    """Parse a JSON array from an LLM response; anything else yields []."""
    if not raw:
        return []

    try:
        data = json.loads(_strip_fences(raw))
    except json.JSONDecodeError:
        data = _loads_between(raw, "[", "]")

    return data if isinstance(data, list) else []


def coerce_str_list(value: Any, limit: int = 0) -> List[str]:
    """Keep only non-empty string items (stripped), optionally capped at ``limit``."""
    if not isinstance(value, list):
        return []
    items = [v.strip() for v in value if isinstance(v, str) and v.strip()]
    return items[:limit] if limit else items


def coerce_float(value: Any, default: float) -> float:
    """Best-effort float conversion; booleans and garbage fall back to ``default``."""
    if isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp to [low, high]; NaN collapses to ``low``."""
    if value != value:
        return low
    return max(low, min(high, value))
