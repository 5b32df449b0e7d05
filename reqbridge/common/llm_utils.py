"""Shared utilities for parsing LLM responses."""

from __future__ import annotations

import json
from typing import Any, List

# Object keys under which a model may nest the requested array
_ARRAY_KEYS = ("issues", "items")


def strip_code_fences(raw: str) -> str:
    """Remove markdown code fence lines (```json ... ```) from an LLM response."""
    text = raw.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        lines = [l for l in lines if not l.strip().startswith("```")]
        text = "\n".join(lines).strip()
    return text


def parse_llm_json_array(raw: str) -> List[Any]:
    """Parse a JSON array from an LLM response.

    Accepts a top-level array, or an object carrying the array under
    ``issues`` / ``items``. Code fences and surrounding prose are tolerated.

    Raises:
        ValueError: if no array can be recovered
    """
    if not raw or not raw.strip():
        raise ValueError("empty LLM response")

    candidates = [strip_code_fences(raw)]
    start = raw.find("[")
    end = raw.rfind("]") + 1
    if start >= 0 and end > start:
        candidates.append(raw[start:end])

    for text in candidates:
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, list):
            return parsed
        if isinstance(parsed, dict):
            for key in _ARRAY_KEYS:
                if isinstance(parsed.get(key), list):
                    return parsed[key]

    raise ValueError(f"LLM response is not a JSON array: {raw[:200]}")
