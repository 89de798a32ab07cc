"""Consolidated JSON parsing utilities for JSON-valued DB columns."""

import json
from typing import Any


def parse_json_field(raw: str | dict | None) -> dict[str, Any] | None:
    """Parse a JSON string or dict, returning None on failure or empty.

    For model_metadata and other dict-valued DB fields.
    Returns None for: None, empty string, empty dict, invalid JSON, non-dict JSON.
    """
    if raw is None:
        return None
    if isinstance(raw, dict):
        return raw if raw else None
    if isinstance(raw, str):
        if not raw:
            return None
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, dict) and parsed:
                return parsed
        except (ValueError, TypeError):
            pass
    return None


def parse_json_list(raw: str | list | None) -> list:
    """Parse a JSON array column (citations, references), [] on failure.

    Accepts lists as-is. Returns [] for: None, empty string, invalid JSON,
    non-list JSON.
    """
    if raw is None:
        return []
    if isinstance(raw, list):
        return raw
    if isinstance(raw, str):
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
        except (ValueError, TypeError):
            return []
        if isinstance(parsed, list):
            return parsed
    return []
