# rowverify/utils/json_parser.py
"""
Helpers for reading JSON out of free-form oracle text.
The model is told to answer with a bare JSON object but often wraps it in prose
or a markdown fence, so parsing falls back to the outermost {...} span.
"""

import json
from typing import Optional, Any


def safe_parse_json(raw: str | bytes) -> Optional[dict]:
    """Parse a JSON object safely. Returns None on error or when the top level is not an object."""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    return data if isinstance(data, dict) else None


def extract_json_object(text: str) -> Optional[dict]:
    """
    Two-stage parse: the whole text first, then the largest brace-delimited
    substring (first '{' through last '}').
    """
    if not text:
        return None

    data = safe_parse_json(text)
    if data is not None:
        return data

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return safe_parse_json(text[start:end + 1])


def get_nested(data: Any, *keys, default: Any = None) -> Any:
    """Safely navigate nested dict keys / list indexes. Returns default if any step is missing."""
    current = data
    for key in keys:
        if isinstance(current, dict):
            if key not in current:
                return default
            current = current[key]
        elif isinstance(current, list) and isinstance(key, int):
            if not -len(current) <= key < len(current):
                return default
            current = current[key]
        else:
            return default
    return current
