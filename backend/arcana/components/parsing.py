"""
Extraction of a JSON object from free-form model output
"""
import json
import re
from typing import Any, Dict, Optional

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def _loads_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    return value if isinstance(value, dict) else None


def extract_json_object(raw: str) -> Optional[Dict[str, Any]]:
    """
    Find the JSON object in raw model text

    Tries, in order: the whole text, the first fenced ```json block, and the
    slice between the first '{' and the last '}'.

    Returns:
        The decoded object, or None when no candidate decodes to a dict
    """
    if not raw or not raw.strip():
        return None

    text = raw.strip()
    parsed = _loads_object(text)
    if parsed is not None:
        return parsed

    fence = _FENCE_RE.search(text)
    if fence:
        parsed = _loads_object(fence.group(1).strip())
        if parsed is not None:
            return parsed

    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        return _loads_object(text[start:end + 1])

    return None
