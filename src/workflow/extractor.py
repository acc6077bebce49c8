"""Recover a JSON workflow from raw model output."""

import json
import logging
import re
from typing import Any

from src.exceptions import ParseError

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 200

# Applied in order; each pattern strips at most one wrapper
_WRAPPER_PATTERNS = [
    re.compile(r"^```json\s*"),
    re.compile(r"\s*```$"),
    re.compile(r"^```\s*"),
    re.compile(r"^json\s*"),
    re.compile(r"^JSON:\s*", re.IGNORECASE),
    re.compile(r"^Here's the JSON:\s*", re.IGNORECASE),
    re.compile(r"^Output:\s*", re.IGNORECASE),
]

_TRAILING_COMMA = re.compile(r",(\s*[}\]])")


def strip_wrappers(text: str) -> str:
    """Remove code fences and leading labels around a JSON payload."""
    cleaned = text.strip()
    for pattern in _WRAPPER_PATTERNS:
        cleaned = pattern.sub("", cleaned, count=1)
    return cleaned.strip()


def _try_parse(text: str) -> dict[str, Any] | list[Any] | None:
    try:
        value = json.loads(text)
    except ValueError:
        return None
    if isinstance(value, (dict, list)):
        return value
    return None


def _balanced_objects(text: str) -> list[str]:
    """Top-level brace-balanced ``{...}`` spans, ignoring braces inside strings."""
    spans: list[str] = []
    depth = 0
    start = -1
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = depth > 0
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                spans.append(text[start : i + 1])
    return spans


def extract_json(raw_text: str | None) -> dict[str, Any] | list[Any]:
    """Parse model output into a JSON object or array.

    Steps, each tried only when the previous one failed:
    1. strip wrappers (code fences, "JSON:", "Output:" ...) and parse
    2. drop trailing commas, then normalize single quotes, and parse
    3. parse the largest brace-balanced ``{...}`` span

    Raises:
        ParseError: nothing recoverable; carries a preview of the input
    """
    if not raw_text or not raw_text.strip():
        raise ParseError("Failed to parse JSON response: empty content", preview="")

    cleaned = strip_wrappers(raw_text)
    parsed = _try_parse(cleaned)
    if parsed is not None:
        return parsed

    repaired = _TRAILING_COMMA.sub(r"\1", cleaned)
    parsed = _try_parse(repaired)
    if parsed is not None:
        logger.debug("Recovered JSON after removing trailing commas")
        return parsed

    if "'" in repaired:
        parsed = _try_parse(repaired.replace("'", '"'))
        if parsed is not None:
            logger.debug("Recovered JSON after normalizing quotes")
            return parsed

    for span in sorted(_balanced_objects(repaired), key=len, reverse=True):
        parsed = _try_parse(span)
        if parsed is not None:
            logger.debug("Recovered JSON from embedded %d-char object", len(span))
            return parsed

    preview = cleaned[:PREVIEW_CHARS]
    raise ParseError(
        f"Failed to parse JSON response. Content preview: {preview}...",
        preview=preview,
    )
