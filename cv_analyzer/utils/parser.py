"""
Robust JSON parser with multiple extraction strategies.

Handles various AI output formats:
- Clean JSON
- JSON in ```json blocks
- JSON in ``` blocks (no language tag)
- JSON object embedded in surrounding prose
"""

import json
import re


def extract_json(text: str) -> dict | None:
    """
    Extract a JSON object from an AI response using multiple strategies.

    Args:
        text: Raw AI response text

    Returns:
        Parsed JSON object, or None if no strategy yields one
    """
    if not text or not text.strip():
        return None

    strategies = [
        _try_clean_json,
        _try_fenced_json,
        _try_fenced_any,
        _try_find_json_bounds,
        _try_outer_braces,
    ]

    for strategy in strategies:
        result = strategy(text)
        if isinstance(result, dict):
            return result

    return None


def _loads(candidate: str) -> dict | list | None:
    try:
        return json.loads(candidate.strip())
    except json.JSONDecodeError:
        return None


def _try_clean_json(text: str) -> dict | list | None:
    """Try parsing the entire text as JSON."""
    return _loads(text)


def _try_fenced_json(text: str) -> dict | list | None:
    """Extract JSON from ```json ... ``` blocks."""
    pattern = r"```json\s*([\s\S]*?)\s*```"
    for match in re.findall(pattern, text, re.IGNORECASE):
        result = _loads(match)
        if result is not None:
            return result
    return None


def _try_fenced_any(text: str) -> dict | list | None:
    """Extract JSON from ``` ... ``` blocks (any language or none)."""
    pattern = r"```(?:\w*)\s*([\s\S]*?)\s*```"
    for match in re.findall(pattern, text):
        result = _loads(match)
        if result is not None:
            return result
    return None


def _try_find_json_bounds(text: str) -> dict | None:
    """Find an object by matching braces from each opening brace."""
    start = text.find("{")
    while start != -1:
        candidate = _extract_balanced(text, start, "{", "}")
        if candidate:
            result = _loads(candidate)
            if isinstance(result, dict):
                return result
        start = text.find("{", start + 1)
    return None


def _try_outer_braces(text: str) -> dict | list | None:
    """Last resort: everything between the first '{' and the last '}'."""
    match = re.search(r"\{[\s\S]*\}", text)
    if match:
        return _loads(match.group())
    return None


def _extract_balanced(text: str, start: int, open_char: str, close_char: str) -> str | None:
    """Extract balanced brackets/braces starting from position."""
    depth = 0
    in_string = False
    escape_next = False

    for i, char in enumerate(text[start:], start):
        if escape_next:
            escape_next = False
            continue

        if char == "\\" and in_string:
            escape_next = True
            continue

        if char == '"':
            in_string = not in_string
            continue

        if in_string:
            continue

        if char == open_char:
            depth += 1
        elif char == close_char:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]

    return None
