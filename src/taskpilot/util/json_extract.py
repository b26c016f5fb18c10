"""Recover a JSON object from model output that may be wrapped in prose."""

from __future__ import annotations

import json
from typing import Any


class JsonExtractError(ValueError):
    """Raised when no parseable JSON document can be found."""


def find_balanced_object(text: str) -> str | None:
    """Return the first brace-balanced ``{...}`` span, ignoring braces in strings.

    Single pass from the first ``{``. A pending backslash suppresses the next
    character, unescaped quotes toggle the in-string flag and depth only
    moves outside strings. Anything after the first balanced span is ignored.
    """
    start_index = text.find("{")
    if start_index == -1:
        return None
    depth = 0
    in_string = False
    escape = False
    for idx in range(start_index, len(text)):
        char = text[idx]
        if escape:
            escape = False
            continue
        if char == "\\":
            escape = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start_index : idx + 1]
    return None


def extract_first_json(text: str) -> Any:
    """Parse ``text`` as JSON, falling back to its first balanced object."""
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        original = exc
    block = find_balanced_object(text)
    if block is None:
        raise JsonExtractError(f"No JSON object found: {original}") from original
    try:
        return json.loads(block)
    except json.JSONDecodeError as exc:
        raise JsonExtractError(f"Embedded JSON object is malformed: {exc}") from original


def looks_like_json(text: str) -> bool:
    stripped = text.strip()
    return "{" in stripped and "}" in stripped
