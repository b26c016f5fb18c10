"""Tag-balance checking for markup files."""

from __future__ import annotations

import re

VOID_TAGS = frozenset(
    {
        "area",
        "base",
        "br",
        "col",
        "embed",
        "hr",
        "img",
        "input",
        "link",
        "meta",
        "source",
        "track",
        "wbr",
    }
)

_IGNORED = re.compile(
    r"<!--.*?-->|<!\[CDATA\[.*?\]\]>|<!DOCTYPE[^>]*>|<\?.*?\?>", re.DOTALL | re.IGNORECASE
)
_RAW_TEXT = re.compile(r"(<(script|style)\b[^>]*>)(.*?)(</\2\s*>)", re.DOTALL | re.IGNORECASE)
_TAG = re.compile(r"<(/?)([A-Za-z][\w:.-]*)((?:[^>\"']|\"[^\"]*\"|'[^']*')*)>")


def _blank(match: re.Match[str]) -> str:
    # Keep newlines so reported line numbers stay accurate.
    return "\n" * match.group(0).count("\n")


def _strip_noise(content: str) -> str:
    text = _IGNORED.sub(_blank, content)
    return _RAW_TEXT.sub(
        lambda m: m.group(1) + "\n" * m.group(3).count("\n") + m.group(4), text
    )


def check_tag_balance(content: str, case_sensitive: bool = False) -> list[str]:
    """Return diagnostics for unbalanced tags; an empty list means balanced."""
    text = _strip_noise(content)
    stack: list[tuple[str, int]] = []
    diagnostics: list[str] = []
    for match in _TAG.finditer(text):
        closing, name, rest = match.group(1), match.group(2), match.group(3)
        key = name if case_sensitive else name.lower()
        line = text.count("\n", 0, match.start()) + 1
        if key.lower() in VOID_TAGS or rest.rstrip().endswith("/"):
            continue
        if not closing:
            stack.append((key, line))
            continue
        if not stack:
            diagnostics.append(f"Line {line}: closing tag </{name}> has no matching opening tag.")
            continue
        expected, opened = stack.pop()
        if expected != key:
            diagnostics.append(
                f"Line {line}: found </{name}> but <{expected}> (line {opened}) is still open."
            )
            return diagnostics
    for name, opened in stack:
        diagnostics.append(f"Unclosed tag <{name}> opened at line {opened}.")
    return diagnostics
