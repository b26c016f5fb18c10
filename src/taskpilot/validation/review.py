"""Lightweight review notes attached to edit previews."""

from __future__ import annotations

_PAIRS = (("{", "}"), ("(", ")"), ("[", "]"))


def review_edit(path: str, content: str) -> str:
    """Summarize bracket balance of ``content`` for the agent to double-check."""
    problems = []
    for opener, closer in _PAIRS:
        opened, closed = content.count(opener), content.count(closer)
        if opened != closed:
            problems.append(f"found {opened} '{opener}' and {closed} '{closer}'")
    if not problems:
        return "[Syntax check] Structure looks balanced."
    return (
        f"[Syntax check] CRITICAL: bracket mismatch in {path}: "
        + "; ".join(problems)
        + ". Review the block carefully and do not confirm it if it is incomplete."
    )
