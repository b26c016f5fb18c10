"""Workspace-restricted file access used by file actions."""

from __future__ import annotations

import glob
from pathlib import Path


class Workspace:
    """Read/write/list/search files under a root directory."""

    def __init__(
        self, root: str | Path, read_max_bytes: int = 100 * 1024, search_max_results: int = 50
    ) -> None:
        self.root = Path(root).resolve()
        self.read_max_bytes = read_max_bytes
        self.search_max_results = search_max_results

    def resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if target != self.root and self.root not in target.parents:
            raise ValueError(f"Path escapes the workspace: {path}")
        return target

    def relative(self, target: Path) -> str:
        return target.relative_to(self.root).as_posix()

    def exists(self, path: str) -> bool:
        return self.resolve(path).exists()

    def read_text(self, path: str) -> str:
        """Read a file for the agent, reporting problems as text."""
        target = self.resolve(path)
        if not target.is_file():
            return f"Error: File {path} does not exist."
        size = target.stat().st_size
        if size > self.read_max_bytes:
            return (
                f"Error: File too large to read ({size} bytes). "
                f"Limit is {self.read_max_bytes // 1024}KB."
            )
        return target.read_text(encoding="utf-8", errors="replace")

    def load(self, path: str) -> str:
        """Read a file for editing; raises when it is missing."""
        target = self.resolve(path)
        if not target.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        with target.open("r", encoding="utf-8", newline="") as handle:
            return handle.read()

    def write(self, path: str, content: str) -> Path:
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        # newline="" keeps the agent's line endings byte-for-byte.
        with target.open("w", encoding="utf-8", newline="") as handle:
            handle.write(content)
        return target

    def delete(self, path: str) -> None:
        target = self.resolve(path)
        if not target.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        target.unlink()

    def list_dir(self, path: str = ".") -> str:
        target = self.resolve(path or ".")
        if not target.is_dir():
            return f"Error: Directory {path} does not exist."
        entries = sorted(target.iterdir(), key=lambda item: (not item.is_dir(), item.name))
        if not entries:
            return "(empty directory)"
        return "\n".join(
            f"{'[DIR]' if entry.is_dir() else '[FILE]'} {entry.name}" for entry in entries
        )

    def search(self, pattern: str) -> str:
        if not pattern:
            return "Error: search_file requires a glob pattern."
        matches = sorted(
            glob.glob(pattern, root_dir=self.root, recursive=True, include_hidden=True)
        )
        if not matches:
            return "No files found matching pattern."
        lines = [Path(match).as_posix() for match in matches[: self.search_max_results]]
        if len(matches) > self.search_max_results:
            lines.append(f"... {len(matches) - self.search_max_results} more")
        return "\n".join(lines)
