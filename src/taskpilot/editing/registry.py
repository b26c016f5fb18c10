"""Editor lookup by file extension."""

from __future__ import annotations

from pathlib import PurePath
from typing import Iterable

from taskpilot.editing.base import CodeEditor
from taskpilot.editing.python import PythonEditor


class EditorRegistry:
    def __init__(self, editors: Iterable[CodeEditor] = ()) -> None:
        self._by_extension: dict[str, CodeEditor] = {}
        for editor in editors:
            self.register(editor)

    def register(self, editor: CodeEditor) -> None:
        for extension in editor.extensions:
            self._by_extension[extension.lower()] = editor

    def for_path(self, path: str) -> CodeEditor | None:
        return self._by_extension.get(PurePath(path).suffix.lower())

    def supported_extensions(self) -> list[str]:
        return sorted(self._by_extension)


def default_editors() -> EditorRegistry:
    return EditorRegistry([PythonEditor()])
