"""Tool registry."""

from __future__ import annotations

import json
from typing import Any, Iterable

from pydantic import ValidationError

from taskpilot.tools.base import Tool, ToolResult


class ToolRegistry:
    """Registry of named tools available to the agent."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    def register_all(self, tools: Iterable[Tool]) -> None:
        for tool in tools:
            self.register(tool)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def list(self) -> list[Tool]:
        return list(self._tools.values())

    def describe(self) -> list[dict[str, Any]]:
        return [tool.describe() for tool in self._tools.values()]

    async def call(self, name: str, raw_args: str | None) -> ToolResult:
        """Decode ``raw_args`` (a JSON object string) and run the named tool.

        Raises ``ValueError`` for unknown tools and for arguments that are not
        JSON or do not match the tool's input schema.
        """
        tool = self.get(name)
        if tool is None:
            known = ", ".join(sorted(self._tools)) or "none"
            raise ValueError(f"Unknown tool '{name}'. Available tools: {known}")
        try:
            args = json.loads(raw_args) if raw_args else {}
        except json.JSONDecodeError as exc:
            raise ValueError(f"tool_args is not valid JSON: {exc}") from exc
        if not isinstance(args, dict):
            raise ValueError("tool_args must be a JSON object.")
        try:
            data = tool.input_schema.model_validate(args)
        except ValidationError as exc:
            raise ValueError(f"Invalid arguments for {name}: {exc}") from exc
        return await tool.run(data)
