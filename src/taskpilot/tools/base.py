"""Base definitions for named tools the agent may invoke via ``use_mcp_tool``."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel


class ToolResult(BaseModel):
    output: Any


class Tool(ABC):
    """Abstract tool."""

    name: str
    description: str
    input_schema: type[BaseModel]

    @abstractmethod
    async def run(self, data: BaseModel) -> ToolResult:
        """Execute the tool."""
        raise NotImplementedError

    def describe(self) -> dict[str, Any]:
        """Schema listing suitable for embedding in a prompt."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.input_schema.model_json_schema(),
        }
