"""Scripted agent client for offline runs and tests."""

from __future__ import annotations

from typing import Any, Callable

from taskpilot.actions import AgentResponse
from taskpilot.api.base import BaseAgentClient
from taskpilot.interpreter import parse_agent_response


class ScriptedAgentClient(BaseAgentClient):
    """Replays queued raw replies through the response interpreter."""

    def __init__(self, scripted: list[str | dict[str, Any]] | None = None) -> None:
        self._scripted = list(scripted or [])
        self.prompts: list[str] = []

    def queue(self, *replies: str | dict[str, Any]) -> None:
        self._scripted.extend(replies)

    async def send(
        self, prompt: str, on_chunk: Callable[[str], None] | None = None
    ) -> AgentResponse:
        self.prompts.append(prompt)
        if self._scripted:
            raw = self._scripted.pop(0)
        else:
            raw = f"Mock response to: {prompt}"
        if on_chunk and isinstance(raw, str):
            on_chunk(raw)
        return parse_agent_response(raw)
