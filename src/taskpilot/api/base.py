"""Base agent client interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from taskpilot.actions import AgentResponse


class BaseAgentClient(ABC):
    """Abstract conversational agent endpoint."""

    @abstractmethod
    async def send(
        self, prompt: str, on_chunk: Callable[[str], None] | None = None
    ) -> AgentResponse:
        """Send one turn and return the interpreted response."""
        raise NotImplementedError
