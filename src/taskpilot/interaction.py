"""User interaction collaborators."""

from __future__ import annotations

import asyncio
import sys
from abc import ABC, abstractmethod
from enum import Enum


class Approval(str, Enum):
    APPROVE = "approve"
    APPROVE_SESSION = "approve_session"
    DENY = "deny"


class UserInterface(ABC):
    """What the dispatcher needs from whoever sits at the keyboard."""

    @abstractmethod
    def show(self, message: str) -> None:
        """Display agent text to the user."""

    @abstractmethod
    def notify(self, message: str, level: str = "info") -> None:
        """Display a status line (``info``, ``warning`` or ``error``)."""

    def stream_chunk(self, chunk: str) -> None:
        """Receive an incremental piece of agent output; ignored by default."""

    @abstractmethod
    async def ask(self, prompt: str) -> str | None:
        """Collect one line of free text; ``None`` means the user stopped."""

    @abstractmethod
    async def confirm(self, message: str, allow_session: bool = True) -> Approval:
        """Ask for permission to perform a side-effecting action."""


_STOP_WORDS = {"exit", "quit", "/exit", "/quit"}


class ConsoleInterface(UserInterface):
    def __init__(self, stream_output: bool = False) -> None:
        self.stream_output = stream_output

    def show(self, message: str) -> None:
        print(f"\n{message}\n")

    def notify(self, message: str, level: str = "info") -> None:
        target = sys.stderr if level in {"warning", "error"} else sys.stdout
        prefix = {"warning": "! ", "error": "x "}.get(level, "- ")
        print(prefix + message, file=target)

    def stream_chunk(self, chunk: str) -> None:
        if self.stream_output:
            sys.stdout.write(chunk)
            sys.stdout.flush()

    async def _read(self, prompt: str) -> str | None:
        try:
            return await asyncio.to_thread(input, prompt)
        except (EOFError, KeyboardInterrupt):
            return None

    async def ask(self, prompt: str) -> str | None:
        answer = await self._read(f"{prompt}\n> ")
        if answer is None or answer.strip().lower() in _STOP_WORDS:
            return None
        return answer

    async def confirm(self, message: str, allow_session: bool = True) -> Approval:
        options = "[y]es / [a]lways this session / [n]o" if allow_session else "[y]es / [n]o"
        while True:
            answer = await self._read(f"{message}\n{options}: ")
            if answer is None:
                return Approval.DENY
            choice = answer.strip().lower()
            if choice in {"y", "yes"}:
                return Approval.APPROVE
            if allow_session and choice in {"a", "always"}:
                return Approval.APPROVE_SESSION
            if choice in {"n", "no", ""}:
                return Approval.DENY
