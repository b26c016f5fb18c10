from __future__ import annotations

import pytest

from taskpilot.api.mock import ScriptedAgentClient
from taskpilot.dispatcher import ActionDispatcher, Session
from taskpilot.interaction import Approval, UserInterface
from taskpilot.tools.filesystem import Workspace
from taskpilot.tools.shell import ShellRunner


class ScriptedInterface(UserInterface):
    """Replays queued replies and approvals; records what was shown."""

    def __init__(self) -> None:
        self.replies: list[str | None] = []
        self.approvals: list[Approval] = []
        self.shown: list[str] = []
        self.notices: list[tuple[str, str]] = []
        self.confirm_prompts: list[str] = []
        self.questions: list[str] = []

    def show(self, message: str) -> None:
        self.shown.append(message)

    def notify(self, message: str, level: str = "info") -> None:
        self.notices.append((level, message))

    async def ask(self, prompt: str) -> str | None:
        self.questions.append(prompt)
        return self.replies.pop(0) if self.replies else None

    async def confirm(self, message: str, allow_session: bool = True) -> Approval:
        self.confirm_prompts.append(message)
        return self.approvals.pop(0) if self.approvals else Approval.DENY


@pytest.fixture
def ui() -> ScriptedInterface:
    return ScriptedInterface()


@pytest.fixture
def agent() -> ScriptedAgentClient:
    return ScriptedAgentClient()


@pytest.fixture
def dispatcher(tmp_path, ui, agent) -> ActionDispatcher:
    return ActionDispatcher(
        agent,
        ui,
        Workspace(tmp_path),
        ShellRunner(tmp_path, timeout_seconds=10),
        session=Session(validation_enabled=False),
    )
