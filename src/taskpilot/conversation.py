"""Persist conversation correlation ids per agent key."""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from taskpilot.util.logging import get_logger

logger = get_logger(__name__)


class WorkflowState(BaseModel):
    conversations: dict[str, str] = Field(default_factory=dict)
    last_updated: str | None = None


class ConversationStore:
    """Conversation ids stored in ``<state_dir>/workflow.json``."""

    filename = "workflow.json"

    def __init__(self, state_dir: Path) -> None:
        self.state_dir = state_dir

    @property
    def path(self) -> Path:
        return self.state_dir / self.filename

    def load(self) -> WorkflowState:
        if not self.path.exists():
            return WorkflowState()
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            return WorkflowState.model_validate(payload)
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            logger.warning("Corrupted workflow state at %s ignored: %s", self.path, exc)
            return WorkflowState()

    def _save(self, state: WorkflowState) -> None:
        state.last_updated = datetime.now(timezone.utc).isoformat()
        self.state_dir.mkdir(parents=True, exist_ok=True)
        tmp_path = self.state_dir / f".{self.filename}.tmp"
        tmp_path.write_text(state.model_dump_json(indent=2), encoding="utf-8")
        os.replace(tmp_path, self.path)

    def get(self, agent_key: str) -> str | None:
        return self.load().conversations.get(agent_key)

    def save(self, agent_key: str, conversation_id: str) -> None:
        state = self.load()
        if state.conversations.get(agent_key) == conversation_id:
            return
        state.conversations[agent_key] = conversation_id
        self._save(state)
        logger.debug("Saved conversation id for %s.", agent_key)

    def clear(self, agent_key: str) -> None:
        state = self.load()
        if state.conversations.pop(agent_key, None) is not None:
            self._save(state)

    def clear_all(self) -> None:
        state = self.load()
        state.conversations = {}
        self._save(state)
