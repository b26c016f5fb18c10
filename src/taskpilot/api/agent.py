"""Chat client for a remote platform agent."""

from __future__ import annotations

from typing import Any, Callable

from pydantic import BaseModel, Field

from taskpilot.actions import AgentResponse
from taskpilot.api.base import BaseAgentClient
from taskpilot.api.session import SessionClient
from taskpilot.api.stream import StreamTransport
from taskpilot.conversation import ConversationStore
from taskpilot.interpreter import parse_agent_response
from taskpilot.util.logging import get_logger

logger = get_logger(__name__)


class AgentRequest(BaseModel):
    user_prompt: str = Field(min_length=1)
    streaming: bool = True
    stackspot_knowledge: bool = False
    return_ks_in_response: bool = False
    use_conversation: bool = True
    conversation_id: str | None = None


def build_agent_request(
    prompt: str,
    *,
    conversation_id: str | None = None,
    streaming: bool = True,
    knowledge: bool = False,
    return_knowledge_sources: bool = False,
) -> dict[str, Any]:
    request = AgentRequest(
        user_prompt=prompt,
        streaming=streaming,
        stackspot_knowledge=knowledge,
        return_ks_in_response=return_knowledge_sources,
        conversation_id=conversation_id,
    )
    return request.model_dump(exclude_none=True)


class AgentClient(BaseAgentClient):
    """Sends one turn to the agent and returns the interpreted response."""

    def __init__(
        self,
        *,
        base_url: str,
        agent_id: str,
        agent_key: str,
        session: SessionClient,
        transport: StreamTransport,
        conversations: ConversationStore | None = None,
        knowledge: bool = False,
        return_knowledge_sources: bool = False,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.agent_id = agent_id
        self.agent_key = agent_key
        self.session = session
        self.transport = transport
        self.conversations = conversations
        self.knowledge = knowledge
        self.return_knowledge_sources = return_knowledge_sources

    @property
    def chat_url(self) -> str:
        return f"{self.base_url}/v1/agent/{self.agent_id}/chat"

    async def send(
        self, prompt: str, on_chunk: Callable[[str], None] | None = None
    ) -> AgentResponse:
        conversation_id = self.conversations.get(self.agent_key) if self.conversations else None
        payload = build_agent_request(
            prompt,
            conversation_id=conversation_id,
            knowledge=self.knowledge,
            return_knowledge_sources=self.return_knowledge_sources,
        )
        logger.debug("Sending turn to %s (conversation %s).", self.chat_url, conversation_id or "new")
        headers = await self.session.auth_headers()
        parts: list[str] = []
        raw: dict[str, Any] = {}

        def collect(chunk: str) -> None:
            parts.append(chunk)
            if on_chunk:
                on_chunk(chunk)

        def complete(message: str, metadata: dict[str, Any]) -> None:
            raw["message"] = message or "".join(parts)
            raw["conversation_id"] = metadata.get("conversation_id") or conversation_id

        await self.transport.stream(
            self.chat_url, payload, headers, on_chunk=collect, on_complete=complete
        )
        if not raw:
            raw = {"message": "".join(parts), "conversation_id": conversation_id}
        response = parse_agent_response(raw)
        if response.conversation_id and self.conversations:
            self.conversations.save(self.agent_key, response.conversation_id)
        return response
