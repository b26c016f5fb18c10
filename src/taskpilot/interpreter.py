"""Turn raw agent output into a normalized, schema-valid action list."""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from taskpilot.actions import AgentResponse, talk
from taskpilot.errors import ResponseSchemaError
from taskpilot.util.json_extract import JsonExtractError, extract_first_json, looks_like_json
from taskpilot.util.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MESSAGE = "Agent Action"


def parse_agent_response(raw: str | dict[str, Any]) -> AgentResponse:
    """Normalize one agent turn.

    Malformed or partial output degrades to a single ``talk_with_user`` action;
    only a candidate that carries actions and still fails validation raises
    :class:`ResponseSchemaError`.
    """
    conversation_id: str | None = None
    if isinstance(raw, str):
        logger.debug("Parsing string response (%d chars).", len(raw))
        try:
            candidate = extract_first_json(raw)
        except JsonExtractError as exc:
            logger.debug("String response is not JSON: %s", exc)
            return _fallback(raw, message=raw)
        if not isinstance(candidate, dict):
            return _fallback(raw, message=raw)
    elif isinstance(raw, dict):
        conversation_id = _optional_str(raw.get("conversation_id"))
        candidate = unwrap_embedded_actions(raw)
    else:
        text = "" if raw is None else str(raw)
        return _fallback(text, message=text or None)

    actions = candidate.get("actions")
    if not actions:
        logger.debug("No actions found in response; constructing talk fallback.")
        message = _optional_str(candidate.get("message"))
        text = message or _optional_str(candidate.get("summary")) or json.dumps(
            candidate, ensure_ascii=False
        )
        return _fallback(text, message=message, conversation_id=conversation_id)

    summary = _optional_str(candidate.get("summary"))
    payload = {
        "actions": actions,
        "summary": summary or "",
        "conversation_id": conversation_id or _optional_str(candidate.get("conversation_id")),
        "message": summary or DEFAULT_MESSAGE,
    }
    try:
        response = AgentResponse.model_validate(payload)
    except ValidationError as exc:
        logger.warning("Agent response failed schema validation: %s", exc)
        raise ResponseSchemaError(f"Agent response violates the action schema: {exc}") from exc
    logger.debug("Parsed %d action(s).", len(response.actions))
    return response


def unwrap_embedded_actions(payload: dict[str, Any]) -> dict[str, Any]:
    """Adopt JSON embedded in ``content``/``message`` when it carries actions.

    Only one level is unwrapped; the inner document is never searched again.
    """
    inner = payload.get("content") or payload.get("message")
    if not isinstance(inner, str) or not looks_like_json(inner):
        return payload
    try:
        parsed = extract_first_json(inner)
    except JsonExtractError:
        logger.debug("Embedded message is not JSON; keeping outer object.")
        return payload
    if isinstance(parsed, dict) and "actions" in parsed:
        return parsed
    return payload


def _fallback(
    text: str, *, message: str | None = None, conversation_id: str | None = None
) -> AgentResponse:
    return AgentResponse(
        actions=[talk(text)],
        message=message,
        conversation_id=conversation_id,
    )


def _optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None
