"""Streaming transport for agent chat responses (``data:`` line frames)."""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx

from taskpilot.errors import TransportError
from taskpilot.util.logging import get_logger

logger = get_logger(__name__)

DONE_SENTINEL = "[DONE]"

OnChunk = Callable[[str], None]
OnComplete = Callable[[str, dict[str, Any]], None]
OnError = Callable[[Exception], None]


class SSELineBuffer:
    """Split decoded text into complete lines, holding back the trailing partial line."""

    def __init__(self) -> None:
        self._pending = ""

    def feed(self, text: str) -> list[str]:
        data = self._pending + text
        lines = data.split("\n")
        self._pending = lines.pop()
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> list[str]:
        pending, self._pending = self._pending, ""
        pending = pending.rstrip("\r")
        return [pending] if pending else []


def document_text(document: Any) -> str:
    """Pick the agent text out of a single JSON response document."""
    if isinstance(document, str):
        return document
    if isinstance(document, dict):
        message = document.get("message")
        if message:
            return message if isinstance(message, str) else json.dumps(message, ensure_ascii=False)
        choices = document.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            content = (choices[0].get("message") or {}).get("content")
            if isinstance(content, str):
                return content
    return json.dumps(document, ensure_ascii=False)


class StreamTransport:
    """POSTs a chat payload and reassembles the streamed reply."""

    def __init__(
        self,
        timeout_seconds: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    async def stream(
        self,
        url: str,
        payload: Any,
        headers: dict[str, str],
        on_chunk: OnChunk | None = None,
        on_complete: OnComplete | None = None,
        on_error: OnError | None = None,
    ) -> None:
        logger.debug("Starting stream request to %s", url)
        try:
            try:
                await self._stream(url, payload, headers, on_chunk, on_complete)
            except httpx.HTTPError as exc:
                raise TransportError(f"Stream request failed: {exc}", retryable=True) from exc
            except json.JSONDecodeError as exc:
                raise TransportError(f"Malformed JSON response: {exc}") from exc
        except TransportError as error:
            logger.debug("Stream error: %s", error)
            if on_error is None:
                raise
            on_error(error)

    async def _stream(
        self,
        url: str,
        payload: Any,
        headers: dict[str, str],
        on_chunk: OnChunk | None,
        on_complete: OnComplete | None,
    ) -> None:
        request_headers = {**headers, "Content-Type": "application/json"}
        timeout = httpx.Timeout(self.timeout_seconds)
        async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
            async with client.stream("POST", url, json=payload, headers=request_headers) as response:
                logger.debug("Response status: %s", response.status_code)
                if response.status_code < 200 or response.status_code >= 300:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise TransportError(
                        f"Stream request failed: {response.status_code} "
                        f"{response.reason_phrase} - {body}",
                        status=response.status_code,
                        body=body,
                        retryable=response.status_code >= 500,
                    )
                if response.status_code == 204 or response.headers.get("content-length") == "0":
                    raise TransportError(
                        "Response body is empty", status=response.status_code, body=""
                    )

                content_type = response.headers.get("content-type", "")
                if "application/json" in content_type:
                    document = json.loads(await response.aread())
                    text = document_text(document)
                    logger.debug("Received non-streaming JSON response (%d chars).", len(text))
                    if on_chunk:
                        on_chunk(text)
                    if on_complete:
                        on_complete(text, document if isinstance(document, dict) else {})
                    return

                buffer = SSELineBuffer()
                parts: list[str] = []
                metadata: dict[str, Any] = {}
                async for text in response.aiter_text():
                    for line in buffer.feed(text):
                        if self._handle_line(line, parts, metadata, on_chunk):
                            logger.debug("Stream complete via %s", DONE_SENTINEL)
                            if on_complete:
                                on_complete("".join(parts), metadata)
                            return
                for line in buffer.flush():
                    if self._handle_line(line, parts, metadata, on_chunk):
                        break
                logger.debug("Stream ended naturally (%d chars).", sum(map(len, parts)))
                if on_complete:
                    on_complete("".join(parts), metadata)

    @staticmethod
    def _handle_line(
        line: str,
        parts: list[str],
        metadata: dict[str, Any],
        on_chunk: OnChunk | None,
    ) -> bool:
        """Consume one line; return True on the end-of-stream sentinel."""
        if not line.startswith("data:"):
            return False
        data = line[5:].strip()
        if data == DONE_SENTINEL:
            return True
        try:
            frame = json.loads(data)
        except json.JSONDecodeError:
            chunk = data
        else:
            if isinstance(frame, dict):
                value = frame.get("message") or frame.get("content")
                chunk = value if isinstance(value, str) else ""
                conversation_id = frame.get("conversation_id")
                if conversation_id:
                    metadata["conversation_id"] = str(conversation_id)
            elif isinstance(frame, str):
                chunk = frame
            else:
                chunk = data
        if chunk:
            parts.append(chunk)
            if on_chunk:
                on_chunk(chunk)
        return False
