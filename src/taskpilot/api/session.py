"""Authenticated request wrapper with token refresh and retry/backoff."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import httpx

from taskpilot.auth.credentials import CredentialProvider, Credentials
from taskpilot.errors import AuthenticationError, TransportError
from taskpilot.util.logging import get_logger

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class SessionClient:
    """Plain (non-streaming) HTTP calls against the agent platform."""

    def __init__(
        self,
        realm: str,
        credentials: CredentialProvider,
        *,
        max_retries: int = 3,
        retry_delays: list[float] | None = None,
        refresh_lead_seconds: float = 60.0,
        timeout_seconds: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.realm = realm
        self.credentials = credentials
        self.max_retries = max(0, max_retries)
        self.retry_delays = retry_delays or [1.0, 2.0, 4.0]
        self.refresh_lead_seconds = refresh_lead_seconds
        self.timeout_seconds = timeout_seconds
        self.transport = transport
        self._sleep = sleep

    async def _current_credentials(self) -> Credentials:
        creds = self.credentials.get(self.realm)
        if creds is None:
            raise AuthenticationError(
                f"Authentication required for realm '{self.realm}'. Log in again to continue."
            )
        if creds.can_refresh and creds.expires_within(self.refresh_lead_seconds):
            logger.info("Access token for realm %s is about to expire; refreshing.", self.realm)
            try:
                return await self.credentials.refresh(self.realm, creds)
            except (AuthenticationError, httpx.HTTPError) as exc:
                logger.warning("Token refresh failed, using stale token: %s", exc)
        return creds

    async def auth_headers(self) -> dict[str, str]:
        creds = await self._current_credentials()
        return {
            "Authorization": f"Bearer {creds.access_token}",
            "Content-Type": "application/json",
        }

    def _delay_for(self, attempt: int) -> float:
        if attempt < len(self.retry_delays):
            return self.retry_delays[attempt]
        return self.retry_delays[-1]

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        last_error: Exception | None = None
        for attempt in range(self.max_retries + 1):
            if attempt:
                logger.debug("Retry attempt %d/%d for %s", attempt, self.max_retries, url)
            request_headers = await self.auth_headers()
            request_headers.update(headers or {})
            try:
                async with httpx.AsyncClient(
                    timeout=self.timeout_seconds, transport=self.transport
                ) as client:
                    response = await client.request(
                        method, url, json=json, params=params, headers=request_headers
                    )
            except httpx.TransportError as exc:
                last_error = exc
                if attempt < self.max_retries:
                    await self._backoff(attempt, exc)
                    continue
                raise
            if response.status_code == 401:
                raise AuthenticationError(
                    "Session expired or invalid credentials. Log in again to continue."
                )
            if response.status_code >= 500:
                last_error = TransportError(
                    f"API request failed: {response.status_code} - {response.text[:500]}",
                    status=response.status_code,
                    body=response.text,
                    retryable=True,
                )
                if attempt < self.max_retries:
                    await self._backoff(attempt, last_error)
                    continue
                raise last_error
            if response.status_code >= 400:
                raise TransportError(
                    f"API request failed: {response.status_code} - {response.text[:500]}",
                    status=response.status_code,
                    body=response.text,
                )
            if response.status_code == 204 or not response.content:
                return None
            return response.json()
        raise TransportError(f"API request failed: {last_error}")

    async def _backoff(self, attempt: int, error: Exception) -> None:
        delay = self._delay_for(attempt)
        logger.warning("Request failed (%s); retrying in %.1fs.", error, delay)
        await self._sleep(delay)

    async def get(self, url: str, **kwargs: Any) -> Any:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, body: Any, **kwargs: Any) -> Any:
        return await self.request("POST", url, json=body, **kwargs)

    async def put(self, url: str, body: Any, **kwargs: Any) -> Any:
        return await self.request("PUT", url, json=body, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", url, **kwargs)
