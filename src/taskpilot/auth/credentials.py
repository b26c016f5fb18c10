"""Credential storage and client-credentials token refresh."""

from __future__ import annotations

import json
import os
import time
from abc import ABC, abstractmethod
from pathlib import Path

import httpx
from pydantic import BaseModel, ValidationError

from taskpilot.errors import AuthenticationError
from taskpilot.util.logging import get_logger

logger = get_logger(__name__)

ACCESS_TOKEN_ENV = "TASKPILOT_ACCESS_TOKEN"


class Credentials(BaseModel):
    access_token: str
    expires_at: float | None = None
    client_id: str | None = None
    client_secret: str | None = None

    def expires_within(self, seconds: float, now: float | None = None) -> bool:
        if self.expires_at is None:
            return False
        current = time.time() if now is None else now
        return self.expires_at - current < seconds

    @property
    def can_refresh(self) -> bool:
        return bool(self.client_id and self.client_secret)


class CredentialProvider(ABC):
    """Source of per-realm credentials consulted by :class:`SessionClient`."""

    @abstractmethod
    def get(self, realm: str) -> Credentials | None:
        raise NotImplementedError

    @abstractmethod
    async def refresh(self, realm: str, credentials: Credentials) -> Credentials:
        """Exchange stored refresh material for a fresh token."""
        raise NotImplementedError


class CredentialStore(CredentialProvider):
    """JSON credential file keyed by realm, readable only by the owner."""

    def __init__(
        self,
        path: Path,
        idm_base: str = "https://idm.stackspot.com",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.path = path
        self.idm_base = idm_base.rstrip("/")
        self.transport = transport

    def _read_all(self) -> dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable credentials file %s: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict[str, dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        os.chmod(self.path, 0o600)

    def get(self, realm: str) -> Credentials | None:
        env_token = os.environ.get(ACCESS_TOKEN_ENV)
        if env_token:
            return Credentials(access_token=env_token)
        entry = self._read_all().get(realm)
        if not entry:
            return None
        try:
            return Credentials.model_validate(entry)
        except ValidationError as exc:
            logger.warning("Stored credentials for realm %s are invalid: %s", realm, exc)
            return None

    def save(
        self,
        realm: str,
        access_token: str,
        *,
        expires_in: int | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
    ) -> Credentials:
        data = self._read_all()
        existing = data.get(realm, {})
        entry = {
            **existing,
            "access_token": access_token,
            "expires_at": time.time() + expires_in if expires_in else existing.get("expires_at"),
        }
        if client_id:
            entry["client_id"] = client_id
        if client_secret:
            entry["client_secret"] = client_secret
        data[realm] = entry
        self._write_all(data)
        return Credentials.model_validate(entry)

    def delete(self, realm: str) -> bool:
        data = self._read_all()
        if realm not in data:
            return False
        del data[realm]
        self._write_all(data)
        return True

    async def refresh(self, realm: str, credentials: Credentials) -> Credentials:
        if not credentials.can_refresh:
            raise AuthenticationError(f"No refresh material stored for realm '{realm}'.")
        token = await self.authenticate(
            realm, credentials.client_id or "", credentials.client_secret or ""
        )
        return self.save(
            realm,
            token["access_token"],
            expires_in=token.get("expires_in"),
            client_id=credentials.client_id,
            client_secret=credentials.client_secret,
        )

    async def authenticate(self, realm: str, client_id: str, client_secret: str) -> dict:
        """Run the client-credentials grant against the identity provider."""
        url = f"{self.idm_base}/{realm}/oidc/oauth/token"
        form = {
            "grant_type": "client_credentials",
            "client_id": client_id,
            "client_secret": client_secret,
        }
        async with httpx.AsyncClient(timeout=30.0, transport=self.transport) as client:
            response = await client.post(url, data=form)
        if response.status_code != 200:
            raise AuthenticationError(
                f"Authentication failed: {response.status_code} - {response.text[:200]}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise AuthenticationError(
                f"Identity provider returned a non-JSON body: {response.text[:200]}"
            ) from exc
        if not isinstance(payload, dict) or "access_token" not in payload:
            raise AuthenticationError("Identity provider returned no access token.")
        return payload
