import time

import httpx
import pytest

from taskpilot.api.session import SessionClient
from taskpilot.auth.credentials import CredentialProvider, Credentials, CredentialStore
from taskpilot.errors import AuthenticationError, TransportError


class StaticCredentials(CredentialProvider):
    def __init__(self, credentials: Credentials | None, refreshed: Credentials | None = None):
        self.credentials = credentials
        self.refreshed = refreshed
        self.refresh_calls = 0

    def get(self, realm: str) -> Credentials | None:
        return self.credentials

    async def refresh(self, realm: str, credentials: Credentials) -> Credentials:
        self.refresh_calls += 1
        if self.refreshed is None:
            raise AuthenticationError("refresh rejected")
        return self.refreshed


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _client(handler, credentials=None, sleep=None, **kwargs) -> SessionClient:
    provider = credentials or StaticCredentials(Credentials(access_token="token-1"))
    return SessionClient(
        "acme",
        provider,
        transport=httpx.MockTransport(handler),
        sleep=sleep or SleepRecorder(),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_network_failures_retry_with_increasing_delays_then_raise():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        raise httpx.ConnectError("unreachable", request=request)

    sleep = SleepRecorder()
    client = _client(handler, sleep=sleep, max_retries=3)
    with pytest.raises(httpx.ConnectError):
        await client.get("https://api.test/items")
    assert len(attempts) == 1 + 3
    assert sleep.delays == [1.0, 2.0, 4.0]
    assert sleep.delays == sorted(sleep.delays)


@pytest.mark.asyncio
async def test_unauthorized_is_not_retried():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(401, text="expired")

    sleep = SleepRecorder()
    client = _client(handler, sleep=sleep)
    with pytest.raises(AuthenticationError):
        await client.post("https://api.test/items", {"a": 1})
    assert len(attempts) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_server_error_then_success():
    responses = [httpx.Response(503, text="busy"), httpx.Response(200, json={"ok": True})]

    def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    sleep = SleepRecorder()
    client = _client(handler, sleep=sleep)
    assert await client.get("https://api.test/items") == {"ok": True}
    assert sleep.delays == [1.0]


@pytest.mark.asyncio
async def test_client_error_raises_transport_error_without_retry():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text="missing")

    client = _client(handler)
    with pytest.raises(TransportError) as excinfo:
        await client.delete("https://api.test/items/1")
    assert excinfo.value.status == 404
    assert not excinfo.value.retryable


@pytest.mark.asyncio
async def test_no_content_returns_none_and_sends_bearer_header():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers["Authorization"])
        return httpx.Response(204)

    client = _client(handler)
    assert await client.put("https://api.test/items/1", {"name": "x"}) is None
    assert seen == ["Bearer token-1"]


@pytest.mark.asyncio
async def test_missing_credentials_raise_authentication_error():
    client = _client(lambda request: httpx.Response(200), credentials=StaticCredentials(None))
    with pytest.raises(AuthenticationError):
        await client.auth_headers()


@pytest.mark.asyncio
async def test_expiring_token_is_refreshed():
    stale = Credentials(
        access_token="old", expires_at=time.time() + 10, client_id="id", client_secret="secret"
    )
    fresh = Credentials(access_token="new", expires_at=time.time() + 3600)
    provider = StaticCredentials(stale, refreshed=fresh)
    client = _client(lambda request: httpx.Response(200), credentials=provider)
    headers = await client.auth_headers()
    assert headers["Authorization"] == "Bearer new"
    assert provider.refresh_calls == 1


@pytest.mark.asyncio
async def test_refresh_failure_falls_back_to_stale_token():
    stale = Credentials(
        access_token="old", expires_at=time.time() + 10, client_id="id", client_secret="secret"
    )
    provider = StaticCredentials(stale, refreshed=None)
    client = _client(lambda request: httpx.Response(200), credentials=provider)
    headers = await client.auth_headers()
    assert headers["Authorization"] == "Bearer old"
    assert provider.refresh_calls == 1


@pytest.mark.asyncio
async def test_token_far_from_expiry_is_not_refreshed():
    creds = Credentials(
        access_token="ok", expires_at=time.time() + 3600, client_id="id", client_secret="secret"
    )
    provider = StaticCredentials(creds)
    client = _client(lambda request: httpx.Response(200), credentials=provider)
    await client.auth_headers()
    assert provider.refresh_calls == 0


@pytest.mark.asyncio
async def test_refresh_with_non_json_reply_falls_back_to_stale_token(tmp_path, monkeypatch):
    monkeypatch.delenv("TASKPILOT_ACCESS_TOKEN", raising=False)

    def idm(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>gateway</html>")

    store = CredentialStore(
        tmp_path / "credentials.json",
        idm_base="https://idm.test",
        transport=httpx.MockTransport(idm),
    )
    store.save("acme", "stale", expires_in=1, client_id="id", client_secret="secret")
    client = SessionClient("acme", store, refresh_lead_seconds=60)

    headers = await client.auth_headers()
    assert headers["Authorization"] == "Bearer stale"
    with pytest.raises(AuthenticationError, match="non-JSON"):
        await store.authenticate("acme", "id", "secret")
