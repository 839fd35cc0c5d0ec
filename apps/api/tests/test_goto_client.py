"""GoTo Connect client behaviour against a mocked transport."""
from __future__ import annotations

import httpx
import pytest

from ledgerdesk.services.goto import GoToAPIError, GoToAuthError, GoToClient


def _client(handler, **overrides) -> GoToClient:
    options = {
        "api_base": "https://api.goto.test",
        "auth_base": "https://auth.goto.test",
        "client_id": "id",
        "client_secret": "secret",
        "refresh_token": "refresh-1",
        "transport": httpx.MockTransport(handler),
    }
    options.update(overrides)
    return GoToClient(**options)


@pytest.mark.asyncio
async def test_refreshes_token_then_fetches_report() -> None:
    seen: list[tuple[str, str | None]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.url.path, request.headers.get("authorization")))
        if request.url.path == "/oauth/token":
            assert b"grant_type=refresh_token" in request.content
            return httpx.Response(200, json={"access_token": "tok-1", "expires_in": 3600})
        return httpx.Response(200, json={"conversationSpaceId": "csid-1", "direction": "INBOUND"})

    client = _client(handler)
    report = await client.get_call_report("csid-1")
    await client.get_call_report("csid-1")
    await client.aclose()

    assert report["conversationSpaceId"] == "csid-1"
    assert [path for path, _ in seen] == [
        "/oauth/token",
        "/call-events-report/v1/reports/csid-1",
        "/call-events-report/v1/reports/csid-1",
    ]
    assert seen[1][1] == "Bearer tok-1"


@pytest.mark.asyncio
async def test_refreshes_when_token_is_about_to_expire() -> None:
    refreshes = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal refreshes
        if request.url.path == "/oauth/token":
            refreshes += 1
            return httpx.Response(200, json={"access_token": f"tok-{refreshes}", "expires_in": 60})
        return httpx.Response(200, json={"url": "https://rec.example/r1.mp3"})

    client = _client(handler)
    await client.get_recording_url("r1")
    await client.get_recording_url("r1")

    assert refreshes == 2


@pytest.mark.asyncio
async def test_static_access_token_skips_refresh() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path != "/oauth/token"
        assert request.headers["authorization"] == "Bearer static"
        return httpx.Response(200, json={"url": "https://rec.example/r1.mp3"})

    client = _client(handler, access_token="static", refresh_token="")

    assert await client.get_recording_url("r1") == "https://rec.example/r1.mp3"


@pytest.mark.asyncio
async def test_non_success_status_raises_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text="not found")

    client = _client(handler, access_token="static")

    with pytest.raises(GoToAPIError) as excinfo:
        await client.get_call_report("missing")

    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_missing_credentials_raise_auth_error() -> None:
    client = _client(lambda request: httpx.Response(200, json={}), refresh_token="")

    with pytest.raises(GoToAuthError):
        await client.get_call_report("csid-1")


@pytest.mark.asyncio
async def test_transcription_joins_segments_when_text_missing() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"segments": [{"text": "Hi, "}, {"text": "I need my W-2."}, "noise"]},
        )

    client = _client(handler, access_token="static")

    assert await client.get_transcription("t1") == "Hi, I need my W-2."
