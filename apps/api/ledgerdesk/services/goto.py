"""GoTo Connect REST client for call reports, recordings, and transcriptions."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import httpx

from ..core.config import settings

logger = logging.getLogger(__name__)

TOKEN_REFRESH_MARGIN_SECONDS = 5 * 60


class GoToAPIError(RuntimeError):
    """Raised when the GoTo API answers with a non-success status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GoToAuthError(GoToAPIError):
    """Raised when no usable credentials are configured or refresh fails."""


@dataclass(slots=True)
class _TokenState:
    access_token: str
    refresh_token: str
    expires_at: float | None


class GoToClient:
    """Thin async wrapper over the GoTo Connect API."""

    def __init__(
        self,
        *,
        api_base: str,
        auth_base: str,
        client_id: str = "",
        client_secret: str = "",
        refresh_token: str = "",
        access_token: str = "",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_base = api_base.rstrip("/")
        self._auth_base = auth_base.rstrip("/")
        self._client_id = client_id
        self._client_secret = client_secret
        self._timeout = timeout
        self._transport = transport
        self._http: httpx.AsyncClient | None = None
        self._token = _TokenState(access_token=access_token, refresh_token=refresh_token, expires_at=None)
        self._lock = asyncio.Lock()

    def _client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    def _token_is_fresh(self) -> bool:
        if not self._token.access_token:
            return False
        if self._token.expires_at is None:
            return True
        return self._token.expires_at - time.time() > TOKEN_REFRESH_MARGIN_SECONDS

    async def _access_token(self) -> str:
        async with self._lock:
            if self._token_is_fresh():
                return self._token.access_token
            if not self._token.refresh_token:
                raise GoToAuthError("Not authenticated with GoTo Connect. Authorization required.")
            await self._refresh()
            return self._token.access_token

    async def _refresh(self) -> None:
        if not self._client_id or not self._client_secret:
            raise GoToAuthError("GoTo Connect credentials not configured. Set GOTO_CLIENT_ID and GOTO_CLIENT_SECRET.")

        response = await self._client().post(
            f"{self._auth_base}/oauth/token",
            data={"grant_type": "refresh_token", "refresh_token": self._token.refresh_token},
            auth=(self._client_id, self._client_secret),
        )
        if response.status_code >= 400:
            self._token.access_token = ""
            raise GoToAuthError(f"Failed to refresh token: {response.text}", status_code=response.status_code)

        data = response.json()
        expires_in = data.get("expires_in")
        self._token = _TokenState(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or self._token.refresh_token,
            expires_at=time.time() + float(expires_in) if expires_in else None,
        )
        logger.info("Refreshed GoTo Connect access token")

    async def request(self, method: str, endpoint: str, **kwargs: Any) -> dict[str, Any]:
        """Perform an authenticated API request and return the decoded JSON body."""

        token = await self._access_token()
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json", **kwargs.pop("headers", {})}
        response = await self._client().request(method, f"{self._api_base}{endpoint}", headers=headers, **kwargs)
        if response.status_code >= 400:
            raise GoToAPIError(
                f"GoTo API error ({response.status_code}): {response.text}",
                status_code=response.status_code,
            )
        if not response.content:
            return {}
        body = response.json()
        return body if isinstance(body, dict) else {"items": body}

    async def get_call_report(self, conversation_space_id: str) -> dict[str, Any]:
        return await self.request("GET", f"/call-events-report/v1/reports/{conversation_space_id}")

    async def get_recording_url(self, recording_id: str) -> str | None:
        body = await self.request("GET", f"/recording/v1/recordings/{recording_id}/content")
        url = body.get("url")
        return url if isinstance(url, str) and url else None

    async def get_transcription(self, transcript_id: str) -> str | None:
        body = await self.request("GET", f"/recording/v1/transcriptions/{transcript_id}")
        text = body.get("text")
        if isinstance(text, str) and text.strip():
            return text.strip()
        segments = body.get("segments")
        if isinstance(segments, list):
            joined = " ".join(str(seg.get("text", "")).strip() for seg in segments if isinstance(seg, dict))
            return joined.strip() or None
        return None


@lru_cache
def get_client() -> GoToClient:
    """Return the process-wide GoTo client built from settings."""

    return GoToClient(
        api_base=settings.goto_api_base,
        auth_base=settings.goto_auth_base,
        client_id=settings.goto_client_id,
        client_secret=settings.goto_client_secret,
        refresh_token=settings.goto_refresh_token,
        access_token=settings.goto_access_token,
        timeout=settings.goto_request_timeout,
    )


async def get_call_report(conversation_space_id: str) -> dict[str, Any]:
    return await get_client().get_call_report(conversation_space_id)


async def get_recording_url(recording_id: str) -> str | None:
    return await get_client().get_recording_url(recording_id)


async def get_transcription(transcript_id: str) -> str | None:
    return await get_client().get_transcription(transcript_id)
