"""
Authorized HTTP access to the Microsoft Graph drive API.

Token acquisition and refresh belong to the caller-supplied `TokenProvider`;
this adapter only attaches the bearer header and retries once after a 401.
Responses are fully read and returned as `GraphResponse` values so callers
never hold an open aiohttp response.
"""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Protocol

from aiohttp import ClientSession, ClientTimeout

from ...config import GRAPH_BASE_URL, GRAPH_TIMEOUT_S
from ...shared import get_logger

logger = get_logger(__name__)


def header_value(headers: dict[str, Any] | None, name: str) -> str:
    """Case-insensitive header lookup over a plain dict."""
    if not headers:
        return ""
    lowered = name.lower()
    for key, value in headers.items():
        if str(key).lower() == lowered:
            return str(value)
    return ""


@dataclass
class GraphResponse:
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    reason: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def content_type(self) -> str:
        return header_value(self.headers, "Content-Type")

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))


class FetchError(Exception):
    """A non-success HTTP response, carrying its status and body text."""

    def __init__(self, status: int, reason: str, text: str, url: str = "") -> None:
        super().__init__(f"HTTP {status} {reason}: {text[:500]}")
        self.status = status
        self.reason = reason
        self.text = text
        self.url = url

    @classmethod
    def from_response(cls, response: GraphResponse, url: str = "") -> "FetchError":
        return cls(response.status, response.reason, response.text(), url)


class TokenProvider(Protocol):
    async def get_token(self) -> str: ...

    async def refresh_token(self) -> str: ...


class StaticTokenProvider:
    """Token taken from the environment (GEOPIC_ACCESS_TOKEN); refresh is not possible."""

    def __init__(self, token: str | None = None) -> None:
        self._token = token if token is not None else os.environ.get("GEOPIC_ACCESS_TOKEN", "")

    async def get_token(self) -> str:
        return self._token

    async def refresh_token(self) -> str:
        return self._token


class GraphClient:
    """Authorized request primitive plus unauthenticated fetches for pre-signed URLs."""

    def __init__(self, session: ClientSession, tokens: TokenProvider, base_url: str = GRAPH_BASE_URL) -> None:
        self._session = session
        self._tokens = tokens
        self._base_url = base_url.rstrip("/")
        self._timeout = ClientTimeout(total=GRAPH_TIMEOUT_S)

    def absolute_url(self, url: str) -> str:
        if url.startswith("http://") or url.startswith("https://"):
            return url
        return f"{self._base_url}/{url.lstrip('/')}"

    async def _send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        json_body: Any = None,
        data: bytes | str | None = None,
    ) -> GraphResponse:
        async with self._session.request(
            method,
            url,
            headers=headers,
            json=json_body,
            data=data,
            timeout=self._timeout,
        ) as resp:
            body = await resp.read()
            return GraphResponse(
                status=resp.status,
                headers={k: v for k, v in resp.headers.items()},
                body=body,
                reason=str(resp.reason or ""),
            )

    async def request(
        self,
        method: str,
        url: str,
        *,
        json_body: Any = None,
        data: bytes | str | None = None,
        headers: dict[str, str] | None = None,
    ) -> GraphResponse:
        """Send an authorized request, refreshing the token once on 401."""
        target = self.absolute_url(url)
        for attempt in range(2):
            token = await (self._tokens.get_token() if attempt == 0 else self._tokens.refresh_token())
            merged = dict(headers or {})
            merged["Authorization"] = f"Bearer {token}"
            resp = await self._send(method, target, headers=merged, json_body=json_body, data=data)
            if resp.status != 401:
                return resp
            logger.debug("Graph %s %s returned 401, refreshing token", method, url)
        return resp

    async def fetch(
        self,
        url: str,
        *,
        method: str = "GET",
        data: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> GraphResponse:
        """Unauthenticated request, for redirect targets, thumbnails and upload sessions."""
        return await self._send(method, url, headers=headers, data=data)
