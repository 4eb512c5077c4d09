"""
Request batching against the Graph `$batch` endpoint.

Each network call carries up to BATCH_MAX_REQUESTS sub-requests drawn from
whole work items (a work item's requests are never split across calls).
"""
from __future__ import annotations

import asyncio
import base64
import binascii
import json
from typing import Any, Protocol

from ...adapters.remote import FetchError, GraphResponse, header_value
from ...config import BATCH_MAX_REQUESTS, GRAPH_BATCH_URL
from ...shared import get_logger
from .retry import RetryPolicy
from .workitem import WorkItem

logger = get_logger(__name__)


class RemoteClient(Protocol):
    async def request(
        self,
        method: str,
        url: str,
        *,
        json_body: Any = None,
        data: bytes | str | None = None,
        headers: dict[str, str] | None = None,
    ) -> GraphResponse: ...

    async def fetch(
        self,
        url: str,
        *,
        method: str = "GET",
        data: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> GraphResponse: ...


def take_batch(to_fetch: list[WorkItem], max_requests: int = BATCH_MAX_REQUESTS) -> list[WorkItem]:
    """Pop work items off the front of `to_fetch` until the request budget is used."""
    taken: list[WorkItem] = []
    count = 0
    while to_fetch and count < max_requests:
        item = to_fetch.pop(0)
        taken.append(item)
        count += len(item.requests)
    return taken


async def _follow_redirect(client: RemoteClient, sub: dict[str, Any]) -> None:
    location = header_value(sub.get("headers"), "Location")
    if not location:
        return
    resp = await client.fetch(location)
    sub["headers"] = dict(resp.headers)
    sub["status"] = resp.status
    try:
        sub["body"] = resp.json() if "application/json" in resp.content_type else resp.text()
    except (ValueError, UnicodeDecodeError) as exc:
        logger.debug("Redirected body for %s was not decodable: %s", sub.get("id"), exc)
        sub["body"] = resp.text()


def _decode_json_string_body(sub: dict[str, Any]) -> None:
    # Heuristic: a legitimately base64-decodable string body would be mis-decoded here.
    try:
        sub["body"] = json.loads(base64.b64decode(sub["body"], validate=True).decode("utf-8"))
    except (binascii.Error, ValueError, UnicodeDecodeError) as exc:
        logger.debug("Left %s body as-is, not base64 JSON: %s", sub.get("id"), exc)


async def postprocess_batch_response(client: RemoteClient, payload: dict[str, Any]) -> dict[str, Any]:
    """
    Repair two batch-only quirks, in place.

    1. `GET :/content` answers 302 inside a batch; follow it and substitute the
       real status, headers and body (JSON when the content type says so).
    2. Sub-responses that claim application/json sometimes carry the JSON as a
       base64 string. There is no general way to tell such a body from a real
       string, so only that one shape is recovered.
    """
    redirects = []
    for sub in payload.get("responses") or []:
        if sub.get("status") == 302:
            redirects.append(_follow_redirect(client, sub))
        elif "application/json" in header_value(sub.get("headers"), "Content-Type") and isinstance(sub.get("body"), str):
            _decode_json_string_body(sub)
    if redirects:
        await asyncio.gather(*redirects)
    return payload


class RequestBatcher:
    """Packs work-item sub-requests into `$batch` calls and routes the answers back."""

    def __init__(
        self,
        client: RemoteClient,
        *,
        retry_policy: RetryPolicy | None = None,
        max_requests: int = BATCH_MAX_REQUESTS,
        on_throttle: Any = None,
    ) -> None:
        self._client = client
        self._retry = retry_policy or RetryPolicy()
        self.max_requests = max_requests
        self._on_throttle = on_throttle
        self.calls = 0

    async def _post(self, requests: list[dict[str, Any]]) -> dict[str, Any]:
        attempt = 0
        while True:
            resp = await self._client.request(
                "POST",
                GRAPH_BATCH_URL,
                json_body={"requests": requests},
                headers={"Content-Type": "application/json"},
            )
            self.calls += 1
            if resp.status != 429:
                break
            attempt += 1
            logger.debug("Batch of %d requests throttled (attempt %d)", len(requests), attempt)
            if self._on_throttle is not None:
                self._on_throttle()
            await self._retry.wait(attempt)
        if not resp.ok:
            raise FetchError.from_response(resp, GRAPH_BATCH_URL)
        return resp.json()

    async def execute(self, items: list[WorkItem]) -> list[WorkItem]:
        """
        Run one batch call covering every request of `items`.

        Returns the same items with `responses` filled and `requests` cleared.
        Raises FetchError on any non-throttling failure of the batch call itself.
        """
        requests = [r for item in items for r in item.requests]
        if not requests:
            return items
        payload = await self._post(requests)
        await postprocess_batch_response(self._client, payload)

        by_item: dict[int, dict[str, dict[str, Any]]] = {id(item): {} for item in items}
        for sub in payload.get("responses") or []:
            request_id = str(sub.get("id"))
            owner = next((item for item in items if item.owns_request(request_id)), None)
            if owner is None:
                logger.warning("Batch response for unknown request id %s", request_id)
                continue
            by_item[id(owner)][request_id] = sub
        for item in items:
            item.receive(by_item[id(item)])
        return items
