"""
Thumbnail fetching under adaptive rate limiting.

Fetching starts aggressively (THUMB_MAX_CONCURRENCY in flight). A 429 drops
concurrency to 1, and a further 429 at 1 adds a fixed delay between requests.
Successes undo that one step at a time: first the delay goes, then concurrency
grows by one per success back up to the maximum.
"""
from __future__ import annotations

import asyncio
import base64
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import aiohttp

from ...adapters.remote import FetchError, GraphResponse
from ...config import THUMB_MAX_CONCURRENCY, THUMB_RETRY_DELAY_S
from ...shared import get_logger
from ..geo.models import GeoItem

logger = get_logger(__name__)

T = TypeVar("T")

FetchFn = Callable[[str], Awaitable[GraphResponse]]
ProgressFn = Callable[[int, int, bool], None]


@dataclass
class Blob:
    data: bytes
    content_type: str


class AdaptiveRateController:
    """
    Invariant: (concurrency_limit, retry_delay) is either (n, 0) for
    1 <= n <= max_concurrency, or (1, delay_s).
    """

    def __init__(
        self,
        max_concurrency: int = THUMB_MAX_CONCURRENCY,
        delay_s: float = THUMB_RETRY_DELAY_S,
    ) -> None:
        self.max_concurrency = max(1, int(max_concurrency))
        self.delay_s = float(delay_s)
        self.concurrency_limit = self.max_concurrency
        self.retry_delay = 0.0

    @property
    def throttled(self) -> bool:
        return self.retry_delay > 0 or self.concurrency_limit < self.max_concurrency

    def on_success(self) -> None:
        if self.retry_delay > 0:
            self.retry_delay = 0.0
        elif self.concurrency_limit < self.max_concurrency:
            self.concurrency_limit += 1

    def on_rate_limited(self) -> None:
        if self.concurrency_limit > 1:
            self.concurrency_limit = 1
        else:
            self.retry_delay = self.delay_s


async def _fetch_one(fetch: FetchFn, url: str) -> GraphResponse:
    try:
        return await fetch(url)
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        return GraphResponse(status=0, body=str(exc).encode("utf-8"), reason=type(exc).__name__)


async def rate_limited_blob_fetch(
    fetch: FetchFn,
    jobs: list[tuple[str, T]],
    on_progress: ProgressFn,
    *,
    controller: AdaptiveRateController | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> list[tuple[Blob | FetchError, T]]:
    """
    Fetch every URL in `jobs`, retrying 429s; other failures are returned, not retried.

    Results keep the order of `jobs`. A replacement fetch is launched as soon as
    any in-flight fetch completes, so the pipeline stays saturated.
    """
    ctl = controller or AdaptiveRateController()
    total = len(jobs)
    results: list[Any] = [None] * total
    queue: deque[int] = deque(range(total))
    in_flight: dict[asyncio.Task[GraphResponse], int] = {}

    try:
        while queue or in_flight:
            on_progress(total - len(queue) - len(in_flight), total, ctl.throttled)
            while len(in_flight) < ctl.concurrency_limit and queue:
                i = queue.popleft()
                if ctl.retry_delay > 0:
                    # by the invariant this only happens with one fetch in flight at most
                    await sleep(ctl.retry_delay)
                in_flight[asyncio.ensure_future(_fetch_one(fetch, jobs[i][0]))] = i

            done, _ = await asyncio.wait(list(in_flight), return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                i = in_flight.pop(task)
                resp = task.result()
                if resp.ok:
                    ctl.on_success()
                    results[i] = Blob(resp.body, resp.content_type.split(";")[0].strip() or "image/jpeg")
                elif resp.status == 429:
                    ctl.on_rate_limited()
                    queue.append(i)
                else:
                    results[i] = FetchError.from_response(resp, jobs[i][0])
    finally:
        for task in in_flight:
            task.cancel()

    return [(results[i], jobs[i][1]) for i in range(total)]


def blob_to_data_url(blob: Blob) -> str:
    return f"data:{blob.content_type};base64,{base64.b64encode(blob.data).decode('ascii')}"


class _PercentReporter:
    def __init__(self, report: Callable[[str], None]) -> None:
        self._report = report
        self.last_pct = ""
        self._last_message = ""

    def __call__(self, count: int, total: int, throttled: bool) -> None:
        pct = f"{count * 100 // total if total else 100}%"
        message = f"making thumbnails {pct}{' (throttled)' if throttled else ''}"
        if message == self._last_message:
            return
        self.last_pct = pct
        self._last_message = message
        self._report(message)


async def resolve_thumbnails(
    fetch: FetchFn,
    geo_items: list[GeoItem],
    report: Callable[[str], None],
    *,
    controller: AdaptiveRateController | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> int:
    """
    Inline every remote thumbnail of `geo_items` as a data: URL, in place.

    Failed fetches are logged and leave the remote URL on the item.
    Returns the number of thumbnails inlined.
    """
    pending = [(gi.thumbnail_url, gi) for gi in geo_items if not gi.has_inline_thumbnail]
    reporter = _PercentReporter(report)
    fetched = await rate_limited_blob_fetch(fetch, pending, reporter, controller=controller, sleep=sleep)
    resolved = 0
    for blob_or_error, geo_item in fetched:
        if isinstance(blob_or_error, Blob):
            geo_item.thumbnail_url = blob_to_data_url(blob_or_error)
            resolved += 1
        else:
            logger.warning("Failed to fetch thumbnail for %s: %s", geo_item.name, blob_or_error)
    if fetched and reporter.last_pct != "100%":
        reporter(100, 100, False)
    return resolved
