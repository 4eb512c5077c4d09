import asyncio

import aiohttp
import pytest

from gp_backend.adapters.remote import FetchError, GraphResponse
from gp_backend.features.crawl.thumbnails import (
    AdaptiveRateController,
    Blob,
    blob_to_data_url,
    rate_limited_blob_fetch,
    resolve_thumbnails,
)
from gp_backend.features.geo.models import GeoItem, Position


class _FakeFetch:
    def __init__(self, script=None, raises=()):
        self.script = {url: list(statuses) for url, statuses in (script or {}).items()}
        self.raises = set(raises)
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, url):
        self.calls.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if url in self.raises:
                raise aiohttp.ClientConnectionError("connection reset")
        finally:
            self.in_flight -= 1
        statuses = self.script.get(url)
        status = statuses.pop(0) if statuses else 200
        if status == 200:
            return GraphResponse(status=200, headers={"Content-Type": "image/png; charset=binary"}, body=url.encode())
        return GraphResponse(status=status, body=b"nope", reason="Nope")


class _Sleeper:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def _noop_progress(count, total, throttled):
    return None


def test_controller_steps_down_and_back_up():
    ctl = AdaptiveRateController(max_concurrency=6, delay_s=10)
    assert (ctl.concurrency_limit, ctl.retry_delay, ctl.throttled) == (6, 0, False)

    ctl.on_rate_limited()
    assert (ctl.concurrency_limit, ctl.retry_delay) == (1, 0)
    ctl.on_rate_limited()
    assert (ctl.concurrency_limit, ctl.retry_delay) == (1, 10)
    ctl.on_rate_limited()
    assert (ctl.concurrency_limit, ctl.retry_delay) == (1, 10)

    ctl.on_success()
    assert (ctl.concurrency_limit, ctl.retry_delay) == (1, 0)
    assert ctl.throttled
    for _ in range(5):
        ctl.on_success()
    assert (ctl.concurrency_limit, ctl.retry_delay, ctl.throttled) == (6, 0, False)
    ctl.on_success()
    assert ctl.concurrency_limit == 6


@pytest.mark.asyncio
async def test_fetch_keeps_job_order_and_concurrency_limit():
    fetch = _FakeFetch()
    jobs = [(f"https://t/{n}", n) for n in range(10)]

    results = await rate_limited_blob_fetch(fetch, jobs, _noop_progress, controller=AdaptiveRateController(6, 0))

    assert [tag for _, tag in results] == list(range(10))
    assert [blob.data for blob, _ in results] == [url.encode() for url, _ in jobs]
    assert all(blob.content_type == "image/png" for blob, _ in results)
    assert 1 < fetch.max_in_flight <= 6


@pytest.mark.asyncio
async def test_rate_limited_fetch_is_retried():
    fetch = _FakeFetch(script={"https://t/1": [429, 200]})
    ctl = AdaptiveRateController(6, 0.5)
    jobs = [(f"https://t/{n}", n) for n in range(4)]

    results = await rate_limited_blob_fetch(fetch, jobs, _noop_progress, controller=ctl)

    assert all(isinstance(blob, Blob) for blob, _ in results)
    assert fetch.calls.count("https://t/1") == 2


@pytest.mark.asyncio
async def test_repeated_rate_limit_adds_delay_between_fetches():
    fetch = _FakeFetch(script={"https://t/0": [429, 429, 200]})
    sleeper = _Sleeper()

    results = await rate_limited_blob_fetch(
        fetch, [("https://t/0", 0)], _noop_progress, controller=AdaptiveRateController(6, 0.5), sleep=sleeper
    )

    assert isinstance(results[0][0], Blob)
    assert sleeper.calls == [0.5]


@pytest.mark.asyncio
async def test_other_failures_are_returned_not_retried():
    fetch = _FakeFetch(script={"https://t/0": [404]}, raises={"https://t/1"})

    results = await rate_limited_blob_fetch(
        fetch, [("https://t/0", "a"), ("https://t/1", "b")], _noop_progress, controller=AdaptiveRateController(6, 0)
    )

    missing, reset = results[0][0], results[1][0]
    assert isinstance(missing, FetchError) and missing.status == 404
    assert isinstance(reset, FetchError) and reset.status == 0
    assert len(fetch.calls) == 2


def test_blob_to_data_url():
    assert blob_to_data_url(Blob(b"img", "image/jpeg")) == "data:image/jpeg;base64,aW1n"


def _geo(item_id, url):
    return GeoItem(id=item_id, position=Position(0, 0), date=20200101, thumbnail_url=url, name=item_id, folder_index=0)


@pytest.mark.asyncio
async def test_resolve_thumbnails_inlines_and_keeps_failures():
    ok = _geo("ok", "https://t/ok")
    missing = _geo("missing", "https://t/missing")
    inline = _geo("inline", "data:image/jpeg;base64,AAAA")
    fetch = _FakeFetch(script={"https://t/missing": [404]})
    messages = []

    resolved = await resolve_thumbnails(
        fetch, [ok, missing, inline], messages.append, controller=AdaptiveRateController(6, 0)
    )

    assert resolved == 1
    assert ok.thumbnail_url.startswith("data:image/png;base64,")
    assert missing.thumbnail_url == "https://t/missing"
    assert inline.thumbnail_url == "data:image/jpeg;base64,AAAA"
    assert "https://t/inline" not in fetch.calls
    assert messages[0] == "making thumbnails 0%"
    assert messages[-1] == "making thumbnails 100%"


@pytest.mark.asyncio
async def test_resolve_thumbnails_reports_throttling():
    items = [_geo(f"g{n}", f"https://t/{n}") for n in range(3)]
    fetch = _FakeFetch(script={"https://t/0": [429, 200]})
    messages = []

    await resolve_thumbnails(fetch, items, messages.append, controller=AdaptiveRateController(6, 0))

    assert any(m.endswith("(throttled)") for m in messages)
    assert all(gi.thumbnail_url.startswith("data:") for gi in items)


@pytest.mark.asyncio
async def test_resolve_thumbnails_with_nothing_to_fetch_is_silent():
    messages = []

    resolved = await resolve_thumbnails(_FakeFetch(), [_geo("a", "data:x")], messages.append)

    assert resolved == 0
    assert messages == []
