"""
Incremental crawl of the remote folder tree into a single CacheDocument.

Three collections drive the crawl, all held by a per-crawl `CrawlContext`:

- `ready`: work items whose responses have arrived, awaiting processing;
- `to_fetch`: work items whose requests still have to go out;
- `waiting`: folders (keyed by cache filename) whose document still needs
  merged results from some subfolders.

Cycle: process everything in `ready`; when it is empty, send one batch drawn
from the front of `to_fetch` and put those items back into `ready`. The crawl
ends when the root folder's END item is processed.

Per folder:

1. START with children + cache responses. If the stored cache document is
   valid, the folder goes straight to END and its subtree is never listed.
   Otherwise the live children are enumerated: subfolders become new START
   items, geotagged files become GeoItems (reusing thumbnails from the stale
   document where ids match).
2. Finish-action. With no subfolders, thumbnails are resolved and the folder
   is persisted: an END item carrying a batched write goes to the front of
   `to_fetch`, or above the payload cap the document is uploaded in chunks and
   the END item goes straight to `ready`. Otherwise the folder parks in
   `waiting` and its last subfolder to finish runs the finish-action.
3. END. The document is appended into the parent's, shifting folder indexes
   by the parent's current folder count.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

import aiohttp

from ...adapters.remote import FetchError
from ...config import BATCH_MAX_REQUESTS, BATCH_PAYLOAD_CAP, SCHEMA_VERSION, THROTTLE_DELAY_S
from ...shared import ErrorCode, Result, crawl_id_var, get_logger, log_structured, log_success, sanitize_error_message
from ..geo.models import CacheDocument
from .batcher import RemoteClient, RequestBatcher, take_batch
from .progress import CrawlReporter, CrawlStats, ProgressSink, throttle_message
from .retry import RetryPolicy, ThrottledError
from .thumbnails import AdaptiveRateController, resolve_thumbnails
from .uploader import multipart_upload
from .workitem import (
    WorkItem,
    WorkState,
    cache_filename,
    end_work_item,
    geo_item_from_drive_item,
    is_geotagged,
    refetch_work_item,
    serialize_document,
    start_work_item,
)

logger = get_logger(__name__)

ACTIVITY_LIMIT_CODE = "activityLimitReached"


class CrawlError(Exception):
    """A failure that aborts the whole crawl."""

    def __init__(self, message: str, *, code: ErrorCode = ErrorCode.REMOTE_ERROR, path: list[str] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.path = list(path or [])


@dataclass
class CrawlContext:
    """All mutable state of one crawl; created at crawl start, dropped at the end."""

    client: RemoteClient
    batcher: RequestBatcher
    reporter: CrawlReporter
    stats: CrawlStats
    ready: deque[WorkItem] = field(default_factory=deque)
    to_fetch: list[WorkItem] = field(default_factory=list)
    waiting: dict[str, WorkItem] = field(default_factory=dict)
    throttle_delay_s: float = THROTTLE_DELAY_S
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    clock: Callable[[], float] = time.monotonic
    thumbnail_controller: AdaptiveRateController | None = None
    folders_enumerated: int = 0
    folders_from_cache: int = 0
    writes_failed: int = 0


def cached_document_if_valid(response: dict[str, Any], live_size: int) -> CacheDocument | None:
    """The stored document, when it can stand in for re-crawling the folder."""
    if response.get("status") != 200:
        return None
    body = response.get("body")
    if not isinstance(body, dict):
        return None
    if body.get("size") != live_size or body.get("schemaVersion") != SCHEMA_VERSION:
        return None
    try:
        return CacheDocument.from_dict(body)
    except (KeyError, TypeError, ValueError) as exc:
        logger.warning("Discarding unreadable cache document %s: %s", body.get("id"), exc)
        return None


def reusable_thumbnails(response: dict[str, Any]) -> dict[str, str]:
    """Thumbnails by item id from a stored document's own files, valid or not."""
    if response.get("status") != 200:
        return {}
    body = response.get("body")
    if not isinstance(body, dict):
        return {}
    own = body.get("geoItems") or []
    try:
        count = int(body.get("immediateChildCount") or 0)
    except (TypeError, ValueError):
        return {}
    cache: dict[str, str] = {}
    for cached in own[:count]:
        if isinstance(cached, dict) and cached.get("id") and cached.get("thumbnailUrl"):
            cache[str(cached["id"])] = str(cached["thumbnailUrl"])
    return cache


def listing_error(response: dict[str, Any]) -> dict[str, Any] | None:
    body = response.get("body")
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"]
    status = response.get("status")
    if not isinstance(status, int) or not 200 <= status < 300:
        return {"code": str(status), "message": "children listing failed"}
    return None


def merge_child(parent: CacheDocument, child: CacheDocument) -> None:
    """Append `child`'s items and folders onto `parent`, re-indexing folder references."""
    offset = len(parent.folders)
    parent.geo_items.extend(gi.with_folder_offset(offset) for gi in child.geo_items)
    parent.folders.extend(child.folders)


async def _resolve_and_emit(ctx: CrawlContext, item: WorkItem) -> None:
    own = item.data.geo_items[: item.data.immediate_child_count]
    await resolve_thumbnails(
        ctx.client.fetch,
        own,
        ctx.reporter.for_folder(item.path),
        controller=ctx.thumbnail_controller,
        sleep=ctx.sleep,
    )
    ctx.reporter.items(own)


async def process_start(ctx: CrawlContext, item: WorkItem) -> None:
    children = item.children_response()
    cache = item.cache_response()

    error = listing_error(children)
    if error is not None and error.get("code") == ACTIVITY_LIMIT_CODE:
        now = ctx.clock()
        ctx.reporter.status(item.path, throttle_message(now, ctx.stats.last_activity))
        ctx.to_fetch.insert(0, refetch_work_item(item))
        await ctx.sleep(ctx.throttle_delay_s)
        return
    if error is not None:
        raise CrawlError(
            f"Listing {'/'.join(item.path) or 'root'} failed: {error.get('code')} {error.get('message', '')}".strip(),
            path=item.path,
        )
    ctx.stats.mark_activity(ctx.clock())

    cached = cached_document_if_valid(cache, item.data.size)
    if cached is not None:
        ctx.stats.bytes_from_cache += item.data.size
        ctx.folders_from_cache += 1
        ctx.ready.appendleft(end_work_item(item, data=cached, write=False))
        ctx.reporter.items(cached.geo_items)
        return

    ctx.folders_enumerated += 1
    thumbnails = reusable_thumbnails(cache)
    body = children.get("body") or {}
    for child in body.get("value") or []:
        if child.get("folder") is not None:
            ctx.to_fetch.append(start_work_item(child, [*item.path, str(child.get("name") or "")]))
            item.remaining_subfolders += 1
        elif child.get("file") is not None:
            ctx.stats.bytes_processed += int(child.get("size") or 0)
            if not is_geotagged(child):
                continue
            # folders[0] is always the folder of the work item that owns the file
            geo_item = geo_item_from_drive_item(child, folder_index=0)
            reused = thumbnails.get(geo_item.id)
            if reused:
                geo_item.thumbnail_url = reused
            item.data.geo_items.append(geo_item)

    item.data.immediate_child_count = len(item.data.geo_items)
    if item.data.immediate_child_count > 0:
        item.data.folders.append("/".join(item.path).lower())

    if item.remaining_subfolders == 0:
        await _resolve_and_emit(ctx, item)
        await persist_folder(ctx, item)
    else:
        # to_fetch is kept ordered by cache filename.
        ctx.to_fetch.sort(key=lambda w: w.cache_name)
        ctx.waiting[item.cache_name] = item


async def persist_folder(ctx: CrawlContext, item: WorkItem) -> None:
    """Move a finished folder to END, writing its document by batch or, above the cap, by chunked upload."""
    data = serialize_document(item.data)
    if len(data.encode("utf-8")) < BATCH_PAYLOAD_CAP:
        ctx.to_fetch.insert(0, end_work_item(item))
        return
    report = ctx.reporter.for_folder(item.path)
    try:
        await multipart_upload(
            ctx.client,
            item.cache_name,
            data,
            lambda sent, total: report(f"upload {sent * 100 // total if total else 100}%"),
        )
    except FetchError as exc:
        raise CrawlError(f"Upload of {item.cache_name} failed: {exc}", code=ErrorCode.UPLOAD_FAILED, path=item.path) from exc
    ctx.ready.appendleft(end_work_item(item, write=False))


def check_cache_write(ctx: CrawlContext, item: WorkItem) -> None:
    """A failed batched write loses only that folder's cache; the crawl goes on."""
    response = item.responses.get(f"write-{item.data.id}")
    if response is None:
        return
    status = response.get("status")
    if isinstance(status, int) and 200 <= status < 300:
        return
    ctx.writes_failed += 1
    body = response.get("body")
    error = body.get("error") if isinstance(body, dict) and isinstance(body.get("error"), dict) else {}
    logger.warning(
        "Cache write for %s failed: %s %s",
        "/".join(item.path) or "root",
        status,
        error.get("code", ""),
    )


async def process_end(ctx: CrawlContext, item: WorkItem) -> CacheDocument | None:
    check_cache_write(ctx, item)
    ctx.reporter.status(item.path)
    if item.is_root:
        return item.data

    parent_name = cache_filename(item.path[:-1])
    parent = ctx.waiting.get(parent_name)
    if parent is None:
        # Never expected: every non-root folder was discovered by a parent that is still waiting.
        logger.error("No waiting parent %s for %s; dropping its %d items", parent_name, item.cache_name, len(item.data.geo_items))
        return None

    merge_child(parent.data, item.data)
    parent.remaining_subfolders -= 1
    if parent.remaining_subfolders == 0:
        await _resolve_and_emit(ctx, parent)
        del ctx.waiting[parent_name]
        await persist_folder(ctx, parent)
    return None


async def fetch_next_batch(ctx: CrawlContext) -> None:
    batch = take_batch(ctx.to_fetch, ctx.batcher.max_requests)
    if not batch:
        raise CrawlError("Nothing left to fetch but the root folder has not finished")
    await ctx.batcher.execute(batch)
    ctx.ready.extend(batch)


async def run_crawl(ctx: CrawlContext, root_drive_item: dict[str, Any]) -> CacheDocument:
    """Drive the crawl to completion. Raises CrawlError, FetchError or ThrottledError."""
    ctx.to_fetch.append(start_work_item(root_drive_item, []))
    while True:
        if not ctx.ready:
            await fetch_next_batch(ctx)
            continue
        item = ctx.ready.popleft()
        if item.state is WorkState.START:
            await process_start(ctx, item)
        elif item.state is WorkState.END:
            finished = await process_end(ctx, item)
            if finished is not None:
                return finished


async def crawl(
    client: RemoteClient,
    root_drive_item: dict[str, Any],
    progress: ProgressSink,
    *,
    retry_policy: RetryPolicy | None = None,
    max_requests: int = BATCH_MAX_REQUESTS,
    throttle_delay_s: float = THROTTLE_DELAY_S,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
    thumbnail_controller: AdaptiveRateController | None = None,
) -> Result[CacheDocument]:
    """
    Walk the remote tree under `root_drive_item`, reading and writing per-folder
    cache documents, and return the assembled index for the whole tree.

    Args:
        client: Authorized remote request primitive
        root_drive_item: Drive item of the root folder (id, size, cTag, eTag, ...)
        progress: Receives status lines (list[str]) or newly indexed GeoItems
        retry_policy: How throttled batch calls are retried (unbounded by default)

    Returns:
        Result with the root CacheDocument, or an error when a folder listing,
        a batch call or a chunked upload failed.
    """
    if not root_drive_item or not root_drive_item.get("id"):
        return Result.Err(ErrorCode.INVALID_INPUT, "Root folder drive item with an id is required")

    crawl_id = str(uuid4())[:8]
    token = crawl_id_var.set(crawl_id)
    stats = CrawlStats(bytes_total=int(root_drive_item.get("size") or 0), start_time=clock(), last_activity=clock())
    reporter = CrawlReporter(progress, stats, clock)
    policy = retry_policy or RetryPolicy(delay_s=throttle_delay_s, sleep=sleep)
    batcher = RequestBatcher(
        client,
        retry_policy=policy,
        max_requests=max_requests,
        on_throttle=lambda: reporter.status([], throttle_message(clock(), stats.last_activity)),
    )
    ctx = CrawlContext(
        client=client,
        batcher=batcher,
        reporter=reporter,
        stats=stats,
        throttle_delay_s=throttle_delay_s,
        sleep=sleep,
        clock=clock,
        thumbnail_controller=thumbnail_controller,
    )
    log_structured(logger, logging.INFO, "Starting crawl", root_id=root_drive_item.get("id"), bytes_total=stats.bytes_total)
    try:
        document = await run_crawl(ctx, root_drive_item)
        log_success(logger, f"Indexed {len(document.geo_items)} items in {clock() - stats.start_time:.1f}s")
        log_structured(
            logger,
            logging.INFO,
            "Crawl finished",
            items=len(document.geo_items),
            batch_calls=batcher.calls,
            folders_enumerated=ctx.folders_enumerated,
            folders_from_cache=ctx.folders_from_cache,
            writes_failed=ctx.writes_failed,
        )
    except CrawlError as exc:
        logger.error("Crawl aborted: %s", exc)
        return Result.Err(exc.code, sanitize_error_message(exc, "Crawl aborted"), path=exc.path)
    except ThrottledError as exc:
        return Result.Err(ErrorCode.THROTTLED, sanitize_error_message(exc, "Backend kept throttling"), retry_after=policy.delay_s)
    except FetchError as exc:
        logger.error("Crawl aborted by remote failure: %s", exc)
        return Result.Err(ErrorCode.REMOTE_ERROR, sanitize_error_message(exc, "Remote request failed"), status=exc.status)
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        logger.error("Crawl aborted by network failure: %s", exc)
        return Result.Err(ErrorCode.REMOTE_ERROR, sanitize_error_message(exc, "Network failure"))
    finally:
        crawl_id_var.reset(token)

    return Result.Ok(
        document,
        batch_calls=batcher.calls,
        folders_enumerated=ctx.folders_enumerated,
        folders_from_cache=ctx.folders_from_cache,
        writes_failed=ctx.writes_failed,
        waiting_left=len(ctx.waiting),
        **stats.to_dict(),
    )
