"""
Index Service - owns the current geo index.

Warm-starts from the local store, decides whether the remote tree has moved on
since the last crawl, and runs (at most one) crawl of the Pictures special
folder, persisting the result when it completes.
"""
from __future__ import annotations

import asyncio
from typing import Any

import aiohttp

from ...adapters.db import LocalIndexStore
from ...adapters.remote import FetchError
from ...shared import ErrorCode, IndexStatus, Result, get_logger, log_success, sanitize_error_message
from ..crawl import crawl
from ..crawl.batcher import RemoteClient
from ..crawl.progress import ProgressSink, ProgressUpdate
from ..geo.models import CacheDocument, GeoItem

logger = get_logger(__name__)

PICTURES_URL = "/me/drive/special/photos"


def index_status(local_doc: CacheDocument | None, remote_size: int | None) -> IndexStatus | None:
    """
    "fresh" when the local index covers the remote tree as it is now, "stale"
    when the tree has changed size since, None when either side is unknown.
    """
    if local_doc is None or remote_size is None:
        return None
    return "fresh" if local_doc.size == remote_size else "stale"


class IndexService:
    """
    Coordinates the local store, the remote client and the crawl engine.

    Progress of a running crawl is kept as the latest status lines plus a count
    of items indexed so far, so the HTTP surface can poll it.
    """

    def __init__(self, client: RemoteClient, store: LocalIndexStore) -> None:
        self._client = client
        self._store = store
        self._document: CacheDocument | None = None
        self._crawl_lock = asyncio.Lock()
        self.progress_lines: list[str] = []
        self.items_so_far = 0

    @property
    def document(self) -> CacheDocument | None:
        return self._document

    @property
    def crawling(self) -> bool:
        return self._crawl_lock.locked()

    async def warm_start(self) -> Result[CacheDocument | None]:
        """Load whatever index the previous session left behind."""
        res = await self._store.aget()
        if res.ok:
            self._document = res.data
            if res.data is not None:
                logger.info("Loaded local index with %d items", len(res.data.geo_items))
        return res

    async def _fetch_pictures(self, select: str | None = None) -> Result[dict[str, Any]]:
        url = f"{PICTURES_URL}?select={select}" if select else PICTURES_URL
        try:
            resp = await self._client.request("GET", url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            return Result.Err(ErrorCode.REMOTE_ERROR, sanitize_error_message(exc, "Pictures folder unreachable"))
        if resp.status == 401:
            return Result.Err(ErrorCode.UNAUTHORIZED, "Not signed in")
        if not resp.ok:
            return Result.Err(ErrorCode.REMOTE_ERROR, str(FetchError.from_response(resp, url)), status=resp.status)
        try:
            body = resp.json()
        except ValueError as exc:
            return Result.Err(ErrorCode.PARSE_ERROR, f"Pictures folder response is not JSON: {exc}")
        if not isinstance(body, dict):
            return Result.Err(ErrorCode.PARSE_ERROR, "Pictures folder response is not an object")
        return Result.Ok(body)

    async def status(self) -> Result[dict[str, Any]]:
        """Freshness of the local index against the remote tree, plus crawl progress."""
        remote = await self._fetch_pictures(select="size")
        if not remote.ok:
            logger.debug("Remote size unavailable: %s", remote.error)
        size = remote.unwrap_or({}).get("size")
        remote_size = int(size) if size is not None else None
        doc = self._document
        return Result.Ok(
            {
                "status": index_status(doc, remote_size),
                "items": len(doc.geo_items) if doc is not None else 0,
                "local_size": doc.size if doc is not None else None,
                "remote_size": remote_size,
                "crawling": self.crawling,
                "progress": list(self.progress_lines),
                "items_so_far": self.items_so_far,
            }
        )

    def _on_progress(self, update: ProgressUpdate) -> None:
        if update and isinstance(update[0], GeoItem):
            self.items_so_far += len(update)
        else:
            self.progress_lines = [str(line) for line in update]

    async def refresh(self, progress: ProgressSink | None = None, **crawl_options: Any) -> Result[CacheDocument]:
        """
        Crawl the Pictures folder and persist the new index.

        Only one crawl runs at a time; a concurrent call returns CRAWL_IN_PROGRESS.
        `progress` additionally receives every update the crawl reports.
        """
        if self._crawl_lock.locked():
            return Result.Err(ErrorCode.CRAWL_IN_PROGRESS, "A crawl is already running")
        async with self._crawl_lock:
            self.progress_lines = []
            self.items_so_far = 0
            root = await self._fetch_pictures()
            if not root.ok or root.data is None:
                return Result.Err(root.code, root.error or "Pictures folder unavailable", **root.meta)

            def sink(update: ProgressUpdate) -> None:
                self._on_progress(update)
                if progress is not None:
                    progress(update)

            res = await crawl(self._client, root.data, sink, **crawl_options)
            if not res.ok or res.data is None:
                return res

            self._document = res.data
            saved = await self._store.aput(res.data)
            if not saved.ok:
                logger.warning("Index crawled but not saved locally: %s", saved.error)
                return Result.Ok(res.data, **res.meta, persisted=False)
            log_success(logger, f"Index saved with {len(res.data.geo_items)} items")
            return Result.Ok(res.data, **res.meta, persisted=True)
