"""
Index lifecycle endpoints: freshness status and crawl trigger.
"""
import asyncio

from aiohttp import web

from ...shared import ErrorCode, Result, get_logger
from ...utils import parse_bool
from ..core import _json_response, _require_services

logger = get_logger(__name__)

_CRAWL_TASKS: set[asyncio.Task] = set()


def _crawl_summary(result: Result) -> Result:
    if not result.ok or result.data is None:
        return result
    return Result.Ok(
        {"items": len(result.data.geo_items), "size": result.data.size, "folders": len(result.data.folders)},
        **result.meta,
    )


def _schedule_crawl(index_service) -> None:
    async def _runner():
        res = await index_service.refresh()
        if not res.ok:
            logger.warning("Background crawl failed: [%s] %s", res.code, res.error)

    task = asyncio.create_task(_runner())
    _CRAWL_TASKS.add(task)
    task.add_done_callback(_CRAWL_TASKS.discard)


def register_index_routes(routes: web.RouteTableDef) -> None:
    """Register status and crawl routes."""

    @routes.get("/geopic/status")
    async def status(request: web.Request):
        """Whether the local index is fresh, stale or unknown, plus crawl progress."""
        svc, error_result = await _require_services()
        if error_result:
            return _json_response(error_result)
        return _json_response(await svc["index"].status())

    @routes.post("/geopic/crawl")
    async def start_crawl(request: web.Request):
        """
        Crawl the remote Pictures folder.

        Query params:
          wait: true to answer only once the crawl has finished (default: false)
        """
        svc, error_result = await _require_services()
        if error_result:
            return _json_response(error_result)
        index_service = svc["index"]
        if index_service.crawling:
            return _json_response(Result.Err(ErrorCode.CRAWL_IN_PROGRESS, "A crawl is already running"))

        if parse_bool(request.query.get("wait"), False):
            return _json_response(_crawl_summary(await index_service.refresh()))

        _schedule_crawl(index_service)
        return _json_response(Result.Ok({"started": True}))
