"""
Map query endpoints: viewport tiles and date-range bounds.
"""
import asyncio

from aiohttp import web

from ...features.geo import Filter, as_tiles, bounds_for_date_range, viewport_for_zoom
from ...shared import ErrorCode, Result, get_logger, timer
from ...utils import parse_optional_float
from ..core import _json_response, _parse_date_range, _parse_viewport, _require_services

logger = get_logger(__name__)


async def _current_document():
    svc, error_result = await _require_services()
    if error_result:
        return None, error_result
    document = svc["index"].document if isinstance(svc, dict) else None
    if document is None:
        return None, Result.Err(ErrorCode.NOT_FOUND, "No index yet; run a crawl first")
    return document, None


def register_map_routes(routes: web.RouteTableDef) -> None:
    """Register tile and bounds routes."""

    @routes.get("/geopic/tiles")
    async def tiles(request: web.Request):
        """
        Tile the current viewport.

        Query params:
          sw_lat, sw_lng, ne_lat, ne_lng: viewport corners (required)
          width: viewport width in pixels (required)
          zoom: map zoom level; at world zoom the whole globe is used (optional)
          text: case-insensitive text filter over names, folders and tags (optional)
          start, end: YYYYMMDD date filter, end exclusive (optional)
        """
        viewport = _parse_viewport(request.query)
        if not viewport.ok or viewport.data is None:
            return _json_response(viewport)
        sw, ne, width = viewport.data
        zoom = parse_optional_float(request.query.get("zoom"))
        if zoom is not None:
            sw, ne = viewport_for_zoom(zoom, sw, ne)

        date_range = _parse_date_range(request.query)
        if not date_range.ok:
            return _json_response(date_range)
        text = (request.query.get("text") or "").strip() or None

        document, error_result = await _current_document()
        if error_result:
            return _json_response(error_result)

        with timer("tiling", logger):
            tile_list, tally = await asyncio.to_thread(
                as_tiles, sw, ne, width, document, Filter(date_range=date_range.data, text=text)
            )
        return _json_response(
            Result.Ok(
                {"tiles": [t.to_dict() for t in tile_list], "tally": tally.to_dict()},
                count=len(tile_list),
                total=tally.total(),
            )
        )

    @routes.get("/geopic/bounds")
    async def bounds(request: web.Request):
        """Bounding box of items in [start, end); all items when no range is given."""
        date_range = _parse_date_range(request.query)
        if not date_range.ok:
            return _json_response(date_range)

        document, error_result = await _current_document()
        if error_result:
            return _json_response(error_result)

        box = bounds_for_date_range(document, date_range.data)
        return _json_response(Result.Ok(box.to_dict() if box is not None else None))
