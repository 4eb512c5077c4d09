"""
Spatial tiling of a map viewport.

The viewport is split into square tiles of roughly TILE_SIZE_PX pixels. Tile
size in degrees depends only on the viewport span and pixel width, and the
grid is anchored to multiples of the tile size, so tile boundaries stay put
while the user pans. Longitudes are handled modulo 360 so a viewport crossing
the antimeridian yields one contiguous grid.

The item loop is hot (tens of thousands of items per call on every pan), so it
binds everything it touches to locals.
"""
from __future__ import annotations

import math

from ...config import MAX_ITEMS_PER_TILE, TILE_SIZE_PX, WORLD_ZOOM_MAX
from .models import Bounds, CacheDocument, Filter, OneDayTally, Position, Tally, Tile


def lng_wrap(lng: float) -> float:
    """Normalize a longitude to [-180, 180)."""
    return (lng + 180.0) % 360.0 - 180.0


def tile_size_degrees(sw: Position, ne: Position, pixel_width: float) -> float:
    span = (ne.lng - sw.lng) % 360.0 or 360.0
    return span / max(1, round(pixel_width / TILE_SIZE_PX))


def viewport_for_zoom(zoom: float | None, sw: Position, ne: Position) -> tuple[Position, Position]:
    """At world zoom levels the widget reports wrapped bounds; use the whole world instead."""
    if (zoom or 0) <= WORLD_ZOOM_MAX:
        return Position(-90.0, -179.9999), Position(90.0, 179.9999)
    return sw, ne


def matching_folder_indexes(folders: list[str], text: str) -> set[int]:
    return {i for i, f in enumerate(folders) if text in f}


def _build_grid(sw_snap: Position, tile_size: float, num_x: int, num_y: int) -> list[Tile]:
    tiles: list[Tile] = []
    for y in range(num_y):
        for x in range(num_x):
            tiles.append(
                Tile(
                    bounds=Bounds(
                        sw=Position(sw_snap.lat + y * tile_size, lng_wrap(sw_snap.lng + x * tile_size)),
                        ne=Position(sw_snap.lat + (y + 1) * tile_size, lng_wrap(sw_snap.lng + (x + 1) * tile_size)),
                    ),
                    center=Position(sw_snap.lat + (y + 0.5) * tile_size, lng_wrap(sw_snap.lng + (x + 0.5) * tile_size)),
                )
            )
    return tiles


def as_tiles(
    sw: Position,
    ne: Position,
    pixel_width: float,
    document: CacheDocument,
    flt: Filter,
) -> tuple[list[Tile], Tally]:
    """
    Partition `document.geo_items` into viewport tiles and tally every item by date.

    Args:
        sw: South-west corner of the viewport
        ne: North-east corner of the viewport
        pixel_width: Viewport width in pixels
        document: The index to tile
        flt: Date range and/or text filter

    Returns:
        (tiles with at least one kept item, tally over all items)
    """
    tile_size = tile_size_degrees(sw, ne, pixel_width)
    sw_snap = Position(
        lat=math.floor(sw.lat / tile_size) * tile_size,
        lng=lng_wrap(math.floor(sw.lng / tile_size) * tile_size),
    )
    # Fully zoomed out, snapping can push the west edge past the east edge; take the larger grid.
    span_snapped = (ne.lng - sw_snap.lng) % 360.0
    span_unsnapped = (ne.lng - sw.lng) % 360.0 or 360.0
    num_x = max(math.ceil(span_snapped / tile_size), math.ceil(span_unsnapped / tile_size))
    num_y = max(math.ceil((ne.lat - sw_snap.lat) / tile_size), math.ceil((ne.lat - sw.lat) / tile_size))
    tiles = _build_grid(sw_snap, tile_size, num_x, num_y)

    text = flt.text.strip().lower() if flt.text and flt.text.strip() else None
    folder_hits = matching_folder_indexes(document.folders, text) if text is not None else set()
    date_range = flt.date_range

    date_counts: dict[int, OneDayTally] = {}
    counts_get = date_counts.get
    swlat = sw_snap.lat
    swlng = sw_snap.lng
    floor = math.floor
    cap = MAX_ITEMS_PER_TILE

    for item in document.geo_items:
        tally = counts_get(item.date)
        if tally is None:
            tally = OneDayTally()
            date_counts[item.date] = tally
        pos = item.position
        x = floor(((pos.lng - swlng) % 360.0) / tile_size)
        y = floor((pos.lat - swlat) / tile_size)
        in_bounds = 0 <= x < num_x and 0 <= y < num_y
        in_filter = text is not None and (
            text in item.name
            or item.folder_index in folder_hits
            or any(text in tag for tag in item.tags)
        )
        tally.counts[0 if in_bounds else 1][0 if in_filter else 1] += 1
        if not in_bounds:
            continue
        tile = tiles[y * num_x + x]
        if (text is not None and not in_filter) or (date_range is not None and not date_range.contains(item.date)):
            if tile.one_fail_filter_item is None:
                tile.one_fail_filter_item = item
            continue
        if len(tile.some_pass_filter_items) < cap:
            tile.some_pass_filter_items.append(item)
        tile.total_pass_filter_items += 1

    return [t for t in tiles if not t.is_empty], Tally(date_counts=date_counts)
