"""
Geo feature - index data model, viewport tiling and bounds.
"""
from .bounds import bounds_for_date_range, eastmost, westmost
from .models import (
    Bounds,
    CacheDocument,
    DateRange,
    Filter,
    GeoItem,
    Numdate,
    OneDayTally,
    Position,
    Tally,
    Tile,
)
from .tiling import as_tiles, lng_wrap, viewport_for_zoom

__all__ = [
    "Bounds",
    "CacheDocument",
    "DateRange",
    "Filter",
    "GeoItem",
    "Numdate",
    "OneDayTally",
    "Position",
    "Tally",
    "Tile",
    "as_tiles",
    "bounds_for_date_range",
    "eastmost",
    "lng_wrap",
    "viewport_for_zoom",
    "westmost",
]
