"""
Antimeridian-aware bounding boxes over GeoItems.
"""
from __future__ import annotations

from .models import Bounds, CacheDocument, DateRange, Position


def westmost(lng1: float, lng2: float) -> float:
    """
    Return whichever longitude is reachable from the other by travelling
    less than 180 degrees westwards. Exactly opposite points pick arbitrarily.
    """
    # +720 tolerates mildly non-normalized inputs
    return lng2 if (lng1 - lng2 + 720.0) % 360.0 < 180.0 else lng1


def eastmost(lng1: float, lng2: float) -> float:
    """
    Return whichever longitude is reachable from the other by travelling
    less than 180 degrees eastwards. Exactly opposite points pick arbitrarily.
    """
    return lng1 if (lng1 - lng2 + 720.0) % 360.0 < 180.0 else lng2


def bounds_for_date_range(document: CacheDocument, date_range: DateRange | None) -> Bounds | None:
    """Bounding box of the items whose date falls in `date_range` (all items if None)."""
    r: Bounds | None = None
    for item in document.geo_items:
        if date_range is not None and not date_range.contains(item.date):
            continue
        pos = item.position
        if r is None:
            r = Bounds(sw=Position(pos.lat, pos.lng), ne=Position(pos.lat, pos.lng))
            continue
        r.sw.lat = min(r.sw.lat, pos.lat)
        r.sw.lng = westmost(r.sw.lng, pos.lng)
        r.ne.lat = max(r.ne.lat, pos.lat)
        r.ne.lng = eastmost(r.ne.lng, pos.lng)
    return r
