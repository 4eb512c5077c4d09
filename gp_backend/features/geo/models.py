"""
Geo index data model.

A `CacheDocument` is what gets persisted per remote folder: validation fields
for the folder plus a flat list of `GeoItem`s (the folder's own files first,
then every merged-in descendant). Wire format is camelCase JSON.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

# A date as an integer YYYYMMDD, e.g. 20241231 for 31st December 2024.
Numdate = int

IN_BOUNDS, OUT_BOUNDS = 0, 1
IN_FILTER, OUT_FILTER = 0, 1


def numdate_from_iso(value: str) -> Numdate:
    """Convert an ISO-8601 timestamp ("2019-08-05T17:42:22Z") to its UTC Numdate."""
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    d = datetime.fromisoformat(text)
    if d.tzinfo is not None:
        d = d.astimezone(timezone.utc)
    return d.year * 10000 + d.month * 100 + d.day


def round5(value: float) -> float:
    return round(float(value) * 100000) / 100000


@dataclass
class Position:
    """A position. `lng` may be negative; beware of the antimeridian."""

    lat: float
    lng: float

    def to_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Position":
        return cls(lat=float(data["lat"]), lng=float(data["lng"]))


@dataclass
class GeoItem:
    """An individual photo/video with geolocation data."""

    id: str
    position: Position
    date: Numdate
    thumbnail_url: str  # remote URL until resolved, then a data: URL
    name: str  # lowercase
    folder_index: int  # index into the owning CacheDocument.folders
    tags: list[str] = field(default_factory=list)  # lowercase

    @property
    def has_inline_thumbnail(self) -> bool:
        return self.thumbnail_url.startswith("data:")

    def with_folder_offset(self, offset: int) -> "GeoItem":
        return GeoItem(
            id=self.id,
            position=self.position,
            date=self.date,
            thumbnail_url=self.thumbnail_url,
            name=self.name,
            folder_index=self.folder_index + offset,
            tags=self.tags,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "position": self.position.to_dict(),
            "date": self.date,
            "thumbnailUrl": self.thumbnail_url,
            "name": self.name,
            "folderIndex": self.folder_index,
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GeoItem":
        return cls(
            id=str(data["id"]),
            position=Position.from_dict(data["position"]),
            date=int(data["date"]),
            thumbnail_url=str(data.get("thumbnailUrl") or ""),
            name=str(data.get("name") or ""),
            folder_index=int(data.get("folderIndex") or 0),
            tags=[str(t) for t in (data.get("tags") or [])],
        )


@dataclass
class CacheDocument:
    """
    Everything needed for one folder to (1) validate its cache and (2) show
    thumbnails on a map. `geo_items[:immediate_child_count]` are this folder's
    own files; within a crawl, `folders[0]` is this folder's own path whenever
    it owns at least one file.
    """

    schema_version: int
    id: str
    size: int
    last_modified_date_time: str = ""
    c_tag: str = ""
    e_tag: str = ""
    immediate_child_count: int = 0
    folders: list[str] = field(default_factory=list)
    geo_items: list[GeoItem] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "id": self.id,
            "size": self.size,
            "lastModifiedDateTime": self.last_modified_date_time,
            "cTag": self.c_tag,
            "eTag": self.e_tag,
            "immediateChildCount": self.immediate_child_count,
            "folders": list(self.folders),
            "geoItems": [gi.to_dict() for gi in self.geo_items],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheDocument":
        return cls(
            schema_version=int(data.get("schemaVersion") or 0),
            id=str(data.get("id") or ""),
            size=int(data.get("size") or 0),
            last_modified_date_time=str(data.get("lastModifiedDateTime") or ""),
            c_tag=str(data.get("cTag") or ""),
            e_tag=str(data.get("eTag") or ""),
            immediate_child_count=int(data.get("immediateChildCount") or 0),
            folders=[str(f) for f in (data.get("folders") or [])],
            geo_items=[GeoItem.from_dict(gi) for gi in (data.get("geoItems") or [])],
        )

    @classmethod
    def empty(cls) -> "CacheDocument":
        return cls(schema_version=0, id="", size=0)


@dataclass(frozen=True)
class DateRange:
    start: Numdate
    end: Numdate  # exclusive

    def contains(self, date: Numdate) -> bool:
        return self.start <= date < self.end


@dataclass
class Filter:
    """Which GeoItems count as passing when tiling. `text` is matched case-insensitively."""

    date_range: DateRange | None = None
    text: str | None = None


@dataclass
class Bounds:
    sw: Position
    ne: Position

    def to_dict(self) -> dict[str, Any]:
        return {"sw": self.sw.to_dict(), "ne": self.ne.to_dict()}


@dataclass
class Tile:
    """One fixed-geometry cell of the viewport."""

    bounds: Bounds
    center: Position
    some_pass_filter_items: list[GeoItem] = field(default_factory=list)
    total_pass_filter_items: int = 0
    one_fail_filter_item: GeoItem | None = None

    @property
    def is_empty(self) -> bool:
        return not self.some_pass_filter_items and self.one_fail_filter_item is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "bounds": self.bounds.to_dict(),
            "center": self.center.to_dict(),
            "somePassFilterItems": [gi.to_dict() for gi in self.some_pass_filter_items],
            "totalPassFilterItems": self.total_pass_filter_items,
            "oneFailFilterItem": self.one_fail_filter_item.to_dict() if self.one_fail_filter_item else None,
        }


class OneDayTally:
    """2x2 counts for one date: [in/out of bounds][in/out of filter]."""

    __slots__ = ("counts",)

    def __init__(self) -> None:
        self.counts = [[0, 0], [0, 0]]

    def get(self, in_bounds: bool, in_filter: bool) -> int:
        return self.counts[IN_BOUNDS if in_bounds else OUT_BOUNDS][IN_FILTER if in_filter else OUT_FILTER]

    def total(self) -> int:
        return sum(self.counts[0]) + sum(self.counts[1])

    def to_dict(self) -> dict[str, dict[str, int]]:
        return {
            "inBounds": {"inFilter": self.counts[0][0], "outFilter": self.counts[0][1]},
            "outBounds": {"inFilter": self.counts[1][0], "outFilter": self.counts[1][1]},
        }


@dataclass
class Tally:
    """Per-date counts spanning every item, regardless of viewport."""

    date_counts: dict[Numdate, OneDayTally] = field(default_factory=dict)

    def total(self) -> int:
        return sum(t.total() for t in self.date_counts.values())

    def to_dict(self) -> dict[str, Any]:
        return {str(d): t.to_dict() for d, t in sorted(self.date_counts.items())}
