"""
Query-string parsing for the map endpoints.
"""
from __future__ import annotations

from collections.abc import Mapping

from ...features.geo.models import DateRange, Position
from ...shared import ErrorCode, Result
from ...utils import parse_optional_float


def _query_float(query: Mapping[str, str], name: str) -> Result[float]:
    value = parse_optional_float(query.get(name))
    if value is None:
        return Result.Err(ErrorCode.INVALID_INPUT, f"Missing or invalid {name}")
    return Result.Ok(value)


def _parse_numdate(raw: str | None, name: str) -> Result[int | None]:
    text = str(raw or "").strip()
    if not text:
        return Result.Ok(None)
    if len(text) != 8 or not text.isdigit():
        return Result.Err(ErrorCode.INVALID_INPUT, f"Invalid {name} (expected YYYYMMDD)")
    return Result.Ok(int(text))


def _parse_date_range(query: Mapping[str, str]) -> Result[DateRange | None]:
    """`start` inclusive, `end` exclusive; both or neither."""
    start = _parse_numdate(query.get("start"), "start")
    if not start.ok:
        return Result.Err(start.code, start.error or "Invalid start")
    end = _parse_numdate(query.get("end"), "end")
    if not end.ok:
        return Result.Err(end.code, end.error or "Invalid end")
    if start.data is None and end.data is None:
        return Result.Ok(None)
    if start.data is None or end.data is None:
        return Result.Err(ErrorCode.INVALID_INPUT, "start and end must be given together")
    if end.data < start.data:
        return Result.Err(ErrorCode.INVALID_INPUT, "end is before start")
    return Result.Ok(DateRange(start=start.data, end=end.data))


def _parse_viewport(query: Mapping[str, str]) -> Result[tuple[Position, Position, float]]:
    values: dict[str, float] = {}
    for name in ("sw_lat", "sw_lng", "ne_lat", "ne_lng", "width"):
        res = _query_float(query, name)
        if not res.ok or res.data is None:
            return Result.Err(res.code, res.error or f"Invalid {name}")
        values[name] = res.data
    if not -90.0 <= values["sw_lat"] <= values["ne_lat"] <= 90.0:
        return Result.Err(ErrorCode.INVALID_INPUT, "Latitudes must satisfy -90 <= sw_lat <= ne_lat <= 90")
    if values["width"] <= 0:
        return Result.Err(ErrorCode.INVALID_INPUT, "width must be positive")
    return Result.Ok(
        (
            Position(values["sw_lat"], values["sw_lng"]),
            Position(values["ne_lat"], values["ne_lng"]),
            values["width"],
        )
    )
