"""
Crawl progress reporting: byte counters, the textual progress bar and the
"throttling for ..." status line.
"""
from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Union

from ...shared import ROOT_FOLDER_LABEL, format_duration
from ..geo.models import GeoItem

ProgressUpdate = Union[list[str], list[GeoItem]]
ProgressSink = Callable[[ProgressUpdate], None]


@dataclass
class CrawlStats:
    bytes_total: int
    bytes_from_cache: int = 0
    bytes_processed: int = 0
    start_time: float = field(default_factory=time.monotonic)
    last_activity: float = field(default_factory=time.monotonic)

    def mark_activity(self, now: float) -> None:
        self.last_activity = now

    def eta_seconds(self, now: float) -> float | None:
        """Remaining time extrapolated from the freshly processed bytes so far."""
        done = self.bytes_processed
        remaining = self.bytes_total - self.bytes_from_cache - done
        elapsed = now - self.start_time
        if done <= 0 or elapsed <= 0 or remaining <= 0:
            return None
        return remaining * elapsed / done

    def to_dict(self) -> dict[str, int]:
        return {
            "bytes_total": self.bytes_total,
            "bytes_from_cache": self.bytes_from_cache,
            "bytes_processed": self.bytes_processed,
        }


def progress_bar(count1: int, count2: int, total: int) -> str:
    """
    A 20-character bar such as "[==---15%-->.......]".

    '=' covers count1/total, '-' runs on to (count1+count2)/total, then '>'.
    The percentage of (count1+count2)/total is written into the bar.
    """
    bar_width = 20
    total = max(1, total)
    equals_count = min(bar_width - 1, count1 * bar_width // total)
    dash_count = max(0, min(bar_width - 1, (count1 + count2) * bar_width // total) - equals_count)
    empty_count = bar_width - equals_count - dash_count - 1
    bar = "=" * equals_count + "-" * dash_count + ">" + "." * empty_count
    pct = f"{min(100, (count1 + count2) * 100 // total)}%"
    filled = equals_count + dash_count
    pos = filled - 4 if filled >= 5 else filled + 3
    return f"[{bar[:pos]}{pct}{bar[pos + len(pct):]}]"


def throttle_message(now: float, last_activity: float) -> str:
    return f"throttling for {format_duration(now - last_activity)}"


class CrawlReporter:
    """Formats status lines for one folder and forwards them to the sink."""

    def __init__(self, sink: ProgressSink, stats: CrawlStats, clock: Callable[[], float] = time.monotonic) -> None:
        self._sink = sink
        self._stats = stats
        self._clock = clock

    def lines(self, path: list[str], status: str = "") -> list[str]:
        bar = progress_bar(self._stats.bytes_from_cache, self._stats.bytes_processed, self._stats.bytes_total)
        folder = "/".join(path) if path else ROOT_FOLDER_LABEL
        eta = self._stats.eta_seconds(self._clock())
        eta_part = f" ETA {format_duration(eta)}" if eta is not None else ""
        return [f"{bar}{eta_part}", folder, status or " "]

    def status(self, path: list[str], status: str = "") -> None:
        self._sink(self.lines(path, status))

    def for_folder(self, path: list[str]) -> Callable[[str], None]:
        return lambda s: self.status(path, s)

    def items(self, geo_items: list[GeoItem]) -> None:
        if geo_items:
            self._sink(list(geo_items))
