"""
Durations for progress lines and timing of request-path work.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager


def format_duration(seconds: float) -> str:
    """
    Format a duration compactly.

    Examples: "45s", "2m30s", "1h23m45s".
    """
    if seconds < 60:
        return f"{round(seconds)}s"
    if seconds < 3600:
        return f"{int(seconds // 60)}m{round(seconds % 60)}s"
    return f"{int(seconds // 3600)}h{int((seconds % 3600) // 60)}m{round(seconds % 60)}s"

@contextmanager
def timer(label: str, logger: logging.Logger | None = None) -> Iterator[None]:
    """
    Log how long the wrapped block took, at debug level.

    Usage:
        with timer("tiling", logger):
            tiles, tally = await asyncio.to_thread(as_tiles, sw, ne, width, document, flt)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        msg = f"{label} took {elapsed * 1000:.2f}ms"
        if logger:
            logger.debug(msg)
        else:
            print(msg)
