"""Retry policy for backend throttling."""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from ...config import THROTTLE_DELAY_S


class ThrottledError(Exception):
    """Raised when a bounded RetryPolicy runs out of attempts."""


@dataclass
class RetryPolicy:
    """
    How long to wait between throttled attempts and when to give up.

    `max_attempts=None` retries forever: a full index takes tens of minutes and
    must ride out transient backend overload.
    """

    delay_s: float = THROTTLE_DELAY_S
    max_attempts: int | None = None
    backoff: Callable[[int], float] | None = None
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    def delay_for(self, attempt: int) -> float:
        if self.backoff is not None:
            return max(0.0, float(self.backoff(attempt)))
        return self.delay_s

    def should_retry(self, attempt: int) -> bool:
        return self.max_attempts is None or attempt < self.max_attempts

    async def wait(self, attempt: int) -> None:
        if not self.should_retry(attempt):
            raise ThrottledError(f"still throttled after {attempt} attempts")
        await self.sleep(self.delay_for(attempt))
