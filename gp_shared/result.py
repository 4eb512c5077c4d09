"""
Outcome of a crawl, upload or index call.

Service entry points return Result[T]; Graph transport failures, throttling and
database errors surface as an error code plus a message instead of an exception.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from .types import ErrorCode

T = TypeVar("T")

@dataclass
class Result(Generic[T]):
    """
    A crawl document, index status or upload id, or the reason there is none.

    `meta` carries counters and hints alongside either outcome: a finished crawl
    reports `writes_failed` there, a throttled one `retry_after`.

    Usage:
        res = await crawl(client, root, reporter=reporter)
        if not res.ok:
            return Result.Err(res.code, res.error or "Crawl failed", **res.meta)
    """
    ok: bool
    data: Optional[T] = None
    error: Optional[str] = None
    code: str = "OK"  # OK, UNAUTHORIZED, THROTTLED, REMOTE_ERROR, DB_ERROR, ...
    meta: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def Ok(data: T, **meta: Any) -> "Result[T]":
        return Result(ok=True, data=data, code="OK", meta=meta)

    @staticmethod
    def Err(code: ErrorCode | str | Enum, error: str, **meta: Any) -> "Result[T]":
        """Error result; enum codes are stored by value so they serialize as plain strings."""
        code_value = code.value if isinstance(code, Enum) else code
        return Result(ok=False, error=error, code=str(code_value), meta=meta)

    def unwrap_or(self, default: T) -> T:
        """Data of a successful result, else `default`."""
        return self.data if (self.ok and self.data is not None) else default
