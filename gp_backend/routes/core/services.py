"""
Service management and initialization.
"""
import asyncio
from typing import Any

from ...deps import build_services
from ...shared import ErrorCode, Result, get_logger

logger = get_logger(__name__)

_services: dict[str, Any] | None = None
_services_error: str | None = None
_services_db_path: str | None = None
_services_lock: asyncio.Lock | None = None


def _get_services_lock() -> asyncio.Lock:
    global _services_lock
    if _services_lock is None:
        _services_lock = asyncio.Lock()
    return _services_lock


def configure_services(db_path: str | None) -> None:
    """Point the next service build at `db_path` instead of GEOPIC_INDEX_DB."""
    global _services_db_path
    _services_db_path = db_path


async def _dispose_services() -> None:
    """
    Dispose of all services; a failure closing one resource does not keep the
    others open.
    """
    global _services
    if not _services:
        return

    db = _services.get("db")
    if db is not None:
        try:
            await db.aclose()
            logger.debug("Local index store closed")
        except (OSError, RuntimeError) as exc:
            logger.warning("Error closing local index store: %s", exc)

    session = _services.get("session")
    if session is not None:
        await session.close()

    _services = None


async def _build_services(force: bool = False) -> dict[str, Any] | None:
    global _services, _services_error
    async with _get_services_lock():
        if _services and not force:
            return _services

        if force:
            await _dispose_services()

        services_result = await build_services(_services_db_path)
        if not services_result.ok:
            _services_error = services_result.error or "Initialization failed"
            logger.error("Failed to initialize services: %s", _services_error)
            _services = None
            return None

        _services = services_result.data
        _services_error = None
        return _services


async def _require_services() -> tuple[dict[str, Any] | None, Result[Any] | None]:
    services = await _build_services()
    if services:
        return services, None
    return None, Result.Err(
        ErrorCode.SERVICE_UNAVAILABLE,
        "Services are unavailable",
        detail=_services_error or "Initialization failed",
    )


def get_services_error() -> str | None:
    """Get the current services error if any."""
    return _services_error
