"""
Dependency injection - builds services.
Simple, debug-friendly DI without framework magic.
"""

from __future__ import annotations

from pathlib import Path

from aiohttp import ClientSession

from .adapters.db import SqliteIndexStore
from .adapters.remote import GraphClient, StaticTokenProvider, TokenProvider
from .config import DB_TIMEOUT, INDEX_DB_PATH
from .features.index import IndexService
from .shared import ErrorCode, Result, get_logger, log_success

logger = get_logger(__name__)


async def build_services(
    db_path: str | Path | None = None,
    *,
    tokens: TokenProvider | None = None,
    session: ClientSession | None = None,
) -> Result[dict]:
    """
    Build all services (DI container).

    Args:
        db_path: Path to the local index database (default: config.INDEX_DB_PATH)
        tokens: Credential provider (default: GEOPIC_ACCESS_TOKEN from the environment)
        session: aiohttp session to reuse; one is created (and owned) otherwise

    Returns:
        Result[dict] of service instances
    """
    logger.info("Building services...")
    path = Path(db_path) if db_path is not None else INDEX_DB_PATH
    store = SqliteIndexStore(path, timeout=DB_TIMEOUT)

    owns_session = session is None
    http = session or ClientSession()
    client = GraphClient(http, tokens or StaticTokenProvider())
    index = IndexService(client, store)

    warm = await index.warm_start()
    if not warm.ok and warm.code == ErrorCode.DB_ERROR.value:
        await store.aclose()
        if owns_session:
            await http.close()
        return Result.Err(ErrorCode.DB_ERROR, f"Failed to initialize local index: {warm.error}")

    log_success(logger, f"Services ready (index db: {path})")
    return Result.Ok(
        {
            "db": store,
            "graph": client,
            "index": index,
            "session": http if owns_session else None,
        }
    )
