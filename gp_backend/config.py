"""
Configuration for the Geopic indexer.
"""
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


def _env_raw(*names: str, default: str | None = None) -> str | None:
    for name in names:
        if not name:
            continue
        val = os.getenv(name)
        if val is not None and str(val).strip() != "":
            return str(val).strip()
    return default


def _env_int(default: int, *names: str, min_value: int | None = None, max_value: int | None = None) -> int:
    raw = _env_raw(*names)
    if raw is None:
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid integer for %s=%r, using default=%s", names[0] if names else "<unknown>", raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning("Value too small for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, min_value)
        value = min_value
    if max_value is not None and value > max_value:
        logger.warning("Value too large for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, max_value)
        value = max_value
    return value


def _env_float(default: float, *names: str, min_value: float | None = None, max_value: float | None = None) -> float:
    raw = _env_raw(*names)
    if raw is None:
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid float for %s=%r, using default=%s", names[0] if names else "<unknown>", raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning("Value too small for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, min_value)
        value = min_value
    if max_value is not None and value > max_value:
        logger.warning("Value too large for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, max_value)
        value = max_value
    return value


def _resolve_index_db_path() -> Path:
    env_path = _env_raw("GEOPIC_INDEX_DB")
    if env_path:
        try:
            return Path(env_path).expanduser().resolve()
        except (OSError, RuntimeError):
            logger.warning("Failed to resolve GEOPIC_INDEX_DB: %s, using fallback", env_path)
    return (Path.home() / ".geopic" / "index.sqlite").resolve()


# --- Remote store (Microsoft Graph) ---
GRAPH_BASE_URL = (_env_raw("GEOPIC_GRAPH_BASE_URL", default="https://graph.microsoft.com/v1.0") or "").rstrip("/")
GRAPH_BATCH_URL = f"{GRAPH_BASE_URL}/$batch"
GRAPH_TIMEOUT_S = _env_float(120.0, "GEOPIC_GRAPH_TIMEOUT_S", min_value=1.0)

# Cache documents written by an older layout are ignored wholesale
SCHEMA_VERSION = 5

# Backend hard cap is 20 sub-requests per $batch call; stay below it
BATCH_MAX_REQUESTS = _env_int(18, "GEOPIC_BATCH_MAX_REQUESTS", min_value=2, max_value=20)
BATCH_PAYLOAD_CAP = 4 * 1024 * 1024
THROTTLE_DELAY_S = _env_float(2.0, "GEOPIC_THROTTLE_DELAY_S", min_value=0.0)

# --- Thumbnails ---
THUMB_MAX_CONCURRENCY = _env_int(6, "GEOPIC_THUMB_MAX_CONCURRENCY", min_value=1, max_value=32)
THUMB_RETRY_DELAY_S = _env_float(10.0, "GEOPIC_THUMB_RETRY_DELAY_S", min_value=0.0)

# --- Chunked upload (chunk size must be a multiple of 320 KiB) ---
UPLOAD_CHUNK_UNIT = 320 * 1024
UPLOAD_CHUNK_SIZE = UPLOAD_CHUNK_UNIT * _env_int(10, "GEOPIC_UPLOAD_CHUNK_UNITS", min_value=1, max_value=180)

# --- Tiling ---
TILE_SIZE_PX = _env_int(60, "GEOPIC_TILE_SIZE_PX", min_value=8)
MAX_ITEMS_PER_TILE = _env_int(40, "GEOPIC_MAX_ITEMS_PER_TILE", min_value=1)
WORLD_ZOOM_MAX = 2

# --- Local durable store ---
INDEX_DB_PATH = _resolve_index_db_path()
DB_TIMEOUT = _env_float(30.0, "GEOPIC_DB_TIMEOUT", min_value=1.0)

# --- HTTP surface ---
API_PREFIX = "/geopic/"
