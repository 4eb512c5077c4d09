"""
Route registration system.
Coordinates all route handlers and registers them with an aiohttp app.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from aiohttp import web

from ..config import API_PREFIX
from ..shared import get_logger
from .core import _dispose_services, configure_services
from .handlers import register_index_routes, register_map_routes

logger = get_logger(__name__)

_APP_KEY_ROUTES_REGISTERED: web.AppKey[bool] = web.AppKey("_geopic_routes_registered", bool)
_APP_KEY_CLEANUP_INSTALLED: web.AppKey[bool] = web.AppKey("_geopic_cleanup_installed", bool)


@web.middleware
async def security_headers_middleware(
    request: web.Request,
    handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
) -> web.StreamResponse:
    """Apply strict security headers to Geopic API responses only."""
    response = await handler(request)
    if not (request.path or "").startswith(API_PREFIX):
        return response

    response.headers.setdefault("Content-Security-Policy", "default-src 'none'")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Cache-Control", "no-store, no-cache, must-revalidate")
    return response


def register_all_routes(routes: web.RouteTableDef | None = None) -> web.RouteTableDef:
    """
    Register all route handlers and return the RouteTableDef.
    This is the central registration point for all routes.
    """
    routes = routes if routes is not None else web.RouteTableDef()
    register_map_routes(routes)
    register_index_routes(routes)

    logger.info("=" * 60)
    logger.info("Routes registered:")
    logger.info("  GET /geopic/tiles?sw_lat&sw_lng&ne_lat&ne_lng&width[&zoom&text&start&end]")
    logger.info("  GET /geopic/bounds[?start&end]")
    logger.info("  GET /geopic/status")
    logger.info("  POST /geopic/crawl[?wait=true]")
    logger.info("=" * 60)
    return routes


def register_routes(app: web.Application) -> None:
    """Register routes, middleware and service cleanup onto an aiohttp application."""
    if app.get(_APP_KEY_ROUTES_REGISTERED):
        logger.debug("register_routes(app) skipped: routes already registered on this app")
        return

    app.middlewares.append(security_headers_middleware)
    app.add_routes(register_all_routes())
    app[_APP_KEY_ROUTES_REGISTERED] = True

    if not app.get(_APP_KEY_CLEANUP_INSTALLED):
        async def _on_cleanup(_app: web.Application) -> None:
            await _dispose_services()

        app.on_cleanup.append(_on_cleanup)
        app[_APP_KEY_CLEANUP_INSTALLED] = True


def create_app(db_path: str | None = None) -> web.Application:
    if db_path is not None:
        configure_services(db_path)
    app = web.Application()
    register_routes(app)
    return app
