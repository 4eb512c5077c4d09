"""
Core utilities for route handlers.
"""
from .query import _parse_date_range, _parse_viewport
from .response import _json_response, _sanitize_json_payload
from .services import _build_services, _dispose_services, _require_services, configure_services, get_services_error

__all__ = [
    "_build_services",
    "_dispose_services",
    "_json_response",
    "_parse_date_range",
    "_parse_viewport",
    "_require_services",
    "_sanitize_json_payload",
    "configure_services",
    "get_services_error",
]
