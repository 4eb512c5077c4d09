"""Route handler modules."""
from .index import register_index_routes
from .map import register_map_routes

__all__ = ["register_index_routes", "register_map_routes"]
