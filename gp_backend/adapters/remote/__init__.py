"""
Remote store adapter (Microsoft Graph).
"""
from .graph_client import FetchError, GraphClient, GraphResponse, StaticTokenProvider, TokenProvider, header_value

__all__ = ["FetchError", "GraphClient", "GraphResponse", "StaticTokenProvider", "TokenProvider", "header_value"]
