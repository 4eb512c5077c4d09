"""Local durable store adapters."""
from .local_store import LocalIndexStore, SqliteIndexStore

__all__ = ["LocalIndexStore", "SqliteIndexStore"]
