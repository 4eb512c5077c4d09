"""
Index feature - current geo index, freshness and crawl orchestration.
"""
from .service import IndexService, index_status

__all__ = ["IndexService", "index_status"]
