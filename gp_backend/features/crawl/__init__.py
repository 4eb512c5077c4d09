"""
Crawl feature - incremental index of the remote photo tree.
"""
from .batcher import RequestBatcher, postprocess_batch_response
from .engine import CrawlError, crawl
from .progress import CrawlStats, ProgressSink, progress_bar
from .retry import RetryPolicy, ThrottledError
from .thumbnails import AdaptiveRateController, rate_limited_blob_fetch, resolve_thumbnails
from .uploader import multipart_upload
from .workitem import WorkItem, WorkState, cache_filename

__all__ = [
    "AdaptiveRateController",
    "CrawlError",
    "CrawlStats",
    "ProgressSink",
    "RequestBatcher",
    "RetryPolicy",
    "ThrottledError",
    "WorkItem",
    "WorkState",
    "cache_filename",
    "crawl",
    "multipart_upload",
    "postprocess_batch_response",
    "progress_bar",
    "rate_limited_blob_fetch",
    "resolve_thumbnails",
]
