"""Shared utilities for the Geopic indexer."""
from .errors import sanitize_error_message
from .log import crawl_id_var, get_logger, log_structured, log_success
from .result import Result
from .time import format_duration, timer
from .types import ROOT_FOLDER_LABEL, ErrorCode, IndexStatus

__all__ = [
    "Result",
    "get_logger",
    "log_success",
    "format_duration",
    "timer",
    "ErrorCode",
    "IndexStatus",
    "ROOT_FOLDER_LABEL",
    "log_structured",
    "crawl_id_var",
    "sanitize_error_message",
]
