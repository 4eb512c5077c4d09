"""Backend-facing alias for shared utilities.

Backend modules import from here so the shared package can be relocated
without touching every feature module.
"""

from __future__ import annotations

import gp_shared as _root_shared

Result = _root_shared.Result
ErrorCode = _root_shared.ErrorCode
IndexStatus = _root_shared.IndexStatus
ROOT_FOLDER_LABEL = _root_shared.ROOT_FOLDER_LABEL
get_logger = _root_shared.get_logger
log_success = _root_shared.log_success
log_structured = _root_shared.log_structured
crawl_id_var = _root_shared.crawl_id_var
sanitize_error_message = _root_shared.sanitize_error_message
format_duration = _root_shared.format_duration
timer = _root_shared.timer

__all__ = [
    "Result",
    "ErrorCode",
    "IndexStatus",
    "ROOT_FOLDER_LABEL",
    "get_logger",
    "log_success",
    "log_structured",
    "crawl_id_var",
    "sanitize_error_message",
    "format_duration",
    "timer",
]
