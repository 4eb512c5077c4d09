"""
Shared types, enums, and constants.
"""
from enum import Enum
from typing import Final, Literal

# Index freshness, relative to the live remote folder
IndexStatus = Literal["fresh", "stale"]

# Error codes
class ErrorCode(str, Enum):
    """Standardized error codes (string enum)."""

    # Client / validation
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"

    # Feature / service availability
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    UNAUTHORIZED = "UNAUTHORIZED"

    # Server / infrastructure
    DB_ERROR = "DB_ERROR"

    # Remote store
    REMOTE_ERROR = "REMOTE_ERROR"
    THROTTLED = "THROTTLED"
    UPLOAD_FAILED = "UPLOAD_FAILED"
    PARSE_ERROR = "PARSE_ERROR"

    # Crawl lifecycle
    CRAWL_IN_PROGRESS = "CRAWL_IN_PROGRESS"


# Name shown for the root folder in progress output
ROOT_FOLDER_LABEL: Final[str] = "Pictures"
