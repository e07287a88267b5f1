"""Utility functions for pyobjsync."""

from datetime import datetime, timezone
from typing import Optional, Union

# =============================================================================
# Constants for transfer operations
# =============================================================================

# Part size for multipart uploads (25 MB). Objects larger than this are
# uploaded in parts, objects of exactly this size or smaller in one request.
DEFAULT_PART_SIZE: int = 25 * 1024 * 1024

# Number of operations (and multipart parts) in flight at once
DEFAULT_MAX_CONCURRENT_TRANSFERS: int = 4

# Buffer size for streamed reads and writes
DEFAULT_STREAM_CHUNK_SIZE: int = 1024 * 1024

# Retry configuration used by the storage client, never by the sync core
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds

# Suffix of in-progress download files
PARTIAL_DOWNLOAD_SUFFIX: str = ".pyobjsync-partial"


# =============================================================================
# Timestamp utilities
# =============================================================================


def parse_iso_timestamp(timestamp_str: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp returned by the storage API.

    Naive timestamps are assumed to be UTC.

    Args:
        timestamp_str: ISO format timestamp (e.g., "2025-01-15T10:30:00.000000Z")

    Returns:
        Timezone aware datetime in UTC, or None if parsing fails
    """
    if not timestamp_str:
        return None

    # The 'Z' suffix indicates UTC time
    if timestamp_str.endswith("Z"):
        timestamp_str = timestamp_str[:-1] + "+00:00"

    try:
        dt = datetime.fromisoformat(timestamp_str)
    except ValueError:
        # Try without (possibly over-long) fractional seconds
        if "." not in timestamp_str:
            return None
        head, _, tail = timestamp_str.partition(".")
        offset = ""
        for sign in ("+", "-"):
            if sign in tail:
                offset = sign + tail.split(sign, 1)[1]
                break
        try:
            dt = datetime.fromisoformat(head + offset)
        except ValueError:
            return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def timestamp_from_mtime(mtime: Union[int, float]) -> datetime:
    """Convert a filesystem mtime (Unix seconds) to an aware UTC datetime."""
    return datetime.fromtimestamp(mtime, tz=timezone.utc)


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"


def count_parts(size: int, part_size: int) -> int:
    """Number of parts needed to upload ``size`` bytes in ``part_size`` chunks.

    Examples:
        >>> count_parts(10, 5)
        2
        >>> count_parts(11, 5)
        3
        >>> count_parts(0, 5)
        1
    """
    if size <= 0:
        return 1
    return -(-size // part_size)
