"""Exceptions raised by pyobjsync."""

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .sync.comparator import SyncOperation


class SyncError(Exception):
    """Base exception for all sync engine failures."""


class ConfigurationError(SyncError):
    """Invalid option combination, detected before any I/O."""


class EnumerationError(SyncError):
    """Listing a collection failed. Terminal for the whole sync call."""


class TransferError(SyncError):
    """A single put/get/copy/delete operation failed."""

    def __init__(self, message: str, operation: Optional["SyncOperation"] = None):
        super().__init__(message)
        self.operation = operation


class MultipartError(TransferError):
    """A part of a multipart upload failed; the session has been aborted."""

    def __init__(
        self,
        message: str,
        operation: Optional["SyncOperation"] = None,
        upload_id: Optional[str] = None,
        part_number: Optional[int] = None,
    ):
        super().__init__(message, operation)
        self.upload_id = upload_id
        self.part_number = part_number


class CancellationError(SyncError):
    """The sync call was stopped through the transfer monitor."""


# Storage client errors


class StorageAPIError(Exception):
    """Base exception for object storage API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, **extra: Any):
        super().__init__(message)
        self.status_code = status_code
        self.extra = extra


class StorageConfigError(StorageAPIError):
    """Storage client is not configured (e.g. missing API key)."""


class StorageAuthenticationError(StorageAPIError):
    """Invalid API key or unauthorized access."""


class StoragePermissionError(StorageAPIError):
    """Access forbidden."""


class StorageNotFoundError(StorageAPIError):
    """Bucket, object or upload session not found."""


class StorageRateLimitError(StorageAPIError):
    """Rate limit exceeded."""


class StorageNetworkError(StorageAPIError):
    """Transport level failure (connection reset, timeout, ...)."""


class StorageInvalidResponseError(StorageAPIError):
    """Server returned a response that could not be understood."""
