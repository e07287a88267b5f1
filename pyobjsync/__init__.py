"""pyobjsync - mirror object collections between local disks and object storage."""

from .api import ObjectStoreClient
from .exceptions import (
    CancellationError,
    ConfigurationError,
    EnumerationError,
    MultipartError,
    StorageAPIError,
    StorageAuthenticationError,
    StorageConfigError,
    StorageInvalidResponseError,
    StorageNetworkError,
    StorageNotFoundError,
    StoragePermissionError,
    StorageRateLimitError,
    SyncError,
    TransferError,
)
from .filesystem import LocalFilesystem
from .models import Collection, ListPage, ObjectDescriptor
from .s3 import S3ObjectStore
from .sync import (
    FilterChain,
    FilterRule,
    KeyMapper,
    MetadataOptions,
    Relocation,
    SyncEngine,
    SyncOperation,
    SyncOptions,
    TransferMonitor,
    TransferProgress,
)

__all__ = [
    "S3ObjectStore",
    "ObjectStoreClient",
    "LocalFilesystem",
    "Collection",
    "ListPage",
    "ObjectDescriptor",
    "SyncEngine",
    "SyncOperation",
    "SyncOptions",
    "FilterChain",
    "FilterRule",
    "KeyMapper",
    "Relocation",
    "MetadataOptions",
    "TransferMonitor",
    "TransferProgress",
    "SyncError",
    "ConfigurationError",
    "EnumerationError",
    "TransferError",
    "MultipartError",
    "CancellationError",
    "StorageAPIError",
    "StorageAuthenticationError",
    "StorageConfigError",
    "StorageInvalidResponseError",
    "StorageNetworkError",
    "StorageNotFoundError",
    "StoragePermissionError",
    "StorageRateLimitError",
]
