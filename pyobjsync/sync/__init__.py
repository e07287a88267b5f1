"""Sync engine for pyobjsync - one-directional mirroring of object collections."""

from .comparator import ObjectComparator, SyncAction, SyncOperation, TransferReason
from .engine import SyncEngine
from .filters import FilterAction, FilterChain, FilterRule
from .metadata import MetadataOptions, guess_content_type
from .modes import SyncScenario
from .multipart import MultipartUpload, plan_parts
from .operations import SyncOperations
from .options import SyncOptions
from .progress import TransferMonitor, TransferProgress
from .relocation import KeyMapper, Relocation
from .scanner import LocalEnumerator, ObjectEnumerator, RemoteEnumerator
from .scheduler import TransferScheduler

__all__ = [
    "SyncEngine",
    "SyncOptions",
    "SyncScenario",
    "SyncOperations",
    "ObjectComparator",
    "SyncAction",
    "SyncOperation",
    "TransferReason",
    "FilterAction",
    "FilterChain",
    "FilterRule",
    "KeyMapper",
    "Relocation",
    "MetadataOptions",
    "guess_content_type",
    "MultipartUpload",
    "plan_parts",
    "TransferMonitor",
    "TransferProgress",
    "TransferScheduler",
    "ObjectEnumerator",
    "LocalEnumerator",
    "RemoteEnumerator",
]
