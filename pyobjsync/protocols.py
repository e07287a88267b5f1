"""Capability interfaces of the storage and filesystem collaborators.

The sync engine only talks to these protocols. ``S3ObjectStore`` (s3://),
``ObjectStoreClient`` (the gw:// HTTP gateway) and ``LocalFilesystem`` are
the bundled implementations; tests and embedding applications may supply
their own.
"""

from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

from .models import ListPage


@dataclass(frozen=True)
class LocalEntry:
    """A file found while walking a local directory."""

    relative_path: str
    """Path relative to the walked root, forward slashes"""

    size: int

    mtime: float
    """Last modification time (Unix timestamp)"""


@runtime_checkable
class ObjectStoreProtocol(Protocol):
    """Remote listing, read/write/copy/delete and multipart primitives."""

    async def list_objects(
        self, bucket: str, prefix: str, continuation_token: Optional[str] = None
    ) -> ListPage: ...

    def get_object(self, bucket: str, key: str) -> AsyncIterator[bytes]: ...

    async def put_object(
        self,
        bucket: str,
        key: str,
        body: AsyncIterable[bytes],
        size: int,
        metadata: dict[str, Any],
    ) -> str: ...

    async def copy_object(
        self,
        source_bucket: str,
        source_key: str,
        bucket: str,
        key: str,
        metadata: dict[str, Any],
    ) -> None: ...

    async def delete_object(self, bucket: str, key: str) -> None: ...

    async def create_multipart_upload(
        self, bucket: str, key: str, metadata: dict[str, Any]
    ) -> str: ...

    async def upload_part(
        self, bucket: str, key: str, upload_id: str, part_number: int, data: bytes
    ) -> str: ...

    async def complete_multipart_upload(
        self, bucket: str, key: str, upload_id: str, parts: list[tuple[int, str]]
    ) -> None: ...

    async def abort_multipart_upload(
        self, bucket: str, key: str, upload_id: str
    ) -> None: ...


@runtime_checkable
class FilesystemProtocol(Protocol):
    """Directory walking, streamed read/write and delete on local disk."""

    def walk(self, root: Path) -> AsyncIterator[LocalEntry]: ...

    def iter_chunks(self, path: Path, chunk_size: int) -> AsyncIterator[bytes]: ...

    async def read_range(self, path: Path, offset: int, length: int) -> bytes: ...

    async def write_stream(
        self,
        path: Path,
        chunks: AsyncIterable[bytes],
        mtime: Optional[datetime] = None,
    ) -> int: ...

    async def delete(self, path: Path, stop_at: Optional[Path] = None) -> None: ...
