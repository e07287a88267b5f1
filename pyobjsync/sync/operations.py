"""Transfer primitives bound to one sync scenario."""

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from pathlib import Path, PurePosixPath
from typing import Any

from ..exceptions import SyncError, TransferError
from ..models import Collection, ObjectDescriptor
from ..protocols import FilesystemProtocol, ObjectStoreProtocol
from ..utils import DEFAULT_STREAM_CHUNK_SIZE
from .comparator import SyncAction, SyncOperation
from .metadata import MetadataOptions
from .modes import SyncScenario
from .multipart import MultipartUpload
from .progress import TransferMonitor

logger = logging.getLogger(__name__)


class SyncOperations:
    """Executes single operations against the storage collaborators.

    Every collaborator call runs while holding one of the scheduler's
    transfer slots, so top-level operations and multipart parts share the
    same concurrency slots.
    """

    def __init__(
        self,
        scenario: SyncScenario,
        source: Collection,
        target: Collection,
        store: ObjectStoreProtocol,
        filesystem: FilesystemProtocol,
        slots: asyncio.Semaphore,
        monitor: TransferMonitor,
        part_size: int,
        metadata: MetadataOptions,
        chunk_size: int = DEFAULT_STREAM_CHUNK_SIZE,
    ):
        """Initialize sync operations.

        Args:
            scenario: Direction of the sync call
            source: Source collection
            target: Target collection
            store: Object storage collaborator
            filesystem: Filesystem collaborator
            slots: Transfer slots shared with the scheduler
            monitor: Progress and cancellation monitor
            part_size: Objects larger than this are uploaded in parts
            metadata: Metadata for objects written to remote collections
            chunk_size: Buffer size for streamed single-request uploads
        """
        self.scenario = scenario
        self.source = source
        self.target = target
        self.store = store
        self.filesystem = filesystem
        self.slots = slots
        self.monitor = monitor
        self.part_size = part_size
        self.metadata = metadata
        self.chunk_size = chunk_size

    def checkpoint(self) -> None:
        """Suspension point check: stop if the sync was cancelled."""
        self.monitor.raise_if_cancelled()

    @staticmethod
    def local_path(collection: Collection, key: str) -> Path:
        """Map a key to a path inside a local collection.

        Raises:
            TransferError: If the key would escape the collection root
        """
        parts = PurePosixPath(key).parts
        if not parts or any(part in ("..", "") for part in parts) or key.startswith("/"):
            raise TransferError(f"Refusing unsafe key for local path: {key!r}")
        return collection.path.joinpath(*parts)

    @staticmethod
    def source_of(operation: SyncOperation) -> ObjectDescriptor:
        """The source object of a transfer.

        Raises:
            TransferError: If the operation carries no source object
        """
        if operation.source is None:
            raise TransferError(f"No source object for {operation}", operation)
        return operation.source

    def resolve_metadata(self, operation: SyncOperation) -> dict[str, Any]:
        return self.metadata.resolve(operation.target_key, self.source_of(operation))

    def needs_multipart(self, operation: SyncOperation) -> bool:
        return (
            self.scenario.uses_multipart
            and operation.source is not None
            and operation.source.size > self.part_size
        )

    async def execute(self, operation: SyncOperation) -> None:
        """Execute one planned operation.

        Raises:
            TransferError: If the operation failed
            CancellationError: If the sync was cancelled
        """
        start = time.time()
        try:
            if operation.action is SyncAction.DELETE:
                await self.delete_target(operation)
            elif self.needs_multipart(operation):
                await MultipartUpload(self, operation).run()
            elif self.scenario == SyncScenario.LOCAL_TO_REMOTE:
                await self.upload_object(operation)
            elif self.scenario == SyncScenario.REMOTE_TO_LOCAL:
                await self.download_object(operation)
            else:
                await self.copy_object(operation)
        except SyncError as e:
            if isinstance(e, TransferError) and e.operation is None:
                e.operation = operation
            raise
        except Exception as e:
            raise TransferError(f"Failed to {operation}: {e}", operation) from e

        self.monitor.add_objects(1)
        logger.debug(f"Completed {operation} in {time.time() - start:.2f}s")

    async def upload_object(self, operation: SyncOperation) -> None:
        """Upload a local file in a single request."""
        source = self.source_of(operation)
        path = self.local_path(self.source, source.key)
        metadata = self.resolve_metadata(operation)

        async with self.slots:
            self.checkpoint()
            await self.store.put_object(
                self.target.root,
                self.target.full_key(operation.target_key),
                self._checked(self.filesystem.iter_chunks(path, self.chunk_size)),
                source.size,
                metadata,
            )
        self.monitor.add_bytes(source.size)

    async def download_object(self, operation: SyncOperation) -> None:
        """Stream a remote object to a local file."""
        source = self.source_of(operation)
        path = self.local_path(self.target, operation.target_key)

        async with self.slots:
            self.checkpoint()
            chunks = self.store.get_object(
                self.source.root, self.source.full_key(source.key)
            )
            await self.filesystem.write_stream(
                path,
                self._counted(chunks),
                mtime=source.last_modified,
            )

    async def copy_object(self, operation: SyncOperation) -> None:
        """Server side copy between remote collections."""
        source = self.source_of(operation)
        metadata = self.resolve_metadata(operation)

        async with self.slots:
            self.checkpoint()
            await self.store.copy_object(
                self.source.root,
                self.source.full_key(source.key),
                self.target.root,
                self.target.full_key(operation.target_key),
                metadata,
            )
        self.monitor.add_bytes(source.size)

    async def delete_target(self, operation: SyncOperation) -> None:
        """Delete an object from the target collection."""
        async with self.slots:
            self.checkpoint()
            if self.target.is_local:
                await self.filesystem.delete(
                    self.local_path(self.target, operation.target_key),
                    stop_at=self.target.path,
                )
            else:
                await self.store.delete_object(
                    self.target.root, self.target.full_key(operation.target_key)
                )

    async def _checked(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        """Pass a byte stream through, checking for cancellation per chunk."""
        async for chunk in chunks:
            self.checkpoint()
            yield chunk

    async def _counted(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        """Pass a byte stream through, reporting progress per chunk."""
        async for chunk in chunks:
            self.checkpoint()
            self.monitor.add_bytes(len(chunk))
            yield chunk
