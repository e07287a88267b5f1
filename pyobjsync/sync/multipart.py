"""Multipart upload strategy for large local files."""

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Optional

from ..exceptions import MultipartError, SyncError
from ..utils import count_parts
from .comparator import SyncOperation

if TYPE_CHECKING:
    from .operations import SyncOperations

logger = logging.getLogger(__name__)


def plan_parts(size: int, part_size: int) -> list[tuple[int, int, int]]:
    """Split ``size`` bytes into consecutive parts.

    Args:
        size: Object size in bytes
        part_size: Size of every part but the last

    Returns:
        List of (part_number, offset, length) tuples, part numbers from 1

    Examples:
        >>> plan_parts(11, 5)
        [(1, 0, 5), (2, 5, 5), (3, 10, 1)]
    """
    parts = []
    for index in range(count_parts(size, part_size)):
        offset = index * part_size
        parts.append((index + 1, offset, min(part_size, size - offset)))
    return parts


class MultipartUpload:
    """Uploads one local file as a multipart session.

    Parts run concurrently but each holds a transfer slot while reading and
    uploading, so they compete with other operations for the same slots.
    Any failure or cancellation aborts the session.
    """

    def __init__(self, operations: "SyncOperations", operation: SyncOperation):
        self.operations = operations
        self.operation = operation
        self.descriptor = operations.source_of(operation)
        self.path = operations.local_path(operations.source, self.descriptor.key)
        self.bucket = operations.target.root
        self.key = operations.target.full_key(operation.target_key)

    async def run(self) -> None:
        """Initiate, upload all parts, then complete the session.

        Raises:
            MultipartError: If a part or the completion failed (session aborted)
            CancellationError: If the sync was cancelled (session aborted)
        """
        ops = self.operations
        metadata = ops.resolve_metadata(self.operation)

        upload_id = await self._initiate(metadata)
        logger.debug(f"Initiated multipart upload {upload_id} for {self.key}")

        try:
            tokens = await self._upload_parts(upload_id)
            async with ops.slots:
                ops.checkpoint()
                await ops.store.complete_multipart_upload(
                    self.bucket, self.key, upload_id, tokens
                )
        except (SyncError, asyncio.CancelledError):
            await self._abort(upload_id)
            raise
        except Exception as e:
            await self._abort(upload_id)
            raise MultipartError(
                f"Failed to complete multipart upload of {self.key}: {e}",
                self.operation,
                upload_id=upload_id,
            ) from e

        logger.debug(
            f"Completed multipart upload {upload_id} for {self.key} "
            f"({len(tokens)} parts)"
        )

    async def _initiate(self, metadata: dict[str, Any]) -> str:
        """Create the upload session.

        The create call is shielded from task cancellation: if the task is
        cancelled while the request is in flight, the session the server
        may already have opened is aborted before the cancellation
        propagates.
        """
        ops = self.operations
        async with ops.slots:
            ops.checkpoint()
            creating = asyncio.ensure_future(
                ops.store.create_multipart_upload(self.bucket, self.key, metadata)
            )
            try:
                return await asyncio.shield(creating)
            except asyncio.CancelledError:
                upload_id = await self._settle(creating)
                if upload_id is not None:
                    await self._abort(upload_id)
                raise

    async def _settle(self, creating: "asyncio.Future[str]") -> Optional[str]:
        """Wait for an interrupted create call, returning its upload id if any."""
        try:
            return await creating
        except asyncio.CancelledError:
            return None
        except Exception as e:
            logger.debug(f"Multipart initiation for {self.key} failed: {e}")
            return None

    async def _upload_parts(self, upload_id: str) -> list[tuple[int, str]]:
        """Upload every part, returning (part_number, token) in part order."""
        parts = plan_parts(self.descriptor.size, self.operations.part_size)
        tasks = [
            asyncio.ensure_future(self._upload_part(upload_id, number, offset, length))
            for number, offset, length in parts
        ]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _upload_part(
        self, upload_id: str, part_number: int, offset: int, length: int
    ) -> tuple[int, str]:
        ops = self.operations
        try:
            async with ops.slots:
                ops.checkpoint()
                data = await ops.filesystem.read_range(self.path, offset, length)
                ops.checkpoint()
                token = await ops.store.upload_part(
                    self.bucket, self.key, upload_id, part_number, data
                )
        except SyncError:
            raise
        except Exception as e:
            raise MultipartError(
                f"Part {part_number} of {self.key} failed: {e}",
                self.operation,
                upload_id=upload_id,
                part_number=part_number,
            ) from e

        # Progress is reported per part, not only per object
        ops.monitor.add_bytes(length)
        logger.debug(f"Uploaded part {part_number} of {self.key} ({length} bytes)")
        return part_number, token

    async def _abort(self, upload_id: str) -> None:
        try:
            await self.operations.store.abort_multipart_upload(
                self.bucket, self.key, upload_id
            )
            logger.debug(f"Aborted multipart upload {upload_id} for {self.key}")
        except Exception as e:
            logger.warning(
                f"Failed to abort multipart upload {upload_id} for {self.key}: {e}"
            )
