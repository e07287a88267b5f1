"""Enumerators producing the objects of a collection.

An enumerator is an async iterable of ``ObjectDescriptor`` in ascending key
order. Every ``async for`` starts a fresh listing; pagination against the
store is hidden from the consumer.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import replace
from typing import Optional

from ..exceptions import EnumerationError, SyncError
from ..models import Collection, ObjectDescriptor
from ..protocols import FilesystemProtocol, ObjectStoreProtocol
from ..utils import timestamp_from_mtime
from .progress import TransferMonitor

logger = logging.getLogger(__name__)


class ObjectEnumerator:
    """Base class for collection enumerators."""

    def __init__(
        self, collection: Collection, monitor: Optional[TransferMonitor] = None
    ):
        self.collection = collection
        self.monitor = monitor

    def __aiter__(self) -> AsyncIterator[ObjectDescriptor]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ObjectDescriptor]:
        previous: Optional[str] = None
        count = 0
        async for descriptor in self._entries():
            # The diff merge relies on strictly ascending keys
            if previous is not None and descriptor.key <= previous:
                raise EnumerationError(
                    f"Listing of {self.collection} is not in ascending key order: "
                    f"{descriptor.key!r} after {previous!r}"
                )
            previous = descriptor.key
            count += 1
            yield descriptor
        logger.debug(f"Enumerated {count} object(s) in {self.collection}")

    def _entries(self) -> AsyncIterator[ObjectDescriptor]:
        raise NotImplementedError

    def _checkpoint(self) -> None:
        if self.monitor is not None:
            self.monitor.raise_if_cancelled()


class LocalEnumerator(ObjectEnumerator):
    """Enumerates the files below a local directory."""

    def __init__(
        self,
        collection: Collection,
        filesystem: FilesystemProtocol,
        monitor: Optional[TransferMonitor] = None,
        missing_ok: bool = False,
    ):
        """Initialize a local enumerator.

        Args:
            collection: Local collection to walk
            filesystem: Filesystem collaborator
            monitor: Optional monitor checked for cancellation
            missing_ok: Treat a missing root directory as empty (used for
                sync targets that do not exist yet)
        """
        super().__init__(collection, monitor)
        self.filesystem = filesystem
        self.missing_ok = missing_ok

    async def _entries(self) -> AsyncIterator[ObjectDescriptor]:
        root = self.collection.path
        if self.missing_ok and not await asyncio.to_thread(root.exists):
            logger.debug(f"Local directory {root} does not exist yet")
            return

        self._checkpoint()
        try:
            async for entry in self.filesystem.walk(root):
                self._checkpoint()
                yield ObjectDescriptor(
                    key=entry.relative_path,
                    size=entry.size,
                    last_modified=timestamp_from_mtime(entry.mtime),
                    is_local=True,
                )
        except OSError as e:
            raise EnumerationError(f"Failed to walk {root}: {e}") from e


class RemoteEnumerator(ObjectEnumerator):
    """Enumerates the objects under a bucket prefix, page by page."""

    def __init__(
        self,
        collection: Collection,
        store: ObjectStoreProtocol,
        monitor: Optional[TransferMonitor] = None,
    ):
        super().__init__(collection, monitor)
        self.store = store

    async def _entries(self) -> AsyncIterator[ObjectDescriptor]:
        bucket = self.collection.root
        prefix = self.collection.key_prefix
        token: Optional[str] = None
        page_number = 0

        while True:
            self._checkpoint()
            try:
                page = await self.store.list_objects(bucket, prefix, token)
            except SyncError:
                raise
            except Exception as e:
                raise EnumerationError(
                    f"Failed to list {self.collection} (page {page_number + 1}): {e}"
                ) from e
            page_number += 1
            logger.debug(
                f"Listed page {page_number} of {self.collection}: "
                f"{len(page.entries)} entries"
            )

            for entry in page.entries:
                if not entry.key.startswith(prefix):
                    raise EnumerationError(
                        f"Listing of {self.collection} returned key outside "
                        f"prefix: {entry.key!r}"
                    )
                key = entry.key[len(prefix) :]
                # Folder markers are not objects
                if not key or key.endswith("/"):
                    continue
                yield replace(entry, key=key, is_local=False)

            if not page.next_token:
                break
            token = page.next_token
