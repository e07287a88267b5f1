"""Local filesystem collaborator.

Blocking calls run in worker threads through ``asyncio.to_thread`` so a
sync call can interleave other transfers while the disk is busy.
"""

import asyncio
import logging
import os
from collections.abc import AsyncIterable, AsyncIterator
from datetime import datetime
from pathlib import Path
from typing import Optional

from .protocols import LocalEntry
from .utils import DEFAULT_STREAM_CHUNK_SIZE, PARTIAL_DOWNLOAD_SUFFIX

logger = logging.getLogger(__name__)


def _sort_key(item: tuple[str, bool, int, float]) -> str:
    # A directory sorts as "name/" so that every key below it lands exactly
    # where it belongs in the byte-wise order of the whole tree.
    name, is_dir, _, _ = item
    return f"{name}/" if is_dir else name


class LocalFilesystem:
    """Filesystem access used by the sync engine for local collections."""

    def __init__(self, chunk_size: int = DEFAULT_STREAM_CHUNK_SIZE):
        """Initialize the filesystem collaborator.

        Args:
            chunk_size: Default buffer size for streamed reads
        """
        self.chunk_size = chunk_size

    @staticmethod
    def _scan_directory(directory: Path) -> list[tuple[str, bool, int, float]]:
        """List one directory as sorted (name, is_dir, size, mtime) tuples."""
        items: list[tuple[str, bool, int, float]] = []
        with os.scandir(directory) as it:
            for entry in it:
                if entry.name.endswith(PARTIAL_DOWNLOAD_SUFFIX):
                    continue
                # Symlinked directories are not followed to avoid cycles
                if entry.is_dir(follow_symlinks=False):
                    items.append((entry.name, True, 0, 0.0))
                elif entry.is_file():
                    stat = entry.stat()
                    items.append((entry.name, False, stat.st_size, stat.st_mtime))
        items.sort(key=_sort_key)
        return items

    async def walk(self, root: Path) -> AsyncIterator[LocalEntry]:
        """Recursively walk ``root`` yielding files in ascending key order.

        Args:
            root: Directory to walk

        Yields:
            LocalEntry for every regular file below root

        Raises:
            NotADirectoryError: If root is not a directory
            OSError: If a directory cannot be read
        """
        if not await asyncio.to_thread(root.is_dir):
            raise NotADirectoryError(f"Not a directory: {root}")
        async for entry in self._walk_directory(root, ""):
            yield entry

    async def _walk_directory(
        self, directory: Path, prefix: str
    ) -> AsyncIterator[LocalEntry]:
        items = await asyncio.to_thread(self._scan_directory, directory)
        logger.debug(f"Scanned {directory}: {len(items)} entries")
        for name, is_dir, size, mtime in items:
            relative_path = f"{prefix}{name}"
            if is_dir:
                async for entry in self._walk_directory(
                    directory / name, f"{relative_path}/"
                ):
                    yield entry
            else:
                yield LocalEntry(relative_path=relative_path, size=size, mtime=mtime)

    async def iter_chunks(
        self, path: Path, chunk_size: Optional[int] = None
    ) -> AsyncIterator[bytes]:
        """Stream a file in chunks."""
        size = chunk_size or self.chunk_size
        f = await asyncio.to_thread(open, path, "rb")
        try:
            while True:
                chunk = await asyncio.to_thread(f.read, size)
                if not chunk:
                    break
                yield chunk
        finally:
            f.close()

    async def read_range(self, path: Path, offset: int, length: int) -> bytes:
        """Read exactly ``length`` bytes starting at ``offset``.

        Raises:
            OSError: If the file is shorter than expected (changed during sync)
        """

        def _read() -> bytes:
            with open(path, "rb") as f:
                f.seek(offset)
                return f.read(length)

        data = await asyncio.to_thread(_read)
        if len(data) != length:
            raise OSError(
                f"Short read from {path}: expected {length} bytes at offset "
                f"{offset}, got {len(data)} (file changed during sync?)"
            )
        return data

    async def write_stream(
        self,
        path: Path,
        chunks: AsyncIterable[bytes],
        mtime: Optional[datetime] = None,
    ) -> int:
        """Write a byte stream to ``path``, creating parent directories.

        Data goes to a temporary sibling file that replaces ``path`` only
        once the stream is complete, so a failed or cancelled download never
        leaves a truncated file behind.

        Args:
            path: Destination file
            chunks: Byte stream to write
            mtime: Optional modification time to set on the finished file

        Returns:
            Number of bytes written
        """
        partial = path.with_name(path.name + PARTIAL_DOWNLOAD_SUFFIX)
        await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)

        written = 0
        f = await asyncio.to_thread(open, partial, "wb")
        try:
            try:
                async for chunk in chunks:
                    await asyncio.to_thread(f.write, chunk)
                    written += len(chunk)
            finally:
                f.close()
            await asyncio.to_thread(os.replace, partial, path)
        except BaseException:
            await asyncio.to_thread(partial.unlink, missing_ok=True)
            raise

        if mtime is not None:
            timestamp = mtime.timestamp()
            await asyncio.to_thread(os.utime, path, (timestamp, timestamp))
        return written

    async def delete(self, path: Path, stop_at: Optional[Path] = None) -> None:
        """Delete a file and prune parent directories left empty.

        Args:
            path: File to delete
            stop_at: Directory at which pruning stops (never removed itself)
        """
        await asyncio.to_thread(path.unlink)
        if stop_at is None:
            return

        def _prune() -> None:
            parent = path.parent
            root = stop_at.resolve()
            while parent.resolve() != root and root in parent.resolve().parents:
                try:
                    parent.rmdir()
                except OSError:
                    # Not empty
                    break
                parent = parent.parent

        await asyncio.to_thread(_prune)
