"""Shared fixtures: an in-memory object store and helpers for sync tests."""

import asyncio
import os
from collections.abc import AsyncIterable, AsyncIterator
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional
from unittest.mock import Mock

import pytest

from pyobjsync.exceptions import StorageNotFoundError
from pyobjsync.models import ListPage, ObjectDescriptor
from pyobjsync.output import OutputFormatter

MUTATIONS = {
    "put_object",
    "copy_object",
    "delete_object",
    "create_multipart_upload",
    "upload_part",
    "complete_multipart_upload",
    "abort_multipart_upload",
}


class StoredObject:
    def __init__(self, data: bytes, last_modified: datetime, metadata: dict):
        self.data = data
        self.last_modified = last_modified
        self.metadata = metadata


class FakeObjectStore:
    """In-memory ObjectStoreProtocol implementation.

    Records every call in ``calls`` and tracks the maximum number of calls
    in flight at once. ``fail_on`` maps a method name to an exception (or a
    callable deciding per call) raised instead of performing the call.
    """

    def __init__(self, page_size: int = 1000, delay: float = 0.0):
        self.buckets: dict[str, dict[str, StoredObject]] = {}
        self.uploads: dict[str, dict[str, Any]] = {}
        self.page_size = page_size
        self.delay = delay
        self.calls: list[tuple[str, tuple]] = []
        self.fail_on: dict[str, Any] = {}
        self.in_flight = 0
        self.max_in_flight = 0
        self._upload_counter = 0
        self._clock = datetime(2030, 1, 1, tzinfo=timezone.utc)

    # -- helpers ---------------------------------------------------------

    def now(self) -> datetime:
        """Strictly increasing server time, later than any local file."""
        self._clock += timedelta(seconds=1)
        return self._clock

    def add(
        self,
        bucket: str,
        key: str,
        data: bytes = b"",
        last_modified: Optional[datetime] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        self.buckets.setdefault(bucket, {})[key] = StoredObject(
            data, last_modified or self.now(), metadata or {}
        )

    def keys(self, bucket: str) -> list[str]:
        return sorted(self.buckets.get(bucket, {}))

    def data(self, bucket: str, key: str) -> bytes:
        return self.buckets[bucket][key].data

    @property
    def mutations(self) -> list[tuple[str, tuple]]:
        return [call for call in self.calls if call[0] in MUTATIONS]

    def called(self, name: str) -> list[tuple]:
        return [args for call_name, args in self.calls if call_name == name]

    async def _enter(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            failure = self.fail_on.get(name)
            if callable(failure) and not isinstance(failure, BaseException):
                failure = failure(*args)
            if failure is not None:
                raise failure
        except BaseException:
            self.in_flight -= 1
            raise

    def _exit(self) -> None:
        self.in_flight -= 1

    async def aclose(self) -> None:
        self.calls.append(("aclose", ()))

    async def __aenter__(self) -> "FakeObjectStore":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    # -- protocol --------------------------------------------------------

    async def list_objects(
        self, bucket: str, prefix: str, continuation_token: Optional[str] = None
    ) -> ListPage:
        await self._enter("list_objects", bucket, prefix, continuation_token)
        try:
            keys = [k for k in self.keys(bucket) if k.startswith(prefix)]
            start = int(continuation_token or 0)
            page_keys = keys[start : start + self.page_size]
            end = start + len(page_keys)
            objects = self.buckets.get(bucket, {})
            return ListPage(
                entries=[
                    ObjectDescriptor(
                        key=k,
                        size=len(objects[k].data),
                        last_modified=objects[k].last_modified,
                    )
                    for k in page_keys
                ],
                next_token=str(end) if end < len(keys) else None,
            )
        finally:
            self._exit()

    async def get_object(self, bucket: str, key: str) -> AsyncIterator[bytes]:
        await self._enter("get_object", bucket, key)
        try:
            try:
                data = self.buckets[bucket][key].data
            except KeyError as e:
                raise StorageNotFoundError("Resource not found", 404) from e
        finally:
            self._exit()
        for start in range(0, len(data), 4):
            yield data[start : start + 4]

    async def put_object(
        self,
        bucket: str,
        key: str,
        body: AsyncIterable[bytes],
        size: int,
        metadata: dict,
    ) -> str:
        await self._enter("put_object", bucket, key, size, metadata)
        try:
            data = b"".join([chunk async for chunk in body])
            assert len(data) == size
            self.add(bucket, key, data, metadata=metadata)
            return f"etag-{key}"
        finally:
            self._exit()

    async def copy_object(
        self,
        source_bucket: str,
        source_key: str,
        bucket: str,
        key: str,
        metadata: dict,
    ) -> None:
        await self._enter(
            "copy_object", source_bucket, source_key, bucket, key, metadata
        )
        try:
            self.add(bucket, key, self.data(source_bucket, source_key), metadata=metadata)
        finally:
            self._exit()

    async def delete_object(self, bucket: str, key: str) -> None:
        await self._enter("delete_object", bucket, key)
        try:
            self.buckets.get(bucket, {}).pop(key, None)
        finally:
            self._exit()

    async def create_multipart_upload(
        self, bucket: str, key: str, metadata: dict
    ) -> str:
        await self._enter("create_multipart_upload", bucket, key, metadata)
        try:
            self._upload_counter += 1
            upload_id = f"upload-{self._upload_counter}"
            self.uploads[upload_id] = {
                "bucket": bucket,
                "key": key,
                "metadata": metadata,
                "parts": {},
                "state": "open",
            }
            return upload_id
        finally:
            self._exit()

    async def upload_part(
        self, bucket: str, key: str, upload_id: str, part_number: int, data: bytes
    ) -> str:
        await self._enter("upload_part", bucket, key, upload_id, part_number, len(data))
        try:
            self.uploads[upload_id]["parts"][part_number] = data
            return f"etag-{part_number}"
        finally:
            self._exit()

    async def complete_multipart_upload(
        self, bucket: str, key: str, upload_id: str, parts: list[tuple[int, str]]
    ) -> None:
        await self._enter("complete_multipart_upload", bucket, key, upload_id, parts)
        try:
            upload = self.uploads[upload_id]
            data = b"".join(upload["parts"][number] for number, _ in parts)
            upload["state"] = "completed"
            self.add(bucket, key, data, metadata=upload["metadata"])
        finally:
            self._exit()

    async def abort_multipart_upload(
        self, bucket: str, key: str, upload_id: str
    ) -> None:
        await self._enter("abort_multipart_upload", bucket, key, upload_id)
        try:
            self.uploads[upload_id]["state"] = "aborted"
        finally:
            self._exit()


def write_file(
    root: Path, relative_path: str, data: bytes, mtime: Optional[float] = None
) -> Path:
    """Create a file below root, optionally with a given mtime."""
    path = root.joinpath(*relative_path.split("/"))
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


def descriptor(key: str, size: int = 1, seconds: int = 0) -> ObjectDescriptor:
    """Descriptor with a timestamp offset from a fixed base time."""
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return ObjectDescriptor(key, size, base + timedelta(seconds=seconds))


async def collect(iterable: AsyncIterable) -> list:
    return [item async for item in iterable]


@pytest.fixture
def store():
    """Provide an empty in-memory object store."""
    return FakeObjectStore()


@pytest.fixture
def mock_output():
    """Create a quiet mock output formatter."""
    output = Mock(spec=OutputFormatter)
    output.quiet = True
    output.json_output = False
    return output
