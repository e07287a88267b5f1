"""Unit tests for multipart uploads."""

import asyncio

import pytest
from conftest import FakeObjectStore, write_file

from pyobjsync.exceptions import (
    CancellationError,
    MultipartError,
    StorageAPIError,
    TransferError,
)
from pyobjsync.filesystem import LocalFilesystem
from pyobjsync.models import Collection, ObjectDescriptor
from pyobjsync.sync.comparator import SyncAction, SyncOperation, TransferReason
from pyobjsync.sync.metadata import MetadataOptions
from pyobjsync.sync.modes import SyncScenario
from pyobjsync.sync.multipart import plan_parts
from pyobjsync.sync.operations import SyncOperations
from pyobjsync.sync.progress import TransferMonitor
from pyobjsync.utils import timestamp_from_mtime


class TestPlanParts:
    """Tests for plan_parts."""

    def test_exact_multiple(self):
        """Test parts of equal length."""
        assert plan_parts(10, 5) == [(1, 0, 5), (2, 5, 5)]

    def test_one_byte_over(self):
        """Test that one extra byte makes a one-byte last part."""
        assert plan_parts(6, 5) == [(1, 0, 5), (2, 5, 1)]

    def test_covers_every_byte(self):
        """Test that parts are contiguous and cover the object."""
        parts = plan_parts(1000, 7)
        assert sum(length for _, _, length in parts) == 1000
        for (_, offset, length), (_, next_offset, _) in zip(parts, parts[1:]):
            assert offset + length == next_offset


def make_operations(tmp_path, store, part_size, monitor=None, slots=2):
    return SyncOperations(
        scenario=SyncScenario.LOCAL_TO_REMOTE,
        source=Collection.local(tmp_path),
        target=Collection.remote("bkt", "up"),
        store=store,
        filesystem=LocalFilesystem(),
        slots=asyncio.Semaphore(slots),
        monitor=monitor or TransferMonitor(),
        part_size=part_size,
        metadata=MetadataOptions(content_type="application/x-test"),
    )


def upload_operation(tmp_path, key, data):
    path = write_file(tmp_path, key, data)
    source = ObjectDescriptor(
        key, len(data), timestamp_from_mtime(path.stat().st_mtime), is_local=True
    )
    return SyncOperation.transfer(source, key, TransferReason.NOT_IN_TARGET)


class TestMultipartUpload:
    """Tests for the multipart path of SyncOperations."""

    def test_size_equal_to_part_size_is_single_put(self, tmp_path):
        """Test that the threshold is strictly greater than part size."""
        store = FakeObjectStore()
        operation = upload_operation(tmp_path, "f.bin", b"x" * 8)

        async def run():
            await make_operations(tmp_path, store, part_size=8).execute(operation)

        asyncio.run(run())

        assert [name for name, _ in store.mutations] == ["put_object"]
        assert store.data("bkt", "up/f.bin") == b"x" * 8

    def test_one_byte_over_uses_two_parts(self, tmp_path):
        """Test a part_size + 1 byte upload."""
        store = FakeObjectStore()
        data = b"abcdefgh" + b"Z"
        operation = upload_operation(tmp_path, "f.bin", data)
        monitor = TransferMonitor()
        seen = []
        monitor.subscribe(lambda p: seen.append(p.bytes_current))

        async def run():
            ops = make_operations(tmp_path, store, part_size=8, monitor=monitor)
            await ops.execute(operation)

        asyncio.run(run())

        parts = store.called("upload_part")
        assert sorted((args[3], args[4]) for args in parts) == [(1, 8), (2, 1)]
        assert store.called("complete_multipart_upload")[0][3] == [
            (1, "etag-1"),
            (2, "etag-2"),
        ]
        assert store.data("bkt", "up/f.bin") == data
        assert store.called("create_multipart_upload")[0][2] == {
            "content_type": "application/x-test"
        }
        # One update per part, then one for the finished object
        assert len(seen) == 3
        assert sorted(seen[:2]) in ([1, 9], [8, 9])
        assert monitor.progress.bytes_current == 9
        assert monitor.progress.objects_current == 1

    def test_failed_part_aborts_session(self, tmp_path):
        """Test that a part failure aborts and never completes."""
        store = FakeObjectStore()
        store.fail_on["upload_part"] = lambda bucket, key, uid, number, size: (
            StorageAPIError("part rejected", 500) if number == 2 else None
        )
        operation = upload_operation(tmp_path, "f.bin", b"y" * 20)

        async def run():
            await make_operations(tmp_path, store, part_size=8).execute(operation)

        with pytest.raises(MultipartError) as exc_info:
            asyncio.run(run())

        assert exc_info.value.part_number == 2
        assert exc_info.value.upload_id == "upload-1"
        assert exc_info.value.operation == operation
        assert len(store.called("abort_multipart_upload")) == 1
        assert store.called("complete_multipart_upload") == []
        assert store.uploads["upload-1"]["state"] == "aborted"
        assert "up/f.bin" not in store.keys("bkt")

    def test_failed_complete_aborts_session(self, tmp_path):
        """Test that a completion failure aborts the session."""
        store = FakeObjectStore()
        store.fail_on["complete_multipart_upload"] = StorageAPIError("boom", 500)
        operation = upload_operation(tmp_path, "f.bin", b"y" * 20)

        async def run():
            await make_operations(tmp_path, store, part_size=8).execute(operation)

        with pytest.raises(MultipartError, match="boom"):
            asyncio.run(run())
        assert len(store.called("abort_multipart_upload")) == 1

    def test_cancellation_aborts_session(self, tmp_path):
        """Test that cancellation between parts aborts the session."""
        store = FakeObjectStore()
        monitor = TransferMonitor()

        def cancel_on_first_part(bucket, key, uid, number, size):
            monitor.abort()
            return None

        store.fail_on["upload_part"] = cancel_on_first_part
        operation = upload_operation(tmp_path, "f.bin", b"y" * 40)

        async def run():
            ops = make_operations(tmp_path, store, part_size=8, monitor=monitor)
            await ops.execute(operation)

        with pytest.raises(CancellationError):
            asyncio.run(run())
        assert len(store.called("abort_multipart_upload")) == 1
        assert store.called("complete_multipart_upload") == []

    def test_parts_bounded_by_slots(self, tmp_path):
        """Test that parts never exceed the transfer slots."""
        store = FakeObjectStore(delay=0.01)
        operation = upload_operation(tmp_path, "f.bin", b"z" * 80)

        async def run():
            ops = make_operations(tmp_path, store, part_size=8, slots=3)
            await ops.execute(operation)

        asyncio.run(run())

        assert len(store.called("upload_part")) == 10
        assert 1 < store.max_in_flight <= 3

    def test_cancel_during_initiation_aborts_session(self, tmp_path):
        """Test that a session opened while the task is cancelled is aborted."""
        store = FakeObjectStore(delay=0.05)
        operation = upload_operation(tmp_path, "f.bin", b"y" * 20)

        async def run():
            ops = make_operations(tmp_path, store, part_size=8)
            task = asyncio.ensure_future(ops.execute(operation))
            while not store.called("create_multipart_upload"):
                await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(run())

        assert store.called("abort_multipart_upload") == [
            ("bkt", "up/f.bin", "upload-1")
        ]
        assert store.uploads["upload-1"]["state"] == "aborted"
        assert store.called("upload_part") == []


class TestSyncOperations:
    """Tests for single operation execution."""

    def test_transfer_without_source(self, tmp_path):
        """Test that a transfer lacking its source object is a TransferError."""
        store = FakeObjectStore()
        operation = SyncOperation(action=SyncAction.TRANSFER, target_key="f.bin")

        async def run():
            await make_operations(tmp_path, store, part_size=8).execute(operation)

        with pytest.raises(TransferError, match="No source object") as exc_info:
            asyncio.run(run())
        assert exc_info.value.operation == operation
        assert store.mutations == []
