"""Core sync engine that orchestrates object synchronization."""

import logging
import time
from pathlib import Path
from typing import Optional, Union

from ..filesystem import LocalFilesystem
from ..models import Collection
from ..output import OutputFormatter
from ..protocols import FilesystemProtocol, ObjectStoreProtocol
from ..utils import format_size
from .comparator import ObjectComparator, SyncOperation, TransferReason
from .modes import SyncScenario
from .operations import SyncOperations
from .options import SyncOptions
from .progress import TransferMonitor
from .scanner import LocalEnumerator, ObjectEnumerator, RemoteEnumerator
from .scheduler import TransferScheduler

logger = logging.getLogger(__name__)

Address = Union[str, Path, Collection]


class SyncEngine:
    """Mirrors a source collection onto a target collection."""

    def __init__(
        self,
        store: ObjectStoreProtocol,
        filesystem: Optional[FilesystemProtocol] = None,
        output: Optional[OutputFormatter] = None,
    ):
        """Initialize sync engine.

        Args:
            store: Object storage collaborator
            filesystem: Filesystem collaborator (defaults to LocalFilesystem)
            output: Output formatter for displaying plan and summary
        """
        self.store = store
        self.filesystem = filesystem or LocalFilesystem()
        self.output = output or OutputFormatter()

    async def sync(
        self,
        source: Address,
        target: Address,
        options: Optional[SyncOptions] = None,
    ) -> list[SyncOperation]:
        """Sync ``source`` into ``target``.

        Args:
            source: Source address (local path, s3:// or gw:// bucket/prefix)
            target: Target address (local path, s3:// or gw:// bucket/prefix)
            options: Sync options

        Returns:
            The operations performed, in plan order (the planned operations
            for a dry run)

        Raises:
            ConfigurationError: Invalid options or collection pair
            EnumerationError: Listing the source or target failed
            TransferError: An operation failed
            CancellationError: The monitor requested cancellation

        Examples:
            >>> engine = SyncEngine(S3ObjectStore())
            >>> options = SyncOptions(delete=True, dry_run=True)
            >>> plan = await engine.sync("./site", "s3://www/site", options)
            >>> print(f"Would transfer {sum(op.is_transfer for op in plan)}")
        """
        options = options or SyncOptions()
        options.validate()

        source_collection = Collection.parse(source)
        target_collection = Collection.parse(target)
        scenario = SyncScenario.resolve(source_collection, target_collection)
        monitor = options.monitor or TransferMonitor()

        if not self.output.quiet:
            self.output.info(f"Syncing: {source_collection} -> {target_collection}")
            self.output.info(f"Scenario: {scenario.value}")
            if options.dry_run:
                self.output.info("Dry run: No changes will be made")
            self.output.print("")

        # Step 1: Compare listings into a plan
        plan = await self.plan(source_collection, target_collection, options, monitor)
        monitor.set_totals(
            bytes_total=sum(op.size for op in plan), objects_total=len(plan)
        )
        self._display_sync_plan(plan)

        if options.dry_run or not plan:
            if not self.output.quiet:
                self._display_summary(plan, dry_run=options.dry_run)
            return plan

        # Step 2: Execute
        start = time.time()
        scheduler = TransferScheduler(monitor, options.max_concurrent_transfers)
        operations = SyncOperations(
            scenario=scenario,
            source=source_collection,
            target=target_collection,
            store=self.store,
            filesystem=self.filesystem,
            slots=scheduler.slots,
            monitor=monitor,
            part_size=options.part_size,
            metadata=options.metadata,
        )
        await scheduler.run(plan, operations.execute)
        logger.debug(f"Executed {len(plan)} operation(s) in {time.time() - start:.2f}s")

        if not self.output.quiet:
            self._display_summary(plan, dry_run=False)
        return plan

    async def plan(
        self,
        source: Collection,
        target: Collection,
        options: SyncOptions,
        monitor: Optional[TransferMonitor] = None,
    ) -> list[SyncOperation]:
        """Compute the operation plan without executing it."""
        start = time.time()
        comparator = ObjectComparator(
            filter_chain=options.filter_chain(),
            key_mapper=options.key_mapper(),
            size_only=options.size_only,
            delete=options.delete,
        )
        plan = [
            operation
            async for operation in comparator.compare(
                self.enumerator(source, monitor),
                self.enumerator(target, monitor, is_target=True),
            )
        ]
        logger.debug(
            f"Planned {len(plan)} operation(s) in {time.time() - start:.2f}s"
        )
        return plan

    def enumerator(
        self,
        collection: Collection,
        monitor: Optional[TransferMonitor] = None,
        is_target: bool = False,
    ) -> ObjectEnumerator:
        """Create the enumerator matching a collection."""
        if collection.is_local:
            # A local target directory is created on first download
            return LocalEnumerator(
                collection, self.filesystem, monitor, missing_ok=is_target
            )
        return RemoteEnumerator(collection, self.store, monitor)

    def _display_sync_plan(self, plan: list[SyncOperation]) -> None:
        """Display the sync plan to the user."""
        if self.output.quiet:
            return

        counts = {reason: 0 for reason in TransferReason}
        deletes = 0
        for operation in plan:
            if operation.reason is not None:
                counts[operation.reason] += 1
            else:
                deletes += 1

        self.output.info("Sync plan:")
        if counts[TransferReason.NOT_IN_TARGET]:
            self.output.info(
                f"  + New: {counts[TransferReason.NOT_IN_TARGET]} object(s)"
            )
        if counts[TransferReason.SIZE_DIFFERS]:
            self.output.info(
                f"  ~ Size changed: {counts[TransferReason.SIZE_DIFFERS]} object(s)"
            )
        if counts[TransferReason.TIMESTAMP_NEWER]:
            self.output.info(
                f"  ~ Newer: {counts[TransferReason.TIMESTAMP_NEWER]} object(s)"
            )
        if deletes:
            self.output.info(f"  ✗ Delete: {deletes} object(s)")
        total_bytes = sum(operation.size for operation in plan)
        if total_bytes:
            self.output.info(f"  Transfer size: {format_size(total_bytes)}")
        self.output.print("")

    def _display_summary(self, plan: list[SyncOperation], dry_run: bool) -> None:
        """Display sync summary."""
        if dry_run:
            self.output.success("Dry run complete!")
        else:
            self.output.success("Sync complete!")

        if not plan:
            self.output.info("No changes needed - everything is in sync!")
            return

        transfers = sum(1 for operation in plan if operation.is_transfer)
        deletes = len(plan) - transfers
        self.output.info(f"Total operations: {len(plan)}")
        if transfers:
            self.output.info(f"  Transferred: {transfers}")
        if deletes:
            self.output.info(f"  Deleted: {deletes}")
