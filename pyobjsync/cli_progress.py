"""CLI progress display for sync operations.

This module provides a Rich-based progress display fed by the
TransferMonitor of a running sync call.
"""

from typing import Callable, Optional

from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
    TransferSpeedColumn,
)

from .sync.progress import TransferMonitor, TransferProgress


class SyncProgressDisplay:
    """Rich-based progress display for sync operations.

    The display shows transferred bytes against the registered total and
    the number of completed objects:
    - Objects: completed operations / planned operations
    - Bytes: transferred bytes / bytes of all planned transfers
    """

    def __init__(self, monitor: TransferMonitor) -> None:
        """Initialize the progress display.

        Args:
            monitor: Monitor of the sync call to display
        """
        self.monitor = monitor
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @staticmethod
    def _format_objects(info: TransferProgress) -> str:
        return f"{info.objects_current}/{info.objects_total} objects"

    def _handle_progress(self, info: TransferProgress) -> None:
        """Handle a progress snapshot from the monitor.

        Args:
            info: Progress snapshot
        """
        if self._progress is None or self._task is None:
            return
        self._progress.update(
            self._task,
            total=info.bytes_total or None,
            completed=info.bytes_current,
            objects_info=self._format_objects(info),
        )

    def __enter__(self) -> "SyncProgressDisplay":
        """Enter context manager - start progress display."""
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            DownloadColumn(),
            TextColumn("[cyan]{task.fields[objects_info]}"),
            TransferSpeedColumn(),
            TimeElapsedColumn(),
            refresh_per_second=4,
        )
        self._progress.__enter__()
        self._task = self._progress.add_task(
            "Syncing", total=None, objects_info="0/0 objects"
        )
        self._unsubscribe = self.monitor.subscribe(self._handle_progress)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager - stop progress display."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._progress is not None:
            if self._task is not None:
                description = "Sync complete" if exc_type is None else "Sync stopped"
                self._progress.update(self._task, description=description)
            self._progress.__exit__(exc_type, exc_val, exc_tb)
            self._progress = None
            self._task = None
