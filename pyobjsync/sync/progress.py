"""Progress tracking and cancellation for sync operations.

A ``TransferMonitor`` is the only state mutated by concurrently running
transfers. Counter updates happen under a lock so that neither overlapping
coroutines nor callers in other threads (a signal handler, a GUI) lose
updates.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable

from ..exceptions import CancellationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferProgress:
    """Snapshot of the monitor's counters."""

    bytes_current: int = 0
    bytes_total: int = 0
    objects_current: int = 0
    objects_total: int = 0

    @property
    def percent(self) -> float:
        """Byte based completion percentage (object based for empty transfers)."""
        if self.bytes_total:
            return 100.0 * self.bytes_current / self.bytes_total
        if self.objects_total:
            return 100.0 * self.objects_current / self.objects_total
        return 100.0


ProgressCallback = Callable[[TransferProgress], None]


class TransferMonitor:
    """Shared progress accumulator and cancellation signal.

    Examples:
        >>> monitor = TransferMonitor()
        >>> unsubscribe = monitor.subscribe(lambda p: print(p.percent))
        >>> monitor.set_totals(bytes_total=10, objects_total=1)
        0.0
        >>> monitor.add_bytes(5)
        50.0
        >>> monitor.abort()
        >>> monitor.cancelled
        True
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._bytes_current = 0
        self._bytes_total = 0
        self._objects_current = 0
        self._objects_total = 0
        self._cancelled = threading.Event()
        self._subscribers: list[ProgressCallback] = []
        self._cancel_listeners: list[Callable[[], None]] = []

    # -- progress --------------------------------------------------------

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """Register a callback receiving a snapshot after every update.

        Returns:
            Function removing the subscription
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _snapshot(self) -> TransferProgress:
        return TransferProgress(
            bytes_current=self._bytes_current,
            bytes_total=self._bytes_total,
            objects_current=self._objects_current,
            objects_total=self._objects_total,
        )

    def _update(self, bytes_delta: int = 0, objects_delta: int = 0) -> None:
        with self._lock:
            self._bytes_current += bytes_delta
            self._objects_current += objects_delta
            snapshot = self._snapshot()
            subscribers = list(self._subscribers)
        for callback in subscribers:
            callback(snapshot)

    def set_totals(self, bytes_total: int, objects_total: int) -> None:
        """Register the amount of work of the upcoming sync call.

        The current counters restart from zero, so a monitor reused across
        sync calls reports the progress of the latest call only. The
        cancellation flag is left alone; only ``reset`` clears it.
        """
        with self._lock:
            self._bytes_current = 0
            self._objects_current = 0
            self._bytes_total = bytes_total
            self._objects_total = objects_total
            snapshot = self._snapshot()
            subscribers = list(self._subscribers)
        logger.debug(
            f"Registered totals: {objects_total} object(s), {bytes_total} byte(s)"
        )
        for callback in subscribers:
            callback(snapshot)

    def add_bytes(self, count: int) -> None:
        self._update(bytes_delta=count)

    def add_objects(self, count: int = 1) -> None:
        self._update(objects_delta=count)

    @property
    def progress(self) -> TransferProgress:
        """Current counters."""
        with self._lock:
            return self._snapshot()

    # -- cancellation ----------------------------------------------------

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def abort(self) -> None:
        """Request cancellation of the running sync call.

        Only the first call has an effect; cancellation cannot be undone
        except through ``reset`` between sync calls.
        """
        with self._lock:
            if self._cancelled.is_set():
                return
            self._cancelled.set()
            listeners = list(self._cancel_listeners)
        logger.debug("Cancellation requested")
        for listener in listeners:
            listener()

    def on_cancel(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Register a listener called once when cancellation is requested.

        The listener is called immediately if cancellation already happened.

        Returns:
            Function removing the listener
        """
        with self._lock:
            already_cancelled = self._cancelled.is_set()
            if not already_cancelled:
                self._cancel_listeners.append(listener)
        if already_cancelled:
            listener()

        def remove() -> None:
            with self._lock:
                if listener in self._cancel_listeners:
                    self._cancel_listeners.remove(listener)

        return remove

    def raise_if_cancelled(self) -> None:
        """Raise CancellationError if cancellation has been requested."""
        if self._cancelled.is_set():
            raise CancellationError("Sync cancelled")

    def reset(self) -> None:
        """Clear counters and the cancellation flag for another sync call."""
        with self._lock:
            self._bytes_current = 0
            self._bytes_total = 0
            self._objects_current = 0
            self._objects_total = 0
            self._cancelled.clear()
            self._cancel_listeners.clear()
