"""Bounded-concurrency execution of an operation plan."""

import asyncio
import logging
from collections.abc import Awaitable, Iterable
from typing import Callable, Optional

from ..exceptions import CancellationError
from ..utils import DEFAULT_MAX_CONCURRENT_TRANSFERS
from .comparator import SyncOperation
from .progress import TransferMonitor

logger = logging.getLogger(__name__)

OperationExecutor = Callable[[SyncOperation], Awaitable[None]]


class TransferScheduler:
    """Runs operations as concurrent tasks on the current event loop.

    At most ``max_concurrent`` operations are started at a time and at most
    ``max_concurrent`` collaborator calls hold a transfer slot at a time;
    multipart parts draw from the same slots. The first failing operation
    cancels all others and its error is raised.
    """

    def __init__(
        self,
        monitor: TransferMonitor,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT_TRANSFERS,
    ):
        """Initialize the scheduler.

        Args:
            monitor: Monitor providing the cancellation signal
            max_concurrent: Maximum number of operations in flight
        """
        self.monitor = monitor
        self.max_concurrent = max_concurrent
        self.slots = asyncio.Semaphore(max_concurrent)

    async def run(
        self, plan: Iterable[SyncOperation], execute: OperationExecutor
    ) -> list[SyncOperation]:
        """Execute the plan.

        Args:
            plan: Operations in plan order
            execute: Coroutine function executing one operation

        Returns:
            Operations in completion order

        Raises:
            CancellationError: If the monitor requested cancellation
            TransferError: First error of a failed operation
        """
        loop = asyncio.get_running_loop()
        cancel_requested = asyncio.Event()
        # abort() may be called from another thread (e.g. a signal handler)
        remove_listener = self.monitor.on_cancel(
            lambda: loop.call_soon_threadsafe(cancel_requested.set)
        )
        watcher = asyncio.ensure_future(cancel_requested.wait())

        queue = iter(plan)
        exhausted = False
        running: dict[asyncio.Future, SyncOperation] = {}
        completed: list[SyncOperation] = []
        failure: Optional[BaseException] = None

        try:
            while True:
                while (
                    failure is None
                    and not exhausted
                    and not self.monitor.cancelled
                    and len(running) < self.max_concurrent
                ):
                    operation = next(queue, None)
                    if operation is None:
                        exhausted = True
                        break
                    logger.debug(f"Starting {operation}")
                    running[asyncio.ensure_future(execute(operation))] = operation

                if not running or failure is not None or self.monitor.cancelled:
                    break

                done, _ = await asyncio.wait(
                    [watcher, *running], return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    if task is watcher:
                        continue
                    operation = running.pop(task)
                    if task.cancelled():
                        continue
                    error = task.exception()
                    if error is None:
                        completed.append(operation)
                    elif failure is None:
                        logger.debug(f"Failed {operation}: {error}")
                        failure = error
        finally:
            remove_listener()
            watcher.cancel()
            if running:
                logger.debug(f"Cancelling {len(running)} in-flight operation(s)")
                for task in running:
                    task.cancel()
                await asyncio.gather(*running, return_exceptions=True)

        if failure is not None and not isinstance(failure, CancellationError):
            raise failure
        if failure is not None or self.monitor.cancelled:
            raise CancellationError(
                f"Sync cancelled after {len(completed)} completed operation(s)"
            )
        return completed
