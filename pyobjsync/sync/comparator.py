"""Diff engine: compares source and target listings into an operation plan."""

import logging
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..models import ObjectDescriptor
from .filters import FilterChain
from .relocation import KeyMapper

logger = logging.getLogger(__name__)


class SyncAction(str, Enum):
    """Actions that can be planned during sync."""

    TRANSFER = "transfer"
    """Create or update the target object from the source object"""

    DELETE = "delete"
    """Delete the target object"""


class TransferReason(str, Enum):
    """Why a transfer was planned."""

    NOT_IN_TARGET = "not_in_target"
    SIZE_DIFFERS = "size_differs"
    TIMESTAMP_NEWER = "timestamp_newer"


@dataclass(frozen=True)
class SyncOperation:
    """A planned operation. Produced by the comparator, executed once."""

    action: SyncAction
    """Action to take"""

    target_key: str
    """Key of the object in the target collection"""

    source: Optional[ObjectDescriptor] = None
    """Source object (transfers only)"""

    reason: Optional[TransferReason] = None
    """Why the transfer is needed (transfers only)"""

    target: Optional[ObjectDescriptor] = None
    """Existing target object, if any"""

    @classmethod
    def transfer(
        cls,
        source: ObjectDescriptor,
        target_key: str,
        reason: TransferReason,
        target: Optional[ObjectDescriptor] = None,
    ) -> "SyncOperation":
        return cls(
            action=SyncAction.TRANSFER,
            target_key=target_key,
            source=source,
            reason=reason,
            target=target,
        )

    @classmethod
    def delete(cls, target: ObjectDescriptor) -> "SyncOperation":
        return cls(action=SyncAction.DELETE, target_key=target.key, target=target)

    @property
    def is_transfer(self) -> bool:
        return self.action is SyncAction.TRANSFER

    @property
    def size(self) -> int:
        """Bytes moved by this operation."""
        return self.source.size if self.source is not None else 0

    def to_dict(self) -> dict:
        """Convert to a dictionary for JSON output."""
        data: dict = {"action": self.action.value, "target_key": self.target_key}
        if self.source is not None:
            data["source_key"] = self.source.key
            data["size"] = self.source.size
        if self.reason is not None:
            data["reason"] = self.reason.value
        return data

    def __str__(self) -> str:
        if not self.is_transfer:
            return f"delete {self.target_key}"
        source_key = self.source.key if self.source is not None else "?"
        reason = self.reason.value if self.reason is not None else "unknown"
        return f"transfer {source_key} -> {self.target_key} ({reason})"


async def _next(iterator: AsyncIterator) -> Optional[object]:
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return None


class ObjectComparator:
    """Merges source and target listings into a stream of SyncOperations.

    Both inputs must be in ascending key order. Source keys are filtered
    with the filter chain (on original keys) and then relocated; the target
    is taken as is.
    """

    def __init__(
        self,
        filter_chain: Optional[FilterChain] = None,
        key_mapper: Optional[KeyMapper] = None,
        size_only: bool = False,
        delete: bool = False,
    ):
        """Initialize the comparator.

        Args:
            filter_chain: Rules deciding which source keys take part
            key_mapper: Relocation of source keys to target keys
            size_only: Compare sizes only, ignoring timestamps
            delete: Plan deletes for target objects missing from the source
        """
        self.filter_chain = filter_chain or FilterChain()
        self.key_mapper = key_mapper or KeyMapper()
        self.size_only = size_only
        self.delete = delete

    def compare_objects(
        self, source: ObjectDescriptor, target: ObjectDescriptor
    ) -> Optional[TransferReason]:
        """Decide whether an object present on both sides must be transferred.

        Returns:
            The transfer reason, or None if the objects are considered equal
        """
        if source.size != target.size:
            return TransferReason.SIZE_DIFFERS
        if self.size_only:
            return None
        if source.last_modified > target.last_modified:
            return TransferReason.TIMESTAMP_NEWER
        return None

    async def _mapped_source(
        self, source: AsyncIterable[ObjectDescriptor]
    ) -> AsyncIterator[tuple[str, ObjectDescriptor, bool]]:
        """Source objects as (target_key, descriptor, accepted), ascending.

        Rejected objects stay in the stream so that the target object with
        the same key is neither transferred nor deleted.
        """
        if self.key_mapper.preserves_order:
            async for descriptor in source:
                yield (
                    descriptor.key,
                    descriptor,
                    self.filter_chain.accepts(descriptor.key),
                )
            return

        # Relocation can move keys anywhere in the key space, so the
        # relocated listing has to be re-sorted before merging.
        mapped: list[tuple[str, ObjectDescriptor, bool]] = []
        async for descriptor in source:
            mapped.append(
                (
                    self.key_mapper.map(descriptor.key),
                    descriptor,
                    self.filter_chain.accepts(descriptor.key),
                )
            )
        # Accepted objects sort first among objects sharing a target key
        mapped.sort(key=lambda item: (item[0], not item[2]))

        previous: Optional[str] = None
        for target_key, descriptor, accepted in mapped:
            if target_key == previous:
                if accepted:
                    logger.warning(
                        f"Skipping {descriptor.key}: relocated to {target_key}, "
                        "which another source object already maps to"
                    )
                continue
            previous = target_key
            yield target_key, descriptor, accepted

    async def compare(
        self,
        source: AsyncIterable[ObjectDescriptor],
        target: AsyncIterable[ObjectDescriptor],
    ) -> AsyncIterator[SyncOperation]:
        """Yield the operations turning ``target`` into a mirror of ``source``.

        Operations come out in ascending target key order, transfers and
        deletes interleaved as the merge meets them. Source objects rejected
        by the filter chain produce no operation, and neither does the
        target object they map to.
        """
        source_iter = self._mapped_source(source).__aiter__()
        target_iter = target.__aiter__()

        src = await _next(source_iter)
        dst = await _next(target_iter)
        skipped = 0
        excluded = 0

        while src is not None or dst is not None:
            if dst is None or (src is not None and src[0] < dst.key):
                target_key, descriptor, accepted = src
                if accepted:
                    yield SyncOperation.transfer(
                        descriptor, target_key, TransferReason.NOT_IN_TARGET
                    )
                else:
                    excluded += 1
                src = await _next(source_iter)
            elif src is None or dst.key < src[0]:
                if self.delete:
                    yield SyncOperation.delete(dst)
                dst = await _next(target_iter)
            else:
                target_key, descriptor, accepted = src
                if not accepted:
                    excluded += 1
                else:
                    reason = self.compare_objects(descriptor, dst)
                    if reason is not None:
                        yield SyncOperation.transfer(
                            descriptor, target_key, reason, dst
                        )
                    else:
                        skipped += 1
                src = await _next(source_iter)
                dst = await _next(target_iter)

        logger.debug(
            f"Comparison complete, {skipped} unchanged object(s), "
            f"{excluded} excluded by filters"
        )
