"""Options of a sync call."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Optional

from ..exceptions import ConfigurationError
from ..utils import DEFAULT_MAX_CONCURRENT_TRANSFERS, DEFAULT_PART_SIZE
from .filters import FilterChain, FilterRule
from .metadata import MetadataOptions
from .progress import TransferMonitor
from .relocation import KeyMapper, RelocationLike


@dataclass
class SyncOptions:
    """Caller supplied options of ``SyncEngine.sync``."""

    delete: bool = False
    """Delete target objects that no longer exist in the source"""

    dry_run: bool = False
    """Only compute the operation plan"""

    size_only: bool = False
    """Compare objects by size only"""

    filters: Sequence[FilterRule] = field(default_factory=list)
    """Include/exclude rules, last match wins"""

    relocations: Sequence[RelocationLike] = field(default_factory=list)
    """(source_prefix, target_prefix) rewrites, first match wins"""

    max_concurrent_transfers: int = DEFAULT_MAX_CONCURRENT_TRANSFERS
    """Upper bound of operations and parts in flight"""

    part_size: int = DEFAULT_PART_SIZE
    """Objects larger than this are uploaded in parts of this size"""

    metadata: MetadataOptions = field(default_factory=MetadataOptions)
    """Metadata for objects written to remote collections"""

    monitor: Optional[TransferMonitor] = None
    """Progress and cancellation handle observable by the caller"""

    def validate(self) -> None:
        """Check option values before any I/O happens.

        Raises:
            ConfigurationError: If an option is invalid
        """
        if isinstance(self.part_size, bool) or not isinstance(self.part_size, int):
            raise ConfigurationError(f"part_size must be an integer: {self.part_size!r}")
        if self.part_size <= 0:
            raise ConfigurationError(f"part_size must be positive: {self.part_size}")
        if isinstance(self.max_concurrent_transfers, bool) or not isinstance(
            self.max_concurrent_transfers, int
        ):
            raise ConfigurationError(
                "max_concurrent_transfers must be an integer: "
                f"{self.max_concurrent_transfers!r}"
            )
        if self.max_concurrent_transfers < 1:
            raise ConfigurationError(
                "max_concurrent_transfers must be at least 1: "
                f"{self.max_concurrent_transfers}"
            )
        if self.monitor is not None and not isinstance(self.monitor, TransferMonitor):
            raise ConfigurationError(f"Not a TransferMonitor: {self.monitor!r}")
        if not isinstance(self.metadata, MetadataOptions):
            raise ConfigurationError(f"Not a MetadataOptions: {self.metadata!r}")
        # Building these validates every rule and relocation
        self.filter_chain()
        self.key_mapper()

    def filter_chain(self) -> FilterChain:
        return FilterChain(self.filters)

    def key_mapper(self) -> KeyMapper:
        return KeyMapper(self.relocations)
