"""Sync scenarios derived from the shape of the two collections."""

from enum import Enum

from ..exceptions import ConfigurationError
from ..models import Collection


class SyncScenario(str, Enum):
    """Direction of a sync call."""

    LOCAL_TO_REMOTE = "localToRemote"
    """Upload a local directory to a bucket prefix"""

    REMOTE_TO_LOCAL = "remoteToLocal"
    """Download a bucket prefix to a local directory"""

    REMOTE_TO_REMOTE = "remoteToRemote"
    """Server side copy between bucket prefixes"""

    @classmethod
    def resolve(cls, source: Collection, target: Collection) -> "SyncScenario":
        """Pick the scenario for a source/target pair.

        Raises:
            ConfigurationError: If both collections are local, or both are
                remote but served by different stores
        """
        if source.is_local and target.is_local:
            raise ConfigurationError(
                "Local to local sync is not supported: "
                "at least one collection must be remote (s3://bucket/prefix)"
            )
        both_remote = not (source.is_local or target.is_local)
        if both_remote and source.scheme != target.scheme:
            raise ConfigurationError(
                f"Cannot sync between {source.scheme}:// and {target.scheme}:// "
                "collections: server side copy needs a single store"
            )
        if source.is_local:
            return cls.LOCAL_TO_REMOTE
        if target.is_local:
            return cls.REMOTE_TO_LOCAL
        return cls.REMOTE_TO_REMOTE

    @property
    def source_is_local(self) -> bool:
        return self == SyncScenario.LOCAL_TO_REMOTE

    @property
    def target_is_local(self) -> bool:
        return self == SyncScenario.REMOTE_TO_LOCAL

    @property
    def uses_multipart(self) -> bool:
        """Whether large objects are uploaded in parts."""
        return self == SyncScenario.LOCAL_TO_REMOTE
