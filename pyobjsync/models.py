"""Data models shared by the storage collaborators and the sync engine."""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

from .exceptions import ConfigurationError
from .utils import parse_iso_timestamp

S3_SCHEME = "s3"
GATEWAY_SCHEME = "gw"
REMOTE_SCHEMES = (S3_SCHEME, GATEWAY_SCHEME)


@dataclass(frozen=True)
class ObjectDescriptor:
    """An object found in a collection.

    Identity is ``key`` within one collection. Descriptors are produced by
    enumerators and never mutated.
    """

    key: str
    """Key relative to the collection root (forward slashes)"""

    size: int
    """Size in bytes"""

    last_modified: datetime
    """Last modification time (timezone aware, UTC)"""

    is_local: bool = False
    """True if the object lives on the local filesystem"""

    def __post_init__(self) -> None:
        if self.size < 0:
            raise ValueError(f"Object size cannot be negative: {self.key}")


@dataclass(frozen=True)
class Collection:
    """A filesystem subtree or a bucket + key prefix.

    Examples:
        >>> Collection.parse("s3://photos/2024").key_prefix
        '2024/'
        >>> Collection.parse("gw://photos").scheme
        'gw'
        >>> Collection.parse("./local/dir").is_local
        True
    """

    root: str
    """Local directory path or bucket name"""

    key_prefix: str = ""
    """Key prefix inside the bucket ('' or ending with '/'); unused for local"""

    is_local: bool = True

    scheme: str = ""
    """Remote store scheme: 's3' (boto3) or 'gw' (HTTP gateway); '' for local"""

    @classmethod
    def local(cls, path: Union[str, Path]) -> "Collection":
        return cls(root=str(path), key_prefix="", is_local=True)

    @classmethod
    def remote(
        cls, bucket: str, prefix: str = "", scheme: str = S3_SCHEME
    ) -> "Collection":
        if not bucket or "/" in bucket:
            raise ConfigurationError(f"Invalid bucket name: {bucket!r}")
        if scheme not in REMOTE_SCHEMES:
            raise ConfigurationError(f"Unsupported remote scheme: {scheme!r}")
        prefix = prefix.strip("/")
        return cls(
            root=bucket,
            key_prefix=f"{prefix}/" if prefix else "",
            is_local=False,
            scheme=scheme,
        )

    @classmethod
    def parse(cls, address: Union[str, Path, "Collection"]) -> "Collection":
        """Build a collection from a caller supplied address.

        ``s3://bucket[/prefix]`` addresses an S3 bucket and
        ``gw://bucket[/prefix]`` a bucket behind the HTTP gateway. Anything
        without a scheme is treated as a local directory.
        """
        if isinstance(address, Collection):
            return address
        if isinstance(address, Path):
            return cls.local(address)
        if not address:
            raise ConfigurationError("Empty collection address")
        scheme, sep, rest = address.partition("://")
        if sep and scheme in REMOTE_SCHEMES:
            bucket, _, prefix = rest.partition("/")
            return cls.remote(bucket, prefix, scheme)
        if sep:
            raise ConfigurationError(f"Unsupported collection address: {address}")
        return cls.local(address)

    @property
    def path(self) -> Path:
        """Local directory of a local collection."""
        return Path(self.root)

    def full_key(self, key: str) -> str:
        """Storage key of a collection-relative key (remote collections)."""
        return f"{self.key_prefix}{key}"

    def __str__(self) -> str:
        if self.is_local:
            return self.root
        return f"{self.scheme}://{self.root}/{self.key_prefix}"


@dataclass
class ListPage:
    """One page of a remote listing."""

    entries: list[ObjectDescriptor] = field(default_factory=list)
    """Objects on this page, keys are full storage keys"""

    next_token: Optional[str] = None
    """Continuation token, None when the listing is exhausted"""

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "ListPage":
        """Create a ListPage from a gateway listing response.

        Args:
            data: Response JSON with "entries" and optional "next_cursor"

        Returns:
            ListPage instance
        """
        entries = []
        for item in data.get("entries", []):
            last_modified = parse_iso_timestamp(item.get("last_modified"))
            if last_modified is None:
                raise ValueError(
                    f"Missing or invalid last_modified for {item.get('key')!r}"
                )
            entries.append(
                ObjectDescriptor(
                    key=item["key"],
                    size=int(item.get("size", 0)),
                    last_modified=last_modified,
                    is_local=False,
                )
            )
        return cls(entries=entries, next_token=data.get("next_cursor") or None)
