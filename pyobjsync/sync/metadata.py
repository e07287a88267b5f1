"""Per-object metadata for uploads and copies.

Each field is either a fixed value or a callable ``(key, descriptor)``
evaluated when the operation executes, e.g. a content type derived from
the key.
"""

import mimetypes
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Optional, Union

from ..models import ObjectDescriptor

MetadataValue = Union[Any, Callable[[str, ObjectDescriptor], Any]]


def guess_content_type(key: str, descriptor: Optional[ObjectDescriptor] = None) -> str:
    """Guess a MIME type from the key's extension.

    Defaults to 'application/octet-stream' if the extension is unknown.
    """
    mime_type, _ = mimetypes.guess_type(key)
    return mime_type or "application/octet-stream"


@dataclass
class MetadataOptions:
    """Metadata applied to objects written to remote collections."""

    content_type: MetadataValue = None
    cache_control: MetadataValue = None
    content_disposition: MetadataValue = None
    content_encoding: MetadataValue = None
    storage_class: MetadataValue = None
    metadata: MetadataValue = field(default=None)
    """User metadata dict (or a callable returning one)"""

    def resolve(self, key: str, descriptor: ObjectDescriptor) -> dict[str, Any]:
        """Evaluate every field for one pending operation.

        Args:
            key: Target key of the operation
            descriptor: Source object of the operation

        Returns:
            Dictionary of the fields that resolved to a value
        """
        resolved: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if callable(value):
                value = value(key, descriptor)
            if value is not None:
                resolved[f.name] = value
        return resolved
