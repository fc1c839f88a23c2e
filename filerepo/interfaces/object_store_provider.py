"""Abstract base class for object-storage listing providers.

Read-only contract used by bucket-backed adapters to enumerate the
objects physically present in a repository.  Implementations may wrap
AWS S3, an S3-compatible store (Ceph, MinIO) or a local directory.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator


@dataclass(frozen=True)
class ObjectSummary:
    """A single entry of a bucket listing.

    Attributes
    ----------
    key:
        Full object key within the bucket.
    size:
        Object size in bytes.
    checksum:
        Provider checksum (S3 ETag without quotes); for single-part uploads
        this is the MD5 digest.
    last_modified:
        Last modification time reported by the store.
    """

    key: str
    size: int
    checksum: str | None = None
    last_modified: datetime | None = None


# Concrete implementation: S3ObjectStoreProvider (filerepo/providers/object_store/)
class IObjectStoreProvider(ABC):
    """Contract for streaming bucket listings."""

    @abstractmethod
    def list_objects(self, prefix: str = "") -> AsyncIterator[ObjectSummary]:
        """Stream every object whose key starts with *prefix*.

        Implementations page through the listing and yield page by page;
        they must not buffer the whole bucket in memory.

        Raises
        ------
        filerepo.utils.errors.SourceUnavailableError
            If the listing cannot be read.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"s3"``."""
