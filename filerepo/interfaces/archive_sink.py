"""Abstract base class for archive sinks."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import BinaryIO


# Concrete implementation: FsspecArchiveSink (filerepo/providers/archive/)
class IArchiveSink(ABC):
    """Contract for durable storage of compressed corpus exports."""

    @abstractmethod
    async def write_archive(self, uri: str, stream: BinaryIO) -> int:
        """Copy *stream* to *uri* and return the number of bytes written.

        *uri* may be a local path or any filesystem URI the implementation
        supports (``file://``, ``hdfs://``, ``s3://``, ...).

        Raises
        ------
        filerepo.utils.errors.ArchiveError
            If the destination cannot be written.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"fsspec"``."""
