"""Archive sink backed by fsspec.

Resolves the destination URI with ``fsspec.core.url_to_fs`` so the same
code writes to a local directory, ``file://`` or a distributed filesystem
(``hdfs://``, ``s3://``) when the matching fsspec implementation is
installed.  The copy is blocking and runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import shutil
from pathlib import PurePosixPath
from typing import BinaryIO

import fsspec
import structlog

from filerepo.interfaces.archive_sink import IArchiveSink
from filerepo.utils.errors import ArchiveError

logger = structlog.get_logger(logger_name=__name__)

_CHUNK_SIZE = 1024 * 1024


class FsspecArchiveSink(IArchiveSink):
    """Write archives to any filesystem fsspec can address."""

    async def write_archive(self, uri: str, stream: BinaryIO) -> int:
        try:
            written = await asyncio.to_thread(self._copy, uri, stream)
        except (OSError, ValueError, ImportError) as exc:
            raise ArchiveError(
                message=f"Could not write archive {uri}: {exc}",
                source_name=self.get_provider_name(),
            ) from exc
        logger.info("archive_written", uri=uri, bytes=written)
        return written

    @staticmethod
    def _copy(uri: str, stream: BinaryIO) -> int:
        fs, path = fsspec.core.url_to_fs(uri)
        parent = str(PurePosixPath(path).parent)
        if parent:
            fs.makedirs(parent, exist_ok=True)
        with fs.open(path, "wb") as target:
            shutil.copyfileobj(stream, target, _CHUNK_SIZE)
            written = target.tell()
        return written

    def get_provider_name(self) -> str:
        return "fsspec"
