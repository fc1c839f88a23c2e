"""Point-in-time corpus export as a gzip-compressed tar.

Layout of an archive for generation ``<g>``::

    <g>/_settings          index settings (name, alias, creation time)
    <g>/<type>/_mapping    field mapping of one document type
    <g>/<type>/<id>        one JSON entry per search document

where ``<type>`` is ``file``, ``donor`` or ``repository``.

The tar is spooled to a temporary file (in memory until it grows large)
and handed to an :class:`~filerepo.interfaces.archive_sink.IArchiveSink`
as a readable binary stream.
"""

from __future__ import annotations

import io
import json
import tarfile
import tempfile
from typing import Any, BinaryIO

import structlog

from filerepo.services.document_transformer import (
    DOCUMENT_TYPES,
    FILE_DOCUMENT_TYPE,
    SEARCH_DOCUMENT_MAPPING,
)

logger = structlog.get_logger(logger_name=__name__)

SETTINGS_ENTRY = "_settings"
MAPPING_ENTRY = "_mapping"

# Spool in memory up to this size before rolling over to disk.
_SPOOL_MAX_BYTES = 16 * 1024 * 1024


class ArchiveWriter:
    """Writes one generation's documents into a ``.tar.gz`` stream.

    Parameters
    ----------
    generation:
        Index generation name; every entry is nested under it.
    settings:
        JSON-compatible index settings stored as the ``_settings`` entry.
    """

    def __init__(self, generation: str, settings: dict[str, Any] | None = None) -> None:
        self._generation = generation
        self._settings = settings or {}
        self._buffer = tempfile.SpooledTemporaryFile(max_size=_SPOOL_MAX_BYTES)
        self._tar = tarfile.open(fileobj=self._buffer, mode="w:gz")
        self._count = 0
        self._counts: dict[str, int] = {}
        self._closed = False
        self._add_meta_entries()

    def count_of(self, doc_type: str) -> int:
        return self._counts.get(doc_type, 0)

    def _add_meta_entries(self) -> None:
        self._add_entry(SETTINGS_ENTRY, self._settings)
        for doc_type in DOCUMENT_TYPES:
            self._add_entry(f"{doc_type}/{MAPPING_ENTRY}", SEARCH_DOCUMENT_MAPPING[doc_type])

    def _add_entry(self, name: str, source: dict[str, Any]) -> None:
        payload = json.dumps(source, sort_keys=True).encode("utf-8")
        info = tarfile.TarInfo(name=f"{self._generation}/{name}")
        info.size = len(payload)
        self._tar.addfile(info, io.BytesIO(payload))

    def write(self, document: dict[str, Any], doc_type: str = FILE_DOCUMENT_TYPE) -> None:
        """Add one search document (must carry an ``id``) of type *doc_type*."""
        self._add_entry(f"{doc_type}/{document['id']}", document)
        self._count += 1
        self._counts[doc_type] = self._counts.get(doc_type, 0) + 1

    def finish(self) -> BinaryIO:
        """Close the tar and return the compressed stream rewound to the start."""
        if not self._closed:
            self._tar.close()
            self._closed = True
            self._buffer.seek(0)
            logger.debug("archive_finished", generation=self._generation, documents=self._count)
        return self._buffer  # type: ignore[return-value]

    def close(self) -> None:
        if not self._closed:
            self._tar.close()
            self._closed = True
        self._buffer.close()

    def __enter__(self) -> ArchiveWriter:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
