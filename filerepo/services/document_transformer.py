"""Canonical record to search document transformation.

:func:`to_search_document` is a pure function applied per record during
the TRANSFORM phase.  It denormalizes donor and project linkage into flat
lists, flattens object locations and builds a single ``text`` field for
free-text search.

Two further document types are derived from the whole corpus rather than
from one record: a ``donor`` document per donor aggregating the linkage of
every file that references it, and a ``repository`` document per configured
repository endpoint.  :class:`CorpusSummary` accumulates both while the
records stream past.  :data:`SEARCH_DOCUMENT_MAPPING` describes the fields
of each type and is written next to the documents in every corpus archive.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any

from filerepo.models.files import CanonicalFile, DonorRef
from filerepo.models.repository import RepositoryServer

FILE_DOCUMENT_TYPE = "file"
DONOR_DOCUMENT_TYPE = "donor"
REPOSITORY_DOCUMENT_TYPE = "repository"

DOCUMENT_TYPES: tuple[str, ...] = (FILE_DOCUMENT_TYPE, DONOR_DOCUMENT_TYPE, REPOSITORY_DOCUMENT_TYPE)

SEARCH_DOCUMENT_MAPPING: dict[str, Any] = {
    FILE_DOCUMENT_TYPE: {
        "properties": {
            "id": {"type": "keyword"},
            "object_id": {"type": "keyword"},
            "source": {"type": "keyword"},
            "file_name": {"type": "keyword"},
            "file_format": {"type": "keyword"},
            "size": {"type": "long"},
            "checksum": {"type": "keyword"},
            "data_bundle_id": {"type": "keyword"},
            "data_category": {"type": "keyword"},
            "experimental_strategy": {"type": "keyword"},
            "analysis_workflow": {"type": "keyword"},
            "analysis_category": {"type": "keyword"},
            "project_codes": {"type": "keyword"},
            "donor_ids": {"type": "keyword"},
            "submitted_donor_ids": {"type": "keyword"},
            "specimen_types": {"type": "keyword"},
            "repository_codes": {"type": "keyword"},
            "endpoints": {"type": "keyword"},
            "paths": {"type": "keyword"},
            "protocols": {"type": "keyword"},
            "index_file_name": {"type": "keyword"},
            "last_modified": {"type": "date"},
            "imported_at": {"type": "date"},
            "text": {"type": "text"},
        }
    },
    DONOR_DOCUMENT_TYPE: {
        "properties": {
            "id": {"type": "keyword"},
            "donor_id": {"type": "keyword"},
            "submitted_donor_ids": {"type": "keyword"},
            "project_codes": {"type": "keyword"},
            "specimen_types": {"type": "keyword"},
            "submitted_specimen_ids": {"type": "keyword"},
            "submitted_sample_ids": {"type": "keyword"},
            "sources": {"type": "keyword"},
            "repository_codes": {"type": "keyword"},
            "file_ids": {"type": "keyword"},
            "file_count": {"type": "long"},
            "text": {"type": "text"},
        }
    },
    REPOSITORY_DOCUMENT_TYPE: {
        "properties": {
            "id": {"type": "keyword"},
            "code": {"type": "keyword"},
            "name": {"type": "keyword"},
            "base_url": {"type": "keyword"},
            "protocol": {"type": "keyword"},
            "country": {"type": "keyword"},
            "sources": {"type": "keyword"},
            "file_count": {"type": "long"},
            "text": {"type": "text"},
        }
    },
}


def _unique(values: list[str | None]) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        if value:
            seen.setdefault(value, None)
    return list(seen)


def to_search_document(file: CanonicalFile | dict[str, Any]) -> dict[str, Any]:
    """Flatten one canonical record into a search document.

    Parameters
    ----------
    file:
        A :class:`CanonicalFile` or its stored document form.

    Returns
    -------
    dict[str, Any]
        JSON-compatible search document whose ``id`` is the record's
        ``"<source>/<identity>"`` key.
    """
    if isinstance(file, dict):
        file = CanonicalFile.from_document(file)

    donors = file.donor_refs
    locations = file.object_locations
    project_codes = _unique([file.project_code] + [d.project_code for d in donors])
    donor_ids = _unique([d.donor_id for d in donors])
    submitted_donor_ids = _unique([d.submitted_donor_id for d in donors])

    document: dict[str, Any] = {
        "id": file.document_key,
        "object_id": file.identity,
        "source": file.source_system.value,
        "file_name": file.file_name,
        "file_format": file.file_format,
        "size": file.size,
        "checksum": file.checksum.digest if file.checksum else None,
        "data_bundle_id": file.data_bundle_id,
        "data_category": file.data_category,
        "experimental_strategy": file.experimental_strategy,
        "analysis_workflow": file.analysis_workflow,
        "analysis_category": file.analysis_category.value if file.analysis_category else None,
        "project_codes": project_codes,
        "donor_ids": donor_ids,
        "submitted_donor_ids": submitted_donor_ids,
        "specimen_types": _unique([d.specimen_type for d in donors]),
        "repository_codes": _unique([loc.repository_code for loc in locations]),
        "endpoints": _unique([loc.endpoint for loc in locations]),
        "paths": _unique([loc.path for loc in locations]),
        "protocols": _unique([loc.protocol.value for loc in locations]),
        "index_file_name": file.index_file.file_name if file.index_file else None,
        "last_modified": file.last_modified.isoformat() if file.last_modified else None,
        "imported_at": file.imported_at.isoformat() if file.imported_at else None,
    }
    document["text"] = " ".join(
        _unique(
            [file.identity, file.file_name, file.data_bundle_id]
            + project_codes
            + donor_ids
            + submitted_donor_ids
        )
    )
    return document


def donor_key(donor: DonorRef, project_code: str | None = None) -> str | None:
    """Return the donor document id for *donor*, or ``None`` if it names no donor.

    The ICGC donor id is used when the source supplied one; otherwise the
    submitter's id qualified by project (``"<project>/<submitted id>"``).
    """
    if donor.donor_id:
        return donor.donor_id
    if not donor.submitted_donor_id:
        return None
    project = donor.project_code or project_code
    return f"{project}/{donor.submitted_donor_id}" if project else donor.submitted_donor_id


class _DonorAccumulator:
    def __init__(self, key: str) -> None:
        self.key = key
        self.donor_id: str | None = None
        self.submitted_donor_ids: list[str | None] = []
        self.project_codes: list[str | None] = []
        self.specimen_types: list[str | None] = []
        self.submitted_specimen_ids: list[str | None] = []
        self.submitted_sample_ids: list[str | None] = []
        self.sources: list[str | None] = []
        self.repository_codes: list[str | None] = []
        self.file_ids: list[str | None] = []

    def add(self, file: CanonicalFile, donor: DonorRef) -> None:
        self.donor_id = self.donor_id or donor.donor_id
        self.submitted_donor_ids.append(donor.submitted_donor_id)
        self.project_codes.append(donor.project_code or file.project_code)
        self.specimen_types.append(donor.specimen_type)
        self.submitted_specimen_ids.append(donor.submitted_specimen_id)
        self.submitted_sample_ids.append(donor.submitted_sample_id)
        self.sources.append(file.source_system.value)
        self.repository_codes.extend(loc.repository_code for loc in file.object_locations)
        self.file_ids.append(file.document_key)

    def to_document(self) -> dict[str, Any]:
        file_ids = _unique(self.file_ids)
        document: dict[str, Any] = {
            "id": self.key,
            "donor_id": self.donor_id,
            "submitted_donor_ids": _unique(self.submitted_donor_ids),
            "project_codes": _unique(self.project_codes),
            "specimen_types": _unique(self.specimen_types),
            "submitted_specimen_ids": _unique(self.submitted_specimen_ids),
            "submitted_sample_ids": _unique(self.submitted_sample_ids),
            "sources": _unique(self.sources),
            "repository_codes": _unique(self.repository_codes),
            "file_ids": file_ids,
            "file_count": len(file_ids),
        }
        document["text"] = " ".join(
            _unique(
                [self.donor_id]
                + document["submitted_donor_ids"]
                + document["project_codes"]
                + document["submitted_specimen_ids"]
                + document["submitted_sample_ids"]
            )
        )
        return document


class CorpusSummary:
    """Collects donor linkage and repository usage across a record stream.

    Feed every canonical record through :meth:`add`; afterwards
    :meth:`donor_documents` yields one document per donor and
    :meth:`repository_documents` one per configured repository endpoint.
    Only the aggregates are kept, never the records themselves.
    """

    def __init__(self) -> None:
        self._donors: dict[str, _DonorAccumulator] = {}
        self._repository_files: dict[str, int] = {}
        self._repository_sources: dict[str, list[str | None]] = {}

    def add(self, file: CanonicalFile) -> None:
        for donor in file.donor_refs:
            key = donor_key(donor, file.project_code)
            if key is None:
                continue
            self._donors.setdefault(key, _DonorAccumulator(key)).add(file, donor)
        for code in _unique([loc.repository_code for loc in file.object_locations]):
            self._repository_files[code] = self._repository_files.get(code, 0) + 1
            self._repository_sources.setdefault(code, []).append(file.source_system.value)

    def donor_documents(self) -> Iterator[dict[str, Any]]:
        for key in sorted(self._donors):
            yield self._donors[key].to_document()

    def repository_documents(
        self, servers: Iterable[RepositoryServer]
    ) -> Iterator[dict[str, Any]]:
        """Yield one document per distinct server code, first declaration wins."""
        seen: set[str] = set()
        for server in servers:
            if server.code in seen:
                continue
            seen.add(server.code)
            yield to_repository_document(
                server,
                file_count=self._repository_files.get(server.code, 0),
                sources=_unique(self._repository_sources.get(server.code, [])),
            )


def to_repository_document(
    server: RepositoryServer,
    file_count: int = 0,
    sources: list[str] | None = None,
) -> dict[str, Any]:
    """Describe one repository endpoint as a search document keyed by its code."""
    return {
        "id": server.code,
        "code": server.code,
        "name": server.name,
        "base_url": server.base_url,
        "protocol": server.protocol.value,
        "country": server.country,
        "sources": sources or [],
        "file_count": file_count,
        "text": " ".join(_unique([server.code, server.name, server.country])),
    }
