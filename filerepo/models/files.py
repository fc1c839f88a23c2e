"""Canonical file record models.

Every source adapter reduces its repository's metadata to
:class:`CanonicalFile`, the single schema persisted to the document store
and later published to the search index.  All models are frozen pydantic
v2 models; adapters build new instances, the orchestrator stamps
``imported_at`` with ``model_copy(update=...)``.

Storage key:
    ``(source_system, identity)`` is unique.  :attr:`CanonicalFile.document_key`
    renders it as ``"<source_system>/<identity>"``, the upsert key used by
    the document store.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from filerepo.models.analysis import AnalysisCategory


class SourceSystem(str, Enum):  # noqa: UP042 (StrEnum requires Python 3.11+)
    """Originating repository -- one tag per adapter."""

    AWS = "aws"
    COLLAB = "collab"
    PCAWG = "pcawg"


class AccessProtocol(str, Enum):  # noqa: UP042
    """How a copy of the file is fetched from its endpoint."""

    S3 = "s3"
    GNOS = "gnos"
    HTTPS = "https"


class Checksum(BaseModel):
    """A content digest and the algorithm that produced it."""

    model_config = ConfigDict(frozen=True)

    algorithm: str = "md5"
    digest: str


class ObjectLocation(BaseModel):
    """One place a copy of the file can be retrieved from."""

    model_config = ConfigDict(frozen=True)

    # Repository code, e.g. "aws-virginia" or "pcawg-tokyo".
    repository_code: str
    endpoint: str
    path: str
    protocol: AccessProtocol


class DonorRef(BaseModel):
    """Clinical linkage for a file, populated only when the source exposes it."""

    model_config = ConfigDict(frozen=True)

    project_code: str | None = None
    donor_id: str | None = None
    specimen_type: str | None = None
    submitted_donor_id: str | None = None
    submitted_specimen_id: str | None = None
    submitted_sample_id: str | None = None


class IndexFile(BaseModel):
    """Companion index (``.bai``/``.tbi``) stored next to the file."""

    model_config = ConfigDict(frozen=True)

    identity: str | None = None
    file_name: str
    file_format: str | None = None
    size: int | None = None
    checksum: Checksum | None = None


class CanonicalFile(BaseModel):
    """The unified file/analysis record produced by every adapter."""

    model_config = ConfigDict(frozen=True)

    identity: str
    source_system: SourceSystem
    file_name: str
    donor_refs: list[DonorRef] = Field(default_factory=list)
    project_code: str | None = None
    object_locations: list[ObjectLocation] = Field(default_factory=list)
    size: int | None = Field(default=None, ge=0)
    checksum: Checksum | None = None
    file_format: str | None = None
    index_file: IndexFile | None = None
    data_bundle_id: str | None = None
    # --- Classification ---
    data_category: str | None = None
    experimental_strategy: str | None = None
    analysis_workflow: str | None = None
    analysis_category: AnalysisCategory | None = None
    # Set when the source explicitly signals the file was removed.
    tombstone: bool = False
    last_modified: datetime | None = None
    # Stamped by the import orchestrator at commit; adapters leave it unset.
    imported_at: datetime | None = None

    @property
    def document_key(self) -> str:
        return document_key(self.source_system, self.identity)

    def to_document(self) -> dict[str, Any]:
        """Return the JSON-compatible dict persisted in the document store."""
        return self.model_dump(mode="json")

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> CanonicalFile:
        """Parse a stored document, ignoring store-managed extra keys."""
        fields = {k: v for k, v in document.items() if k in cls.model_fields}
        return cls.model_validate(fields)


def document_key(source_system: SourceSystem | str, identity: str) -> str:
    """Render the ``(source_system, identity)`` upsert key."""
    source = source_system.value if isinstance(source_system, SourceSystem) else source_system
    return f"{source}/{identity}"


# Companion index suffix -> index format.
INDEX_FILE_FORMATS: dict[str, str] = {".bai": "BAI", ".tbi": "TBI"}

_FILE_FORMATS: tuple[tuple[str, str], ...] = (
    (".bam", "BAM"),
    (".bai", "BAI"),
    (".vcf.gz", "VCF"),
    (".vcf", "VCF"),
    (".tbi", "TBI"),
    (".fastq.gz", "FASTQ"),
    (".fastq", "FASTQ"),
)


def resolve_file_format(file_name: str) -> str | None:
    """Guess a file format from its name; ``None`` when unrecognised."""
    lowered = file_name.lower()
    for suffix, file_format in _FILE_FORMATS:
        if lowered.endswith(suffix):
            return file_format
    return None
