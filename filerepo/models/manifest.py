"""Intermediate models produced by the manifest and inventory readers.

None of these are persisted.  A :class:`ManifestEntry` describes what a
source *claims* exists (a transfer job, an analysis workflow); an
:class:`InventoryObject` describes what is *physically* present.  The
adapter's ``process`` step joins the two by identity and emits canonical
records plus :class:`IntegrityWarning` values for anything that does not
line up.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from filerepo.models.files import Checksum, DonorRef


class RawFileDescriptor(BaseModel):
    """One file as listed in a manifest, before canonicalization."""

    model_config = ConfigDict(frozen=True)

    object_id: str
    name: str
    size: int | None = None
    checksum: Checksum | None = None


class ManifestEntry(BaseModel):
    """A logical unit of work and the files it is expected to have produced."""

    model_config = ConfigDict(frozen=True)

    # Transfer job / analysis id -- becomes the data bundle id.
    unit_id: str
    files: list[RawFileDescriptor] = Field(default_factory=list)
    project_code: str | None = None
    donor_refs: list[DonorRef] = Field(default_factory=list)
    # Workflow triple (analysis-bearing sources only).
    library_strategy: str | None = None
    workflow_type: str | None = None
    specimen_class: str | None = None
    # Base URLs of the repositories mirroring this unit's files.
    endpoints: list[str] = Field(default_factory=list)
    last_modified: datetime | None = None

    @property
    def identities(self) -> list[str]:
        return [f.object_id for f in self.files]


class InventoryObject(BaseModel):
    """One object physically present at a source."""

    model_config = ConfigDict(frozen=True)

    identity: str
    key: str
    size: int | None = None
    checksum: Checksum | None = None
    last_modified: datetime | None = None
    # Catalog lifecycle state; ``None`` for plain bucket listings.
    state: str | None = None


class IntegrityWarning(BaseModel):
    """A non-fatal mismatch between manifest and inventory."""

    model_config = ConfigDict(frozen=True)

    source: str
    message: str
    identity: str | None = None
    unit_id: str | None = None
