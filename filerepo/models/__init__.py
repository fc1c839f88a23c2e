"""Pydantic v2 data models for filerepo.

- **files** -- CanonicalFile, the unified record every adapter produces,
  and its value types (locations, checksums, donor linkage).
- **manifest** -- ManifestEntry / InventoryObject / IntegrityWarning, the
  intermediate shapes joined by an adapter's ``process`` step.
- **analysis** -- workflow triple classification.
- **repository** -- endpoint registry entries.
- **pipeline** -- phase enums, captured RunException, results and Report.
"""

from filerepo.models.analysis import Analysis, AnalysisCategory, classify
from filerepo.models.files import (
    AccessProtocol,
    CanonicalFile,
    Checksum,
    DonorRef,
    IndexFile,
    ObjectLocation,
    SourceSystem,
)
from filerepo.models.manifest import (
    IntegrityWarning,
    InventoryObject,
    ManifestEntry,
    RawFileDescriptor,
)
from filerepo.models.pipeline import (
    ErrorKind,
    ImportCounts,
    ImportPhase,
    ImportRunResult,
    IndexPhase,
    IndexRunResult,
    Report,
    RunException,
    RunStep,
)
from filerepo.models.repository import RepositoryServer

__all__ = [
    "AccessProtocol",
    "Analysis",
    "AnalysisCategory",
    "CanonicalFile",
    "Checksum",
    "DonorRef",
    "ErrorKind",
    "ImportCounts",
    "ImportPhase",
    "ImportRunResult",
    "IndexFile",
    "IndexPhase",
    "IndexRunResult",
    "IntegrityWarning",
    "InventoryObject",
    "ManifestEntry",
    "ObjectLocation",
    "RawFileDescriptor",
    "Report",
    "RepositoryServer",
    "RunException",
    "RunStep",
    "SourceSystem",
    "classify",
]
