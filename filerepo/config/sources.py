"""Per-source configuration models.

Each entry of the ``sources:`` list in ``config/config.yaml`` is validated
into one of these models, selected by its ``type`` field.  Adapters receive
their model explicitly; there is no process-wide client registry.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from filerepo.models.files import SourceSystem
from filerepo.models.repository import RepositoryServer


class TransferJobSourceConfig(BaseModel):
    """A bucket whose contents are described by git-hosted transfer-job manifests."""

    model_config = ConfigDict(frozen=True)

    type: Literal["transfer_jobs"] = "transfer_jobs"
    source: SourceSystem
    # Git repository holding the job JSON files.
    repo_url: str
    jobs_path: str = "s3-transfer-jobs/completed-jobs"
    name_pattern: str = "*.json"
    bucket: str
    prefix: str = ""
    region: str | None = None
    endpoint_url: str | None = None
    server: RepositoryServer


class AnalysisCatalogSourceConfig(BaseModel):
    """A REST catalog of donors, workflows and files."""

    model_config = ConfigDict(frozen=True)

    type: Literal["analysis_catalog"] = "analysis_catalog"
    source: SourceSystem
    base_url: str
    donors_endpoint: str = "donors"
    files_endpoint: str = "files"
    page_size: int = Field(default=100, ge=1)
    library_strategies: list[str] = Field(default_factory=lambda: ["wgs", "rna_seq"])
    # Mirrors serving the catalog's files, matched against each workflow's repos.
    servers: list[RepositoryServer] = Field(default_factory=list)


SourceConfig = Annotated[
    Union[TransferJobSourceConfig, AnalysisCatalogSourceConfig],
    Field(discriminator="type"),
]


class SourcesConfig(BaseModel):
    """The validated ``sources:`` section."""

    sources: list[SourceConfig] = Field(default_factory=list)
