"""Shared pytest fixtures for the filerepo test suite.

External collaborators are faked through their interfaces; the document
store and search index are real SQLite databases under ``tmp_path``.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator

import pytest

from filerepo.config.sources import AnalysisCatalogSourceConfig, TransferJobSourceConfig
from filerepo.interfaces.catalog_provider import ICatalogProvider
from filerepo.interfaces.manifest_source_provider import IManifestSourceProvider
from filerepo.interfaces.object_store_provider import IObjectStoreProvider, ObjectSummary
from filerepo.interfaces.source_adapter import SourceAdapter
from filerepo.models.files import (
    AccessProtocol,
    CanonicalFile,
    Checksum,
    DonorRef,
    SourceSystem,
)
from filerepo.models.manifest import InventoryObject, ManifestEntry, RawFileDescriptor
from filerepo.models.repository import RepositoryServer
from filerepo.providers.document_store.sqlite_document_store import SQLiteDocumentStore
from filerepo.providers.search_index.sqlite_search_index import SQLiteSearchIndex
from filerepo.utils.errors import SourceUnavailableError

# ---------------------------------------------------------------------------
# Fake providers
# ---------------------------------------------------------------------------


class FakeManifestSource(IManifestSourceProvider):
    """Returns the job files found in a local directory."""

    def __init__(self, directory: Path, error: Exception | None = None) -> None:
        self.directory = directory
        self.error = error
        self.calls: list[tuple[str, str, str]] = []

    async def fetch_directory(
        self, url: str, name_pattern: str, subdirectory: str = ""
    ) -> list[Path]:
        self.calls.append((url, name_pattern, subdirectory))
        if self.error is not None:
            raise self.error
        return sorted(self.directory.glob(name_pattern))

    def get_provider_name(self) -> str:
        return "fake_manifest"


class FakeObjectStore(IObjectStoreProvider):
    """Serves a fixed bucket listing."""

    def __init__(self, objects: list[ObjectSummary], error: Exception | None = None) -> None:
        self.objects = objects
        self.error = error

    async def list_objects(self, prefix: str = "") -> AsyncIterator[ObjectSummary]:
        if self.error is not None:
            raise self.error
        for obj in self.objects:
            if obj.key.startswith(prefix):
                yield obj

    def get_provider_name(self) -> str:
        return "fake_s3"


class FakeCatalog(ICatalogProvider):
    """Serves pre-built pages per endpoint, selected by the ``from`` offset."""

    def __init__(self, pages: dict[str, list[dict[str, Any]]]) -> None:
        self.pages = pages
        self.requests: list[tuple[str, dict[str, Any] | None]] = []

    async def fetch_json(
        self, endpoint: str, query: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        self.requests.append((endpoint, query))
        if endpoint not in self.pages:
            raise SourceUnavailableError(message=f"404 {endpoint}", source_name="fake_catalog")
        size = (query or {}).get("size", 100)
        index = (query or {}).get("from", 0) // size
        pages = self.pages[endpoint]
        if index >= len(pages):
            return {"hits": [], "pagination": {"page": index + 1, "pages": len(pages)}}
        return pages[index]

    def get_provider_name(self) -> str:
        return "fake_catalog"


class StaticAdapter(SourceAdapter):
    """Adapter over in-memory manifest entries and inventory objects."""

    def __init__(
        self,
        source: SourceSystem,
        manifest: list[ManifestEntry],
        inventory: list[InventoryObject],
        manifest_error: Exception | None = None,
        inventory_error: Exception | None = None,
    ) -> None:
        super().__init__(source)
        self.manifest = manifest
        self.inventory = inventory
        self.manifest_error = manifest_error
        self.inventory_error = inventory_error

    async def read_manifest(self) -> AsyncIterator[ManifestEntry]:
        if self.manifest_error is not None:
            raise self.manifest_error
        for entry in self.manifest:
            yield entry

    async def read_inventory(self) -> AsyncIterator[InventoryObject]:
        if self.inventory_error is not None:
            raise self.inventory_error
        for obj in self.inventory:
            yield obj

    def _build_file(self, entry, descriptor, obj) -> CanonicalFile:
        return CanonicalFile(
            identity=descriptor.object_id,
            source_system=self.source,
            file_name=descriptor.name,
            project_code=entry.project_code,
            donor_refs=entry.donor_refs,
            size=obj.size,
            checksum=descriptor.checksum,
            data_bundle_id=entry.unit_id,
        )


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_entry(unit_id: str, *names: str, project_code: str = "BRCA-UK") -> ManifestEntry:
    """Manifest entry whose file object ids are ``<unit_id>-<name>``."""
    return ManifestEntry(
        unit_id=unit_id,
        project_code=project_code,
        donor_refs=[DonorRef(project_code=project_code, submitted_donor_id=f"donor-{unit_id}")],
        files=[
            RawFileDescriptor(
                object_id=f"{unit_id}-{name}",
                name=name,
                size=100,
                checksum=Checksum(digest="0" * 32),
            )
            for name in names
        ],
    )


def make_object(identity: str, size: int = 100, state: str | None = None) -> InventoryObject:
    return InventoryObject(identity=identity, key=f"data/{identity}", size=size, state=state)


def make_file(identity: str, source: SourceSystem = SourceSystem.AWS, **kwargs: Any) -> CanonicalFile:
    defaults: dict[str, Any] = {
        "identity": identity,
        "source_system": source,
        "file_name": f"{identity}.bam",
        "project_code": "BRCA-UK",
        "donor_refs": [DonorRef(project_code="BRCA-UK", submitted_donor_id="d1")],
        "size": 1024,
        "checksum": Checksum(digest="a" * 32),
        "file_format": "BAM",
        "data_bundle_id": "bundle-1",
    }
    defaults.update(kwargs)
    return CanonicalFile(**defaults)


def write_job(directory: Path, name: str, job: dict[str, Any]) -> Path:
    path = directory / name
    path.write_text(json.dumps(job), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def aws_server() -> RepositoryServer:
    return RepositoryServer(
        code="aws-virginia",
        name="AWS - Virginia",
        base_url="https://s3-external-1.amazonaws.com/",
        protocol=AccessProtocol.S3,
        country="US",
    )


@pytest.fixture
def transfer_job_config(aws_server: RepositoryServer) -> TransferJobSourceConfig:
    return TransferJobSourceConfig(
        source=SourceSystem.AWS,
        repo_url="https://example.org/transfer-jobs.git",
        bucket="oicr.icgc",
        prefix="data",
        server=aws_server,
    )


@pytest.fixture
def catalog_config() -> AnalysisCatalogSourceConfig:
    return AnalysisCatalogSourceConfig(
        source=SourceSystem.PCAWG,
        base_url="https://catalog.example.org/v1",
        page_size=2,
        servers=[
            RepositoryServer(
                code="pcawg-tokyo",
                name="PCAWG - Tokyo",
                base_url="https://gtrepo-riken.annailabs.com/",
                protocol=AccessProtocol.GNOS,
                country="JP",
            ),
            RepositoryServer(
                code="pcawg-london",
                name="PCAWG - London",
                base_url="https://gtrepo-ebi.annailabs.com/",
                protocol=AccessProtocol.GNOS,
                country="UK",
            ),
        ],
    )


@pytest.fixture
def jobs_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "jobs"
    directory.mkdir()
    return directory


@pytest.fixture
def modified_at() -> datetime:
    return datetime(2016, 3, 1, 12, 0, tzinfo=timezone.utc)  # noqa: UP017


@pytest.fixture
async def document_store(tmp_path: Path) -> SQLiteDocumentStore:
    store = SQLiteDocumentStore(store_uri=str(tmp_path / "store"), database="repository")
    await store.initialize()
    return store


@pytest.fixture
async def search_index(tmp_path: Path) -> SQLiteSearchIndex:
    index = SQLiteSearchIndex(db_path=tmp_path / "search.db")
    await index.initialize()
    return index
