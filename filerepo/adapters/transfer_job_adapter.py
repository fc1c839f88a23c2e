"""Adapter for buckets described by git-hosted transfer-job manifests.

Manifest:
    Completed transfer jobs are JSON files in a git repository (by default
    ``s3-transfer-jobs/completed-jobs/*.json``).  Each job names the data
    bundle (``gnos_id``) and lists the files it copied::

        {"gnos_id": "...", "project_code": "...", "icgc_donor_id": "DO...",
         "files": [{"object_id": "...", "file_name": "x.bam",
                    "file_size": 123, "file_md5sum": "..."}]}

Inventory:
    The bucket listing.  Objects are stored under ``<prefix>/<object_id>``,
    so the key's basename is the inventory identity.

Used for the ``aws`` and ``collab`` sources.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path, PurePosixPath
from typing import Any, AsyncIterator

import structlog

from filerepo.config.sources import TransferJobSourceConfig
from filerepo.interfaces.manifest_source_provider import IManifestSourceProvider
from filerepo.interfaces.object_store_provider import IObjectStoreProvider
from filerepo.interfaces.source_adapter import SourceAdapter, parse_timestamp
from filerepo.models.files import CanonicalFile, Checksum, DonorRef, resolve_file_format
from filerepo.models.manifest import (
    InventoryObject,
    ManifestEntry,
    RawFileDescriptor,
)
from filerepo.utils.errors import SourceUnavailableError

logger = structlog.get_logger(logger_name=__name__)


class TransferJobAdapter(SourceAdapter):
    """Joins completed transfer jobs to the objects present in a bucket.

    Parameters
    ----------
    config:
        The source's validated configuration.
    manifests:
        Provider that checks out the job repository.
    object_store:
        Provider that lists the bucket.
    """

    def __init__(
        self,
        config: TransferJobSourceConfig,
        manifests: IManifestSourceProvider,
        object_store: IObjectStoreProvider,
    ) -> None:
        super().__init__(config.source)
        self._config = config
        self._manifests = manifests
        self._object_store = object_store

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    async def read_manifest(self) -> AsyncIterator[ManifestEntry]:
        files = await self._manifests.fetch_directory(
            self._config.repo_url,
            self._config.name_pattern,
            self._config.jobs_path,
        )
        logger.info("transfer_jobs_found", source=self.source.value, count=len(files))
        for path in files:
            job = await asyncio.to_thread(self._read_job, path)
            yield self._parse_job(job, path)

    async def read_inventory(self) -> AsyncIterator[InventoryObject]:
        async for summary in self._object_store.list_objects(self._config.prefix):
            identity = PurePosixPath(summary.key).name
            if not identity:
                continue
            yield InventoryObject(
                identity=identity,
                key=summary.key,
                size=summary.size,
                checksum=Checksum(digest=summary.checksum) if summary.checksum else None,
                last_modified=summary.last_modified,
            )

    def _read_job(self, path: Path) -> dict[str, Any]:
        try:
            job = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise SourceUnavailableError(
                message=f"Unreadable transfer job {path.name}: {exc}",
                source_name=self.source.value,
            ) from exc
        if not isinstance(job, dict):
            raise SourceUnavailableError(
                message=f"Transfer job {path.name} is not a JSON object",
                source_name=self.source.value,
            )
        return job

    def _parse_job(self, job: dict[str, Any], path: Path) -> ManifestEntry:
        unit_id = job.get("gnos_id") or path.stem
        descriptors: list[RawFileDescriptor] = []
        for file in job.get("files") or []:
            object_id = file.get("object_id")
            name = file.get("file_name")
            if not object_id or not name:
                logger.warning(
                    "transfer_job_file_incomplete",
                    source=self.source.value,
                    job=path.name,
                    file=file,
                )
                continue
            md5 = file.get("file_md5sum")
            descriptors.append(
                RawFileDescriptor(
                    object_id=object_id,
                    name=name,
                    size=file.get("file_size"),
                    checksum=Checksum(digest=md5) if md5 else None,
                )
            )

        project_code = job.get("project_code")
        donor_refs = []
        if job.get("submitter_donor_id") or job.get("icgc_donor_id") or project_code:
            donor_refs.append(
                DonorRef(
                    project_code=project_code,
                    donor_id=job.get("icgc_donor_id"),
                    submitted_donor_id=job.get("submitter_donor_id"),
                    submitted_specimen_id=job.get("submitter_specimen_id"),
                    submitted_sample_id=job.get("submitter_sample_id"),
                    specimen_type=job.get("specimen_type"),
                )
            )

        return ManifestEntry(
            unit_id=unit_id,
            files=descriptors,
            project_code=project_code,
            donor_refs=donor_refs,
            last_modified=parse_timestamp(job.get("timestamp")),
        )

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def _build_file(
        self,
        entry: ManifestEntry,
        descriptor: RawFileDescriptor,
        obj: InventoryObject,
    ) -> CanonicalFile:
        return CanonicalFile(
            identity=descriptor.object_id,
            source_system=self.source,
            file_name=descriptor.name,
            donor_refs=entry.donor_refs,
            project_code=entry.project_code,
            object_locations=[self._config.server.locate(obj.key)],
            # The bucket is authoritative for what was actually stored.
            size=obj.size if obj.size is not None else descriptor.size,
            checksum=descriptor.checksum or obj.checksum,
            file_format=resolve_file_format(descriptor.name),
            data_bundle_id=entry.unit_id,
            last_modified=obj.last_modified or entry.last_modified,
        )
