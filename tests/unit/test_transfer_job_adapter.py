"""Unit tests for TransferJobAdapter: job parsing, bucket join, index pairing."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from filerepo.adapters.transfer_job_adapter import TransferJobAdapter
from filerepo.config.sources import TransferJobSourceConfig
from filerepo.interfaces.object_store_provider import ObjectSummary
from filerepo.models.files import AccessProtocol, CanonicalFile, SourceSystem
from filerepo.models.manifest import IntegrityWarning
from filerepo.utils.errors import SourceUnavailableError
from tests.conftest import FakeManifestSource, FakeObjectStore, write_job

_MODIFIED = datetime(2016, 3, 1, tzinfo=timezone.utc)  # noqa: UP017


def _job(gnos_id: str, *files: tuple[str, str, int]) -> dict:
    return {
        "gnos_id": gnos_id,
        "project_code": "PACA-CA",
        "submitter_donor_id": "PCSI_0001",
        "icgc_donor_id": "DO50001",
        "timestamp": "2016-02-01T10:00:00Z",
        "files": [
            {"object_id": oid, "file_name": name, "file_size": size, "file_md5sum": "f" * 32}
            for oid, name, size in files
        ],
    }


def _summary(object_id: str, size: int = 100) -> ObjectSummary:
    return ObjectSummary(
        key=f"data/{object_id}", size=size, checksum="e" * 32, last_modified=_MODIFIED
    )


async def _run(adapter: TransferJobAdapter) -> tuple[list[CanonicalFile], list[IntegrityWarning]]:
    manifest = [entry async for entry in adapter.read_manifest()]
    inventory = [obj async for obj in adapter.read_inventory()]
    outputs = list(adapter.process(manifest, inventory))
    records = [o for o in outputs if isinstance(o, CanonicalFile)]
    warnings = [o for o in outputs if isinstance(o, IntegrityWarning)]
    return records, warnings


@pytest.mark.asyncio
async def test_read_manifest_parses_jobs(
    jobs_dir: Path, transfer_job_config: TransferJobSourceConfig
) -> None:
    write_job(jobs_dir, "job-1.json", _job("g1", ("o1", "a.bam", 100)))
    manifests = FakeManifestSource(jobs_dir)
    adapter = TransferJobAdapter(transfer_job_config, manifests, FakeObjectStore([]))

    entries = [entry async for entry in adapter.read_manifest()]

    assert manifests.calls == [
        (transfer_job_config.repo_url, "*.json", "s3-transfer-jobs/completed-jobs")
    ]
    assert len(entries) == 1
    entry = entries[0]
    assert entry.unit_id == "g1"
    assert entry.identities == ["o1"]
    assert entry.project_code == "PACA-CA"
    assert entry.donor_refs[0].submitted_donor_id == "PCSI_0001"
    assert entry.donor_refs[0].donor_id == "DO50001"
    assert entry.last_modified == datetime(2016, 2, 1, 10, tzinfo=timezone.utc)  # noqa: UP017


@pytest.mark.asyncio
async def test_incomplete_job_files_are_skipped(
    jobs_dir: Path, transfer_job_config: TransferJobSourceConfig
) -> None:
    job = _job("g1", ("o1", "a.bam", 100))
    job["files"].append({"file_name": "no-object-id.bam"})
    write_job(jobs_dir, "job-1.json", job)
    adapter = TransferJobAdapter(transfer_job_config, FakeManifestSource(jobs_dir), FakeObjectStore([]))

    entries = [entry async for entry in adapter.read_manifest()]
    assert entries[0].identities == ["o1"]


@pytest.mark.asyncio
async def test_unreadable_job_raises_source_unavailable(
    jobs_dir: Path, transfer_job_config: TransferJobSourceConfig
) -> None:
    (jobs_dir / "broken.json").write_text("{not json", encoding="utf-8")
    adapter = TransferJobAdapter(transfer_job_config, FakeManifestSource(jobs_dir), FakeObjectStore([]))

    with pytest.raises(SourceUnavailableError):
        [entry async for entry in adapter.read_manifest()]


@pytest.mark.asyncio
async def test_inventory_identity_is_key_basename(
    transfer_job_config: TransferJobSourceConfig, jobs_dir: Path
) -> None:
    store = FakeObjectStore([_summary("o1"), _summary("o2")])
    adapter = TransferJobAdapter(transfer_job_config, FakeManifestSource(jobs_dir), store)

    inventory = [obj async for obj in adapter.read_inventory()]
    assert [obj.identity for obj in inventory] == ["o1", "o2"]
    assert inventory[0].checksum.digest == "e" * 32


@pytest.mark.asyncio
async def test_join_builds_records_and_warns_on_missing(
    jobs_dir: Path, transfer_job_config: TransferJobSourceConfig
) -> None:
    write_job(jobs_dir, "job-1.json", _job("g1", ("o1", "a.bam", 100), ("o2", "b.bam", 100)))
    store = FakeObjectStore([_summary("o1"), _summary("o3")])
    adapter = TransferJobAdapter(transfer_job_config, FakeManifestSource(jobs_dir), store)

    records, warnings = await _run(adapter)

    assert [r.identity for r in records] == ["o1"]
    record = records[0]
    assert record.source_system is SourceSystem.AWS
    assert record.data_bundle_id == "g1"
    assert record.file_format == "BAM"
    assert record.checksum.digest == "f" * 32
    assert record.imported_at is None
    location = record.object_locations[0]
    assert location.repository_code == "aws-virginia"
    assert location.path == "data/o1"
    assert location.protocol is AccessProtocol.S3

    assert len(warnings) == 1
    assert warnings[0].identity == "o2"
    assert warnings[0].unit_id == "g1"


@pytest.mark.asyncio
async def test_size_mismatch_warns_but_keeps_record(
    jobs_dir: Path, transfer_job_config: TransferJobSourceConfig
) -> None:
    write_job(jobs_dir, "job-1.json", _job("g1", ("o1", "a.bam", 100)))
    store = FakeObjectStore([_summary("o1", size=150)])
    adapter = TransferJobAdapter(transfer_job_config, FakeManifestSource(jobs_dir), store)

    records, warnings = await _run(adapter)

    assert records[0].size == 150
    assert "Size mismatch" in warnings[0].message


@pytest.mark.asyncio
async def test_bai_is_paired_with_its_bam(
    jobs_dir: Path, transfer_job_config: TransferJobSourceConfig
) -> None:
    write_job(
        jobs_dir,
        "job-1.json",
        _job("g1", ("o1", "a.bam", 100), ("o2", "a.bam.bai", 10)),
    )
    store = FakeObjectStore([_summary("o1"), _summary("o2", size=10)])
    adapter = TransferJobAdapter(transfer_job_config, FakeManifestSource(jobs_dir), store)

    records, warnings = await _run(adapter)

    assert warnings == []
    assert len(records) == 1
    index_file = records[0].index_file
    assert index_file is not None
    assert index_file.identity == "o2"
    assert index_file.file_format == "BAI"
    assert index_file.size == 10


@pytest.mark.asyncio
async def test_process_is_deterministic(
    jobs_dir: Path, transfer_job_config: TransferJobSourceConfig
) -> None:
    write_job(jobs_dir, "job-1.json", _job("g1", ("o1", "a.bam", 100)))
    adapter = TransferJobAdapter(
        transfer_job_config, FakeManifestSource(jobs_dir), FakeObjectStore([_summary("o1")])
    )
    manifest = [entry async for entry in adapter.read_manifest()]
    inventory = [obj async for obj in adapter.read_inventory()]

    assert list(adapter.process(manifest, inventory)) == list(adapter.process(manifest, inventory))


@pytest.mark.asyncio
async def test_listing_failure_propagates(
    jobs_dir: Path, transfer_job_config: TransferJobSourceConfig
) -> None:
    store = FakeObjectStore([], error=SourceUnavailableError("bucket gone", "s3"))
    adapter = TransferJobAdapter(transfer_job_config, FakeManifestSource(jobs_dir), store)

    with pytest.raises(SourceUnavailableError):
        [obj async for obj in adapter.read_inventory()]
