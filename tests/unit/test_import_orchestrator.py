"""Unit tests for ImportOrchestrator.

Adapters are in-memory; the document store is a real temporary SQLite
database so committed state can be asserted directly.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, AsyncIterator

import pytest

from filerepo.models.files import SourceSystem
from filerepo.models.manifest import InventoryObject
from filerepo.models.pipeline import ErrorKind, ImportPhase
from filerepo.pipeline.import_orchestrator import ImportOrchestrator
from filerepo.providers.document_store.sqlite_document_store import SQLiteDocumentStore
from filerepo.utils.errors import CommitError, PipelineError, SourceUnavailableError
from tests.conftest import StaticAdapter, make_entry, make_object


class FlakyStore(SQLiteDocumentStore):
    """Rejects writes for the given keys."""

    def __init__(self, *args: Any, failing: set[str], **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.failing = failing

    async def upsert(self, collection: str, key: str, record: dict[str, Any]) -> None:
        if key in self.failing:
            raise CommitError(message=f"rejected {key}", source_name="flaky")
        await super().upsert(collection, key, record)


class StallingAdapter(StaticAdapter):
    """Inventory listing that never produces its second object."""

    async def read_inventory(self) -> AsyncIterator[InventoryObject]:
        yield self.inventory[0]
        await asyncio.sleep(10)
        yield self.inventory[1]


def _adapter(**kwargs: Any) -> StaticAdapter:
    return StaticAdapter(
        SourceSystem.AWS,
        manifest=[make_entry("g1", "a.bam", "b.bam")],
        inventory=[make_object("g1-a.bam"), make_object("g1-b.bam"), make_object("stray")],
        **kwargs,
    )


# ─── Success path ─────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_successful_import_commits_records(document_store: SQLiteDocumentStore) -> None:
    orchestrator = ImportOrchestrator(_adapter(), document_store, commit_window=2)

    result = await orchestrator.run()

    assert result.succeeded
    assert orchestrator.phase is ImportPhase.DONE
    assert result.counts.manifest_entries == 1
    assert result.counts.records_read == 3
    assert result.counts.records_processed == 2
    assert result.counts.records_committed == 2
    assert result.exceptions == []
    assert await document_store.count("files", key_prefix="aws/") == 2

    stored = await document_store.get("files", "aws/g1-a.bam")
    assert stored["file_name"] == "a.bam"
    assert stored["imported_at"] is not None


@pytest.mark.asyncio
async def test_unreferenced_inventory_is_one_aggregated_warning(
    document_store: SQLiteDocumentStore,
) -> None:
    result = await ImportOrchestrator(_adapter(), document_store).run()

    assert result.counts.warnings == 1
    assert "1 inventory object(s)" in result.warnings[0].message


@pytest.mark.asyncio
async def test_missing_object_warns_and_skips(document_store: SQLiteDocumentStore) -> None:
    adapter = StaticAdapter(
        SourceSystem.AWS,
        manifest=[make_entry("g1", "a.bam", "b.bam")],
        inventory=[make_object("g1-a.bam")],
    )
    result = await ImportOrchestrator(adapter, document_store).run()

    assert result.succeeded
    assert result.counts.records_committed == 1
    assert [w.identity for w in result.warnings] == ["g1-b.bam"]


@pytest.mark.asyncio
async def test_empty_manifest_keeps_existing_records(document_store: SQLiteDocumentStore) -> None:
    await document_store.upsert("files", "aws/old", {"file_name": "old.bam"})
    adapter = StaticAdapter(SourceSystem.AWS, manifest=[], inventory=[make_object("x")])

    result = await ImportOrchestrator(adapter, document_store).run()

    assert result.phase is ImportPhase.DONE
    assert result.counts.warnings == 1
    assert result.counts.records_read == 0
    assert await document_store.get("files", "aws/old") == {"file_name": "old.bam"}


@pytest.mark.asyncio
async def test_tombstones_delete_existing_records(document_store: SQLiteDocumentStore) -> None:
    await document_store.upsert("files", "aws/g1-a.bam", {"file_name": "a.bam"})
    adapter = StaticAdapter(
        SourceSystem.AWS,
        manifest=[make_entry("g1", "a.bam", "b.bam")],
        inventory=[make_object("g1-a.bam", state="deleted"), make_object("g1-b.bam")],
    )

    result = await ImportOrchestrator(adapter, document_store).run()

    assert result.counts.records_removed == 1
    assert result.counts.records_committed == 1
    assert await document_store.get("files", "aws/g1-a.bam") is None
    assert await document_store.get("files", "aws/g1-b.bam") is not None


# ─── Failures ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_manifest_failure_fails_run(document_store: SQLiteDocumentStore) -> None:
    adapter = _adapter(manifest_error=SourceUnavailableError(message="git down", source_name="aws"))

    result = await ImportOrchestrator(adapter, document_store).run()

    assert result.phase is ImportPhase.FAILED
    assert len(result.exceptions) == 1
    failure = result.exceptions[0]
    assert failure.kind is ErrorKind.SOURCE_UNREACHABLE
    assert failure.phase == "READ_MANIFEST"
    assert failure.source == "aws"
    assert await document_store.count("files") == 0


@pytest.mark.asyncio
async def test_inventory_failure_fails_run(document_store: SQLiteDocumentStore) -> None:
    adapter = _adapter(inventory_error=OSError("connection reset"))

    result = await ImportOrchestrator(adapter, document_store).run()

    assert result.phase is ImportPhase.FAILED
    assert result.exceptions[0].kind is ErrorKind.SOURCE_UNREACHABLE
    assert result.exceptions[0].phase == "READ_INVENTORY"


@pytest.mark.asyncio
async def test_commit_failure_is_isolated_per_record(tmp_path: Path) -> None:
    store = FlakyStore(store_uri=str(tmp_path), database="flaky", failing={"aws/g1-a.bam"})
    await store.initialize()

    result = await ImportOrchestrator(_adapter(), store).run()

    assert result.phase is ImportPhase.DONE
    assert result.counts.records_committed == 1
    assert len(result.exceptions) == 1
    failure = result.exceptions[0]
    assert failure.kind is ErrorKind.COMMIT_FAILURE
    assert failure.identity == "g1-a.bam"
    assert "CommitError" in failure.cause
    assert await store.get("files", "aws/g1-b.bam") is not None


@pytest.mark.asyncio
async def test_stalled_inventory_times_out(document_store: SQLiteDocumentStore) -> None:
    adapter = StallingAdapter(
        SourceSystem.AWS,
        manifest=[make_entry("g1", "a.bam")],
        inventory=[make_object("g1-a.bam"), make_object("later")],
    )

    result = await ImportOrchestrator(adapter, document_store, read_timeout=0.05).run()

    assert result.phase is ImportPhase.FAILED
    failure = result.exceptions[0]
    assert failure.kind is ErrorKind.SOURCE_UNREACHABLE
    assert "TimeoutError" in failure.cause


# ─── Lifecycle ────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_cancel_before_run_commits_nothing(document_store: SQLiteDocumentStore) -> None:
    orchestrator = ImportOrchestrator(_adapter(), document_store)
    orchestrator.cancel()

    result = await orchestrator.run()

    assert result.phase is ImportPhase.FAILED
    assert result.exceptions[0].kind is ErrorKind.CANCELLED
    assert await document_store.count("files") == 0


@pytest.mark.asyncio
async def test_orchestrator_runs_only_once(document_store: SQLiteDocumentStore) -> None:
    orchestrator = ImportOrchestrator(_adapter(), document_store)
    await orchestrator.run()

    with pytest.raises(PipelineError):
        await orchestrator.run()


@pytest.mark.asyncio
async def test_reimport_is_idempotent(document_store: SQLiteDocumentStore) -> None:
    await ImportOrchestrator(_adapter(), document_store).run()
    first = await document_store.get("files", "aws/g1-a.bam")
    await ImportOrchestrator(_adapter(), document_store).run()
    second = await document_store.get("files", "aws/g1-a.bam")

    assert await document_store.count("files") == 2
    first.pop("imported_at")
    second.pop("imported_at")
    assert first == second
