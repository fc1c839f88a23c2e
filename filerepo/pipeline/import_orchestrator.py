"""Drives one source adapter end-to-end.

    INIT → READ_MANIFEST → READ_INVENTORY → PROCESS → COMMIT → DONE

``FAILED`` is reachable from every non-terminal phase; phases only move
forward and a revisit raises :class:`~filerepo.utils.errors.PipelineError`.
An orchestrator instance performs exactly one run.

ARCHITECTURE NOTE:
    Memory is bounded by the manifest, not by the bucket.  The manifest is
    materialized (it is small), the inventory is streamed and only objects
    whose identity some manifest entry wants are kept.  Everything else is
    counted and reported as one aggregated integrity warning.

    PROCESS and COMMIT are pipelined.  Every record the adapter yields is
    committed as an independent task through a :class:`TaskWindow`, so at
    most ``commit_window`` writes are in flight and a failed write for one
    record never blocks the next.  Failures are captured as
    :class:`RunException` values and returned in the
    :class:`ImportRunResult`; nothing escapes :meth:`ImportOrchestrator.run`
    except a phase-order violation.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import AsyncIterable, AsyncIterator, TypeVar

import structlog

from filerepo.interfaces.document_store_provider import IDocumentStoreProvider
from filerepo.interfaces.source_adapter import SourceAdapter
from filerepo.models.files import CanonicalFile
from filerepo.models.manifest import IntegrityWarning, InventoryObject, ManifestEntry
from filerepo.models.pipeline import (
    ErrorKind,
    ImportCounts,
    ImportPhase,
    ImportRunResult,
    RunException,
)
from filerepo.utils.concurrency import TaskWindow, aiter_with_timeout
from filerepo.utils.errors import PipelineError, SourceUnavailableError
from filerepo.utils.logging import get_logger

_T = TypeVar("_T")

_PHASE_ORDER: tuple[ImportPhase, ...] = (
    ImportPhase.INIT,
    ImportPhase.READ_MANIFEST,
    ImportPhase.READ_INVENTORY,
    ImportPhase.PROCESS,
    ImportPhase.COMMIT,
    ImportPhase.DONE,
)
_TERMINAL = frozenset({ImportPhase.DONE, ImportPhase.FAILED})


class _Cancelled(Exception):
    """Internal signal: cancellation was requested between records."""


class ImportOrchestrator:
    """Run one adapter's manifest → inventory → process → commit sequence.

    Parameters
    ----------
    adapter:
        The source adapter to drive.
    store:
        Document store the canonical records are committed to.
    collection:
        Store collection holding canonical file records.
    commit_window:
        Maximum number of commits in flight.
    read_timeout:
        Seconds allowed per manifest/inventory item (``None`` = unbounded).
    write_timeout:
        Seconds allowed per document-store write (``None`` = unbounded).
    """

    def __init__(
        self,
        adapter: SourceAdapter,
        store: IDocumentStoreProvider,
        collection: str = "files",
        commit_window: int = 16,
        read_timeout: float | None = None,
        write_timeout: float | None = None,
    ) -> None:
        self._adapter = adapter
        self._store = store
        self._collection = collection
        self._commit_window = max(1, commit_window)
        self._read_timeout = read_timeout
        self._write_timeout = write_timeout
        self._source = adapter.source.value
        self._phase = ImportPhase.INIT
        self._cancel_requested = False
        self._logger: structlog.BoundLogger = get_logger(__name__).bind(source=self._source)

        self._warnings: list[IntegrityWarning] = []
        self._exceptions: list[RunException] = []
        self._manifest_entries = 0
        self._records_read = 0
        self._records_processed = 0
        self._records_committed = 0
        self._records_removed = 0

    @property
    def phase(self) -> ImportPhase:
        return self._phase

    @property
    def source(self) -> str:
        return self._source

    def cancel(self) -> None:
        """Request cancellation; takes effect before the next record.

        Records already committed stay committed.
        """
        self._cancel_requested = True
        self._logger.info("import_cancel_requested", phase=self._phase.value)

    # ------------------------------------------------------------------
    # Phase machine
    # ------------------------------------------------------------------

    def _transition(self, phase: ImportPhase) -> None:
        current = self._phase
        if current in _TERMINAL:
            raise PipelineError(
                message=f"Import already finished in {current.value}; cannot enter {phase.value}",
                source_name=self._source,
            )
        if phase is not ImportPhase.FAILED and _PHASE_ORDER.index(phase) <= _PHASE_ORDER.index(
            current
        ):
            raise PipelineError(
                message=f"Invalid phase transition {current.value} -> {phase.value}",
                source_name=self._source,
            )
        self._phase = phase
        self._logger.info("import_phase", phase=phase.value, previous=current.value)

    def _check_cancelled(self) -> None:
        if self._cancel_requested:
            raise _Cancelled()

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self) -> ImportRunResult:
        """Execute the import and return its outcome.

        Raises
        ------
        PipelineError
            If this orchestrator has already run.
        """
        started = time.monotonic()
        self._transition(ImportPhase.READ_MANIFEST)

        try:
            manifest = await self._read_manifest()
            if not manifest:
                # Keep what the store already has rather than replacing it with nothing.
                self._logger.error("manifest_empty_keeping_previous_files")
                self._warn(
                    IntegrityWarning(
                        source=self._source,
                        message="Manifest is empty; previously imported files are kept",
                    )
                )
                self._transition(ImportPhase.DONE)
                return self._result(started)

            self._check_cancelled()
            self._transition(ImportPhase.READ_INVENTORY)
            inventory = await self._read_inventory(manifest)

            self._check_cancelled()
            await self._process_and_commit(manifest, inventory)
            self._transition(ImportPhase.DONE)
        except _Cancelled:
            self._fail(ErrorKind.CANCELLED, asyncio.CancelledError("Import cancelled"))
        except (SourceUnavailableError, asyncio.TimeoutError, OSError) as exc:
            self._fail(ErrorKind.SOURCE_UNREACHABLE, exc)
        except PipelineError:
            raise
        except Exception as exc:
            self._fail(ErrorKind.UNEXPECTED, exc)

        result = self._result(started)
        self._logger.info(
            "import_finished",
            phase=result.phase.value,
            elapsed_seconds=result.elapsed_seconds,
            **result.counts.model_dump(),
        )
        return result

    async def _read_manifest(self) -> list[ManifestEntry]:
        manifest: list[ManifestEntry] = []
        async for entry in self._timed(self._adapter.read_manifest()):
            manifest.append(entry)
        self._manifest_entries = len(manifest)
        self._logger.info("manifest_read", entries=len(manifest))
        return manifest

    async def _read_inventory(self, manifest: list[ManifestEntry]) -> dict[str, InventoryObject]:
        wanted = {identity for entry in manifest for identity in entry.identities}
        inventory: dict[str, InventoryObject] = {}
        unreferenced = 0

        async for obj in self._timed(self._adapter.read_inventory()):
            self._records_read += 1
            if obj.identity in wanted:
                inventory[obj.identity] = obj
            else:
                unreferenced += 1
            self._check_cancelled()

        self._logger.info(
            "inventory_read",
            objects=self._records_read,
            matched=len(inventory),
            unreferenced=unreferenced,
        )
        if unreferenced:
            self._warn(
                IntegrityWarning(
                    source=self._source,
                    message=f"{unreferenced} inventory object(s) not referenced by any manifest entry",
                )
            )
        return inventory

    async def _process_and_commit(
        self,
        manifest: list[ManifestEntry],
        inventory: dict[str, InventoryObject],
    ) -> None:
        self._transition(ImportPhase.PROCESS)
        window = TaskWindow(self._commit_window)
        try:
            for item in self._adapter.process(manifest, inventory):
                if isinstance(item, IntegrityWarning):
                    self._warn(item)
                    continue
                self._check_cancelled()
                self._records_processed += 1
                await window.submit(self._commit(item))
        finally:
            # In-flight commits always finish; partial commits are retained.
            await window.drain()

        self._transition(ImportPhase.COMMIT)
        self._logger.info(
            "records_committed",
            processed=self._records_processed,
            committed=self._records_committed,
            removed=self._records_removed,
            failed=len(self._exceptions),
        )

    async def _commit(self, record: CanonicalFile) -> None:
        key = record.document_key
        try:
            if record.tombstone:
                removed = await asyncio.wait_for(
                    self._store.delete(self._collection, key), self._write_timeout
                )
                if removed:
                    self._records_removed += 1
                self._logger.debug("record_removed", key=key, existed=removed)
                return

            stamped = record.model_copy(
                update={"imported_at": datetime.now(tz=timezone.utc)}  # noqa: UP017
            )
            await asyncio.wait_for(
                self._store.upsert(self._collection, key, stamped.to_document()),
                self._write_timeout,
            )
            self._records_committed += 1
        except Exception as exc:
            self._logger.warning("record_commit_failed", key=key, error=str(exc))
            self._exceptions.append(
                RunException.capture(
                    self._source,
                    ErrorKind.COMMIT_FAILURE,
                    ImportPhase.COMMIT.value,
                    exc,
                    identity=record.identity,
                )
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _timed(self, source: AsyncIterable[_T]) -> AsyncIterator[_T]:
        try:
            async for item in aiter_with_timeout(source, self._read_timeout):
                yield item
        except asyncio.TimeoutError as exc:
            raise SourceUnavailableError(
                message=f"Read stalled for more than {self._read_timeout}s in {self._phase.value}",
                source_name=self._source,
            ) from exc

    def _warn(self, warning: IntegrityWarning) -> None:
        self._warnings.append(warning)
        self._logger.warning(
            "integrity_warning",
            identity=warning.identity,
            unit_id=warning.unit_id,
            message=warning.message,
        )

    def _fail(self, kind: ErrorKind, exc: BaseException) -> None:
        phase = self._phase
        self._exceptions.append(RunException.capture(self._source, kind, phase.value, exc))
        self._logger.error("import_failed", kind=kind.value, phase=phase.value, error=str(exc))
        self._transition(ImportPhase.FAILED)

    def _result(self, started: float) -> ImportRunResult:
        return ImportRunResult(
            source=self._source,
            phase=self._phase,
            counts=ImportCounts(
                manifest_entries=self._manifest_entries,
                records_read=self._records_read,
                records_processed=self._records_processed,
                records_committed=self._records_committed,
                records_removed=self._records_removed,
                warnings=len(self._warnings),
                errors=len(self._exceptions),
            ),
            warnings=list(self._warnings),
            exceptions=list(self._exceptions),
            elapsed_seconds=round(time.monotonic() - started, 3),
        )
