"""Builds a fresh search-index generation from the committed corpus.

    BUILD_SNAPSHOT → TRANSFORM → BULK_INDEX → SWAP_ALIAS → ARCHIVE → DONE

Each run writes into a brand-new, uniquely named generation
(``<alias>_<UTC timestamp>_<suffix>``) and only then repoints the alias in
one atomic step, so readers of the alias see either the previous corpus or
the new one, never a half-built index.

File documents are transformed lazily: each stored record becomes a search
document as the BULK_INDEX phase pulls it from the snapshot, so TRANSFORM
is entered only to mark that boundary and the corpus is never held in
memory.  While the files stream past a :class:`CorpusSummary` aggregates
per-donor linkage and per-repository usage; once the file stream ends the
donor and repository documents are indexed into the same generation.

ARCHIVE walks the snapshot a second time instead of reusing what
BULK_INDEX saw.  Imports have all finished before indexing starts, so both
walks read the same committed corpus, and the archive is complete even
when the index build failed part-way.

A failure before the swap drops the partial generation, leaves the alias
where it was and ends the run ``FAILED``.  The ARCHIVE phase still runs: the
committed corpus is exported regardless of whether the index was rebuilt.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from datetime import datetime, timezone
from collections.abc import Iterable, Sequence
from typing import Any, AsyncIterator

import structlog

from filerepo.interfaces.archive_sink import IArchiveSink
from filerepo.interfaces.document_store_provider import IDocumentStoreProvider
from filerepo.interfaces.search_index_provider import ISearchIndexProvider
from filerepo.models.files import CanonicalFile
from filerepo.models.pipeline import ErrorKind, IndexPhase, IndexRunResult, RunException
from filerepo.models.repository import RepositoryServer
from filerepo.services.archive_writer import ArchiveWriter
from filerepo.services.document_transformer import (
    DONOR_DOCUMENT_TYPE,
    FILE_DOCUMENT_TYPE,
    REPOSITORY_DOCUMENT_TYPE,
    CorpusSummary,
    to_search_document,
)
from filerepo.utils.concurrency import TaskWindow
from filerepo.utils.errors import IndexBuildError, PipelineError
from filerepo.utils.logging import get_logger

# Source tag used on exceptions captured by the indexing pipeline.
INDEX_SOURCE = "index"

_PHASE_ORDER: tuple[IndexPhase, ...] = (
    IndexPhase.INIT,
    IndexPhase.BUILD_SNAPSHOT,
    IndexPhase.TRANSFORM,
    IndexPhase.BULK_INDEX,
    IndexPhase.SWAP_ALIAS,
    IndexPhase.ARCHIVE,
    IndexPhase.DONE,
)


def generation_name(alias: str, now: datetime | None = None) -> str:
    """Return a new unique generation name for *alias*."""
    now = now or datetime.now(tz=timezone.utc)  # noqa: UP017
    return f"{alias}_{now:%Y%m%d%H%M%S}_{uuid.uuid4().hex[:8]}"


class CorpusSnapshot:
    """Restartable view of one store collection.

    Every ``async for`` over the snapshot issues a fresh keyset-paginated
    query, so the bulk-index and archive phases can each walk the corpus
    without holding it in memory.
    """

    def __init__(self, store: IDocumentStoreProvider, collection: str) -> None:
        self._store = store
        self._collection = collection

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        return self._store.query_all(self._collection).__aiter__()

    async def count(self) -> int:
        return await self._store.count(self._collection)


class IndexingPipeline:
    """Rebuild the aliased search index and archive the corpus.

    Parameters
    ----------
    store:
        Document store holding the committed canonical records.
    search_index:
        Search index the generations are written to.
    archive_sink:
        Destination for the compressed corpus export.
    collection:
        Store collection to index.
    alias:
        Alias readers query; also the generation name prefix.
    archive_dir:
        Directory or filesystem URL archives are written under.
    batch_size:
        Documents per bulk-index call.
    parallelism:
        Maximum number of bulk-index batches in flight.
    retain_generations:
        Older generations kept after a swap; ``0`` removes the previous one.
    write_timeout:
        Seconds allowed per bulk-index call (``None`` = unbounded).
    repositories:
        Configured repository endpoints; each becomes a ``repository``
        document.
    """

    def __init__(
        self,
        store: IDocumentStoreProvider,
        search_index: ISearchIndexProvider,
        archive_sink: IArchiveSink,
        collection: str = "files",
        alias: str = "repository",
        archive_dir: str = "data/archive",
        batch_size: int = 500,
        parallelism: int = 4,
        retain_generations: int = 0,
        write_timeout: float | None = None,
        repositories: Sequence[RepositoryServer] = (),
    ) -> None:
        self._store = store
        self._search_index = search_index
        self._archive_sink = archive_sink
        self._collection = collection
        self._alias = alias
        self._archive_dir = archive_dir
        self._batch_size = max(1, batch_size)
        self._parallelism = max(1, parallelism)
        self._retain_generations = max(0, retain_generations)
        self._write_timeout = write_timeout
        self._repositories = list(repositories)
        self._logger: structlog.BoundLogger = get_logger(__name__).bind(alias=alias)

        self._phase = IndexPhase.INIT
        self._exceptions: list[RunException] = []
        self._indexed: dict[str, int] = {}
        self._documents_skipped = 0

    @property
    def phase(self) -> IndexPhase:
        return self._phase

    # ------------------------------------------------------------------
    # Phase machine
    # ------------------------------------------------------------------

    def _transition(self, phase: IndexPhase) -> None:
        current = self._phase
        if current in (IndexPhase.DONE, IndexPhase.FAILED):
            raise PipelineError(
                message=f"Indexing already finished in {current.value}; cannot enter {phase.value}",
                source_name=INDEX_SOURCE,
            )
        if phase is not IndexPhase.FAILED and _PHASE_ORDER.index(phase) <= _PHASE_ORDER.index(
            current
        ):
            raise PipelineError(
                message=f"Invalid phase transition {current.value} -> {phase.value}",
                source_name=INDEX_SOURCE,
            )
        self._phase = phase
        self._logger.info("index_phase", phase=phase.value, previous=current.value)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self) -> IndexRunResult:
        """Execute one indexing run and return its outcome.

        Raises
        ------
        PipelineError
            If this pipeline instance has already run.
        """
        started = time.monotonic()
        generation = generation_name(self._alias)
        previous: str | None = None
        swapped = False
        pruned: list[str] = []
        build_failed = False

        self._transition(IndexPhase.BUILD_SNAPSHOT)
        snapshot = CorpusSnapshot(self._store, self._collection)

        try:
            records = await snapshot.count()
            self._logger.info("snapshot_built", collection=self._collection, records=records)
            # Records are transformed lazily as BULK_INDEX pulls them.
            self._transition(IndexPhase.TRANSFORM)
            self._transition(IndexPhase.BULK_INDEX)
            await self._bulk_index(snapshot, generation)

            self._transition(IndexPhase.SWAP_ALIAS)
            previous = await self._search_index.swap_alias(self._alias, generation)
            swapped = True
            self._logger.info(
                "alias_swapped",
                generation=generation,
                previous_generation=previous,
                documents=self._indexed.get(FILE_DOCUMENT_TYPE, 0),
            )
        except PipelineError:
            raise
        except Exception as exc:
            build_failed = True
            self._capture(ErrorKind.INDEX_BUILD_FAILURE, exc)
            await self._drop_generation(generation)

        if swapped:
            pruned = await self._prune(generation)

        self._transition(IndexPhase.ARCHIVE)
        archive_uri, archived = await self._archive(snapshot, generation)

        self._transition(IndexPhase.FAILED if build_failed else IndexPhase.DONE)
        result = IndexRunResult(
            phase=self._phase,
            alias=self._alias,
            generation=generation,
            previous_generation=previous,
            documents_indexed=self._indexed.get(FILE_DOCUMENT_TYPE, 0),
            donors_indexed=self._indexed.get(DONOR_DOCUMENT_TYPE, 0),
            repositories_indexed=self._indexed.get(REPOSITORY_DOCUMENT_TYPE, 0),
            documents_skipped=self._documents_skipped,
            documents_archived=archived,
            archive_uri=archive_uri,
            alias_swapped=swapped,
            pruned_generations=pruned,
            exceptions=list(self._exceptions),
            elapsed_seconds=round(time.monotonic() - started, 3),
        )
        self._logger.info(
            "indexing_finished",
            phase=result.phase.value,
            generation=result.generation,
            documents_indexed=result.documents_indexed,
            donors_indexed=result.donors_indexed,
            repositories_indexed=result.repositories_indexed,
            documents_archived=result.documents_archived,
            errors=len(result.exceptions),
            elapsed_seconds=result.elapsed_seconds,
        )
        return result

    async def _bulk_index(self, snapshot: CorpusSnapshot, generation: str) -> None:
        await self._search_index.create_index(generation)
        self._logger.info("generation_created", generation=generation)

        summary = CorpusSummary()
        window = TaskWindow(self._parallelism)
        batch: list[dict[str, Any]] = []
        try:
            async for record in snapshot:
                document = self._transform(record, summary)
                if document is None:
                    self._documents_skipped += 1
                    continue
                batch.append(document)
                if len(batch) >= self._batch_size:
                    if window.errors:
                        break
                    await window.submit(self._index_batch(generation, batch, FILE_DOCUMENT_TYPE))
                    batch = []
            if batch and not window.errors:
                await window.submit(self._index_batch(generation, batch, FILE_DOCUMENT_TYPE))
            if not window.errors:
                await self._submit_all(
                    window, generation, summary.donor_documents(), DONOR_DOCUMENT_TYPE
                )
                await self._submit_all(
                    window,
                    generation,
                    summary.repository_documents(self._repositories),
                    REPOSITORY_DOCUMENT_TYPE,
                )
        finally:
            errors = await window.drain()

        if errors:
            raise IndexBuildError(
                message=f"{len(errors)} bulk-index batch(es) failed; first: {errors[0]}",
                source_name=self._search_index.get_provider_name(),
            ) from errors[0]

    async def _submit_all(
        self,
        window: TaskWindow,
        generation: str,
        documents: Iterable[dict[str, Any]],
        doc_type: str,
    ) -> None:
        batch: list[dict[str, Any]] = []
        for document in documents:
            batch.append(document)
            if len(batch) >= self._batch_size:
                if window.errors:
                    return
                await window.submit(self._index_batch(generation, batch, doc_type))
                batch = []
        if batch and not window.errors:
            await window.submit(self._index_batch(generation, batch, doc_type))

    async def _index_batch(
        self, generation: str, batch: list[dict[str, Any]], doc_type: str
    ) -> None:
        written = await asyncio.wait_for(
            self._search_index.bulk_index(generation, batch, doc_type), self._write_timeout
        )
        self._indexed[doc_type] = self._indexed.get(doc_type, 0) + written
        self._logger.debug(
            "batch_indexed", generation=generation, doc_type=doc_type, documents=written
        )

    def _transform(
        self, record: dict[str, Any], summary: CorpusSummary
    ) -> dict[str, Any] | None:
        try:
            file = CanonicalFile.from_document(record)
            document = to_search_document(file)
        except (ValueError, TypeError, KeyError) as exc:
            self._logger.warning(
                "document_transform_failed",
                source=record.get("source_system"),
                identity=record.get("identity"),
                error=str(exc),
            )
            return None
        summary.add(file)
        return document

    async def _drop_generation(self, generation: str) -> None:
        try:
            await self._search_index.delete_index(generation)
            self._logger.info("partial_generation_dropped", generation=generation)
        except Exception as exc:
            self._logger.warning(
                "partial_generation_drop_failed", generation=generation, error=str(exc)
            )

    async def _prune(self, current: str) -> list[str]:
        """Delete generations older than the newest ``retain_generations``."""
        try:
            older = [
                name
                for name in await self._search_index.list_indices(prefix=f"{self._alias}_")
                if name != current
            ]
        except Exception as exc:
            self._logger.warning("generation_listing_failed", error=str(exc))
            return []

        # list_indices is oldest first
        stale = older[: max(0, len(older) - self._retain_generations)]
        pruned: list[str] = []
        for name in stale:
            try:
                await self._search_index.delete_index(name)
                pruned.append(name)
            except Exception as exc:
                self._logger.warning("generation_prune_failed", generation=name, error=str(exc))
        if pruned:
            self._logger.info("generations_pruned", generations=pruned)
        return pruned

    async def _archive(self, snapshot: CorpusSnapshot, generation: str) -> tuple[str | None, int]:
        uri = f"{self._archive_dir.rstrip('/')}/{generation}.tar.gz"
        settings = {
            "index": generation,
            "alias": self._alias,
            "created_at": datetime.now(tz=timezone.utc).isoformat(),  # noqa: UP017
        }
        summary = CorpusSummary()
        try:
            with ArchiveWriter(generation, settings=settings) as writer:
                async for record in snapshot:
                    document = self._transform(record, summary)
                    if document is not None:
                        writer.write(document, FILE_DOCUMENT_TYPE)
                for document in summary.donor_documents():
                    writer.write(document, DONOR_DOCUMENT_TYPE)
                for document in summary.repository_documents(self._repositories):
                    writer.write(document, REPOSITORY_DOCUMENT_TYPE)
                stream = writer.finish()
                await self._archive_sink.write_archive(uri, stream)
                archived = writer.count_of(FILE_DOCUMENT_TYPE)
        except Exception as exc:
            self._capture(ErrorKind.ARCHIVE_FAILURE, exc)
            return None, 0

        self._logger.info(
            "corpus_archived",
            uri=uri,
            documents=archived,
            donors=writer.count_of(DONOR_DOCUMENT_TYPE),
            repositories=writer.count_of(REPOSITORY_DOCUMENT_TYPE),
        )
        return uri, archived

    def _capture(self, kind: ErrorKind, exc: BaseException) -> None:
        self._exceptions.append(RunException.capture(INDEX_SOURCE, kind, self._phase.value, exc))
        self._logger.error("indexing_error", kind=kind.value, phase=self._phase.value, error=str(exc))
