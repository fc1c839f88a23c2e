"""Top-level driver for one multi-source run.

Runs the IMPORT step (one :class:`ImportOrchestrator` per active source,
sequentially or concurrently) and then the INDEX step (one
:class:`IndexingPipeline` pass), concatenates every captured failure into
a single :class:`~filerepo.models.pipeline.Report` and hands it to the
notification provider.

Nothing raised below this point escapes :meth:`RunCoordinator.run`; the
caller decides what a non-empty exception list means for the process.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, Iterable, Sequence

import structlog

from filerepo.interfaces.notification_provider import INotificationProvider
from filerepo.interfaces.source_adapter import SourceAdapter
from filerepo.models.pipeline import (
    ALL_STEPS,
    ErrorKind,
    ImportPhase,
    ImportRunResult,
    IndexRunResult,
    Report,
    RunException,
    RunStep,
)
from filerepo.pipeline.import_orchestrator import ImportOrchestrator
from filerepo.pipeline.indexing_pipeline import INDEX_SOURCE, IndexingPipeline
from filerepo.utils.logging import bind_run_context, clear_run_context, get_logger

OrchestratorFactory = Callable[[SourceAdapter], ImportOrchestrator]
IndexingPipelineFactory = Callable[[], IndexingPipeline]


class RunCoordinator:
    """Coordinate imports from every active source, then reindex.

    Orchestrators and indexing pipelines run once each, so the coordinator
    receives factories and builds fresh instances on every :meth:`run`.

    Parameters
    ----------
    adapters:
        Every configured source adapter.
    orchestrator_factory:
        Builds the import orchestrator for one adapter.
    indexing_pipeline_factory:
        Builds the indexing pipeline; ``None`` disables the INDEX step.
    notifier:
        Receives the final report.
    concurrent:
        Run the sources' imports concurrently instead of one after another.
    active_sources:
        Source tags to run; empty runs every adapter.
    """

    def __init__(
        self,
        adapters: Sequence[SourceAdapter],
        orchestrator_factory: OrchestratorFactory,
        indexing_pipeline_factory: IndexingPipelineFactory | None,
        notifier: INotificationProvider,
        concurrent: bool = False,
        active_sources: Iterable[str] = (),
        title: str = "File Repository Importer",
    ) -> None:
        self._adapters = list(adapters)
        self._orchestrator_factory = orchestrator_factory
        self._indexing_pipeline_factory = indexing_pipeline_factory
        self._notifier = notifier
        self._concurrent = concurrent
        self._active_sources = {s.strip().lower() for s in active_sources if s.strip()}
        self._title = title
        self._logger: structlog.BoundLogger = get_logger(__name__)

    def active_adapters(self) -> list[SourceAdapter]:
        """Return the adapters selected by the activation list."""
        if not self._active_sources:
            return list(self._adapters)

        known = {adapter.source.value for adapter in self._adapters}
        unknown = sorted(self._active_sources - known)
        if unknown:
            self._logger.warning("unknown_active_sources", sources=unknown)
        return [a for a in self._adapters if a.source.value in self._active_sources]

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self, steps: Iterable[RunStep] = ALL_STEPS) -> Report:
        """Execute the selected steps and return the aggregated report."""
        bind_run_context()
        try:
            return await self._run(frozenset(steps))
        finally:
            clear_run_context()

    async def _run(self, steps: frozenset[RunStep]) -> Report:
        started_at = datetime.now(tz=timezone.utc)  # noqa: UP017
        started = time.monotonic()
        import_results: list[ImportRunResult] = []
        index_result: IndexRunResult | None = None
        exceptions: list[RunException] = []

        self._logger.info(
            "run_started",
            steps=sorted(step.value for step in steps),
            concurrent=self._concurrent,
        )

        if RunStep.IMPORT in steps:
            import_results = await self._import(self.active_adapters())
            for result in import_results:
                exceptions.extend(result.exceptions)
        else:
            self._logger.info("step_skipped", step=RunStep.IMPORT.value)

        if RunStep.INDEX in steps and self._indexing_pipeline_factory is not None:
            index_result, error = await self._index(self._indexing_pipeline_factory)
            if index_result is not None:
                exceptions.extend(index_result.exceptions)
            if error is not None:
                exceptions.append(error)
        else:
            self._logger.info("step_skipped", step=RunStep.INDEX.value)

        report = Report(
            title=self._title,
            started_at=started_at,
            elapsed_seconds=round(time.monotonic() - started, 3),
            exceptions=exceptions,
            import_results=import_results,
            index_result=index_result,
        )
        self._logger.info(
            "run_finished",
            success=report.success,
            errors=len(report.exceptions),
            elapsed_seconds=report.elapsed_seconds,
        )
        await self._notify(report)
        return report

    async def _import(self, adapters: list[SourceAdapter]) -> list[ImportRunResult]:
        if not adapters:
            self._logger.warning("no_active_sources")
            return []
        if self._concurrent:
            return list(await asyncio.gather(*(self._import_one(a) for a in adapters)))
        return [await self._import_one(adapter) for adapter in adapters]

    async def _import_one(self, adapter: SourceAdapter) -> ImportRunResult:
        source = adapter.source.value
        try:
            orchestrator = self._orchestrator_factory(adapter)
            return await orchestrator.run()
        except Exception as exc:
            self._logger.error("import_crashed", source=source, error=str(exc))
            return ImportRunResult(
                source=source,
                phase=ImportPhase.FAILED,
                exceptions=[
                    RunException.capture(source, ErrorKind.UNEXPECTED, RunStep.IMPORT.value, exc)
                ],
            )

    async def _index(
        self, factory: IndexingPipelineFactory
    ) -> tuple[IndexRunResult | None, RunException | None]:
        try:
            pipeline = factory()
            return await pipeline.run(), None
        except Exception as exc:
            self._logger.error("indexing_crashed", error=str(exc))
            return None, RunException.capture(
                INDEX_SOURCE, ErrorKind.UNEXPECTED, RunStep.INDEX.value, exc
            )

    async def _notify(self, report: Report) -> None:
        try:
            sent = await self._notifier.send(report.subject, report.body)
        except Exception as exc:
            self._logger.error(
                "report_notification_failed",
                notifier=self._notifier.get_provider_name(),
                error=str(exc),
            )
            return
        self._logger.info(
            "report_notified",
            notifier=self._notifier.get_provider_name(),
            sent=sent,
        )
