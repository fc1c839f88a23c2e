"""Run state and outcome models for the import and indexing pipelines.

Defines the phase enums that drive the two state machines, the captured
:class:`RunException` value that replaces thrown-and-caught errors at the
coordinator boundary, and the result/report values handed back to the
caller.  All models are frozen pydantic v2 models.

Architecture note:
    Nothing in here raises.  The import orchestrator and the indexing
    pipeline *return* their outcome (:class:`ImportRunResult`,
    :class:`IndexRunResult`) with any failures listed in ``exceptions``;
    the run coordinator concatenates them into one :class:`Report`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from filerepo.models.manifest import IntegrityWarning


# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------
class ImportPhase(str, Enum):  # noqa: UP042 (StrEnum requires Python 3.11+)
    """Phases of one adapter's import run.

        INIT → READ_MANIFEST → READ_INVENTORY → PROCESS → COMMIT → DONE

    ``FAILED`` is reachable from any non-terminal phase.
    """

    INIT = "INIT"
    READ_MANIFEST = "READ_MANIFEST"
    READ_INVENTORY = "READ_INVENTORY"
    PROCESS = "PROCESS"
    COMMIT = "COMMIT"
    DONE = "DONE"
    FAILED = "FAILED"


class IndexPhase(str, Enum):  # noqa: UP042
    """Phases of one indexing run.

        BUILD_SNAPSHOT → TRANSFORM → BULK_INDEX → SWAP_ALIAS → ARCHIVE → DONE
    """

    INIT = "INIT"
    BUILD_SNAPSHOT = "BUILD_SNAPSHOT"
    TRANSFORM = "TRANSFORM"
    BULK_INDEX = "BULK_INDEX"
    SWAP_ALIAS = "SWAP_ALIAS"
    ARCHIVE = "ARCHIVE"
    DONE = "DONE"
    FAILED = "FAILED"


class RunStep(str, Enum):  # noqa: UP042
    """Top-level steps the run coordinator can execute."""

    IMPORT = "IMPORT"
    INDEX = "INDEX"


ALL_STEPS: frozenset[RunStep] = frozenset(RunStep)


class ErrorKind(str, Enum):  # noqa: UP042
    """Classification of a captured failure."""

    SOURCE_UNREACHABLE = "SOURCE_UNREACHABLE"
    COMMIT_FAILURE = "COMMIT_FAILURE"
    INDEX_BUILD_FAILURE = "INDEX_BUILD_FAILURE"
    ARCHIVE_FAILURE = "ARCHIVE_FAILURE"
    CANCELLED = "CANCELLED"
    UNEXPECTED = "UNEXPECTED"


# ---------------------------------------------------------------------------
# Captured failures
# ---------------------------------------------------------------------------
class RunException(BaseModel):
    """A failure captured during a run instead of being propagated."""

    model_config = ConfigDict(frozen=True)

    # Source tag of the adapter, or "index" for the indexing pipeline.
    source: str
    kind: ErrorKind
    phase: str
    message: str
    # "<ExceptionType>" plus the chained cause, if any.
    cause: str
    identity: str | None = None
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )

    @classmethod
    def capture(
        cls,
        source: str,
        kind: ErrorKind,
        phase: str,
        exc: BaseException,
        identity: str | None = None,
    ) -> RunException:
        cause = type(exc).__name__
        if exc.__cause__ is not None:
            cause += f" <- {type(exc.__cause__).__name__}: {exc.__cause__}"
        return cls(
            source=source,
            kind=kind,
            phase=phase,
            message=str(exc) or type(exc).__name__,
            cause=cause,
            identity=identity,
        )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
class ImportCounts(BaseModel):
    """Counters reported by one import run."""

    model_config = ConfigDict(frozen=True)

    manifest_entries: int = 0
    # Inventory objects seen while streaming the listing.
    records_read: int = 0
    records_processed: int = 0
    records_committed: int = 0
    records_removed: int = 0
    warnings: int = 0
    errors: int = 0


class ImportRunResult(BaseModel):
    """Outcome of one adapter's import run."""

    model_config = ConfigDict(frozen=True)

    source: str
    phase: ImportPhase
    counts: ImportCounts = Field(default_factory=ImportCounts)
    warnings: list[IntegrityWarning] = Field(default_factory=list)
    exceptions: list[RunException] = Field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.phase is ImportPhase.DONE


class IndexRunResult(BaseModel):
    """Outcome of one indexing run."""

    model_config = ConfigDict(frozen=True)

    phase: IndexPhase
    alias: str
    generation: str | None = None
    previous_generation: str | None = None
    documents_indexed: int = 0
    # Corpus-derived documents written next to the file documents.
    donors_indexed: int = 0
    repositories_indexed: int = 0
    # Stored records that could not be turned into search documents.
    documents_skipped: int = 0
    documents_archived: int = 0
    archive_uri: str | None = None
    alias_swapped: bool = False
    pruned_generations: list[str] = Field(default_factory=list)
    exceptions: list[RunException] = Field(default_factory=list)
    elapsed_seconds: float = 0.0


# ---------------------------------------------------------------------------
# Report -- the single hand-off artifact to the notification collaborator.
# ---------------------------------------------------------------------------
class Report(BaseModel):
    """Aggregated outcome of one multi-source run."""

    model_config = ConfigDict(frozen=True)

    title: str = "File Repository Importer"
    started_at: datetime
    elapsed_seconds: float
    exceptions: list[RunException] = Field(default_factory=list)
    import_results: list[ImportRunResult] = Field(default_factory=list)
    index_result: IndexRunResult | None = None

    @property
    def success(self) -> bool:
        return not self.exceptions

    @property
    def subject(self) -> str:
        status = "SUCCESS" if self.success else "ERROR"
        return f"{self.title} - {status}"

    @property
    def body(self) -> str:
        lines: list[str] = []
        if self.success:
            lines.append(f"Finished in {self.elapsed_seconds:.1f}s")
        else:
            lines.append(
                f"Finished with {len(self.exceptions)} error(s) in {self.elapsed_seconds:.1f}s"
            )
        lines.append("")

        for result in self.import_results:
            c = result.counts
            lines.append(
                f"{result.source}: {result.phase.value} "
                f"manifest={c.manifest_entries} read={c.records_read} "
                f"processed={c.records_processed} committed={c.records_committed} "
                f"removed={c.records_removed} warnings={c.warnings} errors={c.errors}"
            )

        if self.index_result is not None:
            r = self.index_result
            lines.append(
                f"index: {r.phase.value} alias={r.alias} generation={r.generation} "
                f"documents={r.documents_indexed} donors={r.donors_indexed} "
                f"repositories={r.repositories_indexed} archive={r.archive_uri}"
            )

        if self.exceptions:
            lines.append("")
            total = len(self.exceptions)
            for i, exc in enumerate(self.exceptions, start=1):
                lines.append(
                    f"[{i}/{total}] {exc.source} ({exc.kind.value} @ {exc.phase}): {exc.message}"
                )
                lines.append(f"    cause: {exc.cause}")

        return "\n".join(lines)
