"""Custom exception hierarchy for filerepo.

All application exceptions inherit from :class:`FileRepoError`, which
carries an optional ``source_name`` so error handlers can identify which
external repository or provider (e.g. "aws", "pcawg", "sqlite_store")
caused the failure.

The hierarchy is organized by pipeline domain:

    FileRepoError  (base -- catch-all for any filerepo error)
    +-- SourceUnavailableError   (manifest / inventory read failure)
    +-- CommitError              (document-store write for one record)
    +-- IndexBuildError          (search index generation build / alias swap)
    +-- ArchiveError             (snapshot export to the archive sink)
    +-- PipelineError            (orchestration / phase transitions)
    +-- ConfigurationError       (startup / missing or invalid config)

None of these cross an adapter boundary uncaught: the run coordinator
converts them into :class:`~filerepo.models.pipeline.RunException` values.
"""


class FileRepoError(Exception):
    """Base exception for all filerepo errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``source_name`` identifying which source or provider triggered the
    error.  ``__str__`` prefixes the source name in brackets for
    structured log output, e.g. ``[aws] Bucket listing failed``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        source_name: str | None = None,
    ) -> None:
        self._message = message
        self._source_name = source_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def source_name(self) -> str | None:
        return self._source_name

    def __str__(self) -> str:
        if self._source_name:
            return f"[{self._source_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Import errors
# ---------------------------------------------------------------------------

class SourceUnavailableError(FileRepoError):
    """Raised when a manifest or inventory source cannot be read.

    Aborts the run of the affected adapter only.
    """

    def __init__(
        self,
        message: str = "External source is unavailable",
        source_name: str | None = None,
    ) -> None:
        super().__init__(message=message, source_name=source_name)


class CommitError(FileRepoError):
    """Raised when the document store rejects a single record write."""

    def __init__(
        self,
        message: str = "Document store write failed",
        source_name: str | None = None,
    ) -> None:
        super().__init__(message=message, source_name=source_name)


# ---------------------------------------------------------------------------
# Indexing errors
# ---------------------------------------------------------------------------

class IndexBuildError(FileRepoError):
    """Raised when a search index generation cannot be built or aliased."""

    def __init__(
        self,
        message: str = "Search index build failed",
        source_name: str | None = None,
    ) -> None:
        super().__init__(message=message, source_name=source_name)


class ArchiveError(FileRepoError):
    """Raised when the corpus archive cannot be written."""

    def __init__(
        self,
        message: str = "Archive export failed",
        source_name: str | None = None,
    ) -> None:
        super().__init__(message=message, source_name=source_name)


# ---------------------------------------------------------------------------
# Orchestration / configuration errors
# ---------------------------------------------------------------------------

class PipelineError(FileRepoError):
    """Raised when pipeline orchestration fails (invalid phase transition, etc.)."""

    def __init__(
        self,
        message: str = "Pipeline orchestration failed",
        source_name: str | None = None,
    ) -> None:
        super().__init__(message=message, source_name=source_name)


class ConfigurationError(FileRepoError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        source_name: str | None = None,
    ) -> None:
        super().__init__(message=message, source_name=source_name)
