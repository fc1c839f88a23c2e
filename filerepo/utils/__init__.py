"""Utility modules for filerepo.

- **errors** -- Domain-specific exception hierarchy rooted at FileRepoError;
  each pipeline stage raises its own subclass so the run coordinator can
  classify captured failures.
- **concurrency** -- bounded in-flight task window and per-item timeouts
  for streamed external reads.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

from filerepo.utils.concurrency import TaskWindow, aiter_with_timeout
from filerepo.utils.errors import (
    ArchiveError,
    CommitError,
    ConfigurationError,
    FileRepoError,
    IndexBuildError,
    PipelineError,
    SourceUnavailableError,
)
from filerepo.utils.logging import (
    bind_run_context,
    clear_run_context,
    configure_logging,
    get_logger,
)

__all__ = [
    "ArchiveError",
    "CommitError",
    "ConfigurationError",
    "FileRepoError",
    "IndexBuildError",
    "PipelineError",
    "SourceUnavailableError",
    "TaskWindow",
    "aiter_with_timeout",
    "bind_run_context",
    "clear_run_context",
    "configure_logging",
    "get_logger",
]
