"""Structured logging setup using structlog.

Console rendering for interactive runs, JSON for scheduled imports
(``APP_ENV=production`` or ``json_output=True``).  Both renderers share one
processor chain, and stdlib ``logging`` is routed through the same chain so
httpx, botocore and aiosqlite records look like ours.

Every record emitted during a coordinated run carries a ``run_id`` bound
through :func:`bind_run_context`; concurrent source imports inherit it
because asyncio tasks copy the current context.
"""

import logging
import os
import sys
import uuid

import structlog

_NOISY_LOGGERS = ("botocore", "boto3", "urllib3", "httpcore", "aiosqlite")


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Configure structlog for the current environment.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output regardless of ``APP_ENV``.

    Returns:
        A configured structlog BoundLogger.
    """
    use_json = json_output or os.environ.get("APP_ENV", "development") == "production"
    level = logging.getLevelName(log_level.upper())

    # contextvars first so run_id/source bindings reach every renderer.
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *shared_processors,
                renderer,
            ],
        )
    )
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Credential discovery and per-request chatter stay at WARNING.
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a logger bound to *name*, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)


def bind_run_context(run_id: str | None = None) -> str:
    """Bind a ``run_id`` to every record logged in the current context.

    Returns the bound id (a fresh 12-character hex id when *run_id* is None).
    Pair with :func:`clear_run_context` once the run ends.
    """
    run_id = run_id or uuid.uuid4().hex[:12]
    structlog.contextvars.bind_contextvars(run_id=run_id)
    return run_id


def clear_run_context() -> None:
    """Drop the bindings made by :func:`bind_run_context`."""
    structlog.contextvars.unbind_contextvars("run_id")
