"""filerepo application wiring.

Builds every provider, adapter and pipeline from :class:`Settings` and the
``sources:`` section of ``config/config.yaml``, then runs one coordinator
pass via :func:`run_import`.  Each factory takes its collaborators
explicitly so tests and scripts can swap any of them.

Startup problems (invalid YAML, bad store URI, unknown source type) raise
:class:`~filerepo.utils.errors.ConfigurationError` before any source is
contacted; once the coordinator runs, failures are reported, not raised.
"""

from __future__ import annotations

from typing import Iterable

import httpx
import structlog

from filerepo.adapters.analysis_catalog_adapter import AnalysisCatalogAdapter
from filerepo.adapters.transfer_job_adapter import TransferJobAdapter
from filerepo.config.loader import load_config, load_sources
from filerepo.config.settings import Settings
from filerepo.config.sources import (
    AnalysisCatalogSourceConfig,
    SourceConfig,
    TransferJobSourceConfig,
)
from filerepo.interfaces.archive_sink import IArchiveSink
from filerepo.interfaces.document_store_provider import IDocumentStoreProvider
from filerepo.interfaces.manifest_source_provider import IManifestSourceProvider
from filerepo.interfaces.notification_provider import INotificationProvider
from filerepo.interfaces.search_index_provider import ISearchIndexProvider
from filerepo.interfaces.source_adapter import SourceAdapter
from filerepo.models.pipeline import ALL_STEPS, Report, RunStep
from filerepo.models.repository import RepositoryServer
from filerepo.pipeline.import_orchestrator import ImportOrchestrator
from filerepo.pipeline.indexing_pipeline import IndexingPipeline
from filerepo.pipeline.run_coordinator import RunCoordinator
from filerepo.providers.archive.fsspec_archive_sink import FsspecArchiveSink
from filerepo.providers.catalog.http_catalog_provider import HttpCatalogProvider
from filerepo.providers.document_store.sqlite_document_store import SQLiteDocumentStore
from filerepo.providers.manifest.git_manifest_source_provider import GitManifestSourceProvider
from filerepo.providers.notification.null_notification_provider import NullNotificationProvider
from filerepo.providers.notification.webhook_notification_provider import (
    WebhookNotificationProvider,
)
from filerepo.providers.object_store.s3_object_store_provider import S3ObjectStoreProvider
from filerepo.providers.search_index.sqlite_search_index import SQLiteSearchIndex
from filerepo.utils.errors import ConfigurationError
from filerepo.utils.logging import configure_logging, get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


def _timeout(seconds: float) -> float | None:
    """Settings use ``0`` for "no timeout"."""
    return seconds if seconds > 0 else None


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


def build_document_store(app_settings: Settings) -> SQLiteDocumentStore:
    return SQLiteDocumentStore(
        store_uri=app_settings.store_uri,
        database=app_settings.store_database,
        timeout=app_settings.write_timeout or 30.0,
    )


def build_search_index(app_settings: Settings) -> SQLiteSearchIndex:
    return SQLiteSearchIndex(
        db_path=app_settings.search_index_path,
        timeout=app_settings.write_timeout or 30.0,
    )


def build_archive_sink(app_settings: Settings) -> FsspecArchiveSink:  # noqa: ARG001
    return FsspecArchiveSink()


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


def build_adapters(
    app_settings: Settings,
    sources: Iterable[SourceConfig],
    http_client: httpx.AsyncClient,
    manifests: IManifestSourceProvider | None = None,
) -> list[SourceAdapter]:
    """Construct one adapter per configured source.

    Parameters
    ----------
    app_settings:
        Application settings (AWS region, timeouts, manifest checkout dir).
    sources:
        Validated ``sources:`` entries.
    http_client:
        Shared client for every catalog source.
    manifests:
        Manifest checkout provider shared by transfer-job sources; a git
        provider rooted at ``manifest_work_dir`` when omitted.
    """
    manifests = manifests or GitManifestSourceProvider(work_dir=app_settings.manifest_work_dir)

    adapters: list[SourceAdapter] = []
    for source in sources:
        if isinstance(source, TransferJobSourceConfig):
            object_store = S3ObjectStoreProvider(
                bucket=source.bucket,
                region=source.region or app_settings.aws_region,
                endpoint_url=source.endpoint_url or app_settings.s3_endpoint_url or None,
                timeout=app_settings.catalog_timeout,
            )
            adapters.append(TransferJobAdapter(source, manifests, object_store))
        elif isinstance(source, AnalysisCatalogSourceConfig):
            catalog = HttpCatalogProvider(
                base_url=source.base_url,
                http_client=http_client,
                timeout=app_settings.catalog_timeout,
            )
            adapters.append(AnalysisCatalogAdapter(source, catalog))
        else:
            raise ConfigurationError(message=f"Unsupported source type: {type(source).__name__}")

        _logger.debug("adapter_built", source=source.source.value, type=source.type)
    return adapters


# ---------------------------------------------------------------------------
# Pipelines
# ---------------------------------------------------------------------------


def repository_servers(sources: Iterable[SourceConfig]) -> list[RepositoryServer]:
    """Every repository endpoint the sources declare, in configuration order."""
    servers: list[RepositoryServer] = []
    for source in sources:
        if isinstance(source, TransferJobSourceConfig):
            servers.append(source.server)
        elif isinstance(source, AnalysisCatalogSourceConfig):
            servers.extend(source.servers)
    return servers


def build_indexing_pipeline(
    app_settings: Settings,
    store: IDocumentStoreProvider,
    search_index: ISearchIndexProvider,
    archive_sink: IArchiveSink,
    repositories: Iterable[RepositoryServer] = (),
) -> IndexingPipeline:
    return IndexingPipeline(
        store=store,
        search_index=search_index,
        archive_sink=archive_sink,
        collection=app_settings.store_collection,
        alias=app_settings.index_alias,
        archive_dir=app_settings.archive_dir,
        batch_size=app_settings.index_batch_size,
        parallelism=app_settings.index_parallelism,
        retain_generations=app_settings.index_retain_generations,
        write_timeout=_timeout(app_settings.write_timeout),
        repositories=list(repositories),
    )


def build_notifier(
    app_settings: Settings,
    http_client: httpx.AsyncClient | None = None,
) -> INotificationProvider:
    """Webhook notifier when a URL is configured, otherwise a no-op."""
    if app_settings.notification_webhook_url:
        return WebhookNotificationProvider(
            url=app_settings.notification_webhook_url,
            http_client=http_client,
        )
    return NullNotificationProvider()


def build_run_coordinator(
    app_settings: Settings,
    adapters: list[SourceAdapter],
    store: IDocumentStoreProvider,
    search_index: ISearchIndexProvider,
    archive_sink: IArchiveSink,
    notifier: INotificationProvider,
    active_sources: Iterable[str] | None = None,
    repositories: Iterable[RepositoryServer] = (),
) -> RunCoordinator:
    """Assemble the coordinator; orchestrators and pipelines are built per run."""
    servers = list(repositories)

    def orchestrator_factory(adapter: SourceAdapter) -> ImportOrchestrator:
        return ImportOrchestrator(
            adapter=adapter,
            store=store,
            collection=app_settings.store_collection,
            commit_window=app_settings.commit_window,
            read_timeout=_timeout(app_settings.read_timeout),
            write_timeout=_timeout(app_settings.write_timeout),
        )

    def indexing_pipeline_factory() -> IndexingPipeline:
        return build_indexing_pipeline(app_settings, store, search_index, archive_sink, servers)

    return RunCoordinator(
        adapters=adapters,
        orchestrator_factory=orchestrator_factory,
        indexing_pipeline_factory=indexing_pipeline_factory,
        notifier=notifier,
        concurrent=app_settings.concurrent_sources,
        active_sources=(
            active_sources if active_sources is not None else app_settings.get_active_sources()
        ),
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def run_import(
    custom_settings: Settings | None = None,
    steps: Iterable[RunStep] | None = None,
    active_sources: Iterable[str] | None = None,
) -> Report:
    """Run one full import/index pass and return its report.

    Parameters
    ----------
    custom_settings:
        Application settings; read from the environment when omitted.
    steps:
        Steps to execute; both IMPORT and INDEX when omitted.
    active_sources:
        Source tags overriding ``ACTIVE_SOURCES``.

    Raises
    ------
    ConfigurationError
        If the configuration is invalid.
    """
    s = custom_settings or Settings()
    configure_logging(log_level=s.log_level, json_output=(s.app_env == "production"))

    config = load_config(s.sources_config_path, settings=s)
    sources = load_sources(config)
    _logger.info(
        "configuration_loaded",
        path=s.sources_config_path,
        sources=[source.source.value for source in sources],
    )

    store = build_document_store(s)
    search_index = build_search_index(s)
    archive_sink = build_archive_sink(s)
    await store.initialize()
    await search_index.initialize()

    async with httpx.AsyncClient(timeout=s.catalog_timeout) as http_client:
        coordinator = build_run_coordinator(
            s,
            adapters=build_adapters(s, sources, http_client),
            store=store,
            search_index=search_index,
            archive_sink=archive_sink,
            notifier=build_notifier(s, http_client),
            active_sources=active_sources,
            repositories=repository_servers(sources),
        )
        return await coordinator.run(steps if steps is not None else ALL_STEPS)
