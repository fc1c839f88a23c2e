"""Public interface definitions for every external collaborator.

Every external repository, store or delivery channel is accessed
exclusively through the abstract base classes defined in this package.
Concrete implementations are injected at runtime by the factories in
``filerepo/main.py``; tests inject fakes or ``MagicMock(spec=...)``.

CONCRETE PROVIDER MAP:
    Interface                  ->  Concrete implementations
    ---------------------------------------------------------------------
    SourceAdapter              ->  TransferJobAdapter, AnalysisCatalogAdapter
    IObjectStoreProvider       ->  S3ObjectStoreProvider
    ICatalogProvider           ->  HttpCatalogProvider
    IManifestSourceProvider    ->  GitManifestSourceProvider
    IDocumentStoreProvider     ->  SQLiteDocumentStore
    ISearchIndexProvider       ->  SQLiteSearchIndex
    IArchiveSink               ->  FsspecArchiveSink
    INotificationProvider      ->  NullNotificationProvider,
                                   WebhookNotificationProvider
"""

from filerepo.interfaces.archive_sink import IArchiveSink
from filerepo.interfaces.catalog_provider import ICatalogProvider
from filerepo.interfaces.document_store_provider import IDocumentStoreProvider
from filerepo.interfaces.manifest_source_provider import IManifestSourceProvider
from filerepo.interfaces.notification_provider import INotificationProvider
from filerepo.interfaces.object_store_provider import IObjectStoreProvider, ObjectSummary
from filerepo.interfaces.search_index_provider import ISearchIndexProvider
from filerepo.interfaces.source_adapter import SourceAdapter

__all__ = [
    "IArchiveSink",
    "ICatalogProvider",
    "IDocumentStoreProvider",
    "IManifestSourceProvider",
    "INotificationProvider",
    "IObjectStoreProvider",
    "ISearchIndexProvider",
    "ObjectSummary",
    "SourceAdapter",
]
