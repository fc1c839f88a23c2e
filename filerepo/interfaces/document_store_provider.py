"""Abstract base class for document-store providers.

Defines the contract the import orchestrator commits canonical records
through and the indexing pipeline reads the corpus back from.  Records are
JSON-compatible dicts addressed by ``(collection, key)``.

The connection string handed to an implementation must not embed a
database or collection name; the database is bound separately by the
caller and the collection is passed on every call.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator


# Concrete implementation: SQLiteDocumentStore (filerepo/providers/document_store/)
class IDocumentStoreProvider(ABC):
    """Contract for keyed JSON document persistence."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create any backing structures.  Must be idempotent."""

    @abstractmethod
    async def upsert(self, collection: str, key: str, record: dict[str, Any]) -> None:
        """Insert or update the document stored under *key*.

        Top-level fields present in *record* overwrite the stored ones;
        stored fields absent from *record* are kept.  The write is atomic
        and last-writer-wins.

        Raises
        ------
        filerepo.utils.errors.CommitError
            If the write fails.
        """

    @abstractmethod
    async def delete(self, collection: str, key: str) -> bool:
        """Remove the document under *key*.  Returns ``True`` if one existed.

        Raises
        ------
        filerepo.utils.errors.CommitError
            If the delete fails.
        """

    @abstractmethod
    async def get(self, collection: str, key: str) -> dict[str, Any] | None:
        """Return the document stored under *key*, or ``None``."""

    @abstractmethod
    async def count(self, collection: str, key_prefix: str = "") -> int:
        """Return the number of documents, optionally restricted to a key prefix."""

    @abstractmethod
    def query_all(self, collection: str) -> AsyncIterator[dict[str, Any]]:
        """Stream every document of *collection* in key order.

        Each call issues a fresh query; implementations page through the
        collection rather than holding one cursor open for the whole scan.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"sqlite_store"``."""
