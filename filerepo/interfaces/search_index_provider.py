"""Abstract base class for search-index providers.

The indexing pipeline never writes into the index that readers currently
see.  It builds a new *generation* (a separately named index), then
repoints a public *alias* at it in one atomic operation.  Readers always
query through the alias.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


# Concrete implementation: SQLiteSearchIndex (filerepo/providers/search_index/)
class ISearchIndexProvider(ABC):
    """Contract for generation-based search indices with alias swapping."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create any backing structures.  Must be idempotent."""

    @abstractmethod
    async def create_index(self, generation: str) -> None:
        """Create an empty index generation.

        Raises
        ------
        filerepo.utils.errors.IndexBuildError
            If a generation with that name already exists.
        """

    @abstractmethod
    async def bulk_index(
        self,
        generation: str,
        documents: list[dict[str, Any]],
        doc_type: str = "file",
    ) -> int:
        """Write *documents* of type *doc_type* into *generation*.

        Each document must carry an ``"id"`` key; re-indexing an id of the
        same type replaces the earlier document.  Returns the number of
        documents written.
        """

    @abstractmethod
    async def swap_alias(self, alias: str, generation: str) -> str | None:
        """Atomically point *alias* at *generation*.

        Returns the generation the alias pointed at before, if any.
        """

    @abstractmethod
    async def delete_index(self, generation: str) -> None:
        """Drop a generation and its documents.

        Raises
        ------
        filerepo.utils.errors.IndexBuildError
            If the generation is currently aliased.
        """

    @abstractmethod
    async def list_indices(self, prefix: str = "") -> list[str]:
        """Return generation names starting with *prefix*, oldest first."""

    @abstractmethod
    async def get_alias(self, alias: str) -> str | None:
        """Return the generation *alias* currently points at."""

    @abstractmethod
    async def count(self, name: str, doc_type: str = "file") -> int:
        """Count *doc_type* documents in an alias or generation (alias takes precedence)."""

    @abstractmethod
    async def search(
        self,
        alias: str,
        text: str = "",
        limit: int = 20,
        doc_type: str = "file",
    ) -> list[dict[str, Any]]:
        """Return *doc_type* documents of the aliased generation matching *text*."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"sqlite_search"``."""
