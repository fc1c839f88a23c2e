"""Abstract base class for JSON catalog API providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


# Concrete implementation: HttpCatalogProvider (filerepo/providers/catalog/)
class ICatalogProvider(ABC):
    """Contract for read-only JSON catalog queries."""

    @abstractmethod
    async def fetch_json(
        self,
        endpoint: str,
        query: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Fetch one JSON document.

        Parameters
        ----------
        endpoint:
            Path relative to the catalog base URL (or an absolute URL).
        query:
            Query-string parameters.

        Returns
        -------
        dict[str, Any]
            The decoded JSON object.

        Raises
        ------
        filerepo.utils.errors.SourceUnavailableError
            On transport errors, timeouts, non-2xx responses or a body
            that is not a JSON object.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"http_catalog"``."""
