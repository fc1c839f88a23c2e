"""HTTP JSON catalog provider.

Thin wrapper over an injected ``httpx.AsyncClient``: one GET per call,
JSON decoded, every transport or protocol failure surfaced as
:class:`~filerepo.utils.errors.SourceUnavailableError`.  Nothing is
retried; the run coordinator reports the failure and the next run picks
the source up again.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from filerepo.interfaces.catalog_provider import ICatalogProvider
from filerepo.utils.errors import SourceUnavailableError

logger = structlog.get_logger(logger_name=__name__)


class HttpCatalogProvider(ICatalogProvider):
    """Read-only JSON catalog client.

    Parameters
    ----------
    base_url:
        Catalog root; relative endpoints are joined onto it.
    http_client:
        Shared ``httpx.AsyncClient``, injected for testability and
        connection pooling.
    timeout:
        Per-request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = http_client
        self._timeout = timeout

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self._base_url}/{endpoint.lstrip('/')}"

    async def fetch_json(
        self,
        endpoint: str,
        query: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = self._url(endpoint)
        try:
            response = await self._http.get(
                url,
                params=query,
                headers={"Accept": "application/json"},
                timeout=self._timeout,
                follow_redirects=True,
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            logger.warning("catalog_request_failed", url=url, error=str(exc))
            raise SourceUnavailableError(
                message=f"Catalog request {url} failed: {exc}",
                source_name=self.get_provider_name(),
            ) from exc
        except ValueError as exc:
            raise SourceUnavailableError(
                message=f"Catalog response from {url} is not valid JSON",
                source_name=self.get_provider_name(),
            ) from exc

        if not isinstance(payload, dict):
            raise SourceUnavailableError(
                message=f"Catalog response from {url} is not a JSON object",
                source_name=self.get_provider_name(),
            )
        return payload

    def get_provider_name(self) -> str:
        return "http_catalog"
