"""JSON catalog API providers."""

from filerepo.providers.catalog.http_catalog_provider import HttpCatalogProvider

__all__ = ["HttpCatalogProvider"]
