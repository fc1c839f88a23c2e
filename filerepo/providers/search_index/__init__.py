"""Search-index providers with generation/alias semantics."""

from filerepo.providers.search_index.sqlite_search_index import SQLiteSearchIndex

__all__ = ["SQLiteSearchIndex"]
