"""SQLite-backed document store.

Persists canonical file records as JSON documents keyed by
``(collection, key)`` in ``<store directory>/<database>.db``.  Uses
``aiosqlite`` for async I/O and opens a fresh connection per call.

Upserts run inside a ``BEGIN IMMEDIATE`` transaction: the stored document
is read, shallow-merged with the incoming record (incoming top-level
fields win, unrelated stored fields survive) and written back, so two
writers to the same key serialize and the last one wins.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, AsyncIterator
from urllib.parse import parse_qs, urlparse

import aiosqlite
import structlog

from filerepo.interfaces.document_store_provider import IDocumentStoreProvider
from filerepo.utils.errors import CommitError, ConfigurationError, FileRepoError

logger = structlog.get_logger(logger_name=__name__)

_PROVIDER_NAME = "sqlite_store"

_DATABASE_SUFFIXES = (".db", ".sqlite", ".sqlite3")
_RESERVED_QUERY_KEYS = frozenset({"database", "db", "collection"})

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS documents (
    collection  TEXT    NOT NULL,
    doc_key     TEXT    NOT NULL,
    body        TEXT    NOT NULL,
    updated_at  TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    PRIMARY KEY (collection, doc_key)
);
"""

_SELECT_SQL = "SELECT body FROM documents WHERE collection = ? AND doc_key = ?;"

_UPSERT_SQL = """\
INSERT INTO documents (collection, doc_key, body)
VALUES (?, ?, ?)
ON CONFLICT(collection, doc_key)
DO UPDATE SET body       = excluded.body,
              updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now');
"""

_PAGE_SQL = """\
SELECT doc_key, body FROM documents
WHERE collection = ? AND doc_key > ?
ORDER BY doc_key
LIMIT ?;
"""


def validate_store_uri(store_uri: str) -> Path:
    """Resolve *store_uri* to the store directory.

    Accepts a plain path or a ``sqlite://`` / ``file://`` URI naming a
    directory.  The database is bound separately, so a URI that already
    names a database file or carries a database/collection query
    parameter is rejected.

    Raises
    ------
    ConfigurationError
        If the URI embeds a database or collection name.
    """
    parsed = urlparse(store_uri)
    if parsed.scheme in ("sqlite", "file"):
        raw_path = parsed.path
        if parsed.netloc not in ("", "localhost"):
            raw_path = parsed.netloc + parsed.path
        elif parsed.scheme == "sqlite":
            # sqlite:///relative/dir, sqlite:////absolute/dir
            raw_path = raw_path[1:]
        query = parse_qs(parsed.query, keep_blank_values=True)
        if _RESERVED_QUERY_KEYS.intersection(k.lower() for k in query):
            raise ConfigurationError(
                message=f"Store URI must not name a database or collection: {store_uri}",
                source_name=_PROVIDER_NAME,
            )
        if parsed.fragment:
            raise ConfigurationError(
                message=f"Store URI must not name a collection: {store_uri}",
                source_name=_PROVIDER_NAME,
            )
    elif parsed.scheme and len(parsed.scheme) > 1:
        raise ConfigurationError(
            message=f"Unsupported store URI scheme '{parsed.scheme}': {store_uri}",
            source_name=_PROVIDER_NAME,
        )
    else:
        raw_path = store_uri

    if not raw_path:
        raise ConfigurationError(message="Store URI is empty", source_name=_PROVIDER_NAME)
    path = Path(raw_path)
    if path.suffix.lower() in _DATABASE_SUFFIXES:
        raise ConfigurationError(
            message=f"Store URI must name a directory, not a database file: {store_uri}",
            source_name=_PROVIDER_NAME,
        )
    return path


class SQLiteDocumentStore(IDocumentStoreProvider):
    """SQLite-backed JSON document persistence.

    Parameters
    ----------
    store_uri:
        Directory (plain path or ``sqlite:///dir`` URI) holding the
        database files.
    database:
        Database name; the file is ``<store directory>/<database>.db``.
    timeout:
        Seconds a writer waits for the database lock before failing.
    page_size:
        Documents fetched per keyset page in :meth:`query_all`.
    """

    def __init__(
        self,
        store_uri: str,
        database: str,
        timeout: float = 30.0,
        page_size: int = 500,
    ) -> None:
        if not database or "/" in database or "." in database:
            raise ConfigurationError(
                message=f"Invalid database name: {database!r}",
                source_name=_PROVIDER_NAME,
            )
        self._db_path = validate_store_uri(store_uri) / f"{database}.db"
        self._timeout = timeout
        self._page_size = max(1, page_size)

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> aiosqlite.Connection:
        return aiosqlite.connect(str(self._db_path), timeout=self._timeout, isolation_level=None)

    async def initialize(self) -> None:
        """Create the documents table if it doesn't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            await db.execute("PRAGMA journal_mode=WAL;")
            await db.execute(_CREATE_TABLE_SQL)
        logger.info("document_store_initialized", path=str(self._db_path))

    async def upsert(self, collection: str, key: str, record: dict[str, Any]) -> None:
        """Shallow-merge *record* into the document stored under *key*."""
        try:
            async with self._connect() as db:
                await db.execute("BEGIN IMMEDIATE;")
                try:
                    cursor = await db.execute(_SELECT_SQL, (collection, key))
                    row = await cursor.fetchone()
                    merged = {**json.loads(row[0]), **record} if row else dict(record)
                    await db.execute(_UPSERT_SQL, (collection, key, json.dumps(merged)))
                    await db.execute("COMMIT;")
                except BaseException:
                    await db.execute("ROLLBACK;")
                    raise
        except (aiosqlite.Error, TypeError, ValueError) as exc:
            raise CommitError(
                message=f"Upsert of {collection}/{key} failed: {exc}",
                source_name=_PROVIDER_NAME,
            ) from exc

    async def delete(self, collection: str, key: str) -> bool:
        try:
            async with self._connect() as db:
                cursor = await db.execute(
                    "DELETE FROM documents WHERE collection = ? AND doc_key = ?;",
                    (collection, key),
                )
                deleted = cursor.rowcount > 0
        except aiosqlite.Error as exc:
            raise CommitError(
                message=f"Delete of {collection}/{key} failed: {exc}",
                source_name=_PROVIDER_NAME,
            ) from exc
        if deleted:
            logger.debug("document_deleted", collection=collection, key=key)
        return deleted

    async def get(self, collection: str, key: str) -> dict[str, Any] | None:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_SQL, (collection, key))
            row = await cursor.fetchone()
        return json.loads(row[0]) if row else None

    async def count(self, collection: str, key_prefix: str = "") -> int:
        async with self._connect() as db:
            if key_prefix:
                cursor = await db.execute(
                    "SELECT COUNT(*) FROM documents WHERE collection = ? "
                    "AND substr(doc_key, 1, ?) = ?;",
                    (collection, len(key_prefix), key_prefix),
                )
            else:
                cursor = await db.execute(
                    "SELECT COUNT(*) FROM documents WHERE collection = ?;",
                    (collection,),
                )
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def query_all(self, collection: str) -> AsyncIterator[dict[str, Any]]:
        """Stream every document of *collection* in key order.

        Pages are fetched by keyset (``doc_key > last``) on a fresh
        connection each, so no cursor is held open while the caller
        processes a page.
        """
        last_key = ""
        while True:
            try:
                async with self._connect() as db:
                    cursor = await db.execute(_PAGE_SQL, (collection, last_key, self._page_size))
                    rows = await cursor.fetchall()
            except aiosqlite.Error as exc:
                raise FileRepoError(
                    message=f"Query of collection {collection} failed: {exc}",
                    source_name=_PROVIDER_NAME,
                ) from exc

            for _key, body in rows:
                yield json.loads(body)
            if len(rows) < self._page_size:
                return
            last_key = rows[-1][0]

    def get_provider_name(self) -> str:
        return _PROVIDER_NAME
