"""SQLite-backed search index with generation aliases.

Each indexing run writes into a new *generation* (a named index) and then
repoints the public alias at it.  The alias swap is a single
``BEGIN IMMEDIATE`` transaction, and every read resolves the alias inside
the same SQL statement that reads the documents, so a reader sees either
the old generation or the new one, never a mix.

Documents carry a type (``file``, ``donor``, ``repository``); ids are unique
per type within a generation.

Uses ``aiosqlite`` for async I/O with a fresh connection per call, which
lets batches of one generation be written concurrently.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from filerepo.interfaces.search_index_provider import ISearchIndexProvider
from filerepo.utils.errors import IndexBuildError

logger = structlog.get_logger(logger_name=__name__)

_PROVIDER_NAME = "sqlite_search"

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS indices (
    name        TEXT    PRIMARY KEY,
    created_at  TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
""",
    """\
CREATE TABLE IF NOT EXISTS documents (
    index_name  TEXT    NOT NULL,
    doc_type    TEXT    NOT NULL DEFAULT 'file',
    doc_id      TEXT    NOT NULL,
    body        TEXT    NOT NULL,
    search_text TEXT    NOT NULL,
    PRIMARY KEY (index_name, doc_type, doc_id)
);
""",
    """\
CREATE TABLE IF NOT EXISTS aliases (
    alias       TEXT    PRIMARY KEY,
    index_name  TEXT    NOT NULL
);
""",
]

_INSERT_DOC_SQL = """\
INSERT INTO documents (index_name, doc_type, doc_id, body, search_text)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT(index_name, doc_type, doc_id)
DO UPDATE SET body = excluded.body, search_text = excluded.search_text;
"""

# Alias resolution and document read happen in one statement.
_SEARCH_SQL = """\
SELECT d.body FROM documents d
JOIN aliases a ON a.index_name = d.index_name
WHERE a.alias = ? AND d.doc_type = ? AND d.search_text LIKE ?
ORDER BY d.doc_id
LIMIT ?;
"""

_COUNT_SQL = """\
SELECT COUNT(*) FROM documents
WHERE index_name = COALESCE((SELECT index_name FROM aliases WHERE alias = ?), ?)
  AND doc_type = ?;
"""


def _search_text(document: dict[str, Any]) -> str:
    return json.dumps(document, sort_keys=True).lower()


class SQLiteSearchIndex(ISearchIndexProvider):
    """Generation/alias search index persisted in a single SQLite file."""

    def __init__(self, db_path: str | Path, timeout: float = 30.0) -> None:
        self._db_path = Path(db_path)
        self._timeout = timeout

    def _connect(self) -> aiosqlite.Connection:
        return aiosqlite.connect(str(self._db_path), timeout=self._timeout, isolation_level=None)

    async def initialize(self) -> None:
        """Create the index tables if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            await db.execute("PRAGMA journal_mode=WAL;")
            for sql in _CREATE_TABLES_SQL:
                await db.execute(sql)
        logger.info("search_index_initialized", path=str(self._db_path))

    async def create_index(self, generation: str) -> None:
        try:
            async with self._connect() as db:
                await db.execute("INSERT INTO indices (name) VALUES (?);", (generation,))
        except aiosqlite.IntegrityError as exc:
            raise IndexBuildError(
                message=f"Index generation {generation} already exists",
                source_name=_PROVIDER_NAME,
            ) from exc
        except aiosqlite.Error as exc:
            raise IndexBuildError(
                message=f"Could not create index {generation}: {exc}",
                source_name=_PROVIDER_NAME,
            ) from exc
        logger.info("index_generation_created", generation=generation)

    async def bulk_index(
        self,
        generation: str,
        documents: list[dict[str, Any]],
        doc_type: str = "file",
    ) -> int:
        rows = [
            (generation, doc_type, str(doc["id"]), json.dumps(doc), _search_text(doc))
            for doc in documents
        ]
        try:
            async with self._connect() as db:
                await db.execute("BEGIN IMMEDIATE;")
                try:
                    cursor = await db.execute(
                        "SELECT 1 FROM indices WHERE name = ?;", (generation,)
                    )
                    if await cursor.fetchone() is None:
                        raise IndexBuildError(
                            message=f"Index generation {generation} does not exist",
                            source_name=_PROVIDER_NAME,
                        )
                    await db.executemany(_INSERT_DOC_SQL, rows)
                    await db.execute("COMMIT;")
                except BaseException:
                    await db.execute("ROLLBACK;")
                    raise
        except aiosqlite.Error as exc:
            raise IndexBuildError(
                message=f"Bulk write into {generation} failed: {exc}",
                source_name=_PROVIDER_NAME,
            ) from exc
        return len(rows)

    async def swap_alias(self, alias: str, generation: str) -> str | None:
        try:
            async with self._connect() as db:
                await db.execute("BEGIN IMMEDIATE;")
                try:
                    cursor = await db.execute(
                        "SELECT 1 FROM indices WHERE name = ?;", (generation,)
                    )
                    if await cursor.fetchone() is None:
                        raise IndexBuildError(
                            message=f"Cannot alias missing generation {generation}",
                            source_name=_PROVIDER_NAME,
                        )
                    cursor = await db.execute(
                        "SELECT index_name FROM aliases WHERE alias = ?;", (alias,)
                    )
                    row = await cursor.fetchone()
                    previous = row[0] if row else None
                    await db.execute(
                        "INSERT INTO aliases (alias, index_name) VALUES (?, ?) "
                        "ON CONFLICT(alias) DO UPDATE SET index_name = excluded.index_name;",
                        (alias, generation),
                    )
                    await db.execute("COMMIT;")
                except BaseException:
                    await db.execute("ROLLBACK;")
                    raise
        except aiosqlite.Error as exc:
            raise IndexBuildError(
                message=f"Alias swap {alias} -> {generation} failed: {exc}",
                source_name=_PROVIDER_NAME,
            ) from exc

        logger.info("alias_swapped", alias=alias, generation=generation, previous=previous)
        return previous

    async def delete_index(self, generation: str) -> None:
        try:
            async with self._connect() as db:
                await db.execute("BEGIN IMMEDIATE;")
                try:
                    cursor = await db.execute(
                        "SELECT alias FROM aliases WHERE index_name = ?;", (generation,)
                    )
                    row = await cursor.fetchone()
                    if row is not None:
                        raise IndexBuildError(
                            message=f"Generation {generation} is aliased by {row[0]}",
                            source_name=_PROVIDER_NAME,
                        )
                    await db.execute("DELETE FROM documents WHERE index_name = ?;", (generation,))
                    await db.execute("DELETE FROM indices WHERE name = ?;", (generation,))
                    await db.execute("COMMIT;")
                except BaseException:
                    await db.execute("ROLLBACK;")
                    raise
        except aiosqlite.Error as exc:
            raise IndexBuildError(
                message=f"Could not delete index {generation}: {exc}",
                source_name=_PROVIDER_NAME,
            ) from exc
        logger.info("index_generation_deleted", generation=generation)

    async def list_indices(self, prefix: str = "") -> list[str]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT name FROM indices WHERE substr(name, 1, ?) = ? "
                "ORDER BY created_at, rowid;",
                (len(prefix), prefix),
            )
            rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def get_alias(self, alias: str) -> str | None:
        async with self._connect() as db:
            cursor = await db.execute("SELECT index_name FROM aliases WHERE alias = ?;", (alias,))
            row = await cursor.fetchone()
        return row[0] if row else None

    async def count(self, name: str, doc_type: str = "file") -> int:
        async with self._connect() as db:
            cursor = await db.execute(_COUNT_SQL, (name, name, doc_type))
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def search(
        self,
        alias: str,
        text: str = "",
        limit: int = 20,
        doc_type: str = "file",
    ) -> list[dict[str, Any]]:
        pattern = f"%{text.lower()}%"
        async with self._connect() as db:
            cursor = await db.execute(_SEARCH_SQL, (alias, doc_type, pattern, limit))
            rows = await cursor.fetchall()
        return [json.loads(row[0]) for row in rows]

    def get_provider_name(self) -> str:
        return _PROVIDER_NAME
