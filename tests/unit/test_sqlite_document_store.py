"""Unit tests for SQLiteDocumentStore.

Runs against a temporary SQLite database per test.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from filerepo.providers.document_store.sqlite_document_store import (
    SQLiteDocumentStore,
    validate_store_uri,
)
from filerepo.utils.errors import CommitError, ConfigurationError

# ─── Store URI validation ─────────────────────────────────────────


class TestValidateStoreUri:
    @pytest.mark.parametrize(
        ("uri", "expected"),
        [
            ("data/store", Path("data/store")),
            ("sqlite:///data/store", Path("data/store")),
            ("sqlite:////var/lib/filerepo", Path("/var/lib/filerepo")),
            ("file:///var/lib/filerepo", Path("/var/lib/filerepo")),
        ],
    )
    def test_accepts_directories(self, uri: str, expected: Path) -> None:
        assert validate_store_uri(uri) == expected

    @pytest.mark.parametrize(
        "uri",
        [
            "sqlite:///data/store?database=repository",
            "sqlite:///data/store?collection=files",
            "sqlite:///data/store#files",
            "data/store/repository.db",
            "sqlite:///data/store/repository.sqlite",
            "mongodb://localhost/repository",
            "",
        ],
    )
    def test_rejects_embedded_names(self, uri: str) -> None:
        with pytest.raises(ConfigurationError):
            validate_store_uri(uri)

    def test_database_name_validated(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError):
            SQLiteDocumentStore(store_uri=str(tmp_path), database="repository.db")

    def test_database_file_location(self, tmp_path: Path) -> None:
        store = SQLiteDocumentStore(store_uri=str(tmp_path), database="repository")
        assert store.db_path == tmp_path / "repository.db"


# ─── Upsert / get / delete ────────────────────────────────────────


@pytest.mark.asyncio
async def test_initialize_is_idempotent(document_store: SQLiteDocumentStore) -> None:
    await document_store.initialize()
    assert document_store.get_provider_name() == "sqlite_store"


@pytest.mark.asyncio
async def test_upsert_and_get(document_store: SQLiteDocumentStore) -> None:
    await document_store.upsert("files", "aws/1", {"file_name": "a.bam", "size": 1})
    assert await document_store.get("files", "aws/1") == {"file_name": "a.bam", "size": 1}
    assert await document_store.get("files", "aws/missing") is None


@pytest.mark.asyncio
async def test_upsert_merges_shallowly(document_store: SQLiteDocumentStore) -> None:
    await document_store.upsert("files", "aws/1", {"file_name": "a.bam", "curated": True})
    await document_store.upsert("files", "aws/1", {"file_name": "b.bam", "size": 7})

    assert await document_store.get("files", "aws/1") == {
        "file_name": "b.bam",
        "curated": True,
        "size": 7,
    }


@pytest.mark.asyncio
async def test_collections_are_isolated(document_store: SQLiteDocumentStore) -> None:
    await document_store.upsert("files", "k", {"v": 1})
    await document_store.upsert("other", "k", {"v": 2})

    assert await document_store.count("files") == 1
    assert (await document_store.get("other", "k"))["v"] == 2


@pytest.mark.asyncio
async def test_unserializable_record_raises_commit_error(
    document_store: SQLiteDocumentStore,
) -> None:
    with pytest.raises(CommitError):
        await document_store.upsert("files", "aws/1", {"bad": object()})
    assert await document_store.get("files", "aws/1") is None


@pytest.mark.asyncio
async def test_delete(document_store: SQLiteDocumentStore) -> None:
    await document_store.upsert("files", "aws/1", {"v": 1})
    assert await document_store.delete("files", "aws/1") is True
    assert await document_store.delete("files", "aws/1") is False
    assert await document_store.count("files") == 0


@pytest.mark.asyncio
async def test_count_by_prefix(document_store: SQLiteDocumentStore) -> None:
    for key in ("aws/1", "aws/2", "pcawg/1"):
        await document_store.upsert("files", key, {"k": key})
    assert await document_store.count("files") == 3
    assert await document_store.count("files", key_prefix="aws/") == 2


@pytest.mark.asyncio
async def test_concurrent_upserts_to_one_key_serialize(
    document_store: SQLiteDocumentStore,
) -> None:
    await asyncio.gather(
        *(document_store.upsert("files", "aws/1", {f"field_{i}": i}) for i in range(8))
    )
    stored = await document_store.get("files", "aws/1")
    assert stored == {f"field_{i}": i for i in range(8)}


# ─── query_all ────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_query_all_pages_through_collection(tmp_path: Path) -> None:
    store = SQLiteDocumentStore(store_uri=str(tmp_path), database="paged", page_size=2)
    await store.initialize()
    for i in range(5):
        await store.upsert("files", f"aws/{i}", {"n": i})
    await store.upsert("other", "aws/9", {"n": 9})

    documents = [doc async for doc in store.query_all("files")]
    assert [d["n"] for d in documents] == [0, 1, 2, 3, 4]


@pytest.mark.asyncio
async def test_query_all_restarts_on_each_iteration(document_store: SQLiteDocumentStore) -> None:
    await document_store.upsert("files", "aws/1", {"n": 1})
    first = [doc async for doc in document_store.query_all("files")]
    await document_store.upsert("files", "aws/2", {"n": 2})
    second = [doc async for doc in document_store.query_all("files")]

    assert len(first) == 1
    assert len(second) == 2
