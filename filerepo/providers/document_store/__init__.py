"""Document-store providers.

SQLiteDocumentStore persists canonical records as JSON documents in
<store directory>/<database>.db, one logical collection per record type.
"""

from filerepo.providers.document_store.sqlite_document_store import (
    SQLiteDocumentStore,
    validate_store_uri,
)

__all__ = ["SQLiteDocumentStore", "validate_store_uri"]
