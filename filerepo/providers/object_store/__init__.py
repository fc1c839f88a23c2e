"""Object-storage listing providers (S3 and S3-compatible stores)."""

from filerepo.providers.object_store.s3_object_store_provider import S3ObjectStoreProvider

__all__ = ["S3ObjectStoreProvider"]
