"""S3-compatible bucket listing provider.

Lists a bucket page by page with ``list_objects_v2``.  boto3 is blocking,
so each page request runs in a worker thread via ``asyncio.to_thread``;
the next page is only requested once the caller has consumed the current
one, keeping memory bounded by the page size.

Works against AWS as well as S3-compatible object stores (Ceph, MinIO)
through ``endpoint_url``.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from filerepo.interfaces.object_store_provider import IObjectStoreProvider, ObjectSummary
from filerepo.utils.errors import SourceUnavailableError

logger = structlog.get_logger(logger_name=__name__)

_PAGE_SIZE = 1000


def _etag_md5(etag: str | None) -> str | None:
    """Return the MD5 carried by a single-part ETag.

    Multipart ETags (``"<hash>-<parts>"``) are not content digests.
    """
    if not etag:
        return None
    digest = etag.strip('"')
    if "-" in digest:
        return None
    return digest


class S3ObjectStoreProvider(IObjectStoreProvider):
    """Bucket listing through a boto3 S3 client.

    Parameters
    ----------
    bucket:
        Bucket to enumerate.
    region:
        AWS region of the bucket.
    endpoint_url:
        Optional S3-compatible endpoint (e.g. a Ceph gateway).
    timeout:
        Connect/read timeout in seconds for each page request.
    client:
        Pre-built boto3 client; a new one is created when omitted.
    """

    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        endpoint_url: str | None = None,
        timeout: float = 30.0,
        client: Any = None,
    ) -> None:
        self._bucket = bucket
        if client is None:
            client = boto3.client(
                "s3",
                region_name=region,
                endpoint_url=endpoint_url,
                config=Config(
                    connect_timeout=timeout,
                    read_timeout=timeout,
                    retries={"max_attempts": 1},
                ),
            )
        self._client = client

    @property
    def bucket(self) -> str:
        return self._bucket

    async def list_objects(self, prefix: str = "") -> AsyncIterator[ObjectSummary]:
        kwargs: dict[str, Any] = {"Bucket": self._bucket, "Prefix": prefix, "MaxKeys": _PAGE_SIZE}
        page_number = 0
        while True:
            try:
                response = await asyncio.to_thread(self._client.list_objects_v2, **kwargs)
            except (BotoCoreError, ClientError) as exc:
                raise SourceUnavailableError(
                    message=f"Listing s3://{self._bucket}/{prefix} failed: {exc}",
                    source_name=self.get_provider_name(),
                ) from exc

            page_number += 1
            contents = response.get("Contents", [])
            logger.debug(
                "s3_page_listed",
                bucket=self._bucket,
                prefix=prefix,
                page=page_number,
                objects=len(contents),
            )
            for item in contents:
                yield ObjectSummary(
                    key=item["Key"],
                    size=int(item.get("Size", 0)),
                    checksum=_etag_md5(item.get("ETag")),
                    last_modified=item.get("LastModified"),
                )

            if not response.get("IsTruncated"):
                return
            kwargs["ContinuationToken"] = response["NextContinuationToken"]

    def get_provider_name(self) -> str:
        return "s3"
