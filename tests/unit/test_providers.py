"""Unit tests for the external-service providers.

HTTP calls go through ``httpx.MockTransport``; boto3 is replaced by a
``MagicMock`` client; git is never invoked.
"""

from __future__ import annotations

import asyncio
import io
import json
import tarfile
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from botocore.exceptions import ClientError

from filerepo.providers.archive.fsspec_archive_sink import FsspecArchiveSink
from filerepo.providers.catalog.http_catalog_provider import HttpCatalogProvider
from filerepo.providers.manifest.git_manifest_source_provider import (
    GitManifestSourceProvider,
    checkout_name,
)
from filerepo.providers.notification.null_notification_provider import NullNotificationProvider
from filerepo.providers.notification.webhook_notification_provider import (
    WebhookNotificationProvider,
)
from filerepo.providers.object_store.s3_object_store_provider import (
    S3ObjectStoreProvider,
    _etag_md5,
)
from filerepo.utils.errors import ArchiveError, SourceUnavailableError

_MODIFIED = datetime(2016, 3, 1, tzinfo=timezone.utc)  # noqa: UP017


# ─── HTTP catalog ─────────────────────────────────────────────────


class TestHttpCatalogProvider:
    @pytest.mark.asyncio
    async def test_fetch_json_joins_url_and_query(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"hits": [], "pagination": {"page": 1, "pages": 1}})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            catalog = HttpCatalogProvider("https://catalog.example.org/v1/", client)
            payload = await catalog.fetch_json("files", {"from": 0, "size": 10})

        assert payload["hits"] == []
        assert seen[0].url.path == "/v1/files"
        assert seen[0].url.params["size"] == "10"

    @pytest.mark.asyncio
    async def test_server_error_is_source_unavailable(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(503, text="down"))
        async with httpx.AsyncClient(transport=transport) as client:
            catalog = HttpCatalogProvider("https://catalog.example.org/v1", client)
            with pytest.raises(SourceUnavailableError):
                await catalog.fetch_json("donors")

    @pytest.mark.asyncio
    async def test_non_object_body_is_source_unavailable(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=[1, 2]))
        async with httpx.AsyncClient(transport=transport) as client:
            catalog = HttpCatalogProvider("https://catalog.example.org/v1", client)
            with pytest.raises(SourceUnavailableError):
                await catalog.fetch_json("donors")

    @pytest.mark.asyncio
    async def test_invalid_json_is_source_unavailable(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))
        async with httpx.AsyncClient(transport=transport) as client:
            catalog = HttpCatalogProvider("https://catalog.example.org/v1", client)
            with pytest.raises(SourceUnavailableError):
                await catalog.fetch_json("donors")


# ─── S3 listing ───────────────────────────────────────────────────


class TestS3ObjectStoreProvider:
    def test_etag_md5(self) -> None:
        assert _etag_md5('"d41d8cd98f00b204e9800998ecf8427e"') == "d41d8cd98f00b204e9800998ecf8427e"
        assert _etag_md5('"abc123-4"') is None
        assert _etag_md5(None) is None

    @pytest.mark.asyncio
    async def test_follows_continuation_tokens(self) -> None:
        client = MagicMock()
        client.list_objects_v2.side_effect = [
            {
                "Contents": [{"Key": "data/o1", "Size": 10, "ETag": '"aa"', "LastModified": _MODIFIED}],
                "IsTruncated": True,
                "NextContinuationToken": "t1",
            },
            {
                "Contents": [{"Key": "data/o2", "Size": 20, "ETag": '"bb-2"'}],
                "IsTruncated": False,
            },
        ]
        provider = S3ObjectStoreProvider("oicr.icgc", client=client)

        objects = [obj async for obj in provider.list_objects("data")]

        assert [o.key for o in objects] == ["data/o1", "data/o2"]
        assert objects[0].checksum == "aa"
        assert objects[0].last_modified == _MODIFIED
        assert objects[1].checksum is None
        second_call = client.list_objects_v2.call_args_list[1].kwargs
        assert second_call["ContinuationToken"] == "t1"
        assert second_call["Bucket"] == "oicr.icgc"

    @pytest.mark.asyncio
    async def test_client_error_is_source_unavailable(self) -> None:
        client = MagicMock()
        client.list_objects_v2.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "ListObjectsV2"
        )
        provider = S3ObjectStoreProvider("oicr.icgc", client=client)

        with pytest.raises(SourceUnavailableError):
            [obj async for obj in provider.list_objects()]


# ─── Git manifests ────────────────────────────────────────────────


class TestGitManifestSourceProvider:
    def test_checkout_name_is_stable_and_safe(self) -> None:
        url = "https://github.com/ICGC-TCGA-PanCancer/s3-transfer-operations.git"
        name = checkout_name(url)
        assert name.startswith("s3-transfer-operations-")
        assert name == checkout_name(url)
        assert name != checkout_name("https://example.org/other/s3-transfer-operations.git")

    @pytest.mark.asyncio
    async def test_missing_git_is_source_unavailable(self, tmp_path: Path) -> None:
        provider = GitManifestSourceProvider(tmp_path)
        with patch(
            "filerepo.providers.manifest.git_manifest_source_provider.shutil.which",
            return_value=None,
        ):
            with pytest.raises(SourceUnavailableError):
                await provider.fetch_directory("https://example.org/jobs.git", "*.json")

    @pytest.mark.asyncio
    async def test_existing_checkout_is_pulled(self, tmp_path: Path) -> None:
        url = "https://example.org/jobs.git"
        checkout = tmp_path / checkout_name(url)
        jobs = checkout / "completed-jobs"
        (checkout / ".git").mkdir(parents=True)
        jobs.mkdir()
        (jobs / "b.json").write_text("{}", encoding="utf-8")
        (jobs / "a.json").write_text("{}", encoding="utf-8")
        (jobs / "notes.txt").write_text("", encoding="utf-8")

        provider = GitManifestSourceProvider(tmp_path)
        run_git = AsyncMock()
        with patch(
            "filerepo.providers.manifest.git_manifest_source_provider.shutil.which",
            return_value="/usr/bin/git",
        ), patch.object(provider, "_run_git", run_git):
            files = await provider.fetch_directory(url, "*.json", "completed-jobs")

        assert [f.name for f in files] == ["a.json", "b.json"]
        assert "pull" in run_git.await_args.args

    @pytest.mark.asyncio
    async def test_missing_subdirectory_is_source_unavailable(self, tmp_path: Path) -> None:
        url = "https://example.org/jobs.git"
        (tmp_path / checkout_name(url) / ".git").mkdir(parents=True)
        provider = GitManifestSourceProvider(tmp_path)

        with patch(
            "filerepo.providers.manifest.git_manifest_source_provider.shutil.which",
            return_value="/usr/bin/git",
        ), patch.object(provider, "_run_git", AsyncMock()):
            with pytest.raises(SourceUnavailableError):
                await provider.fetch_directory(url, "*.json", "completed-jobs")

    @pytest.mark.asyncio
    async def test_fetches_of_one_checkout_run_one_at_a_time(self, tmp_path: Path) -> None:
        url = "https://example.org/jobs.git"
        checkout = tmp_path / checkout_name(url)
        provider = GitManifestSourceProvider(tmp_path)
        active = 0
        peak = 0
        commands: list[str] = []

        async def fake_git(*args: str) -> None:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            commands.append("pull" if "pull" in args else args[0])
            await asyncio.sleep(0.01)
            if args[0] == "clone":
                (checkout / ".git").mkdir(parents=True)
                (checkout / "jobs").mkdir()
                (checkout / "jobs" / "a.json").write_text("{}", encoding="utf-8")
            active -= 1

        with patch(
            "filerepo.providers.manifest.git_manifest_source_provider.shutil.which",
            return_value="/usr/bin/git",
        ), patch.object(provider, "_run_git", side_effect=fake_git):
            first, second = await asyncio.gather(
                provider.fetch_directory(url, "*.json", "jobs"),
                provider.fetch_directory(url, "*.json", "jobs"),
            )

        assert peak == 1
        assert commands == ["clone", "pull"]
        assert [f.name for f in first] == [f.name for f in second] == ["a.json"]


# ─── Archive sink ─────────────────────────────────────────────────


class TestFsspecArchiveSink:
    @pytest.mark.asyncio
    async def test_writes_stream_to_local_path(self, tmp_path: Path) -> None:
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
            payload = json.dumps({"id": "aws/1"}).encode()
            info = tarfile.TarInfo("g/file/aws/1")
            info.size = len(payload)
            tar.addfile(info, io.BytesIO(payload))
        buffer.seek(0)
        target = tmp_path / "nested" / "g.tar.gz"

        written = await FsspecArchiveSink().write_archive(str(target), buffer)

        assert written == target.stat().st_size
        with tarfile.open(target, "r:gz") as tar:
            assert tar.getnames() == ["g/file/aws/1"]

    @pytest.mark.asyncio
    async def test_unwritable_destination_raises_archive_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")

        with pytest.raises(ArchiveError):
            await FsspecArchiveSink().write_archive(str(blocker / "g.tar.gz"), io.BytesIO(b"x"))


# ─── Notification ─────────────────────────────────────────────────


class TestNotificationProviders:
    @pytest.mark.asyncio
    async def test_webhook_posts_report(self) -> None:
        received: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(json.loads(request.content))
            return httpx.Response(204)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = WebhookNotificationProvider("https://hooks.example.org/run", client)
            assert await provider.send("Importer - SUCCESS", "Finished in 1.0s") is True

        assert received == [{"subject": "Importer - SUCCESS", "body": "Finished in 1.0s"}]

    @pytest.mark.asyncio
    async def test_webhook_rejection_returns_false(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="oops"))
        async with httpx.AsyncClient(transport=transport) as client:
            provider = WebhookNotificationProvider("https://hooks.example.org/run", client)
            assert await provider.send("s", "b") is False

    @pytest.mark.asyncio
    async def test_webhook_transport_error_returns_false(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = WebhookNotificationProvider("https://hooks.example.org/run", client)
            assert await provider.send("s", "b") is False

    @pytest.mark.asyncio
    async def test_null_provider_sends_nothing(self) -> None:
        provider = NullNotificationProvider()
        assert await provider.send("s", "b") is False
        assert provider.get_provider_name() == "null"
