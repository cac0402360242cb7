"""Tests for signed local-storage delivery."""

from pathlib import Path
from urllib.parse import urlsplit

import httpx
import pytest

from damworks.config import StorageConfig, StoreConfig
from damworks.lib.storage.local import LocalStorageBackend
from damworks.middleware.storage import StorageFilesMiddleware


async def downstream_app(scope, receive, send):
    await send({"type": "http.response.start", "status": 200, "headers": []})
    await send({"type": "http.response.body", "body": b"app"})


@pytest.fixture
def storage_config(tmp_path):
    return StorageConfig(
        stores={
            "default": StoreConfig(local_path=str(tmp_path / "files")),
            "cloud": StoreConfig(backend="s3"),
        }
    )


@pytest.fixture
def local(storage_config):
    return LocalStorageBackend(Path(storage_config.stores["default"].local_path), "default", "k")


@pytest.fixture
def client(storage_config):
    app = StorageFilesMiddleware(downstream_app, storage_config=storage_config, secret_key="k")
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://dam.test")


def _relative(url):
    parts = urlsplit(url)
    return f"{parts.path}?{parts.query}"


class TestStorageFilesMiddleware:
    @pytest.mark.asyncio
    async def test_passes_other_paths_through(self, client):
        async with client:
            response = await client.get("/assets/x/versions")
        assert response.text == "app"

    @pytest.mark.asyncio
    async def test_serves_download(self, client, local):
        await local.put_object("a1/1700-spec sheet.pdf", b"%PDF-data")
        url = await local.get_signed_url("a1/1700-spec sheet.pdf", download_name="spec sheet.pdf")

        async with client:
            response = await client.get(_relative(url))

        assert response.status_code == 200
        assert response.content == b"%PDF-data"
        assert response.headers["content-type"] == "application/pdf"
        assert response.headers["content-disposition"] == 'attachment; filename="spec sheet.pdf"'

    @pytest.mark.asyncio
    async def test_serves_preview_inline(self, client, local):
        await local.put_object("a1/thumbnails/v1.jpg", b"jpeg")
        url = await local.get_signed_url("a1/thumbnails/v1.jpg")

        async with client:
            response = await client.get(_relative(url))

        assert response.status_code == 200
        assert response.headers["content-disposition"] == "inline"

    @pytest.mark.asyncio
    async def test_tampered_signature(self, client, local):
        await local.put_object("a1/x.txt", b"x")
        url = await local.get_signed_url("a1/x.txt")

        async with client:
            response = await client.get(_relative(url).replace("a1/x.txt", "a1/y.txt"))

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unsigned_request(self, client, local):
        await local.put_object("a1/x.txt", b"x")
        async with client:
            response = await client.get("/storage/default/a1/x.txt")
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_missing_object(self, client, local):
        await local.put_object("a1/x.txt", b"x")
        url = await local.get_signed_url("a1/x.txt")
        await local.delete_object("a1/x.txt")

        async with client:
            response = await client.get(_relative(url))

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_non_local_store(self, client):
        async with client:
            response = await client.get("/storage/cloud/a1/x.txt")
        assert response.status_code == 404
