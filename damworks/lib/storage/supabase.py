"""Supabase Storage backend, talking to the storage REST API with httpx."""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING
from urllib.parse import quote, urlencode

import httpx

from damworks.lib.storage.base import (
    DEFAULT_SIGNED_URL_TTL,
    ObjectInfo,
    ObjectNotFoundError,
    PutResult,
    StorageError,
)

if TYPE_CHECKING:
    from damworks.config import SupabaseStorageConfig

LIST_PAGE_SIZE = 1000


def _is_not_found(response: httpx.Response) -> bool:
    if response.status_code == 404:
        return True
    if response.status_code != 400:
        return False
    try:
        body = response.json()
    except ValueError:
        return False
    return str(body.get("statusCode")) == "404" or body.get("error") in ("not_found", "Not found")


class SupabaseStorageBackend:
    """Store objects in a Supabase Storage bucket."""

    def __init__(
        self,
        config: SupabaseStorageConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not config.url or not config.service_key:
            raise ValueError("Supabase storage backend requires url and service_key")
        self._config = config
        self._bucket = config.bucket
        self._base_url = config.url.rstrip("/") + "/storage/v1"
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Authorization": f"Bearer {config.service_key}",
                "apikey": config.service_key,
            },
            timeout=config.timeout,
            transport=transport,
        )

    def _object_url(self, path: str) -> str:
        return f"/object/{self._bucket}/{quote(path)}"

    async def put_object(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        metadata: dict[str, str] | None = None,
    ) -> PutResult:
        response = await self._client.post(
            self._object_url(path),
            content=data,
            headers={
                "Content-Type": content_type,
                "x-upsert": "true",
                "cache-control": "max-age=3600",
            },
        )
        if response.is_error:
            raise StorageError(f"Failed to upload {path}: {response.status_code} {response.text}")
        return PutResult(
            path=path,
            etag=response.headers.get("etag"),
            size=len(data),
            content_hash=hashlib.sha256(data).hexdigest(),
        )

    async def get_object(self, path: str) -> bytes:
        response = await self._client.get(f"/object/authenticated/{self._bucket}/{quote(path)}")
        if _is_not_found(response):
            raise ObjectNotFoundError(path)
        if response.is_error:
            raise StorageError(f"Failed to download {path}: {response.status_code} {response.text}")
        return response.content

    async def get_signed_url(
        self,
        path: str,
        expires_in: int = DEFAULT_SIGNED_URL_TTL,
        download_name: str | None = None,
    ) -> str:
        response = await self._client.post(
            f"/object/sign/{self._bucket}/{quote(path)}",
            json={"expiresIn": expires_in},
        )
        if _is_not_found(response):
            raise ObjectNotFoundError(path)
        if response.is_error:
            raise StorageError(f"Failed to sign {path}: {response.status_code} {response.text}")

        signed = response.json().get("signedURL")
        if not signed:
            raise StorageError(f"Failed to generate signed URL for {path}")

        url = f"{self._base_url}{signed}"
        if download_name:
            separator = "&" if "?" in url else "?"
            url = f"{url}{separator}{urlencode({'download': download_name})}"
        return url

    async def delete_object(self, path: str) -> None:
        response = await self._client.request(
            "DELETE",
            f"/object/{self._bucket}",
            json={"prefixes": [path]},
        )
        if response.is_error and not _is_not_found(response):
            raise StorageError(f"Failed to delete {path}: {response.status_code} {response.text}")

    async def list_objects(self, prefix: str = "") -> list[ObjectInfo]:
        results: list[ObjectInfo] = []
        prefix = prefix.lstrip("/")
        await self._list_recursive(prefix.rpartition("/")[0], prefix, results)
        return sorted(results, key=lambda info: info.path)

    async def exists(self, path: str) -> bool:
        folder, _, name = path.rpartition("/")
        response = await self._client.post(
            f"/object/list/{self._bucket}",
            json={"prefix": folder, "search": name, "limit": LIST_PAGE_SIZE, "offset": 0},
        )
        if response.is_error:
            raise StorageError(f"Failed to stat {path}: {response.status_code} {response.text}")
        return any(
            item.get("name") == name and item.get("id") is not None
            for item in response.json() or []
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _list_recursive(self, folder: str, prefix: str, acc: list[ObjectInfo]) -> None:
        """Collect objects under *folder* whose full path starts with *prefix*."""
        offset = 0
        while True:
            response = await self._client.post(
                f"/object/list/{self._bucket}",
                json={
                    "prefix": folder,
                    "limit": LIST_PAGE_SIZE,
                    "offset": offset,
                    "sortBy": {"column": "name", "order": "asc"},
                },
            )
            if response.is_error:
                raise StorageError(f"Failed to list {folder!r}: {response.status_code} {response.text}")

            items = response.json() or []
            for item in items:
                path = f"{folder}/{item['name']}" if folder else item["name"]
                metadata = item.get("metadata") or {}
                if item.get("id") is not None:
                    if path.startswith(prefix):
                        acc.append(ObjectInfo(path=path, size=int(metadata.get("size") or 0)))
                elif path.startswith(prefix) or prefix.startswith(f"{path}/"):
                    # Folders come back without an id or size
                    await self._list_recursive(path, prefix, acc)

            if len(items) < LIST_PAGE_SIZE:
                return
            offset += LIST_PAGE_SIZE
