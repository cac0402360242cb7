"""Local filesystem storage backend."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import os
import tempfile
import time
from pathlib import Path
from urllib.parse import quote, urlencode

from damworks.lib.storage.base import (
    DEFAULT_SIGNED_URL_TTL,
    ObjectInfo,
    ObjectNotFoundError,
    PutResult,
    StorageError,
)


def sign_storage_url(secret: str, store_name: str, path: str, expires: int, download: str = "") -> str:
    """HMAC-SHA256 signature binding store, path, expiry and disposition."""
    message = f"{store_name}/{path}:{expires}:{download}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_storage_signature(
    secret: str,
    store_name: str,
    path: str,
    expires: str,
    download: str,
    signature: str,
    now: float | None = None,
) -> bool:
    """Check a signed local-storage link. Expired links never verify."""
    try:
        expires_at = int(expires)
    except (TypeError, ValueError):
        return False
    if expires_at < (now if now is not None else time.time()):
        return False
    expected = sign_storage_url(secret, store_name, path, expires_at, download)
    return hmac.compare_digest(expected, signature or "")


class LocalStorageBackend:
    """Store objects on the local filesystem, one file per path."""

    def __init__(self, base_path: Path, store_name: str = "default", secret: str = "") -> None:
        self._base_path = base_path
        self._store_name = store_name
        self._secret = secret

    @property
    def base_path(self) -> Path:
        return self._base_path

    async def put_object(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        metadata: dict[str, str] | None = None,
    ) -> PutResult:
        target = self._key_to_path(path)
        try:
            await asyncio.to_thread(self._write_file, target, data)
        except OSError as exc:
            raise StorageError(f"Failed to write {path!r}: {exc}") from exc
        return PutResult(
            path=path,
            etag=hashlib.md5(data).hexdigest(),
            size=len(data),
            content_hash=hashlib.sha256(data).hexdigest(),
        )

    async def get_object(self, path: str) -> bytes:
        target = self._key_to_path(path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except FileNotFoundError as exc:
            raise ObjectNotFoundError(path) from exc

    async def get_signed_url(
        self,
        path: str,
        expires_in: int = DEFAULT_SIGNED_URL_TTL,
        download_name: str | None = None,
    ) -> str:
        if not await self.exists(path):
            raise ObjectNotFoundError(path)

        expires = int(time.time()) + expires_in
        download = download_name or ""
        params = {"expires": str(expires)}
        if download:
            params["download"] = download
        params["signature"] = sign_storage_url(self._secret, self._store_name, path, expires, download)
        return f"/storage/{self._store_name}/{quote(path)}?{urlencode(params)}"

    async def delete_object(self, path: str) -> None:
        target = self._key_to_path(path)
        await asyncio.to_thread(self._unlink, target)

    async def list_objects(self, prefix: str = "") -> list[ObjectInfo]:
        base = self._base_path
        folder = prefix.rpartition("/")[0]
        root = self._key_to_path(folder) if folder else base
        results = []
        for file_path, size in await asyncio.to_thread(self._walk, root):
            key = file_path.relative_to(base).as_posix()
            if key.startswith(prefix):
                results.append(ObjectInfo(path=key, size=size))
        return sorted(results, key=lambda info: info.path)

    async def exists(self, path: str) -> bool:
        target = self._key_to_path(path)
        return await asyncio.to_thread(target.is_file)

    async def close(self) -> None:
        """No persistent resources to clean up."""

    # -- internal helpers --

    def _key_to_path(self, key: str) -> Path:
        """Map an object path onto the base directory, refusing traversal."""
        parts = [p for p in key.split("/") if p]
        if not parts or any(p == ".." for p in parts) or "\x00" in key:
            raise StorageError(f"Invalid object path: {key!r}")
        return self._base_path.joinpath(*parts)

    @staticmethod
    def _write_file(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
        ) as tmp:
            tmp.write(data)
        try:
            os.replace(tmp.name, path)
        except OSError:
            Path(tmp.name).unlink(missing_ok=True)
            raise

    @staticmethod
    def _unlink(path: Path) -> None:
        path.unlink(missing_ok=True)

    @staticmethod
    def _walk(base: Path) -> list[tuple[Path, int]]:
        if not base.exists():
            return []
        return [
            (p, p.stat().st_size)
            for p in base.rglob("*")
            if p.is_file() and not p.name.startswith(".")
        ]
