"""S3-compatible storage backend (requires ``pip install damworks[s3]``)."""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING

try:
    import aioboto3
    from botocore.config import Config as BotoConfig
    from botocore.exceptions import ClientError
except ImportError as exc:
    raise ImportError(
        "S3 storage backend requires aioboto3. Install it with: pip install damworks[s3]"
    ) from exc

from damworks.lib.storage.base import (
    DEFAULT_SIGNED_URL_TTL,
    ObjectInfo,
    ObjectNotFoundError,
    PutResult,
    StorageError,
    content_disposition,
)

if TYPE_CHECKING:
    from damworks.config import S3Config

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _is_not_found(exc: ClientError) -> bool:
    return str(exc.response.get("Error", {}).get("Code", "")) in _NOT_FOUND_CODES


class S3StorageBackend:
    """Store objects in an S3-compatible bucket."""

    def __init__(self, config: S3Config, session=None) -> None:
        if not config.bucket:
            raise ValueError("S3 storage backend requires a bucket name")
        self._config = config
        self._session = session or aioboto3.Session()

    def _client_kwargs(self) -> dict:
        kwargs: dict = {
            "region_name": self._config.region,
        }
        if self._config.endpoint_url:
            kwargs["endpoint_url"] = self._config.endpoint_url
        if self._config.access_key_id:
            kwargs["aws_access_key_id"] = self._config.access_key_id
        if self._config.secret_access_key:
            kwargs["aws_secret_access_key"] = self._config.secret_access_key
        if self._config.force_path_style:
            kwargs["config"] = BotoConfig(s3={"addressing_style": "path"})
        return kwargs

    def _full_key(self, key: str) -> str:
        if self._config.prefix:
            return f"{self._config.prefix.rstrip('/')}/{key}"
        return key

    def _relative_key(self, key: str) -> str:
        if self._config.prefix:
            prefix = self._config.prefix.rstrip("/") + "/"
            if key.startswith(prefix):
                return key[len(prefix):]
        return key

    async def put_object(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        metadata: dict[str, str] | None = None,
    ) -> PutResult:
        put_kwargs: dict = {
            "Bucket": self._config.bucket,
            "Key": self._full_key(path),
            "Body": data,
            "ContentType": content_type,
        }
        if metadata:
            put_kwargs["Metadata"] = {k: str(v) for k, v in metadata.items()}

        async with self._session.client("s3", **self._client_kwargs()) as s3:
            try:
                response = await s3.put_object(**put_kwargs)
            except ClientError as exc:
                raise StorageError(f"Failed to upload {path}: {exc}") from exc

        return PutResult(
            path=path,
            etag=response.get("ETag"),
            size=len(data),
            content_hash=hashlib.sha256(data).hexdigest(),
        )

    async def get_object(self, path: str) -> bytes:
        async with self._session.client("s3", **self._client_kwargs()) as s3:
            try:
                response = await s3.get_object(Bucket=self._config.bucket, Key=self._full_key(path))
            except ClientError as exc:
                if _is_not_found(exc):
                    raise ObjectNotFoundError(path) from exc
                raise StorageError(f"Failed to download {path}: {exc}") from exc
            return await response["Body"].read()

    async def get_signed_url(
        self,
        path: str,
        expires_in: int = DEFAULT_SIGNED_URL_TTL,
        download_name: str | None = None,
    ) -> str:
        full_key = self._full_key(path)
        params: dict = {"Bucket": self._config.bucket, "Key": full_key}
        if download_name:
            params["ResponseContentDisposition"] = content_disposition(download_name)

        async with self._session.client("s3", **self._client_kwargs()) as s3:
            # Presigning never touches the network, so check existence first.
            try:
                await s3.head_object(Bucket=self._config.bucket, Key=full_key)
            except ClientError as exc:
                if _is_not_found(exc):
                    raise ObjectNotFoundError(path) from exc
                raise StorageError(f"Failed to stat {path}: {exc}") from exc
            return await s3.generate_presigned_url(
                "get_object",
                Params=params,
                ExpiresIn=expires_in,
            )

    async def delete_object(self, path: str) -> None:
        async with self._session.client("s3", **self._client_kwargs()) as s3:
            try:
                await s3.delete_object(Bucket=self._config.bucket, Key=self._full_key(path))
            except ClientError as exc:
                if not _is_not_found(exc):
                    raise StorageError(f"Failed to delete {path}: {exc}") from exc

    async def list_objects(self, prefix: str = "") -> list[ObjectInfo]:
        results: list[ObjectInfo] = []
        async with self._session.client("s3", **self._client_kwargs()) as s3:
            paginator = s3.get_paginator("list_objects_v2")
            async for page in paginator.paginate(
                Bucket=self._config.bucket, Prefix=self._full_key(prefix)
            ):
                for obj in page.get("Contents", []):
                    results.append(
                        ObjectInfo(path=self._relative_key(obj["Key"]), size=int(obj.get("Size", 0)))
                    )
        return results

    async def exists(self, path: str) -> bool:
        async with self._session.client("s3", **self._client_kwargs()) as s3:
            try:
                await s3.head_object(Bucket=self._config.bucket, Key=self._full_key(path))
                return True
            except ClientError as exc:
                if _is_not_found(exc):
                    return False
                raise StorageError(f"Failed to stat {path}: {exc}") from exc

    async def close(self) -> None:
        """No persistent resources to clean up."""
