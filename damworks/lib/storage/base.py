"""Storage backend protocol and common types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

DEFAULT_SIGNED_URL_TTL = 5 * 60


class StorageError(Exception):
    """A storage backend call failed."""


class ObjectNotFoundError(StorageError):
    """The requested object does not exist."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Object not found: {path}")


@dataclass
class PutResult:
    """Result of writing an object."""

    path: str
    etag: str | None
    size: int
    content_hash: str


@dataclass
class ObjectInfo:
    """A listed object."""

    path: str
    size: int


@runtime_checkable
class StorageBackend(Protocol):
    """Interface every object store must satisfy identically."""

    async def put_object(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        metadata: dict[str, str] | None = None,
    ) -> PutResult:
        """Store data under the given path, overwriting any existing object."""
        ...

    async def get_object(self, path: str) -> bytes:
        """Return the raw bytes, raising ``ObjectNotFoundError`` if absent."""
        ...

    async def get_signed_url(
        self,
        path: str,
        expires_in: int = DEFAULT_SIGNED_URL_TTL,
        download_name: str | None = None,
    ) -> str:
        """Return a time-limited URL.

        ``download_name`` forces an attachment disposition; ``None`` means the
        object renders inline. Raises ``ObjectNotFoundError`` if absent.
        """
        ...

    async def delete_object(self, path: str) -> None:
        """Remove an object. Missing objects are not an error."""
        ...

    async def list_objects(self, prefix: str = "") -> list[ObjectInfo]:
        """Return every object under ``prefix``, recursively."""
        ...

    async def exists(self, path: str) -> bool:
        """Check whether an object exists."""
        ...


def content_disposition(download_name: str) -> str:
    """Build an attachment ``Content-Disposition`` header value."""
    safe = download_name.replace("\\", "_").replace('"', "'")
    return f'attachment; filename="{safe}"'
