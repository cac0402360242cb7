"""Pluggable multi-backend object storage."""

from damworks.lib.storage.base import (
    ObjectInfo,
    ObjectNotFoundError,
    PutResult,
    StorageBackend,
    StorageError,
)
from damworks.lib.storage.local import LocalStorageBackend
from damworks.lib.storage.manager import StorageManager

__all__ = [
    "LocalStorageBackend",
    "ObjectInfo",
    "ObjectNotFoundError",
    "PutResult",
    "StorageBackend",
    "StorageError",
    "StorageManager",
]
