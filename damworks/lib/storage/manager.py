"""Storage manager: registry of named storage backends."""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING

from damworks.lib.storage.local import LocalStorageBackend

if TYPE_CHECKING:
    from damworks.config import StorageConfig, StoreConfig
    from damworks.lib.storage.base import StorageBackend


class StorageManager:
    """Registry that lazily creates and caches storage backends by name."""

    def __init__(self, config: StorageConfig, secret_key: str = "") -> None:
        self._config = config
        self._secret_key = secret_key
        self._backends: dict[str, StorageBackend] = {}

    @property
    def config(self) -> StorageConfig:
        return self._config

    @property
    def default_store(self) -> str:
        return self._config.default

    @property
    def store_names(self) -> list[str]:
        return list(self._config.stores.keys())

    @property
    def signed_url_ttl(self) -> int:
        return self._config.signed_url_ttl

    def store_config(self, name: str | None = None) -> StoreConfig:
        name = name or self._config.default
        store_cfg = self._config.stores.get(name)
        if store_cfg is None:
            raise KeyError(f"Unknown storage store: {name!r}")
        return store_cfg

    async def get(self, name: str | None = None) -> StorageBackend:
        """Return the backend for *name*, creating it on first access."""
        name = name or self._config.default
        if name not in self._backends:
            self._backends[name] = create_storage_backend(
                self.store_config(name), store_name=name, secret_key=self._secret_key
            )
        return self._backends[name]

    def register(self, name: str, backend: StorageBackend) -> None:
        """Install a ready-made backend under *name*."""
        self._backends[name] = backend

    async def close(self) -> None:
        """Release resources held by backends."""
        for backend in self._backends.values():
            close = getattr(backend, "close", None)
            if close is not None:
                await close()
        self._backends.clear()


def create_storage_backend(
    config: StoreConfig,
    store_name: str = "default",
    secret_key: str = "",
) -> StorageBackend:
    """Instantiate a storage backend from configuration."""
    from pathlib import Path

    backend_type = config.backend

    if backend_type == "local":
        return LocalStorageBackend(
            base_path=Path(config.local_path),
            store_name=store_name,
            secret=secret_key,
        )

    if backend_type == "s3":
        from damworks.lib.storage.s3 import S3StorageBackend

        return S3StorageBackend(config.s3)

    if backend_type == "supabase":
        from damworks.lib.storage.supabase import SupabaseStorageBackend

        return SupabaseStorageBackend(config.supabase)

    # Dynamic import: "module:ClassName"
    if ":" in backend_type:
        parts = backend_type.split(":")
        if len(parts) != 2:
            raise ValueError(
                f"Invalid backend spec '{backend_type}': must contain exactly one colon"
            )
        module_path, class_name = parts
        module = importlib.import_module(module_path)
        cls = getattr(module, class_name)
        return cls(config)

    raise ValueError(
        f"Unknown storage backend '{backend_type}'. "
        "Use 'local', 's3', 'supabase', or 'module:ClassName'."
    )
