"""ASGI middleware delivering signed links to locally stored objects."""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import parse_qs

from litestar.types import ASGIApp, Receive, Scope, Send

from damworks.lib.storage.base import ObjectNotFoundError, StorageError, content_disposition
from damworks.lib.storage.local import LocalStorageBackend, verify_storage_signature

if TYPE_CHECKING:
    from damworks.config import StorageConfig

logger = logging.getLogger(__name__)

PREFIX = "/storage/"


async def send_plain(send: Send, status: int, body: bytes) -> None:
    await send({
        "type": "http.response.start",
        "status": status,
        "headers": [(b"content-type", b"text/plain")],
    })
    await send({"type": "http.response.body", "body": body})


class StorageFilesMiddleware:
    """Serve ``/storage/{store}/{path}?expires=&download=&signature=`` links.

    Only stores configured with ``backend = "local"`` are served; every other
    request passes through to the wrapped app. A missing, tampered or expired
    signature gets 403 and a missing object 404.
    """

    def __init__(self, app: ASGIApp, storage_config: StorageConfig, secret_key: str) -> None:
        self.app = app
        self._storage_config = storage_config
        self._secret_key = secret_key

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not scope["path"].startswith(PREFIX):
            await self.app(scope, receive, send)
            return

        rest = scope["path"][len(PREFIX):]
        store_name, _, path = rest.partition("/")
        store_cfg = self._storage_config.stores.get(store_name)
        if not path or store_cfg is None or store_cfg.backend != "local":
            await send_plain(send, 404, b"Not Found")
            return

        qs = scope.get("query_string", b"")
        params = parse_qs(qs.decode("latin-1") if isinstance(qs, bytes) else qs)
        expires = params.get("expires", [""])[0]
        download = params.get("download", [""])[0]
        signature = params.get("signature", [""])[0]

        if not verify_storage_signature(self._secret_key, store_name, path, expires, download, signature):
            await send_plain(send, 403, b"Forbidden")
            return

        backend = LocalStorageBackend(Path(store_cfg.local_path), store_name, self._secret_key)
        try:
            content = await backend.get_object(path)
        except (ObjectNotFoundError, StorageError):
            await send_plain(send, 404, b"Not Found")
            return

        media_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
        disposition = content_disposition(download) if download else "inline"
        await send({
            "type": "http.response.start",
            "status": 200,
            "headers": [
                (b"content-type", media_type.encode()),
                (b"content-length", str(len(content)).encode()),
                (b"content-disposition", disposition.encode("utf-8")),
                (b"cache-control", b"private, max-age=60"),
            ],
        })
        await send({"type": "http.response.body", "body": content})
