"""Object path conventions for originals and derivatives."""

from __future__ import annotations

import time
from uuid import UUID


def sanitize_filename(filename: str) -> str:
    """Strip directory components so a filename cannot escape its prefix."""
    name = filename.replace("\\", "/").rsplit("/", 1)[-1].strip()
    return name or "file"


def original_path(asset_id: UUID | str, filename: str, now_ms: int | None = None) -> str:
    """``{assetId}/{epochMillis}-{fileName}`` for an uploaded original."""
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{asset_id}/{stamp}-{sanitize_filename(filename)}"


def thumbnail_path(asset_id: UUID | str, version_id: UUID | str) -> str:
    """Deterministic thumbnail location, so reprocessing overwrites in place."""
    return f"{asset_id}/thumbnails/{version_id}.jpg"


def asset_prefix(asset_id: UUID | str) -> str:
    return f"{asset_id}/"
