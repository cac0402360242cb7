"""Common types for derivative strategies.

A strategy turns the raw bytes of a version into a :class:`DerivativeOutput`:
column updates (``fields``) plus metadata keys. Strategies must be safe to
re-run on the same version, so they only write to deterministic paths and
overwrite fields instead of appending to them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol
from uuid import UUID

from damworks.config import ThumbnailConfig, WorkerConfig
from damworks.lib.imaging import THUMBNAIL_CONTENT_TYPE
from damworks.lib.storage.base import StorageBackend

THUMBNAIL_ERROR = "thumbnailError"
PDF_EXTRACTION_ERROR = "pdfExtractionError"
VIDEO_METADATA_ERROR = "videoMetadataError"

DERIVATIVE_ERROR_KEYS = (THUMBNAIL_ERROR, PDF_EXTRACTION_ERROR, VIDEO_METADATA_ERROR)


class DerivativeKind(str, Enum):
    IMAGE = "image"
    PDF = "pdf"
    VIDEO = "video"
    UNSUPPORTED = "unsupported"

    @classmethod
    def from_mime_type(cls, mime_type: str | None) -> "DerivativeKind":
        mime = (mime_type or "").split(";", 1)[0].strip().lower()
        # Pillow cannot rasterize vector images
        if mime == "image/svg+xml":
            return cls.UNSUPPORTED
        if mime.startswith("image/"):
            return cls.IMAGE
        if mime == "application/pdf":
            return cls.PDF
        if mime.startswith("video/"):
            return cls.VIDEO
        return cls.UNSUPPORTED


@dataclass
class DerivativeOutput:
    fields: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProcessingContext:
    """Everything a strategy may touch while processing one version."""

    asset_id: UUID
    version_id: UUID
    mime_type: str
    storage: StorageBackend
    thumbnail_path: str
    thumbnails: ThumbnailConfig = field(default_factory=ThumbnailConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    temp_root: Path | None = None
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("damworks.derivatives"))

    def log_extra(self, **extra: Any) -> dict[str, Any]:
        return {"assetId": str(self.asset_id), "versionId": str(self.version_id), **extra}


class Strategy(Protocol):
    kind: DerivativeKind

    async def process(self, data: bytes, ctx: ProcessingContext) -> DerivativeOutput: ...


async def store_thumbnail(ctx: ProcessingContext, jpeg: bytes) -> str:
    """Write an encoded thumbnail to the version's deterministic path."""
    await ctx.storage.put_object(ctx.thumbnail_path, jpeg, THUMBNAIL_CONTENT_TYPE)
    return ctx.thumbnail_path
