"""Resolve a rendition of an asset version to a short-lived signed URL."""

from __future__ import annotations

from enum import Enum
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from damworks.db.models import Asset, AssetVersion
from damworks.lib.exceptions import (
    AssetArchivedError,
    RenditionUnavailableError,
    ValidationError,
    VersionNotFoundError,
)
from damworks.lib.storage.base import ObjectNotFoundError
from damworks.lib.storage.manager import StorageManager


class Rendition(str, Enum):
    ORIGINAL = "original"
    THUMBNAIL = "thumbnail"


class Intent(str, Enum):
    DOWNLOAD = "download"
    PREVIEW = "preview"


def parse_rendition(value: str | None) -> Rendition:
    if not value:
        return Rendition.ORIGINAL
    try:
        return Rendition(value.lower())
    except ValueError:
        raise ValidationError(
            f"Invalid rendition {value!r}; expected 'original' or 'thumbnail'"
        ) from None


def rendition_path(version: AssetVersion, rendition: Rendition) -> str | None:
    """The stored object for *rendition*; thumbnails fall back to the original."""
    if rendition is Rendition.THUMBNAIL and version.thumbnail_path:
        return version.thumbnail_path
    return version.storage_path or None


def download_name(version: AssetVersion) -> str:
    name = (version.meta or {}).get("originalFileName")
    return name or version.storage_path.rsplit("/", 1)[-1]


async def resolve_rendition(
    db_session: AsyncSession,
    storage: StorageManager,
    asset_id: UUID,
    version_id: UUID,
    rendition: Rendition = Rendition.ORIGINAL,
    intent: Intent = Intent.DOWNLOAD,
    expires_in: int | None = None,
) -> str:
    """Return a signed URL for the requested rendition.

    Raises:
        VersionNotFoundError: The version is missing or belongs to another asset.
        AssetArchivedError: The asset is archived.
        RenditionUnavailableError: No stored object backs the rendition.
    """
    version = await db_session.get(AssetVersion, version_id)
    if version is None or version.asset_id != asset_id:
        raise VersionNotFoundError(f"Version {version_id} not found for asset {asset_id}")

    asset = await db_session.get(Asset, asset_id)
    if asset is None:
        raise VersionNotFoundError(f"Version {version_id} not found for asset {asset_id}")
    if asset.is_archived:
        raise AssetArchivedError(f"Asset {asset_id} is archived")

    path = rendition_path(version, rendition)
    if not path:
        raise RenditionUnavailableError(f"No {rendition.value} rendition for version {version_id}")

    backend = await storage.get(version.storage_bucket)
    try:
        return await backend.get_signed_url(
            path,
            expires_in=expires_in or storage.signed_url_ttl,
            download_name=download_name(version) if intent is Intent.DOWNLOAD else None,
        )
    except ObjectNotFoundError as exc:
        raise RenditionUnavailableError(
            f"Stored object for {rendition.value} rendition is missing"
        ) from exc
