"""Asset ingestion service: metadata, versions, associations, deletion.

Both ingestion paths end in :func:`create_or_update_version`:

* two-phase: :func:`init_upload` hands out a storage path, the client writes
  the bytes itself, then :func:`complete_upload` records the version
  (:class:`PlacedBytes`);
* single-phase: :func:`upload_asset` receives the bytes and writes them
  (:class:`SuppliedBytes`).
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import mimetypes
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from sqlalchemy import delete, func, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from damworks.auth.service import Caller
from damworks.db.models import (
    ASSOCIATION_TABLES,
    Asset,
    AssetType,
    AssetVersion,
    Audience,
    ProcessingStatus,
    Tag,
    asset_audience_map,
    asset_locale_map,
    asset_region_map,
    asset_tag_map,
)
from damworks.lib.exceptions import AssetNotFoundError, UploadTooLargeError, ValidationError
from damworks.lib.hooks import AFTER_VERSION_CREATED, BEFORE_ASSET_DELETE, hooks
from damworks.lib.imaging import THUMBNAIL_CONTENT_TYPE, detect_image_content_type
from damworks.lib.queue.base import PROCESS_VERSION_JOB, JobQueue
from damworks.lib.storage.base import StorageBackend
from damworks.lib.storage.manager import StorageManager
from damworks.lib.storage.paths import asset_prefix, original_path, sanitize_filename, thumbnail_path

logger = logging.getLogger(__name__)

VERSION_INSERT_RETRIES = 3

_TIMESTAMP_PREFIX = re.compile(r"^\d+-")
_DATA_URL_PREFIX = re.compile(r"^data:[\w/+.-]+;base64,")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


class LocaleInput(_CamelModel):
    code: str = Field(min_length=1)
    primary: bool = False


class AssetMetadata(_CamelModel):
    """Descriptive fields accepted by both ingestion paths."""

    asset_id: UUID | None = None
    title: str = Field(min_length=1)
    description: str | None = None
    asset_type: AssetType
    product_line: str | None = None
    sku: str | None = None
    tags: list[str] = []
    audiences: list[str] = []
    locales: list[LocaleInput] = []
    regions: list[str] = []
    file_name: str = Field(min_length=1)
    content_type: str = Field(min_length=1)
    file_size: int | None = Field(default=None, ge=0)
    checksum: str | None = None

    @field_validator("tags", "audiences", "regions")
    @classmethod
    def _drop_blank(cls, values: list[str]) -> list[str]:
        return _unique([v.strip() for v in values if v and v.strip()])


class CompleteUpload(_CamelModel):
    storage_path: str = Field(min_length=1)
    file_size: int | None = Field(default=None, ge=0)
    content_type: str | None = None
    checksum: str | None = None
    thumbnail_data: str | None = None


@dataclass
class PlacedBytes:
    """The client already wrote the original to ``storage_path``."""

    storage_path: str
    file_size: int | None = None
    checksum: str | None = None


@dataclass
class SuppliedBytes:
    """The original arrived with this request and still has to be written."""

    data: bytes


@dataclass
class InitResult:
    asset_id: UUID
    storage_path: str
    store: str


@dataclass
class VersionResult:
    asset_id: UUID
    version_id: UUID
    version_number: int
    processing_status: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "assetId": str(self.asset_id),
            "versionId": str(self.version_id),
            "versionNumber": self.version_number,
            "processingStatus": self.processing_status,
        }


def _unique(values: list[str]) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        seen.setdefault(value, None)
    return list(seen)


def _validation_message(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "body"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def parse_metadata(raw: Any) -> AssetMetadata:
    """Validate an incoming metadata mapping.

    Raises:
        ValidationError: If a required field is missing or malformed.
    """
    if not isinstance(raw, dict):
        raise ValidationError("Metadata must be a JSON object")
    try:
        return AssetMetadata.model_validate(raw)
    except PydanticValidationError as exc:
        raise ValidationError(_validation_message(exc)) from exc


def parse_complete(raw: Any) -> CompleteUpload:
    if not isinstance(raw, dict):
        raise ValidationError("Request body must be a JSON object")
    try:
        return CompleteUpload.model_validate(raw)
    except PydanticValidationError as exc:
        raise ValidationError(_validation_message(exc)) from exc


def decode_thumbnail(value: str) -> bytes:
    """Decode a client-rendered base64 thumbnail (optionally a data URL)."""
    encoded = _DATA_URL_PREFIX.sub("", value.strip())
    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("thumbnailData is not valid base64") from exc
    if detect_image_content_type(data) not in ("image/jpeg", "image/png"):
        raise ValidationError("thumbnailData must be a JPEG or PNG image")
    return data


def original_file_name(storage_path: str) -> str:
    """Recover the client file name from ``{assetId}/{millis}-{name}``."""
    name = storage_path.rsplit("/", 1)[-1]
    return _TIMESTAMP_PREFIX.sub("", name, count=1) or name


def enforce_size_limit(storage: StorageManager, store: str, size: int) -> None:
    limit = storage.store_config(store).max_upload_size
    if size > limit:
        raise UploadTooLargeError(f"File size {size} exceeds limit {limit}")


async def get_asset(db_session: AsyncSession, asset_id: UUID) -> Asset:
    asset = await db_session.get(Asset, asset_id)
    if asset is None:
        raise AssetNotFoundError(f"Asset {asset_id} not found")
    return asset


async def replace_associations(
    db_session: AsyncSession,
    asset_id: UUID,
    metadata: AssetMetadata,
) -> None:
    """Delete every association row for the asset, then insert the new set.

    Tags resolve by slug and audiences by code; unknown ones are dropped.
    """
    for table in ASSOCIATION_TABLES:
        await db_session.execute(delete(table).where(table.c.asset_id == asset_id))

    if metadata.tags:
        tag_ids = (
            await db_session.scalars(select(Tag.id).where(Tag.slug.in_(metadata.tags)))
        ).all()
        if tag_ids:
            await db_session.execute(
                insert(asset_tag_map),
                [{"asset_id": asset_id, "tag_id": tag_id} for tag_id in tag_ids],
            )

    if metadata.audiences:
        audience_ids = (
            await db_session.scalars(
                select(Audience.id).where(Audience.code.in_(metadata.audiences))
            )
        ).all()
        if audience_ids:
            await db_session.execute(
                insert(asset_audience_map),
                [{"asset_id": asset_id, "audience_id": aid} for aid in audience_ids],
            )

    locales: dict[str, bool] = {}
    for locale in metadata.locales:
        locales[locale.code] = locales.get(locale.code, False) or locale.primary
    if locales:
        await db_session.execute(
            insert(asset_locale_map),
            [
                {"asset_id": asset_id, "locale_code": code, "is_primary": primary}
                for code, primary in locales.items()
            ],
        )

    if metadata.regions:
        await db_session.execute(
            insert(asset_region_map),
            [{"asset_id": asset_id, "region_code": code} for code in metadata.regions],
        )


async def save_asset(
    db_session: AsyncSession,
    metadata: AssetMetadata,
    caller: Caller,
) -> Asset:
    """Create the asset, or update it when ``metadata.asset_id`` is set.

    Flushes but does not commit.
    """
    if metadata.asset_id is not None:
        asset = await get_asset(db_session, metadata.asset_id)
    else:
        asset = Asset(created_by=caller.id)
        db_session.add(asset)

    asset.title = metadata.title
    asset.description = metadata.description
    asset.asset_type = metadata.asset_type.value
    asset.product_line = metadata.product_line
    asset.sku = metadata.sku
    asset.search_tags = _unique([tag.lower() for tag in metadata.tags])
    asset.updated_by = caller.id
    await db_session.flush()

    await replace_associations(db_session, asset.id, metadata)
    return asset


async def next_version_number(db_session: AsyncSession, asset_id: UUID) -> int:
    current = await db_session.scalar(
        select(func.max(AssetVersion.version_number)).where(AssetVersion.asset_id == asset_id)
    )
    return (current or 0) + 1


async def _lookup_size(backend: StorageBackend, asset_id: UUID, path: str) -> int:
    for info in await backend.list_objects(asset_prefix(asset_id)):
        if info.path == path:
            return info.size
    raise ValidationError(f"No uploaded object found at {path}")


async def create_or_update_version(
    db_session: AsyncSession,
    storage: StorageManager,
    queue: JobQueue,
    asset_id: UUID,
    source: PlacedBytes | SuppliedBytes,
    *,
    mime_type: str,
    file_name: str,
    caller: Caller,
    thumbnail: bytes | None = None,
    store: str | None = None,
) -> VersionResult:
    """Record a new version of an existing asset.

    With a client thumbnail the version is complete immediately; otherwise it
    starts ``pending`` and a processing job is enqueued.
    """
    store_name = store or storage.default_store
    backend = await storage.get(store_name)
    file_name = sanitize_filename(file_name)

    if isinstance(source, SuppliedBytes):
        enforce_size_limit(storage, store_name, len(source.data))
        path = original_path(asset_id, file_name)
        await backend.put_object(path, source.data, mime_type)
        file_size: int | None = len(source.data)
        checksum = hashlib.sha256(source.data).hexdigest()
    else:
        if not source.storage_path.startswith(asset_prefix(asset_id)):
            raise ValidationError("storagePath does not belong to this asset")
        path = source.storage_path
        file_size = source.file_size
        if file_size is None:
            file_size = await _lookup_size(backend, asset_id, path)
        checksum = source.checksum

    version_id = uuid4()
    now = datetime.now(timezone.utc).isoformat()
    meta: dict[str, Any] = {"originalFileName": file_name, "uploadedBy": caller.id, "uploadedAt": now}

    status = ProcessingStatus.PENDING.value
    thumb_path = None
    if thumbnail is not None:
        thumb_path = thumbnail_path(asset_id, version_id)
        await backend.put_object(thumb_path, thumbnail, THUMBNAIL_CONTENT_TYPE)
        status = ProcessingStatus.COMPLETE.value
        meta["thumbnailSource"] = "client"
        meta["processingCompletedAt"] = now

    version: AssetVersion | None = None
    for attempt in range(1, VERSION_INSERT_RETRIES + 1):
        number = await next_version_number(db_session, asset_id)
        version = AssetVersion(
            id=version_id,
            asset_id=asset_id,
            version_number=number,
            storage_bucket=store_name,
            storage_path=path,
            thumbnail_path=thumb_path,
            mime_type=mime_type,
            file_size=file_size,
            checksum=checksum,
            meta=dict(meta),
            processing_status=status,
            created_by=caller.id,
        )
        db_session.add(version)
        try:
            await db_session.commit()
            break
        except IntegrityError:
            await db_session.rollback()
            if attempt == VERSION_INSERT_RETRIES:
                raise
            logger.info(
                "Version number %d for asset %s was taken, retrying", number, asset_id
            )

    if status == ProcessingStatus.PENDING.value:
        await queue.enqueue(
            PROCESS_VERSION_JOB,
            {"assetId": str(asset_id), "versionId": str(version_id)},
        )

    await hooks.do_action(AFTER_VERSION_CREATED, version)

    return VersionResult(
        asset_id=asset_id,
        version_id=version_id,
        version_number=number,
        processing_status=status,
    )


async def init_upload(
    db_session: AsyncSession,
    storage: StorageManager,
    metadata: AssetMetadata,
    caller: Caller,
) -> InitResult:
    """Save metadata and return the path the client should upload to."""
    store_name = storage.default_store
    if metadata.file_size is not None:
        enforce_size_limit(storage, store_name, metadata.file_size)

    asset = await save_asset(db_session, metadata, caller)
    asset_id = asset.id
    await db_session.commit()

    return InitResult(
        asset_id=asset_id,
        storage_path=original_path(asset_id, metadata.file_name),
        store=store_name,
    )


async def complete_upload(
    db_session: AsyncSession,
    storage: StorageManager,
    queue: JobQueue,
    asset_id: UUID,
    body: CompleteUpload,
    caller: Caller,
) -> VersionResult:
    """Record a version for bytes the client placed after :func:`init_upload`."""
    await get_asset(db_session, asset_id)

    thumbnail = decode_thumbnail(body.thumbnail_data) if body.thumbnail_data else None
    file_name = original_file_name(body.storage_path)
    mime_type = (
        body.content_type
        or mimetypes.guess_type(file_name)[0]
        or "application/octet-stream"
    )

    return await create_or_update_version(
        db_session,
        storage,
        queue,
        asset_id,
        PlacedBytes(body.storage_path, body.file_size, body.checksum),
        mime_type=mime_type,
        file_name=file_name,
        caller=caller,
        thumbnail=thumbnail,
    )


async def upload_asset(
    db_session: AsyncSession,
    storage: StorageManager,
    queue: JobQueue,
    metadata: AssetMetadata,
    data: bytes,
    caller: Caller,
) -> VersionResult:
    """Single-phase ingestion: metadata and bytes in one call."""
    enforce_size_limit(storage, storage.default_store, len(data))

    asset = await save_asset(db_session, metadata, caller)
    asset_id = asset.id
    await db_session.commit()

    return await create_or_update_version(
        db_session,
        storage,
        queue,
        asset_id,
        SuppliedBytes(data),
        mime_type=metadata.content_type,
        file_name=metadata.file_name,
        caller=caller,
    )


async def list_versions(db_session: AsyncSession, asset_id: UUID) -> list[dict[str, Any]]:
    """Versions newest first, with retrieval helper paths."""
    await get_asset(db_session, asset_id)
    versions = (
        await db_session.scalars(
            select(AssetVersion)
            .where(AssetVersion.asset_id == asset_id)
            .order_by(AssetVersion.version_number.desc())
        )
    ).all()

    results = []
    for version in versions:
        base = f"/assets/{asset_id}"
        preview_rendition = "thumbnail" if version.thumbnail_path else "original"
        results.append(
            {
                "id": str(version.id),
                "versionNumber": version.version_number,
                "mimeType": version.mime_type,
                "fileSize": version.file_size,
                "checksum": version.checksum,
                "processingStatus": version.processing_status,
                "thumbnailPath": version.thumbnail_path,
                "width": version.width,
                "height": version.height,
                "pageCount": version.page_count,
                "durationSeconds": version.duration_seconds,
                "metadata": version.meta or {},
                "createdAt": version.created_at.isoformat() if version.created_at else None,
                "downloadPath": f"{base}/download?version={version.id}",
                "previewPath": f"{base}/preview?version={version.id}&rendition={preview_rendition}",
            }
        )
    return results


async def _delete_quietly(backend: StorageBackend, path: str) -> bool:
    try:
        await backend.delete_object(path)
        return True
    except Exception:
        logger.warning("Failed to delete storage object %s", path, exc_info=True)
        return False


async def delete_asset(
    db_session: AsyncSession,
    storage: StorageManager,
    asset_id: UUID,
) -> bool:
    """Delete an asset, its versions and every stored object under it.

    Storage failures are logged and do not stop the database delete.
    Returns False when the asset does not exist.
    """
    asset = await db_session.get(Asset, asset_id)
    if asset is None:
        return False

    await hooks.do_action(BEFORE_ASSET_DELETE, asset)

    versions = (
        await db_session.scalars(select(AssetVersion).where(AssetVersion.asset_id == asset_id))
    ).all()

    by_store: dict[str, set[str]] = {storage.default_store: set()}
    for version in versions:
        paths = by_store.setdefault(version.storage_bucket, set())
        paths.add(version.storage_path)
        if version.thumbnail_path:
            paths.add(version.thumbnail_path)

    removed = 0
    for store_name, paths in by_store.items():
        backend = await storage.get(store_name)
        for path in sorted(paths):
            if await _delete_quietly(backend, path):
                removed += 1

        try:
            leftovers = await backend.list_objects(asset_prefix(asset_id))
        except Exception:
            logger.warning("Failed to list leftovers for asset %s", asset_id, exc_info=True)
            leftovers = []
        for info in leftovers:
            if info.path not in paths and await _delete_quietly(backend, info.path):
                removed += 1

    for table in ASSOCIATION_TABLES:
        await db_session.execute(delete(table).where(table.c.asset_id == asset_id))
    await db_session.execute(delete(AssetVersion).where(AssetVersion.asset_id == asset_id))
    await db_session.execute(delete(Asset).where(Asset.id == asset_id))
    await db_session.commit()

    logger.info("Deleted asset %s (%d stored objects removed)", asset_id, removed)
    return True
