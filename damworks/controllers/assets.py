"""Asset ingestion, deletion and retrieval endpoints."""

from __future__ import annotations

import json
from typing import Annotated, Any
from uuid import UUID

from litestar import Controller, Request, delete, get, post
from litestar.datastructures import UploadFile
from litestar.enums import RequestEncodingType
from litestar.params import Body
from litestar.response import Redirect
from sqlalchemy.ext.asyncio import AsyncSession

from damworks.auth import ADMIN_ROLE, get_caller, require_caller, require_role
from damworks.db.services import asset_service, download_service, retrieval_service
from damworks.db.services.retrieval_service import Intent
from damworks.lib.client_ip import get_client_ip
from damworks.lib.exceptions import AssetNotFoundError, ValidationError
from damworks.lib.queue.base import JobQueue
from damworks.lib.storage.manager import StorageManager

admin_only = [require_role(ADMIN_ROLE)]

SIGNED_URL_METHOD = "signed-url"


def _storage(request: Request) -> StorageManager:
    return request.app.state.storage_manager


def _queue(request: Request) -> JobQueue:
    return request.app.state.job_queue


def _multipart_metadata(form: dict[str, Any], upload: UploadFile) -> dict[str, Any]:
    raw = form.get("metadata")
    if raw is None:
        raise ValidationError("Missing metadata field")
    if isinstance(raw, UploadFile):
        raise ValidationError("metadata must be a JSON text field")
    try:
        metadata = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as exc:
        raise ValidationError("metadata is not valid JSON") from exc
    if not isinstance(metadata, dict):
        raise ValidationError("Metadata must be a JSON object")

    # The file part fills in whatever the client left out
    metadata.setdefault("fileName", upload.filename)
    if upload.content_type:
        metadata.setdefault("contentType", upload.content_type)
    return metadata


class AssetController(Controller):
    path = "/assets"

    @post("/init", guards=admin_only, status_code=200)
    async def init_upload(
        self, request: Request, db_session: AsyncSession, data: dict[str, Any]
    ) -> dict[str, Any]:
        """Save metadata and hand back the path for a direct upload."""
        metadata = asset_service.parse_metadata(data)
        result = await asset_service.init_upload(
            db_session, _storage(request), metadata, get_caller(request)
        )
        return {"assetId": str(result.asset_id), "storagePath": result.storage_path}

    @post("/{asset_id:uuid}/complete", guards=admin_only, status_code=200)
    async def complete_upload(
        self,
        request: Request,
        db_session: AsyncSession,
        asset_id: UUID,
        data: dict[str, Any],
    ) -> dict[str, Any]:
        body = asset_service.parse_complete(data)
        result = await asset_service.complete_upload(
            db_session, _storage(request), _queue(request), asset_id, body, get_caller(request)
        )
        return result.to_dict()

    @post("/", guards=admin_only, status_code=201)
    async def upload(
        self,
        request: Request,
        db_session: AsyncSession,
        data: Annotated[dict[str, Any], Body(media_type=RequestEncodingType.MULTI_PART)],
    ) -> dict[str, Any]:
        """Single-phase upload: a ``metadata`` JSON field plus a ``file`` part."""
        upload = data.get("file")
        if not isinstance(upload, UploadFile):
            raise ValidationError("Missing file part")

        metadata = asset_service.parse_metadata(_multipart_metadata(data, upload))
        content = await upload.read()
        result = await asset_service.upload_asset(
            db_session, _storage(request), _queue(request), metadata, content, get_caller(request)
        )
        return result.to_dict()

    @get("/{asset_id:uuid}/versions", guards=[require_caller])
    async def list_versions(self, db_session: AsyncSession, asset_id: UUID) -> dict[str, Any]:
        return {"versions": await asset_service.list_versions(db_session, asset_id)}

    @delete("/{asset_id:uuid}", guards=admin_only, status_code=200)
    async def delete_asset(
        self, request: Request, db_session: AsyncSession, asset_id: UUID
    ) -> dict[str, Any]:
        deleted = await asset_service.delete_asset(db_session, _storage(request), asset_id)
        if not deleted:
            raise AssetNotFoundError(f"Asset {asset_id} not found")
        return {"success": True}

    @get("/{asset_id:uuid}/download", guards=[require_caller])
    async def download(
        self,
        request: Request,
        db_session: AsyncSession,
        asset_id: UUID,
        version: UUID | None = None,
        rendition: str | None = None,
    ) -> Redirect:
        return await self._redirect(request, db_session, asset_id, version, rendition, Intent.DOWNLOAD)

    @get("/{asset_id:uuid}/preview", guards=[require_caller])
    async def preview(
        self,
        request: Request,
        db_session: AsyncSession,
        asset_id: UUID,
        version: UUID | None = None,
        rendition: str | None = None,
    ) -> Redirect:
        return await self._redirect(request, db_session, asset_id, version, rendition, Intent.PREVIEW)

    async def _redirect(
        self,
        request: Request,
        db_session: AsyncSession,
        asset_id: UUID,
        version: UUID | None,
        rendition: str | None,
        intent: Intent,
    ) -> Redirect:
        if version is None:
            raise ValidationError("Missing version query parameter")
        chosen = retrieval_service.parse_rendition(rendition)
        url = await retrieval_service.resolve_rendition(
            db_session, _storage(request), asset_id, version, chosen, intent
        )
        if intent is Intent.DOWNLOAD:
            await download_service.log_download(
                db_session,
                asset_id,
                get_caller(request),
                SIGNED_URL_METHOD,
                version_id=version,
                rendition=chosen.value,
                user_agent=request.headers.get("user-agent"),
                ip_address=get_client_ip(request.scope),
            )
        return Redirect(path=url, status_code=302)
