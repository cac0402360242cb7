from typing import Any
from uuid import UUID

from litestar import Controller, Request, get, post
from sqlalchemy.ext.asyncio import AsyncSession

from damworks.auth import ADMIN_ROLE, get_caller, require_caller, require_role
from damworks.db.services import download_service
from damworks.lib.client_ip import get_client_ip
from damworks.lib.exceptions import ValidationError

REQUIRED_FIELDS = ("assetId", "downloadUrl", "downloadMethod")


def _optional_uuid(data: dict[str, Any], key: str) -> UUID | None:
    value = data.get(key)
    if value in (None, ""):
        return None
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise ValidationError(f"{key} is not a valid UUID") from exc


class DownloadController(Controller):
    """Audit trail for downloads the client performs itself."""

    path = "/downloads"

    @post("/log", guards=[require_caller], status_code=200)
    async def log(
        self, request: Request, db_session: AsyncSession, data: dict[str, Any]
    ) -> dict[str, Any]:
        missing = [field for field in REQUIRED_FIELDS if not data.get(field)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        await download_service.log_download(
            db_session,
            _optional_uuid(data, "assetId"),
            get_caller(request),
            str(data["downloadMethod"]),
            version_id=_optional_uuid(data, "versionId"),
            rendition=data.get("rendition"),
            user_agent=request.headers.get("user-agent"),
            ip_address=get_client_ip(request.scope),
        )
        return {"success": True}

    @get("/{asset_id:uuid}", guards=[require_role(ADMIN_ROLE)])
    async def history(self, db_session: AsyncSession, asset_id: UUID) -> dict[str, Any]:
        events = await download_service.list_downloads(db_session, asset_id)
        return {
            "downloads": [
                {
                    "id": str(event.id),
                    "versionId": str(event.version_id) if event.version_id else None,
                    "rendition": event.rendition,
                    "downloadedBy": event.downloaded_by,
                    "downloadMethod": event.download_method,
                    "userAgent": event.user_agent,
                    "ipAddress": event.ip_address,
                    "createdAt": event.created_at.isoformat(),
                }
                for event in events
            ]
        }
