"""Download audit trail."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from damworks.auth.service import Caller
from damworks.db.models import DownloadEvent

logger = logging.getLogger(__name__)


async def log_download(
    db_session: AsyncSession,
    asset_id: UUID,
    caller: Caller,
    download_method: str,
    version_id: UUID | None = None,
    rendition: str | None = None,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> DownloadEvent | None:
    """Record a download. A database failure is logged and returns None."""
    event = DownloadEvent(
        asset_id=asset_id,
        version_id=version_id,
        rendition=rendition,
        downloaded_by=caller.id,
        download_method=download_method,
        user_agent=user_agent,
        ip_address=ip_address,
    )
    try:
        db_session.add(event)
        await db_session.commit()
    except SQLAlchemyError:
        await db_session.rollback()
        logger.warning(
            "Failed to log download of asset %s by %s", asset_id, caller.id, exc_info=True
        )
        return None
    return event


async def list_downloads(
    db_session: AsyncSession, asset_id: UUID, limit: int = 100
) -> list[DownloadEvent]:
    """Most recent downloads of an asset."""
    return list(
        (
            await db_session.scalars(
                select(DownloadEvent)
                .where(DownloadEvent.asset_id == asset_id)
                .order_by(DownloadEvent.created_at.desc())
                .limit(limit)
            )
        ).all()
    )
