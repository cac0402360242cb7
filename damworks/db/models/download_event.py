"""Audit rows recording who fetched which asset and how."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from damworks.db.base import Base


class DownloadEvent(Base):
    """One download of an asset.

    The asset and version ids are plain columns so the history outlives a
    deleted asset.
    """

    __tablename__ = "dam_download_events"

    asset_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    version_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    rendition: Mapped[str | None] = mapped_column(String(32), nullable=True)
    downloaded_by: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    download_method: Mapped[str] = mapped_column(String(64), nullable=False)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
