"""AssetVersion model: one uploaded binary plus its derivatives."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from damworks.db.base import Base

if TYPE_CHECKING:
    from damworks.db.models.asset import Asset


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"


class AssetVersion(Base):
    """A monotonically numbered upload of an asset.

    ``storage_path`` never changes once written; derivatives live in their own
    columns (``thumbnail_path`` and the extracted attributes).
    """

    __tablename__ = "dam_asset_versions"
    __table_args__ = (
        UniqueConstraint("asset_id", "version_number", name="uq_dam_asset_versions_asset_version"),
    )

    asset_id: Mapped[UUID] = mapped_column(
        ForeignKey("dam_assets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    asset: Mapped["Asset"] = relationship("Asset", back_populates="versions")

    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    storage_bucket: Mapped[str] = mapped_column(String(64), nullable=False, default="default")
    storage_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    thumbnail_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    mime_type: Mapped[str] = mapped_column(
        String(255), nullable=False, default="application/octet-stream"
    )
    file_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    checksum: Mapped[str | None] = mapped_column(String(128), nullable=True)
    # "metadata" is reserved on declarative classes
    meta: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)
    processing_status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=ProcessingStatus.PENDING.value, index=True
    )

    # Populated by derivative strategies
    extracted_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    page_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    duration_seconds: Mapped[float | None] = mapped_column(Float, nullable=True)
    width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    height: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
