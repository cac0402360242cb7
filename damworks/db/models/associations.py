"""Tag/audience catalogs and the asset association tables."""

from sqlalchemy import Boolean, Column, ForeignKey, String, Table
from sqlalchemy.orm import Mapped, mapped_column

from damworks.db.base import Base


class Tag(Base):
    """Tag catalog entry, looked up by slug."""

    __tablename__ = "dam_tags"

    slug: Mapped[str] = mapped_column(String(128), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")


class Audience(Base):
    """Audience catalog entry, looked up by code."""

    __tablename__ = "dam_audiences"

    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")


asset_tag_map = Table(
    "dam_asset_tag_map",
    Base.metadata,
    Column("asset_id", ForeignKey("dam_assets.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", ForeignKey("dam_tags.id", ondelete="CASCADE"), primary_key=True),
)

asset_audience_map = Table(
    "dam_asset_audience_map",
    Base.metadata,
    Column("asset_id", ForeignKey("dam_assets.id", ondelete="CASCADE"), primary_key=True),
    Column("audience_id", ForeignKey("dam_audiences.id", ondelete="CASCADE"), primary_key=True),
)

asset_locale_map = Table(
    "dam_asset_locale_map",
    Base.metadata,
    Column("asset_id", ForeignKey("dam_assets.id", ondelete="CASCADE"), primary_key=True),
    Column("locale_code", String(32), primary_key=True),
    Column("is_primary", Boolean, nullable=False, default=False),
)

asset_region_map = Table(
    "dam_asset_region_map",
    Base.metadata,
    Column("asset_id", ForeignKey("dam_assets.id", ondelete="CASCADE"), primary_key=True),
    Column("region_code", String(32), primary_key=True),
)

ASSOCIATION_TABLES = (asset_tag_map, asset_audience_map, asset_locale_map, asset_region_map)
