"""create asset, version and catalog tables

Revision ID: a1d4c0f2b9e1
Revises:
Create Date: 2026-10-01 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1d4c0f2b9e1'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('sa_orm_sentinel', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'dam_assets',
        *_audit_columns(),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('asset_type', sa.String(length=32), nullable=False),
        sa.Column('product_line', sa.String(length=255), nullable=True),
        sa.Column('sku', sa.String(length=255), nullable=True),
        sa.Column('search_tags', sa.JSON(), nullable=False),
        sa.Column('is_archived', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('updated_by', sa.String(length=255), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_dam_assets_asset_type', 'dam_assets', ['asset_type'])
    op.create_index('ix_dam_assets_sku', 'dam_assets', ['sku'])

    op.create_table(
        'dam_asset_versions',
        *_audit_columns(),
        sa.Column('asset_id', sa.Uuid(), nullable=False),
        sa.Column('version_number', sa.Integer(), nullable=False),
        sa.Column('storage_bucket', sa.String(length=64), nullable=False),
        sa.Column('storage_path', sa.String(length=1024), nullable=False),
        sa.Column('thumbnail_path', sa.String(length=1024), nullable=True),
        sa.Column('mime_type', sa.String(length=255), nullable=False),
        sa.Column('file_size', sa.BigInteger(), nullable=True),
        sa.Column('checksum', sa.String(length=128), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('processing_status', sa.String(length=32), nullable=False),
        sa.Column('extracted_text', sa.Text(), nullable=True),
        sa.Column('page_count', sa.Integer(), nullable=True),
        sa.Column('duration_seconds', sa.Float(), nullable=True),
        sa.Column('width', sa.Integer(), nullable=True),
        sa.Column('height', sa.Integer(), nullable=True),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['asset_id'], ['dam_assets.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('asset_id', 'version_number', name='uq_dam_asset_versions_asset_version'),
    )
    op.create_index('ix_dam_asset_versions_asset_id', 'dam_asset_versions', ['asset_id'])
    op.create_index(
        'ix_dam_asset_versions_processing_status', 'dam_asset_versions', ['processing_status']
    )

    op.create_table(
        'dam_tags',
        *_audit_columns(),
        sa.Column('slug', sa.String(length=128), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_dam_tags_slug', 'dam_tags', ['slug'], unique=True)

    op.create_table(
        'dam_audiences',
        *_audit_columns(),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_dam_audiences_code', 'dam_audiences', ['code'], unique=True)

    op.create_table(
        'dam_asset_tag_map',
        sa.Column('asset_id', sa.Uuid(), nullable=False),
        sa.Column('tag_id', sa.Uuid(), nullable=False),
        sa.ForeignKeyConstraint(['asset_id'], ['dam_assets.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tag_id'], ['dam_tags.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('asset_id', 'tag_id'),
    )
    op.create_table(
        'dam_asset_audience_map',
        sa.Column('asset_id', sa.Uuid(), nullable=False),
        sa.Column('audience_id', sa.Uuid(), nullable=False),
        sa.ForeignKeyConstraint(['asset_id'], ['dam_assets.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['audience_id'], ['dam_audiences.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('asset_id', 'audience_id'),
    )
    op.create_table(
        'dam_asset_locale_map',
        sa.Column('asset_id', sa.Uuid(), nullable=False),
        sa.Column('locale_code', sa.String(length=32), nullable=False),
        sa.Column('is_primary', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(['asset_id'], ['dam_assets.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('asset_id', 'locale_code'),
    )
    op.create_table(
        'dam_asset_region_map',
        sa.Column('asset_id', sa.Uuid(), nullable=False),
        sa.Column('region_code', sa.String(length=32), nullable=False),
        sa.ForeignKeyConstraint(['asset_id'], ['dam_assets.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('asset_id', 'region_code'),
    )


def downgrade() -> None:
    op.drop_table('dam_asset_region_map')
    op.drop_table('dam_asset_locale_map')
    op.drop_table('dam_asset_audience_map')
    op.drop_table('dam_asset_tag_map')
    op.drop_index('ix_dam_audiences_code', table_name='dam_audiences')
    op.drop_table('dam_audiences')
    op.drop_index('ix_dam_tags_slug', table_name='dam_tags')
    op.drop_table('dam_tags')
    op.drop_index('ix_dam_asset_versions_processing_status', table_name='dam_asset_versions')
    op.drop_index('ix_dam_asset_versions_asset_id', table_name='dam_asset_versions')
    op.drop_table('dam_asset_versions')
    op.drop_index('ix_dam_assets_sku', table_name='dam_assets')
    op.drop_index('ix_dam_assets_asset_type', table_name='dam_assets')
    op.drop_table('dam_assets')
