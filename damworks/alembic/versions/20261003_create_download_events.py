"""create dam_download_events table

Revision ID: c3f8a1d6e2b4
Revises: b7e2f5a8c3d6
Create Date: 2026-10-03 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'c3f8a1d6e2b4'
down_revision: Union[str, None] = 'b7e2f5a8c3d6'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'dam_download_events',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('sa_orm_sentinel', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('asset_id', sa.Uuid(), nullable=False),
        sa.Column('version_id', sa.Uuid(), nullable=True),
        sa.Column('rendition', sa.String(length=32), nullable=True),
        sa.Column('downloaded_by', sa.String(length=255), nullable=False),
        sa.Column('download_method', sa.String(length=64), nullable=False),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_dam_download_events_asset_id', 'dam_download_events', ['asset_id'])
    op.create_index('ix_dam_download_events_downloaded_by', 'dam_download_events', ['downloaded_by'])


def downgrade() -> None:
    op.drop_index('ix_dam_download_events_downloaded_by', table_name='dam_download_events')
    op.drop_index('ix_dam_download_events_asset_id', table_name='dam_download_events')
    op.drop_table('dam_download_events')
