"""create dam_job_queue table

Revision ID: b7e2f5a8c3d6
Revises: a1d4c0f2b9e1
Create Date: 2026-10-02 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'b7e2f5a8c3d6'
down_revision: Union[str, None] = 'a1d4c0f2b9e1'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'dam_job_queue',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('sa_orm_sentinel', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('job_name', sa.String(length=128), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_attempts', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('run_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('locked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('locked_by', sa.String(length=255), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_dam_job_queue_job_name', 'dam_job_queue', ['job_name'])
    op.create_index('ix_dam_job_queue_status_run_at', 'dam_job_queue', ['status', 'run_at'])


def downgrade() -> None:
    op.drop_index('ix_dam_job_queue_status_run_at', table_name='dam_job_queue')
    op.drop_index('ix_dam_job_queue_job_name', table_name='dam_job_queue')
    op.drop_table('dam_job_queue')
