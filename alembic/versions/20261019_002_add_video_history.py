"""Add video_history and schema_meta (layout v2)

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

Adds the UUID-keyed video_history table and the schema_meta version row.
video_store is kept: its rows are upgraded into video_history when read.
"""
from datetime import datetime, timezone
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'video_history',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('timeline', sa.JSON(), nullable=False),
        sa.Column('thumbnail_url', sa.String(2048), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('migrated_from', sa.Integer(), nullable=True),
    )
    op.create_index('ix_video_history_title', 'video_history', ['title'])
    op.create_index('ix_video_history_created_at', 'video_history', ['created_at'])
    op.create_index('ix_video_history_migrated_from', 'video_history', ['migrated_from'], unique=True)

    schema_meta = op.create_table(
        'schema_meta',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.bulk_insert(
        schema_meta,
        [{'id': 1, 'version': 2, 'updated_at': datetime.now(timezone.utc).replace(tzinfo=None)}],
    )


def downgrade() -> None:
    op.drop_table('schema_meta')
    op.drop_index('ix_video_history_migrated_from', 'video_history')
    op.drop_index('ix_video_history_created_at', 'video_history')
    op.drop_index('ix_video_history_title', 'video_history')
    op.drop_table('video_history')
