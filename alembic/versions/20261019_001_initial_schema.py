"""Initial schema (layout v1)

Revision ID: 001
Revises:
Create Date: 2026-10-19

Creates the v1 tables:
- media_cache: index of cached media blobs keyed by source URL
- video_store: video history keyed by auto-increment integers
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create media_cache table
    op.create_table(
        'media_cache',
        sa.Column('url', sa.String(2048), primary_key=True),
        sa.Column('kind', sa.String(10), nullable=False),
        sa.Column('blob_key', sa.String(64), nullable=False),
        sa.Column('content_sha256', sa.String(64), nullable=False),
        sa.Column('size_bytes', sa.BigInteger(), nullable=False),
        sa.Column('stored_at', sa.DateTime(), nullable=False),
        sa.Column('last_accessed_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_media_cache_kind', 'media_cache', ['kind'])
    op.create_index('ix_media_cache_last_accessed_at', 'media_cache', ['last_accessed_at'])

    # Create video_store table (legacy integer keys)
    op.create_table(
        'video_store',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('video_data', sa.JSON(), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('timestamp', sa.BigInteger(), nullable=False),
        sa.Column('thumbnail', sa.String(2048), nullable=True),
    )
    op.create_index('ix_video_store_timestamp', 'video_store', ['timestamp'])


def downgrade() -> None:
    op.drop_index('ix_video_store_timestamp', 'video_store')
    op.drop_table('video_store')
    op.drop_index('ix_media_cache_last_accessed_at', 'media_cache')
    op.drop_index('ix_media_cache_kind', 'media_cache')
    op.drop_table('media_cache')
