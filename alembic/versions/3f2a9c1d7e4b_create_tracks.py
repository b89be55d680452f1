"""create_tracks

Revision ID: 3f2a9c1d7e4b
Revises:
Create Date: 2026-10-18 10:12:40.318204

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f2a9c1d7e4b"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create tracks table with lookup indexes for reconciliation."""
    op.create_table(
        "tracks",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("foundry_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("prompt", sa.String(), nullable=True),
        sa.Column("lyrics", sa.String(), nullable=True),
        sa.Column("style", sa.String(length=255), nullable=True),
        sa.Column("audio_url", sa.String(length=2048), nullable=True),
        sa.Column("audio_path", sa.String(length=1024), nullable=True),
        sa.Column("cover_path", sa.String(length=1024), nullable=True),
        sa.Column("source_job_id", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reactions", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_tracks_foundry_id"), "tracks", ["foundry_id"], unique=False)
    op.create_index(op.f("ix_tracks_audio_url"), "tracks", ["audio_url"], unique=False)
    op.create_index(op.f("ix_tracks_source_job_id"), "tracks", ["source_job_id"], unique=False)


def downgrade() -> None:
    """Drop tracks table."""
    op.drop_index(op.f("ix_tracks_source_job_id"), table_name="tracks")
    op.drop_index(op.f("ix_tracks_audio_url"), table_name="tracks")
    op.drop_index(op.f("ix_tracks_foundry_id"), table_name="tracks")
    op.drop_table("tracks")
