"""rooms and participants

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "rooms",
        sa.Column("id", sa.String(length=255), primary_key=True),
        sa.Column("video_link", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_table(
        "participants",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("room_id", sa.String(length=255), sa.ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False),
        sa.Column("username", sa.Text(), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_active", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_participants_room_id_joined_at", "participants", ["room_id", "joined_at"])
    op.create_index("ix_participants_last_active", "participants", ["last_active"])


def downgrade() -> None:
    op.drop_index("ix_participants_last_active", table_name="participants")
    op.drop_index("ix_participants_room_id_joined_at", table_name="participants")
    op.drop_table("participants")
    op.drop_table("rooms")
