"""create entries

Revision ID: 0001
Revises:
Create Date: 2026-10-18

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=300), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("before_url", sa.String(length=2000), nullable=False),
        sa.Column("before_identifier", sa.String(length=1000), nullable=False),
        sa.Column("before_preview", sa.String(length=2000), nullable=True),
        sa.Column("before_placeholder", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("after_url", sa.String(length=2000), nullable=False),
        sa.Column("after_identifier", sa.String(length=1000), nullable=False),
        sa.Column("after_preview", sa.String(length=2000), nullable=True),
        sa.Column("like_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("before_identifier", name="uq_entries_before_identifier"),
        sa.UniqueConstraint("after_identifier", name="uq_entries_after_identifier"),
        sa.CheckConstraint("like_count >= 0", name="ck_entries_like_count_non_negative"),
    )
    op.create_index("ix_entries_title", "entries", ["title"])
    op.create_index("ix_entries_created_at", "entries", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_entries_created_at", table_name="entries")
    op.drop_index("ix_entries_title", table_name="entries")
    op.drop_table("entries")
