"""DreamCut progress tables

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Queries table
    op.create_table(
        "dreamcut_queries",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("user_prompt", sa.Text(), nullable=False),
        sa.Column("intent", sa.String(20), nullable=False),
        sa.Column("options", postgresql.JSONB(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="processing"),
        sa.Column("stage", sa.String(20), nullable=False, server_default="init"),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("payload", postgresql.JSONB(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("processing_time_ms", sa.Integer(), nullable=True),
        sa.Column("models_used", postgresql.JSONB(), nullable=True),
        sa.Column("cost_estimate", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_dreamcut_queries_progress"),
    )
    op.create_index("ix_dreamcut_queries_user_id", "dreamcut_queries", ["user_id"])
    op.create_index("ix_dreamcut_queries_status", "dreamcut_queries", ["status"])
    op.create_index("ix_dreamcut_queries_created_at", "dreamcut_queries", ["created_at"])

    # Assets table
    op.create_table(
        "dreamcut_assets",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("query_id", sa.UUID(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("filename", sa.String(512), nullable=True),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("user_description", sa.Text(), nullable=True),
        sa.Column("file_size_bytes", sa.BigInteger(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("analysis", postgresql.JSONB(), nullable=True),
        sa.Column("worker_id", sa.String(255), nullable=True),
        sa.Column("model_used", sa.String(255), nullable=True),
        sa.Column("processing_time_ms", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("quality_score", sa.Float(), nullable=True),
        sa.Column("confidence_score", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("analyzed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["query_id"], ["dreamcut_queries.id"], ondelete="CASCADE"),
        sa.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_dreamcut_assets_progress"),
    )
    op.create_index("ix_dreamcut_assets_query_id", "dreamcut_assets", ["query_id"])
    op.create_index("ix_dreamcut_assets_status", "dreamcut_assets", ["status"])

    # Messages table
    op.create_table(
        "dreamcut_messages",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("seq", sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column("query_id", sa.UUID(), nullable=False),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("emoji", sa.String(16), nullable=True),
        sa.Column("asset_id", sa.UUID(), nullable=True),
        sa.Column("data", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("seq", name="uq_dreamcut_messages_seq"),
        sa.ForeignKeyConstraint(["query_id"], ["dreamcut_queries.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["asset_id"], ["dreamcut_assets.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_dreamcut_messages_query_id", "dreamcut_messages", ["query_id"])


def downgrade() -> None:
    op.drop_table("dreamcut_messages")
    op.drop_table("dreamcut_assets")
    op.drop_table("dreamcut_queries")
