"""Initial schema: topic queue, generation ledger, posts, media and settings.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Topic queue
    op.create_table(
        "topics",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("topic", sa.String(500), nullable=False),
        sa.Column("keywords", sa.Text),
        sa.Column("category_id", sa.Integer),
        sa.Column("source", sa.String(20), nullable=False, server_default="manual"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("priority", sa.Integer, nullable=False, server_default="0"),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text),
        sa.Column("content_ref", sa.String(64)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("processed_at", sa.DateTime(timezone=True)),
        sa.Column("locked_at", sa.DateTime(timezone=True)),
        sa.Column("claim_token", sa.String(32)),
    )
    op.create_index("ix_topics_claim", "topics", ["status", "priority", "created_at"])

    # Cost ledger
    op.create_table(
        "generation_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("job_id", sa.String(64)),
        sa.Column("content_ref", sa.String(64)),
        sa.Column("model_used", sa.String(50), nullable=False),
        sa.Column("prompt_tokens", sa.Integer, default=0),
        sa.Column("completion_tokens", sa.Integer, default=0),
        sa.Column("total_tokens", sa.Integer, default=0),
        sa.Column("cost_usd", sa.Float, default=0.0),
        sa.Column("image_cost_usd", sa.Float, default=0.0),
        sa.Column("generation_time", sa.Float, default=0.0),
        sa.Column("topic_source", sa.String(20), default="manual"),
        sa.Column("status", sa.String(20), nullable=False, server_default="success"),
        sa.Column("error_message", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_generation_logs_created", "generation_logs", ["created_at"])
    op.create_index("ix_generation_logs_status", "generation_logs", ["status"])

    # Media assets (before posts: posts.featured_image_id references it)
    op.create_table(
        "media_assets",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("path", sa.String(1000), nullable=False),
        sa.Column("content_type", sa.String(100)),
        sa.Column("alt_text", sa.String(500)),
        sa.Column("source_url", sa.Text),
        sa.Column("post_id", postgresql.UUID(as_uuid=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # Posts
    op.create_table(
        "posts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("author_id", sa.Integer),
        sa.Column("category_id", sa.Integer),
        sa.Column("tags", postgresql.JSONB, default=[]),
        sa.Column("meta", postgresql.JSONB, default={}),
        sa.Column(
            "featured_image_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("media_assets.id", ondelete="SET NULL"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_posts_status", "posts", ["status"])
    op.create_index("ix_posts_created", "posts", ["created_at"])

    # Settings
    op.create_table(
        "app_settings",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value", postgresql.JSONB),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("app_settings")
    op.drop_index("ix_posts_created", table_name="posts")
    op.drop_index("ix_posts_status", table_name="posts")
    op.drop_table("posts")
    op.drop_table("media_assets")
    op.drop_index("ix_generation_logs_status", table_name="generation_logs")
    op.drop_index("ix_generation_logs_created", table_name="generation_logs")
    op.drop_table("generation_logs")
    op.drop_index("ix_topics_claim", table_name="topics")
    op.drop_table("topics")
