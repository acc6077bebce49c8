"""Initial schema: workflow cache, LLM usage and platform documentation.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

EMBEDDING_DIMENSIONS = 1536


def upgrade() -> None:
    """Create workflow_cache, llm_usage and platform_docs plus the similarity search function."""
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    # Cached generation results
    op.create_table(
        "workflow_cache",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("cache_key", sa.String(64), nullable=False),
        sa.Column("platform", sa.String(20), nullable=False),
        sa.Column("input_hash", sa.String(64), nullable=False),
        sa.Column("workflow", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column(
            "entry_metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column("hits", sa.Integer(), server_default="0", nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "last_accessed",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_workflow_cache")),
        sa.UniqueConstraint("cache_key", name=op.f("uq_workflow_cache_cache_key")),
    )
    op.create_index("ix_workflow_cache_expires_at", "workflow_cache", ["expires_at"])
    op.create_index("ix_workflow_cache_platform", "workflow_cache", ["platform"])

    # Per-call token and cost accounting
    op.create_table(
        "llm_usage",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("model", sa.String(100), nullable=False),
        sa.Column("input_tokens", sa.Integer(), server_default="0", nullable=False),
        sa.Column("output_tokens", sa.Integer(), server_default="0", nullable=False),
        sa.Column("total_tokens", sa.Integer(), server_default="0", nullable=False),
        sa.Column("cost_usd", sa.Float(), nullable=True),
        sa.Column("latency_ms", sa.Integer(), nullable=True),
        sa.Column("platform", sa.String(20), nullable=True),
        sa.Column("request_type", sa.String(50), server_default="generate", nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_llm_usage")),
    )
    op.create_index("ix_llm_usage_created_at", "llm_usage", ["created_at"])
    op.create_index("ix_llm_usage_model", "llm_usage", ["model"])

    # Documentation chunks for retrieval
    op.create_table(
        "platform_docs",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("platform", sa.String(20), nullable=False),
        sa.Column("doc_type", sa.String(30), server_default="general", nullable=False),
        sa.Column("title", sa.String(255), server_default="", nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column(
            "doc_metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_platform_docs")),
    )
    op.execute(f"ALTER TABLE platform_docs ADD COLUMN embedding vector({EMBEDDING_DIMENSIONS})")
    op.create_index(
        "ix_platform_docs_platform_doc_type", "platform_docs", ["platform", "doc_type"]
    )
    op.execute(
        "CREATE INDEX ix_platform_docs_embedding ON platform_docs "
        "USING ivfflat (embedding vector_cosine_ops) WITH (lists = 100)"
    )

    op.execute(
        """
        CREATE OR REPLACE FUNCTION search_similar_docs(
            query_embedding vector,
            match_platform text,
            match_threshold float,
            match_count int
        )
        RETURNS TABLE (
            content text,
            metadata jsonb,
            doc_type varchar,
            title varchar,
            platform varchar,
            similarity float
        )
        LANGUAGE sql STABLE
        AS $$
            SELECT
                d.content,
                d.doc_metadata AS metadata,
                d.doc_type,
                d.title,
                d.platform,
                1 - (d.embedding <=> query_embedding) AS similarity
            FROM platform_docs d
            WHERE d.platform = match_platform
              AND d.embedding IS NOT NULL
              AND 1 - (d.embedding <=> query_embedding) >= match_threshold
            ORDER BY d.embedding <=> query_embedding
            LIMIT match_count;
        $$
        """
    )


def downgrade() -> None:
    """Drop everything created by upgrade."""
    op.execute("DROP FUNCTION IF EXISTS search_similar_docs(vector, text, float, int)")
    op.execute("DROP INDEX IF EXISTS ix_platform_docs_embedding")
    op.drop_index("ix_platform_docs_platform_doc_type", table_name="platform_docs")
    op.drop_table("platform_docs")
    op.drop_index("ix_llm_usage_model", table_name="llm_usage")
    op.drop_index("ix_llm_usage_created_at", table_name="llm_usage")
    op.drop_table("llm_usage")
    op.drop_index("ix_workflow_cache_platform", table_name="workflow_cache")
    op.drop_index("ix_workflow_cache_expires_at", table_name="workflow_cache")
    op.drop_table("workflow_cache")
