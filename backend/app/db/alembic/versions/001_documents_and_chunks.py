"""Documents, chunks and vector index

Revision ID: 001
Revises:
Create Date: 2025-07-05

Creates:
1. pgvector extension
2. documents table (owner-scoped manual metadata and processing status)
3. document_chunks table (text, hints, 1536-dim embedding), cascading with
   its document
4. ivfflat L2 index on embeddings (matches the <-> ordering used by search)
5. Row level security: every row is visible only to the owner bound in
   app.current_owner_id for the transaction
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

EMBEDDING_DIMENSIONS = 1536

_OWNER_MATCH = "owner_id = current_setting('app.current_owner_id', true)::uuid"


def upgrade() -> None:
    """Create manual tables, vector index and RLS policies."""
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    op.create_table(
        "documents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("file_name", sa.Text(), nullable=False),
        sa.Column("storage_path", sa.Text(), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("category", sa.Text(), nullable=False, server_default="OTHER"),
        sa.Column("status", sa.Text(), nullable=False, server_default="pending"),
        sa.Column("total_chunks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint(
            "category IN ('FCOM', 'QRH', 'FCTM', 'MEL', 'AFM', 'OTHER')",
            name="ck_documents_category",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_documents_status",
        ),
    )
    op.create_index("idx_documents_owner", "documents", ["owner_id", "created_at"])

    op.create_table(
        "document_chunks",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "document_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("documents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("chunk_index", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("page_number", sa.Integer(), nullable=True),
        sa.Column("section_title", sa.Text(), nullable=True),
        sa.Column("embedding", Vector(EMBEDDING_DIMENSIONS), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.UniqueConstraint("document_id", "chunk_index", name="uq_chunk_document_index"),
    )
    op.create_index("idx_document_chunks_document_id", "document_chunks", ["document_id"])
    op.execute(
        "CREATE INDEX idx_document_chunks_embedding ON document_chunks "
        "USING ivfflat (embedding vector_l2_ops) WITH (lists = 100)"
    )

    # Row level security
    op.execute("ALTER TABLE documents ENABLE ROW LEVEL SECURITY")
    op.execute("ALTER TABLE documents FORCE ROW LEVEL SECURITY")
    op.execute(
        f"CREATE POLICY documents_owner ON documents "
        f"USING ({_OWNER_MATCH}) WITH CHECK ({_OWNER_MATCH})"
    )

    op.execute("ALTER TABLE document_chunks ENABLE ROW LEVEL SECURITY")
    op.execute("ALTER TABLE document_chunks FORCE ROW LEVEL SECURITY")
    op.execute(
        f"CREATE POLICY document_chunks_owner ON document_chunks USING ("
        f"EXISTS (SELECT 1 FROM documents d WHERE d.id = document_chunks.document_id "
        f"AND d.{_OWNER_MATCH}))"
    )


def downgrade() -> None:
    """Drop manual tables and policies."""
    op.execute("DROP POLICY IF EXISTS document_chunks_owner ON document_chunks")
    op.execute("DROP POLICY IF EXISTS documents_owner ON documents")
    op.drop_index("idx_document_chunks_embedding", table_name="document_chunks")
    op.drop_index("idx_document_chunks_document_id", table_name="document_chunks")
    op.drop_table("document_chunks")
    op.drop_index("idx_documents_owner", table_name="documents")
    op.drop_table("documents")
