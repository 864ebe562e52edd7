"""Alumni profiles: people, experiences, educations, embedded profile chunks, search_chunks().

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from pgvector.sqlalchemy import Vector

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EMBEDDING_DIM = 2000


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    op.create_table(
        "people",
        sa.Column("person_id", sa.UUID(), primary_key=True),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("linkedin_url", sa.String(500), nullable=True),
        sa.Column("headline", sa.Text(), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("class_year", sa.Integer(), nullable=True),
        sa.Column("section", sa.String(255), nullable=True),
        sa.Column("current_company", sa.String(255), nullable=True),
        sa.Column("current_title", sa.String(255), nullable=True),
        sa.Column("current_industry", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "experiences",
        sa.Column("exp_id", sa.UUID(), primary_key=True),
        sa.Column("person_id", sa.UUID(), sa.ForeignKey("people.person_id", ondelete="CASCADE"), nullable=False),
        sa.Column("company", sa.String(255), nullable=True),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("start_date", sa.String(20), nullable=True),
        sa.Column("end_date", sa.String(20), nullable=True),
        sa.Column("sort_index", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_experiences_person_id_sort_index", "experiences", ["person_id", "sort_index"])

    op.create_table(
        "educations",
        sa.Column("edu_id", sa.UUID(), primary_key=True),
        sa.Column("person_id", sa.UUID(), sa.ForeignKey("people.person_id", ondelete="CASCADE"), nullable=False),
        sa.Column("school", sa.String(255), nullable=True),
        sa.Column("degree", sa.String(255), nullable=True),
        sa.Column("field", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_year", sa.Integer(), nullable=True),
        sa.Column("end_year", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_educations_person_id", "educations", ["person_id"])

    op.create_table(
        "profile_chunks",
        sa.Column("chunk_id", sa.UUID(), primary_key=True),
        sa.Column("person_id", sa.UUID(), sa.ForeignKey("people.person_id", ondelete="CASCADE"), nullable=False),
        sa.Column("chunk_type", sa.String(20), nullable=False),
        sa.Column("source_id", sa.String(255), nullable=True),
        sa.Column("text_raw", sa.Text(), nullable=False),
        sa.Column("text_norm", sa.Text(), nullable=True),
        sa.Column("text_hash", sa.String(64), nullable=False),
        sa.Column("embedding", Vector(EMBEDDING_DIM), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_profile_chunks_person_id", "profile_chunks", ["person_id"])
    op.create_index(
        "ix_profile_chunks_person_type_hash",
        "profile_chunks",
        ["person_id", "chunk_type", "text_hash"],
        unique=True,
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_profile_chunks_embedding_hnsw "
        "ON profile_chunks USING hnsw (embedding vector_cosine_ops)"
    )

    # Cosine similarity = 1 - cosine distance; ties broken by chunk_id for stable paging.
    op.execute(
        f"""
        CREATE OR REPLACE FUNCTION search_chunks(
            query_embedding vector({EMBEDDING_DIM}),
            match_count integer DEFAULT 200
        )
        RETURNS TABLE (
            chunk_id uuid,
            person_id uuid,
            chunk_type text,
            text_raw text,
            text_norm text,
            similarity double precision
        )
        LANGUAGE sql STABLE
        AS $$
            SELECT
                c.chunk_id,
                c.person_id,
                c.chunk_type::text,
                c.text_raw,
                c.text_norm,
                (1 - (c.embedding <=> query_embedding))::double precision AS similarity
            FROM profile_chunks c
            WHERE c.embedding IS NOT NULL
            ORDER BY c.embedding <=> query_embedding, c.chunk_id
            LIMIT match_count;
        $$
        """
    )


def downgrade() -> None:
    op.execute(f"DROP FUNCTION IF EXISTS search_chunks(vector({EMBEDDING_DIM}), integer)")
    op.execute("DROP INDEX IF EXISTS ix_profile_chunks_embedding_hnsw")
    op.drop_index("ix_profile_chunks_person_type_hash", table_name="profile_chunks")
    op.drop_index("ix_profile_chunks_person_id", table_name="profile_chunks")
    op.drop_table("profile_chunks")
    op.drop_index("ix_educations_person_id", table_name="educations")
    op.drop_table("educations")
    op.drop_index("ix_experiences_person_id_sort_index", table_name="experiences")
    op.drop_table("experiences")
    op.drop_table("people")
