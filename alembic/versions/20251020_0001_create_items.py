# mypy: ignore-errors
"""
Création de la table `items` et de son index vectoriel.

Sur PostgreSQL: extension `vector`, colonne `vector(EMBEDDINGS_DIMENSIONS)` et
index `ivfflat` en distance cosinus. Sur les autres moteurs la colonne est
créée sans index vectoriel.
"""

from __future__ import annotations

import os

import sqlalchemy as sa
from pgvector.sqlalchemy import Vector

from alembic import op

# revision identifiers, used by Alembic.
revision = "20251020_0001"
down_revision = None
branch_labels = None
depends_on = None

DIMENSIONS = int(os.getenv("EMBEDDINGS_DIMENSIONS", "384"))
IVFFLAT_LISTS = 100


def upgrade() -> None:
    is_pg = op.get_bind().dialect.name == "postgresql"
    if is_pg:
        op.execute("CREATE EXTENSION IF NOT EXISTS vector")
    op.create_table(
        "items",
        sa.Column("id", sa.String(length=255), primary_key=True),
        sa.Column("domain", sa.String(length=32), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("topics", sa.JSON(), nullable=False),
        sa.Column("source_name", sa.String(length=255), nullable=False),
        sa.Column("source_id", sa.String(length=255), nullable=True),
        sa.Column("source_url", sa.Text(), nullable=True),
        sa.Column("reputation_score", sa.Float(), nullable=True),
        sa.Column("actions", sa.JSON(), nullable=False),
        sa.Column("sponsored", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("meta", sa.JSON(), nullable=False),
        sa.Column("quality_score", sa.Float(), nullable=True),
        sa.Column("quality_tier", sa.String(length=16), nullable=True),
        sa.Column("embedding", Vector(DIMENSIONS), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("embedded_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_items_domain", "items", ["domain"])
    if is_pg:
        op.execute(
            "CREATE INDEX ix_items_embedding_ivfflat ON items "
            f"USING ivfflat (embedding vector_cosine_ops) WITH (lists = {IVFFLAT_LISTS})"
        )


def downgrade() -> None:
    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP INDEX IF EXISTS ix_items_embedding_ivfflat")
    op.drop_index("ix_items_domain", table_name="items")
    op.drop_table("items")
