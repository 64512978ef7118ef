"""Modèles SQLAlchemy de la couche de persistance (table `items`)."""

from __future__ import annotations

from datetime import UTC, datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Index, MetaData, String, Text
from sqlalchemy.orm import DeclarativeBase


def _now() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    metadata = MetaData()


class ItemORM(Base):
    """Élément de contenu normalisé, avec son embedding (nul tant que non calculé)."""

    __tablename__ = "items"

    id = Column(String(255), primary_key=True)
    domain = Column(String(32), nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    topics = Column(JSON, nullable=False, default=list)
    source_name = Column(String(255), nullable=False)
    source_id = Column(String(255), nullable=True)
    source_url = Column(Text, nullable=True)
    reputation_score = Column(Float, nullable=True)
    actions = Column(JSON, nullable=False, default=list)
    sponsored = Column(Boolean, nullable=False, default=False)
    meta = Column(JSON, nullable=False, default=dict)
    quality_score = Column(Float, nullable=True)
    quality_tier = Column(String(16), nullable=True)
    # dimension fixée par la migration (EMBEDDINGS_DIMENSIONS)
    embedding = Column(Vector(), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    embedded_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_items_domain", "domain"),)
