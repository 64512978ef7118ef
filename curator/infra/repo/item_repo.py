# ============================================================
# Module : curator/infra/repo/item_repo.py
# Objet  : Accès SQL aux éléments de contenu (table items).
# Notes  : insertion seule; l'embedding est la seule colonne mise à jour.
# ============================================================

from __future__ import annotations

from collections.abc import Iterator, Sequence
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from curator.domain.errors import DimensionMismatchError
from curator.domain.items import UnifiedItem, validate_item
from curator.domain.quality import QualityDecision
from curator.infra.repo.db import session_scope
from curator.infra.repo.models import ItemORM

log = structlog.get_logger(__name__)


def _to_row(item: UnifiedItem, decision: QualityDecision | None) -> ItemORM:
    payload = item.to_payload()
    return ItemORM(
        id=item.id,
        domain=item.domain,
        title=item.title,
        description=item.description,
        topics=list(item.topics),
        source_name=item.source.name,
        source_id=item.source.id,
        source_url=item.source.url,
        reputation_score=item.source.reputation_score,
        actions=list(item.actions),
        sponsored=item.sponsored,
        meta=payload["metadata"],
        quality_score=decision.score if decision else None,
        quality_tier=decision.tier.value if decision else None,
        embedding=list(item.embeddings) if item.embeddings else None,
        created_at=item.created_at,
        updated_at=item.updated_at,
    )


def _to_item(row: ItemORM) -> UnifiedItem:
    source: dict[str, Any] = {"name": row.source_name, "id": row.source_id or row.id}
    if row.source_url:
        source["url"] = row.source_url
    if row.reputation_score is not None:
        source["reputation_score"] = row.reputation_score
    return validate_item(
        {
            "id": row.id,
            "domain": row.domain,
            "title": row.title,
            "description": row.description,
            "topics": row.topics,
            "source": source,
            "actions": row.actions,
            "sponsored": row.sponsored,
            "embeddings": _vector(row.embedding),
            "metadata": {**(row.meta or {}), "domain": row.domain},
            "created_at": row.created_at,
            "updated_at": row.updated_at,
        }
    )


def _vector(value: Any) -> list[float] | None:
    # pgvector renvoie un ndarray
    if value is None:
        return None
    return [float(x) for x in value]


class ItemRepository:
    """CRUD des éléments de contenu pour une session donnée."""

    def __init__(self, session: Session, dimensions: int | None = None) -> None:
        self._session = session
        self.dimensions = dimensions

    def save(self, item: UnifiedItem, decision: QualityDecision | None = None) -> bool:
        """Insère un élément. Un identifiant déjà présent est laissé intact (`False`)."""
        if self._session.get(ItemORM, item.id) is not None:
            return False
        self._session.add(_to_row(item, decision))
        self._session.flush()
        return True

    def get(self, item_id: str) -> UnifiedItem | None:
        row = self._session.get(ItemORM, item_id)
        return _to_item(row) if row else None

    def set_embedding(self, item_id: str, vector: Sequence[float]) -> bool:
        """Écrit l'embedding d'un élément existant.

        Raises:
            DimensionMismatchError: la dimension diffère de celle de l'index.
        """
        if self.dimensions and len(vector) != self.dimensions:
            raise DimensionMismatchError(self.dimensions, len(vector))
        row = self._session.get(ItemORM, item_id)
        if row is None:
            return False
        row.embedding = [float(x) for x in vector]
        row.embedded_at = datetime.now(UTC)
        self._session.flush()
        return True

    def get_embedding(self, item_id: str) -> list[float] | None:
        row = self._session.get(ItemORM, item_id)
        return _vector(row.embedding) if row else None

    def iter_missing_embeddings(
        self, domain: str | None = None, limit: int | None = None
    ) -> Iterator[UnifiedItem]:
        """Éléments sans embedding, les plus anciens d'abord."""
        stmt = select(ItemORM).where(ItemORM.embedding.is_(None))
        if domain:
            stmt = stmt.where(ItemORM.domain == domain)
        stmt = stmt.order_by(ItemORM.created_at, ItemORM.id)
        if limit:
            stmt = stmt.limit(limit)
        for row in self._session.execute(stmt).scalars():
            yield _to_item(row)

    def count_by_domain(self) -> dict[str, int]:
        stmt = select(ItemORM.domain, func.count()).group_by(ItemORM.domain)
        return {domain: int(n) for domain, n in self._session.execute(stmt).all()}

    def embedding_coverage(self) -> dict[str, dict[str, float]]:
        """Par domaine: total, nombre d'éléments vectorisés et pourcentage."""
        stmt = select(
            ItemORM.domain, func.count(), func.count(ItemORM.embedding)
        ).group_by(ItemORM.domain)
        coverage = {}
        for domain, total, embedded in self._session.execute(stmt).all():
            coverage[domain] = {
                "total": int(total),
                "embedded": int(embedded),
                "pct": round(embedded / total * 100, 2) if total else 0.0,
            }
        return coverage

    def iter_embedded(self, domain: str | None = None) -> Iterator[tuple[str, str, list[float]]]:
        """(id, domaine, vecteur) des éléments vectorisés, pour charger un index en mémoire."""
        stmt = select(ItemORM.id, ItemORM.domain, ItemORM.embedding).where(
            ItemORM.embedding.is_not(None)
        )
        if domain:
            stmt = stmt.where(ItemORM.domain == domain)
        for item_id, item_domain, embedding in self._session.execute(stmt.order_by(ItemORM.id)):
            yield item_id, item_domain, _vector(embedding) or []


class SqlItemSink:
    """Persistance des éléments acceptés par le runner (une transaction par élément)."""

    def __init__(self, engine: Engine, dimensions: int | None = None) -> None:
        self.engine = engine
        self.dimensions = dimensions

    def save(self, item: UnifiedItem, decision: QualityDecision | None = None) -> bool:
        with session_scope(self.engine) as session:
            created = ItemRepository(session, self.dimensions).save(item, decision)
        if not created:
            log.debug("item_already_stored", item_id=item.id)
        return created


class SqlEmbeddingSink:
    """Écriture des vecteurs calculés par le worker (une transaction par élément)."""

    def __init__(self, engine: Engine, dimensions: int | None = None) -> None:
        self.engine = engine
        self.dimensions = dimensions

    def set_embedding(self, item_id: str, vector: Sequence[float]) -> bool:
        with session_scope(self.engine) as session:
            return ItemRepository(session, self.dimensions).set_embedding(item_id, vector)
