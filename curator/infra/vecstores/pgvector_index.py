"""Index PostgreSQL/pgvector: distance cosinus calculée en base sur la table `items`."""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from curator.domain.similarity import SimilarItem
from curator.infra.repo.db import session_scope
from curator.infra.repo.item_repo import ItemRepository
from curator.infra.repo.models import ItemORM
from curator.infra.vecstores.base import VectorIndex


class PgVectorIndex(VectorIndex):
    name = "pgvector"

    def __init__(self, engine: Engine, dimensions: int) -> None:
        super().__init__(dimensions)
        self.engine = engine

    def add(self, item_id: str, vector: Sequence[float], domain: str) -> None:
        self.check_dimensions(vector)
        with session_scope(self.engine) as session:
            if not ItemRepository(session, self.dimensions).set_embedding(item_id, vector):
                raise KeyError(item_id)

    def search(
        self, vector: Sequence[float], k: int = 10, domain: str | None = None
    ) -> list[SimilarItem]:
        self.check_dimensions(vector)
        distance = ItemORM.embedding.cosine_distance([float(x) for x in vector])
        stmt = select(ItemORM.id, ItemORM.domain, distance.label("distance")).where(
            ItemORM.embedding.is_not(None)
        )
        if domain:
            stmt = stmt.where(ItemORM.domain == domain)
        stmt = stmt.order_by(distance, ItemORM.id).limit(k)
        with session_scope(self.engine) as session:
            rows = session.execute(stmt).all()
        return [
            SimilarItem(item_id=item_id, domain=item_domain, similarity=1.0 - float(dist))
            for item_id, item_domain, dist in rows
        ]

    def get(self, item_id: str) -> list[float] | None:
        with session_scope(self.engine) as session:
            return ItemRepository(session).get_embedding(item_id)

    def size(self) -> int:
        stmt = select(func.count()).select_from(ItemORM).where(ItemORM.embedding.is_not(None))
        with session_scope(self.engine) as session:
            return int(session.execute(stmt).scalar_one())
