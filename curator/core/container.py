"""
Conteneur d'injection de dépendances.

Construit paresseusement les composants partagés (moteur SQL, file d'embeddings,
fournisseur d'embeddings, moteur de règles qualité, index vectoriel) à partir
des settings, et expose un singleton `container`.
"""

from __future__ import annotations

import os
from functools import cached_property

import structlog
from sqlalchemy.engine import Engine

from curator.core.settings import Settings, get_settings
from curator.domain.quality_rules import QualityRulesEngine
from curator.domain.retriever import SimilarityRetriever
from curator.infra.connectors import Connector, config_from_settings, create_connector
from curator.infra.embeddings import EmbeddingProvider, create_provider
from curator.infra.queue.embedding_queue import EmbeddingQueue, build_queue
from curator.infra.repo.db import get_engine, session_scope
from curator.infra.repo.item_repo import ItemRepository
from curator.infra.repo.models import Base
from curator.infra.vecstores.base import VectorIndex
from curator.infra.vecstores.exact_index import ExactVectorIndex
from curator.infra.vecstores.faiss_index import FaissIVFIndex
from curator.infra.vecstores.pgvector_index import PgVectorIndex

log = structlog.get_logger(__name__)


class Container:
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def resolve_secret(self, key: str) -> str:
        """Résolution d'un secret: env -> settings. Ne journalise jamais la valeur."""
        env_val = os.getenv(key)
        if env_val:
            return env_val
        return getattr(self.settings, key, "") or ""

    @cached_property
    def engine(self) -> Engine:
        engine = get_engine(self.settings.DATABASE_URL)
        if engine.dialect.name == "sqlite":
            # base locale sans migrations
            Base.metadata.create_all(engine)
        return engine

    @cached_property
    def queue(self) -> EmbeddingQueue:
        return build_queue(self.settings)

    @cached_property
    def provider(self) -> EmbeddingProvider:
        return create_provider(self.settings.EMBEDDINGS_PROVIDER, self.settings)

    @cached_property
    def quality(self) -> QualityRulesEngine:
        return QualityRulesEngine.from_file(self.settings.QUALITY_RULES_PATH)

    @cached_property
    def index(self) -> VectorIndex:
        backend = self.settings.VECTOR_BACKEND.lower()
        dims = self.settings.EMBEDDINGS_DIMENSIONS
        if backend == "pgvector":
            if self.engine.dialect.name == "postgresql":
                return PgVectorIndex(self.engine, dims)
            log.warning("pgvector_unavailable", dialect=self.engine.dialect.name)
            backend = "memory"
        if backend == "faiss":
            index: VectorIndex = FaissIVFIndex(dims, nlist=self.settings.FAISS_NLIST)
        elif backend == "memory":
            index = ExactVectorIndex(dims)
        else:
            raise ValueError(f"Unknown VECTOR_BACKEND '{self.settings.VECTOR_BACKEND}'")
        with session_scope(self.engine) as session:
            loaded = index.add_many(list(ItemRepository(session).iter_embedded()))
        log.info("vector_index_loaded", backend=index.name, vectors=loaded)
        return index

    @cached_property
    def retriever(self) -> SimilarityRetriever:
        return SimilarityRetriever(self.index, self.provider)

    def connector(self, source: str) -> Connector:
        """Connecteur d'une source configuré depuis l'environnement."""
        return create_connector(source, config_from_settings(source, self.settings))


container = Container()
