"""Service de recherche d'éléments similaires.

Ce module expose `SimilarityRetriever`, façade au-dessus d'un `VectorIndex`
(exact, FAISS ou pgvector) qui accepte un vecteur, un texte (vectorisé par le
fournisseur actif) ou l'identifiant d'un élément déjà indexé.
"""

from __future__ import annotations

import time
from collections.abc import Sequence

from curator.app.metrics import RETRIEVAL_LATENCY, RETRIEVAL_REQUESTS
from curator.domain.errors import ConfigurationError, DimensionMismatchError
from curator.domain.similarity import SimilarItem
from curator.infra.embeddings.base import EmbeddingProvider
from curator.infra.vecstores.base import VectorIndex


class SimilarityRetriever:
    """Recherche des k éléments les plus proches, optionnellement dans un seul domaine."""

    def __init__(self, index: VectorIndex, provider: EmbeddingProvider | None = None) -> None:
        """Initialise le service de recherche.

        Args:
            index: Index vectoriel interrogé.
            provider: Fournisseur utilisé par `similar_to_text`; sa dimension doit
                être celle de l'index.
        """
        if provider is not None and provider.get_dimensions() != index.dimensions:
            raise DimensionMismatchError(index.dimensions, provider.get_dimensions())
        self.index = index
        self.provider = provider

    def similar_to_vector(
        self, vector: Sequence[float], k: int = 10, domain: str | None = None
    ) -> list[SimilarItem]:
        """Recherche par vecteur.

        Raises:
            ValueError: k < 1.
            DimensionMismatchError: dimension différente de celle de l'index.
        """
        if k < 1:
            raise ValueError("k must be >= 1")
        start = time.perf_counter()
        results = self.index.search(vector, k, domain)
        RETRIEVAL_REQUESTS.labels(backend=self.index.name).inc()
        RETRIEVAL_LATENCY.labels(backend=self.index.name).observe(time.perf_counter() - start)
        return results

    def similar_to_text(
        self, text: str, k: int = 10, domain: str | None = None
    ) -> list[SimilarItem]:
        if self.provider is None:
            raise ConfigurationError("No embeddings provider configured for text queries")
        vector = self.provider.embed(text).vector
        return self.similar_to_vector(vector, k, domain)

    def similar_to_item(
        self, item_id: str, k: int = 10, domain: str | None = None
    ) -> list[SimilarItem]:
        """Voisins d'un élément indexé, l'élément lui-même exclu.

        Raises:
            KeyError: élément absent de l'index.
        """
        vector = self.index.get(item_id)
        if vector is None:
            raise KeyError(item_id)
        results = self.similar_to_vector(vector, k + 1, domain)
        return [r for r in results if r.item_id != item_id][:k]
