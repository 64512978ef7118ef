"""Index exact en mémoire (force brute numpy)."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from curator.domain.similarity import SimilarItem, rank
from curator.infra.vecstores.base import VectorIndex


def _normalize(vector: Sequence[float]) -> np.ndarray:
    v = np.asarray(vector, dtype=np.float32)
    norm = float(np.linalg.norm(v))
    return v / norm if norm > 0 else v


class ExactVectorIndex(VectorIndex):
    name = "exact"

    def __init__(self, dimensions: int) -> None:
        super().__init__(dimensions)
        self._vectors: dict[str, np.ndarray] = {}
        self._raw: dict[str, list[float]] = {}
        self._domains: dict[str, str] = {}

    def add(self, item_id: str, vector: Sequence[float], domain: str) -> None:
        self.check_dimensions(vector)
        self._raw[item_id] = [float(x) for x in vector]
        self._vectors[item_id] = _normalize(vector)
        self._domains[item_id] = domain

    def search(
        self, vector: Sequence[float], k: int = 10, domain: str | None = None
    ) -> list[SimilarItem]:
        self.check_dimensions(vector)
        ids = [i for i in self._vectors if domain is None or self._domains[i] == domain]
        if not ids or k <= 0:
            return []
        matrix = np.stack([self._vectors[i] for i in ids])
        scores = matrix @ _normalize(vector)
        results = [
            SimilarItem(item_id=i, domain=self._domains[i], similarity=float(s))
            for i, s in zip(ids, scores, strict=True)
        ]
        return rank(results, k)

    def get(self, item_id: str) -> list[float] | None:
        return self._raw.get(item_id)

    def size(self) -> int:
        return len(self._vectors)
