"""
Index approximatif FAISS (IVF, produit scalaire sur vecteurs normalisés).

Tant que le nombre de vecteurs ne permet pas d'entraîner les `nlist`
centroïdes, la recherche est exacte (`IndexFlatIP`). Au-delà, l'index est
reconstruit en `IndexIVFFlat` et interrogé sur `nprobe` listes.
"""

from __future__ import annotations

from collections.abc import Sequence

import faiss  # type: ignore
import numpy as np
import structlog

from curator.domain.similarity import SimilarItem, rank
from curator.infra.vecstores.base import VectorIndex

log = structlog.get_logger(__name__)

# FAISS recommande ~39 points d'entraînement par centroïde
POINTS_PER_CENTROID = 39


class FaissIVFIndex(VectorIndex):
    name = "faiss"

    def __init__(
        self,
        dimensions: int,
        nlist: int = 100,
        nprobe: int = 10,
        train_size: int | None = None,
    ) -> None:
        super().__init__(dimensions)
        self.nlist = nlist
        self.nprobe = min(nprobe, nlist)
        self.train_size = max(nlist, train_size or nlist * POINTS_PER_CENTROID)
        self._ids: list[str] = []
        self._domains: list[str] = []
        self._vectors: list[np.ndarray] = []
        self._raw: dict[str, list[float]] = {}
        self._positions: dict[str, int] = {}
        self._index: faiss.Index | None = None
        self._quantizer: faiss.Index | None = None
        self._dirty = True

    @property
    def trained(self) -> bool:
        return isinstance(self._index, faiss.IndexIVFFlat) and self._index.is_trained

    def add(self, item_id: str, vector: Sequence[float], domain: str) -> None:
        self.check_dimensions(vector)
        x = np.asarray([vector], dtype="float32")
        faiss.normalize_L2(x)
        self._raw[item_id] = [float(v) for v in vector]
        pos = self._positions.get(item_id)
        if pos is not None:
            self._vectors[pos] = x[0]
            self._domains[pos] = domain
            self._dirty = True
            return
        self._positions[item_id] = len(self._ids)
        self._ids.append(item_id)
        self._domains.append(domain)
        self._vectors.append(x[0])
        if self._index is None or self._dirty:
            return
        if not self.trained and len(self._ids) >= self.train_size:
            # assez de points pour entraîner les centroïdes
            self._dirty = True
        else:
            self._index.add(x)

    def _rebuild(self) -> None:
        xb = np.stack(self._vectors).astype("float32")
        if len(self._ids) >= self.train_size:
            quantizer = faiss.IndexFlatIP(self.dimensions)
            index = faiss.IndexIVFFlat(
                quantizer, self.dimensions, self.nlist, faiss.METRIC_INNER_PRODUCT
            )
            index.train(xb)
            index.nprobe = self.nprobe
            # l'index garde une référence au quantizer
            self._quantizer = quantizer
            log.info("faiss_ivf_trained", vectors=len(self._ids), nlist=self.nlist)
        else:
            index = faiss.IndexFlatIP(self.dimensions)
        index.add(xb)
        self._index = index
        self._dirty = False

    def _query(self, q: np.ndarray, k: int) -> list[SimilarItem]:
        scores, indices = self._index.search(q, k)  # type: ignore[union-attr]
        out = []
        for score, idx in zip(scores[0], indices[0], strict=True):
            if idx == -1:
                continue
            out.append(
                SimilarItem(
                    item_id=self._ids[idx], domain=self._domains[idx], similarity=float(score)
                )
            )
        return out

    def search(
        self, vector: Sequence[float], k: int = 10, domain: str | None = None
    ) -> list[SimilarItem]:
        self.check_dimensions(vector)
        if not self._ids or k <= 0:
            return []
        if self._dirty or self._index is None:
            self._rebuild()
        q = np.asarray([vector], dtype="float32")
        faiss.normalize_L2(q)
        total = len(self._ids)
        fetch = min(total, k if domain is None else max(k * 10, 100))
        while True:
            hits = self._query(q, fetch)
            if domain is not None:
                hits = [h for h in hits if h.domain == domain]
            if len(hits) >= k or fetch >= total:
                return rank(hits, k)
            fetch = total

    def get(self, item_id: str) -> list[float] | None:
        return self._raw.get(item_id)

    def size(self) -> int:
        return len(self._ids)
