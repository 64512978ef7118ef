"""Similarité cosinus et résultat de recherche vectorielle."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class SimilarItem:
    item_id: str
    domain: str
    similarity: float


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosinus de l'angle entre deux vecteurs, dans [-1, 1].

    Un vecteur nul donne 0.

    Raises:
        ValueError: dimensions différentes.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Vector dimensions differ: {va.shape[0]} != {vb.shape[0]}")
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / norm, -1.0, 1.0))


def rank(results: list[SimilarItem], k: int) -> list[SimilarItem]:
    """Tri par similarité décroissante puis identifiant, tronqué à k."""
    return sorted(results, key=lambda r: (-r.similarity, r.item_id))[:k]
