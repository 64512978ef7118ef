"""Embedder local déterministe (sac de mots haché), sans réseau ni modèle.

Deux textes partageant des mots obtiennent des vecteurs proches: suffisant pour
le développement, les tests et les environnements hors ligne.
"""

from __future__ import annotations

import hashlib
import re

import numpy as np

from curator.infra.embeddings.base import BatchEmbeddingResult, EmbeddingProvider

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


class LocalEmbedder(EmbeddingProvider):
    name = "local"

    def __init__(self, dimensions: int = 384, max_tokens: int = 512) -> None:
        if dimensions <= 0:
            raise ValueError("dimensions must be positive")
        self.dimensions = dimensions
        self.max_tokens = max_tokens
        self.model = f"hashed-bow-{dimensions}"

    def get_dimensions(self) -> int:
        return self.dimensions

    def _vector(self, text: str) -> list[float]:
        vec = np.zeros(self.dimensions, dtype=np.float32)
        for token in _TOKEN_RE.findall(text.lower()):
            digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
            h = int.from_bytes(digest, "little")
            sign = 1.0 if (h >> 63) & 1 else -1.0
            vec[h % self.dimensions] += sign
        norm = float(np.linalg.norm(vec))
        if norm > 0:
            vec /= norm
        return vec.tolist()

    def embed_batch(self, texts: list[str]) -> BatchEmbeddingResult:
        vectors = [self._vector(self.prepare_text(t)) for t in texts]
        return BatchEmbeddingResult(vectors=vectors, dimensions=self.dimensions, model=self.model)
