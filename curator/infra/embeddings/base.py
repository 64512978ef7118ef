"""
Interface de base des fournisseurs d'embeddings.

Tous les fournisseurs tronquent le texte au budget de tokens du modèle
(approximation: 4 caractères par token) avant l'appel.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from curator.core.constants import CHARS_PER_TOKEN, TRUNCATION_MARKER
from curator.domain.errors import EmbeddingProviderError


@dataclass(frozen=True)
class EmbeddingResult:
    vector: list[float]
    dimensions: int
    model: str | None = None


@dataclass(frozen=True)
class BatchEmbeddingResult:
    vectors: list[list[float]]
    dimensions: int
    model: str | None = None


def truncate_text(text: str, max_tokens: int) -> str:
    """Tronque à `max_tokens * 4` caractères, marqueur `...` inclus."""
    max_chars = max_tokens * CHARS_PER_TOKEN
    if len(text) <= max_chars:
        return text
    return text[: max(0, max_chars - len(TRUNCATION_MARKER))] + TRUNCATION_MARKER


class EmbeddingProvider(ABC):
    """Interface abstraite des générateurs d'embeddings."""

    name: str = "base"
    model: str | None = None
    max_tokens: int = 8191

    @abstractmethod
    def embed_batch(self, texts: list[str]) -> BatchEmbeddingResult:
        """Vectorise une liste de textes (un vecteur par texte, dans l'ordre)."""
        ...

    @abstractmethod
    def get_dimensions(self) -> int: ...

    def embed(self, text: str) -> EmbeddingResult:
        batch = self.embed_batch([text])
        return EmbeddingResult(batch.vectors[0], batch.dimensions, batch.model)

    def prepare_text(self, text: str) -> str:
        return truncate_text(text.strip(), self.max_tokens)

    def validate(self) -> bool:
        """Vérifie que le fournisseur répond avec la dimension annoncée."""
        try:
            result = self.embed("healthcheck")
        except EmbeddingProviderError:
            return False
        return len(result.vector) == self.get_dimensions()
