"""
Embedder OpenAI.

Utilise le SDK `openai` (endpoint embeddings); les erreurs du SDK sont
converties en `EmbeddingProviderError`.
"""

from __future__ import annotations

import openai
import structlog
from openai import OpenAI

from curator.domain.errors import ConfigurationError, EmbeddingProviderError
from curator.infra.embeddings.base import BatchEmbeddingResult, EmbeddingProvider

log = structlog.get_logger(__name__)

DEFAULT_MODEL = "text-embedding-3-small"
_MODEL_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class OpenAIEmbedder(EmbeddingProvider):
    """Embedder OpenAI (1536 dimensions par défaut, budget de 8191 tokens)."""

    name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        *,
        client: OpenAI | None = None,
        max_tokens: int = 8191,
    ) -> None:
        """
        Args:
            api_key: Clé API (ignorée si `client` est fourni).
            model: Modèle d'embedding, `text-embedding-3-small` par défaut.
            client: Client OpenAI préconstruit (tests).
            max_tokens: Budget de tokens par texte.
        """
        if client is None and not api_key:
            raise ConfigurationError("openai embeddings require OPENAI_API_KEY")
        self.client = client or OpenAI(api_key=api_key)
        self.model = model or DEFAULT_MODEL
        self.max_tokens = max_tokens
        self._dimensions = _MODEL_DIMENSIONS.get(self.model, 1536)

    def get_dimensions(self) -> int:
        return self._dimensions

    def embed_batch(self, texts: list[str]) -> BatchEmbeddingResult:
        prepared = [self.prepare_text(t) for t in texts]
        try:
            resp = self.client.embeddings.create(model=self.model, input=prepared)
        except openai.OpenAIError as exc:
            log.warning("openai_embeddings_failed", model=self.model, error=str(exc))
            raise EmbeddingProviderError(f"openai: {exc}") from exc
        data = sorted(resp.data, key=lambda d: d.index)
        vectors = [list(d.embedding) for d in data]
        if len(vectors) != len(texts):
            raise EmbeddingProviderError(
                f"openai: expected {len(texts)} vectors, got {len(vectors)}"
            )
        return BatchEmbeddingResult(vectors=vectors, dimensions=self._dimensions, model=self.model)
