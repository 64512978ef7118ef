"""
Embedder Voyage AI (fournisseur recommandé par Anthropic pour les embeddings).

Appel HTTP direct de l'endpoint `/embeddings` via httpx.
"""

from __future__ import annotations

import httpx
import structlog

from curator.domain.errors import ConfigurationError, EmbeddingProviderError
from curator.infra.embeddings.base import BatchEmbeddingResult, EmbeddingProvider

log = structlog.get_logger(__name__)

DEFAULT_MODEL = "voyage-2"
DEFAULT_BASE_URL = "https://api.voyageai.com/v1"
_MODEL_DIMENSIONS = {"voyage-2": 1024, "voyage-large-2": 1536, "voyage-3": 1024}


class VoyageEmbedder(EmbeddingProvider):
    name = "voyage"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        *,
        base_url: str = DEFAULT_BASE_URL,
        client: httpx.Client | None = None,
        timeout_s: float = 30.0,
        max_tokens: int = 4000,
    ) -> None:
        if not api_key:
            raise ConfigurationError("voyage embeddings require VOYAGE_API_KEY")
        self.model = model or DEFAULT_MODEL
        self.max_tokens = max_tokens
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._dimensions = _MODEL_DIMENSIONS.get(self.model, 1024)
        self.client = client or httpx.Client(timeout=httpx.Timeout(timeout_s))

    def get_dimensions(self) -> int:
        return self._dimensions

    def embed_batch(self, texts: list[str]) -> BatchEmbeddingResult:
        payload = {"model": self.model, "input": [self.prepare_text(t) for t in texts]}
        try:
            resp = self.client.post(
                f"{self.base_url}/embeddings",
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
            resp.raise_for_status()
            data = resp.json()["data"]
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            log.warning("voyage_embeddings_failed", model=self.model, error=str(exc))
            raise EmbeddingProviderError(f"voyage: {exc}") from exc
        data = sorted(data, key=lambda d: d.get("index", 0))
        vectors = [list(d["embedding"]) for d in data]
        if len(vectors) != len(texts):
            raise EmbeddingProviderError(
                f"voyage: expected {len(texts)} vectors, got {len(vectors)}"
            )
        return BatchEmbeddingResult(vectors=vectors, dimensions=self._dimensions, model=self.model)
