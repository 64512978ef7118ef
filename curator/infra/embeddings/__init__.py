"""Fournisseurs d'embeddings et fabrique par nom."""

from __future__ import annotations

from curator.core.settings import Settings
from curator.infra.embeddings.base import (
    BatchEmbeddingResult,
    EmbeddingProvider,
    EmbeddingResult,
    truncate_text,
)
from curator.infra.embeddings.local_embedder import LocalEmbedder
from curator.infra.embeddings.openai_embedder import OpenAIEmbedder
from curator.infra.embeddings.voyage_embedder import VoyageEmbedder

PROVIDERS = ("openai", "voyage", "anthropic", "local")


def create_provider(name: str, settings: Settings) -> EmbeddingProvider:
    """Instancie un fournisseur. `anthropic` désigne Voyage AI.

    Raises:
        ValueError: nom inconnu.
        ConfigurationError: clé API absente.
    """
    key = name.lower()
    if key == "openai":
        return OpenAIEmbedder(settings.OPENAI_API_KEY, settings.EMBEDDINGS_MODEL)
    if key in ("voyage", "anthropic"):
        return VoyageEmbedder(
            settings.VOYAGE_API_KEY, settings.EMBEDDINGS_MODEL, base_url=settings.VOYAGE_BASE_URL
        )
    if key == "local":
        return LocalEmbedder(settings.EMBEDDINGS_DIMENSIONS)
    raise ValueError(f"Unknown embeddings provider '{name}', expected one of: {', '.join(PROVIDERS)}")


__all__ = [
    "PROVIDERS",
    "BatchEmbeddingResult",
    "EmbeddingProvider",
    "EmbeddingResult",
    "LocalEmbedder",
    "OpenAIEmbedder",
    "VoyageEmbedder",
    "create_provider",
    "truncate_text",
]
