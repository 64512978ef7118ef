# ============================================================
# Module : curator/api/routes_retrieval.py
# Objet  : Endpoint interne /internal/retrieval/similar.
# Notes  : une seule requête parmi vector | text | item_id; k borné.
# ============================================================
"""Route de recherche d'éléments similaires."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from curator.core.constants import (
    DOMAINS,
    HTTP_BAD_GATEWAY,
    HTTP_BAD_REQUEST,
    HTTP_NOT_FOUND,
    MAX_TOP_K,
    MIN_TOP_K,
)
from curator.core.container import container
from curator.domain.errors import (
    ConfigurationError,
    DimensionMismatchError,
    EmbeddingProviderError,
)

log = structlog.get_logger(__name__)
router = APIRouter(prefix="/internal/retrieval", tags=["retrieval"])


class SimilarRequest(BaseModel):
    """Payload de recherche: un vecteur, un texte ou l'id d'un élément indexé."""

    vector: list[float] | None = None
    text: str | None = None
    item_id: str | None = None
    k: int = 10
    domain: str | None = None


class SimilarHit(BaseModel):
    item_id: str
    domain: str
    similarity: float


class SimilarResponse(BaseModel):
    results: list[SimilarHit] = Field(default_factory=list)


@router.post("/similar", response_model=SimilarResponse)
def similar(req: SimilarRequest) -> SimilarResponse:
    text = (req.text or "").strip() or None
    queries = [q for q in (req.vector, text, req.item_id) if q]
    if len(queries) != 1:
        raise HTTPException(
            status_code=HTTP_BAD_REQUEST, detail="exactly one of vector, text, item_id required"
        )
    if req.k < MIN_TOP_K or req.k > MAX_TOP_K:
        raise HTTPException(
            status_code=HTTP_BAD_REQUEST, detail=f"k must be between {MIN_TOP_K} and {MAX_TOP_K}"
        )
    if req.domain is not None and req.domain not in DOMAINS:
        raise HTTPException(status_code=HTTP_BAD_REQUEST, detail=f"unknown domain '{req.domain}'")

    try:
        retriever = container.retriever
        if req.vector:
            hits = retriever.similar_to_vector(req.vector, req.k, req.domain)
        elif text:
            hits = retriever.similar_to_text(text, req.k, req.domain)
        else:
            hits = retriever.similar_to_item(req.item_id, req.k, req.domain)
    except DimensionMismatchError as exc:
        raise HTTPException(status_code=HTTP_BAD_REQUEST, detail=str(exc)) from exc
    except KeyError as exc:
        raise HTTPException(status_code=HTTP_NOT_FOUND, detail="item not indexed") from exc
    except (EmbeddingProviderError, ConfigurationError) as exc:
        log.warning("retrieval_provider_failed", error=str(exc))
        raise HTTPException(status_code=HTTP_BAD_GATEWAY, detail="embeddings unavailable") from exc

    return SimilarResponse(
        results=[
            SimilarHit(item_id=h.item_id, domain=h.domain, similarity=h.similarity) for h in hits
        ]
    )
