"""
Endpoint de santé.

Expose `/health`: état général et backends configurés (sans les instancier).
"""

from fastapi import APIRouter

from curator.core.container import container

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    """Vérifie la disponibilité de l'API et rappelle les backends configurés."""
    settings = container.settings
    return {
        "status": "ok",
        "queue": "redis" if settings.REDIS_URL else "memory",
        "embeddings_provider": settings.EMBEDDINGS_PROVIDER,
        "vector_backend": settings.VECTOR_BACKEND,
    }
