"""
Application FastAPI du pipeline.

Surface HTTP interne: santé, métriques Prometheus et recherche par similarité.
"""

from __future__ import annotations

from fastapi import FastAPI

from curator.api.routes_health import router as health_router
from curator.api.routes_retrieval import router as retrieval_router
from curator.app.metrics import metrics_router
from curator.core.container import container
from curator.core.logging import setup_logging


def create_app() -> FastAPI:
    """Construit l'application: logging structuré puis montage des routers."""
    settings = container.settings
    setup_logging(settings.LOG_LEVEL, settings.LOG_JSON)
    app = FastAPI(title=settings.APP_NAME, debug=settings.APP_DEBUG)
    app.include_router(health_router)
    app.include_router(retrieval_router)
    app.include_router(metrics_router)
    return app


app = create_app()
