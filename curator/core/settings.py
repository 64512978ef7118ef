"""Définition et chargement des paramètres de configuration du pipeline.

Objectif du module
------------------
- Centraliser les paramètres (env/.env) via Pydantic Settings
- Résoudre le fichier `.env` à utiliser selon la stratégie: ENV_FILE > .env.{APP_ENV} > .env
"""

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Détermination du fichier .env à utiliser avec priorité:
# 1) ENV_FILE (chemin explicite)
# 2) .env.{APP_ENV} si présent
# 3) .env (défaut)
_cwd = Path.cwd()
_env_file_from_env = os.getenv("ENV_FILE")
if _env_file_from_env:
    _ENV_FILE_PATH = _env_file_from_env
else:
    _app_env = os.getenv("APP_ENV", "dev")
    _candidate_specific = _cwd / f".env.{_app_env}"
    _candidate_default = _cwd / ".env"
    if _candidate_specific.exists():
        _ENV_FILE_PATH = _candidate_specific
    else:
        _ENV_FILE_PATH = _candidate_default

DEFAULT_QUALITY_RULES_PATH = str(
    Path(__file__).resolve().parent.parent / "config" / "quality_rules.yaml"
)


class Settings(BaseSettings):
    """Modèle de configuration chargé depuis l'environnement et .env."""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE_PATH,
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
    )
    APP_NAME: str = "curator-pipeline"
    APP_ENV: str = "dev"
    APP_DEBUG: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Stockage
    DATABASE_URL: str | None = None
    REDIS_URL: str | None = None
    REQUIRE_REDIS: bool = False

    # Identifiants des sources (jamais journalisés)
    SPOTIFY_CLIENT_ID: str | None = None
    SPOTIFY_CLIENT_SECRET: str | None = None
    NEWS_API_KEY: str | None = None
    YOUTUBE_API_KEY: str | None = None
    SPOONACULAR_API_KEY: str | None = None
    EVENTBRITE_TOKEN: str | None = None
    CONNECTOR_TIMEOUT_S: float = 10.0

    # Ingestion
    INGEST_BATCH_SIZE: int = 20
    INGEST_MAX_RETRIES: int = 3
    INGEST_RATE_LIMIT_RPS: float = 5.0
    INGEST_SCHEMA_ERROR_BUDGET_PCT: float = 1.0
    INGEST_DRY_RUN_ITEM_CAP: int = 50
    INGEST_MAX_PAGES: int | None = None

    # Règles qualité
    QUALITY_RULES_PATH: str = DEFAULT_QUALITY_RULES_PATH

    # Embeddings
    EMBEDDINGS_PROVIDER: str = "local"  # "openai" | "voyage" | "anthropic" | "local"
    EMBEDDINGS_MODEL: str | None = None
    EMBEDDINGS_DIMENSIONS: int = 384
    OPENAI_API_KEY: str | None = None
    VOYAGE_API_KEY: str | None = None
    VOYAGE_BASE_URL: str = "https://api.voyageai.com/v1"

    # Worker
    WORKER_BATCH_SIZE: int = 10
    WORKER_POLL_INTERVAL_S: float = 1.0
    WORKER_MAX_ATTEMPTS: int = 3

    # Recherche vectorielle
    VECTOR_BACKEND: str = "pgvector"  # "pgvector" | "faiss" | "memory"
    FAISS_NLIST: int = 100


def get_settings() -> Settings:
    """Construit et retourne la configuration du pipeline."""
    return Settings()
