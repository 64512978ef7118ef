"""
Métriques Prometheus pour le pipeline.

Ce module définit les métriques d'ingestion, de décisions qualité, de la file
d'embeddings et de la recherche vectorielle, ainsi que le router `/metrics`.
"""

from fastapi import APIRouter
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.responses import Response

metrics_router = APIRouter()

# Ingestion
INGEST_RUNS_TOTAL = Counter(
    "ingest_runs_total", "Ingestion runs per source", ["source", "status"]
)
INGEST_ITEMS_TOTAL = Counter(
    "ingest_items_total",
    "Items processed during ingestion",
    ["source", "outcome"],  # fetched|mapped|failed|schema_error|accepted|rejected|quarantined
)
INGEST_RUN_DURATION = Histogram(
    "ingest_run_duration_seconds", "Duration of ingestion runs", ["source"]
)
INGEST_RETRY_ATTEMPTS_TOTAL = Counter(
    "ingest_retry_attempts_total", "Retries performed by the retry wrapper", ["error"]
)
CONNECTOR_HTTP_REQUESTS_TOTAL = Counter(
    "connector_http_requests_total", "HTTP calls issued by connectors", ["source", "status"]
)

# Qualité
QUALITY_DECISIONS_TOTAL = Counter(
    "quality_decisions_total", "Quality decisions", ["domain", "action"]
)

# File et worker d'embeddings
EMBEDDING_JOBS_TOTAL = Counter(
    "embedding_jobs_total",
    "Embedding jobs by outcome",
    ["result"],  # enqueued|completed|requeued|dead_lettered
)
EMBEDDING_BATCH_LATENCY = Histogram(
    "embedding_batch_seconds", "Latency of one worker batch (embed + write)"
)
EMBEDDING_QUEUE_DEPTH = Gauge("embedding_queue_depth", "Jobs waiting in the queue")
EMBEDDING_IN_FLIGHT = Gauge("embedding_in_flight", "Jobs currently marked in-flight")

# Recherche vectorielle
RETRIEVAL_REQUESTS = Counter(
    "retrieval_requests_total", "Similarity retrieval operations", ["backend"]
)
RETRIEVAL_LATENCY = Histogram(
    "retrieval_latency_seconds", "Latency of similarity retrieval", ["backend"]
)


@metrics_router.get("/metrics")
def metrics() -> Response:
    """Expose les métriques au format Prometheus."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
