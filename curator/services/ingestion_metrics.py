"""Suivi des statistiques d'ingestion par source.

Une instance est passée explicitement au runner; chaque test dispose ainsi d'un
tracker neuf. Les compteurs Prometheus restent, eux, globaux au processus.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from curator.app.metrics import INGEST_ITEMS_TOTAL, INGEST_RUN_DURATION, INGEST_RUNS_TOTAL
from curator.domain.ingestion import IngestionResult


@dataclass
class SourceMetrics:
    """Totaux cumulés pour une source."""

    source: str
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    total_items_fetched: int = 0
    total_items_mapped: int = 0
    total_schema_errors: int = 0
    schema_error_rate: float = 0.0
    average_duration_ms: float = 0.0
    last_run: datetime | None = None
    last_success: bool | None = None


class IngestionMetricsTracker:
    """Agrège les `IngestionResult` par source."""

    def __init__(self) -> None:
        self._sources: dict[str, SourceMetrics] = {}

    def record(self, result: IngestionResult) -> SourceMetrics:
        """Ajoute un run aux totaux de sa source et publie les métriques Prometheus."""
        m = self._sources.setdefault(result.source, SourceMetrics(source=result.source))
        m.total_runs += 1
        if result.success:
            m.successful_runs += 1
        else:
            m.failed_runs += 1
        m.total_items_fetched += result.items_fetched
        m.total_items_mapped += result.items_mapped
        m.total_schema_errors += result.schema_errors
        m.schema_error_rate = (
            m.total_schema_errors / m.total_items_fetched * 100 if m.total_items_fetched else 0.0
        )
        # moyenne glissante sur l'ensemble des runs
        m.average_duration_ms += (result.duration_ms - m.average_duration_ms) / m.total_runs
        m.last_run = result.timestamp
        m.last_success = result.success

        INGEST_RUNS_TOTAL.labels(
            source=result.source, status="success" if result.success else "failed"
        ).inc()
        INGEST_RUN_DURATION.labels(source=result.source).observe(result.duration_ms / 1000)
        for outcome, count in (
            ("fetched", result.items_fetched),
            ("mapped", result.items_mapped),
            ("failed", result.items_failed),
            ("schema_error", result.schema_errors),
            ("accepted", result.items_accepted),
            ("rejected", result.items_rejected),
            ("quarantined", result.items_quarantined),
        ):
            if count:
                INGEST_ITEMS_TOTAL.labels(source=result.source, outcome=outcome).inc(count)
        return m

    def get(self, source: str) -> SourceMetrics | None:
        return self._sources.get(source)

    def all(self) -> list[SourceMetrics]:
        return list(self._sources.values())

    def is_within_error_budget(self, source: str, budget_pct: float = 1.0) -> bool:
        """Vrai si le taux cumulé d'erreurs de schéma de la source respecte le budget."""
        m = self._sources.get(source)
        return m is None or m.schema_error_rate <= budget_pct

    def reset(self) -> None:
        self._sources.clear()

    def summary_lines(self) -> list[str]:
        """Résumé lisible, une ligne par source, dans l'ordre d'enregistrement."""
        lines = []
        for m in self._sources.values():
            status = "OK" if m.last_success else "FAILED"
            lines.append(
                f"{m.source:<12} {status:<6} runs={m.total_runs} ok={m.successful_runs} "
                f"fetched={m.total_items_fetched} mapped={m.total_items_mapped} "
                f"schema_errors={m.total_schema_errors} ({m.schema_error_rate:.2f}%) "
                f"avg={m.average_duration_ms:.0f}ms"
            )
        return lines
