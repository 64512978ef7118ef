"""
Types partagés par les connecteurs et le runner d'ingestion.

- `FetchResult`: une page renvoyée par `Connector.fetch`
- `ConnectorHealth`: état de santé d'un connecteur
- `IngestionError` / `IngestionResult`: enregistrement d'un run, figé en fin de run
- `RunRecorder`: accumulateur mutable utilisé pendant le run
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass
class FetchResult:
    """Page d'éléments bruts."""

    items: list[dict[str, Any]]
    next_cursor: str | None = None
    total: int | None = None
    has_more: bool = False


@dataclass(frozen=True)
class ConnectorHealth:
    """État de santé d'un connecteur."""

    healthy: bool
    latency_ms: float
    error_rate: float
    checked_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    message: str | None = None


@dataclass(frozen=True)
class IngestionError:
    """Erreur typée enregistrée pendant un run."""

    type: str  # fetch | auth | mapping | validation | budget
    message: str
    item_id: str | None = None
    field: str | None = None
    details: dict[str, Any] | None = None


@dataclass(frozen=True)
class IngestionResult:
    """Enregistrement finalisé d'un run d'ingestion pour une source."""

    source: str
    success: bool
    items_fetched: int
    items_mapped: int
    items_failed: int
    schema_errors: int
    items_accepted: int
    items_rejected: int
    items_quarantined: int
    duration_ms: float
    errors: tuple[IngestionError, ...]
    timestamp: datetime
    reason: str | None = None
    dry_run: bool = False

    @property
    def schema_error_rate(self) -> float:
        """Taux d'erreurs de schéma en pourcentage des éléments récupérés."""
        if not self.items_fetched:
            return 0.0
        return self.schema_errors / self.items_fetched * 100


@dataclass
class RunRecorder:
    """Compteurs mutables d'un run en cours; `finalize` produit l'enregistrement figé."""

    source: str
    dry_run: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    items_fetched: int = 0
    items_mapped: int = 0
    items_failed: int = 0
    schema_errors: int = 0
    items_accepted: int = 0
    items_rejected: int = 0
    items_quarantined: int = 0
    errors: list[IngestionError] = field(default_factory=list)

    def error(self, type_: str, message: str, **kwargs: Any) -> None:
        self.errors.append(IngestionError(type=type_, message=message, **kwargs))

    def finalize(
        self, success: bool, duration_ms: float, reason: str | None = None
    ) -> IngestionResult:
        return IngestionResult(
            source=self.source,
            success=success,
            items_fetched=self.items_fetched,
            items_mapped=self.items_mapped,
            items_failed=self.items_failed,
            schema_errors=self.schema_errors,
            items_accepted=self.items_accepted,
            items_rejected=self.items_rejected,
            items_quarantined=self.items_quarantined,
            duration_ms=duration_ms,
            errors=tuple(self.errors),
            timestamp=self.started_at,
            reason=reason,
            dry_run=self.dry_run,
        )
