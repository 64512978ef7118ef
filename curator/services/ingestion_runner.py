"""
Orchestration d'un run d'ingestion pour un connecteur.

Déroulé d'un run:
1. vérification des identifiants (avec retry)
2. boucle de pages: jeton du rate limiter, `fetch` avec retry, puis pour chaque
   élément `map` -> validation -> décision qualité -> persistance + job d'embedding
3. contrôle du budget d'erreurs de schéma après chaque page (cumulatif)
4. enregistrement du résultat dans le tracker

Un échec de mapping ou de validation n'interrompt jamais le run; seuls
l'authentification, le fetch (après retries) et le dépassement de budget le font.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from typing import Protocol

import structlog

from curator.core.settings import Settings
from curator.domain.errors import (
    AuthenticationError,
    BudgetExceededError,
    MappingError,
    ValidationError,
)
from curator.domain.ingestion import IngestionResult, RunRecorder
from curator.domain.items import UnifiedItem, embedding_text, validate_item
from curator.domain.quality import QualityAction, QualityDecision
from curator.domain.quality_rules import QualityRulesEngine
from curator.infra.connectors.base import Connector
from curator.infra.queue.embedding_queue import EmbeddingJob, Priority
from curator.services.ingestion_metrics import IngestionMetricsTracker
from curator.services.retry import RateLimiter, RetryConfig, with_retry

log = structlog.get_logger(__name__)


class ItemSink(Protocol):
    """Destination des éléments acceptés."""

    def save(self, item: UnifiedItem, decision: QualityDecision | None = None) -> None: ...


class JobQueue(Protocol):
    def enqueue(self, job: EmbeddingJob) -> None: ...


@dataclass
class RunnerConfig:
    batch_size: int = 20
    max_retries: int | None = None
    rate_limit_rps: float = 5.0
    schema_error_budget_pct: float = 1.0
    dry_run: bool = False
    dry_run_item_cap: int = 50
    max_pages: int | None = None
    quality_context: str = "ingest"
    embedding_dimensions: int | None = None
    retry: RetryConfig = field(default_factory=RetryConfig)

    def __post_init__(self) -> None:
        # copie: un RetryConfig partagé n'est jamais modifié
        if self.max_retries is None:
            self.max_retries = self.retry.max_retries
        else:
            self.retry = replace(self.retry, max_retries=self.max_retries)

    @classmethod
    def from_settings(
        cls, settings: Settings, *, dry_run: bool = False, max_pages: int | None = None
    ) -> RunnerConfig:
        return cls(
            batch_size=settings.INGEST_BATCH_SIZE,
            max_retries=settings.INGEST_MAX_RETRIES,
            rate_limit_rps=settings.INGEST_RATE_LIMIT_RPS,
            schema_error_budget_pct=settings.INGEST_SCHEMA_ERROR_BUDGET_PCT,
            dry_run=dry_run,
            dry_run_item_cap=settings.INGEST_DRY_RUN_ITEM_CAP,
            max_pages=max_pages if max_pages is not None else settings.INGEST_MAX_PAGES,
        )


class IngestionRunner:
    """Exécute les runs d'ingestion et en agrège les métriques.

    Chaque instance possède son tracker et un rate limiter par source: deux
    runners ne partagent aucun état.
    """

    def __init__(
        self,
        config: RunnerConfig | None = None,
        *,
        metrics: IngestionMetricsTracker | None = None,
        quality: QualityRulesEngine | None = None,
        sink: ItemSink | None = None,
        queue: JobQueue | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or RunnerConfig()
        self.metrics = metrics or IngestionMetricsTracker()
        self.quality = quality
        self.sink = sink
        self.queue = queue
        self._sleep = sleep
        self._clock = clock
        self._limiters: dict[str, RateLimiter] = {}

    def _limiter(self, source: str) -> RateLimiter:
        if source not in self._limiters:
            self._limiters[source] = RateLimiter(
                self.config.rate_limit_rps, clock=self._clock, sleep=self._sleep
            )
        return self._limiters[source]

    # ------------------------------------------------------------------ run

    def run(self, connector: Connector) -> IngestionResult:
        """Exécute un run complet pour un connecteur et l'enregistre dans le tracker."""
        cfg = self.config
        source = connector.source
        rec = RunRecorder(source=source, dry_run=cfg.dry_run)
        started = time.perf_counter()
        log.info("ingestion_started", source=source, dry_run=cfg.dry_run)

        success, reason = True, None
        try:
            self._authenticate(connector)
            self._fetch_pages(connector, rec)
        except BudgetExceededError as exc:
            success, reason = False, str(exc)
            rec.error("budget", reason, details={"rate": round(exc.rate, 4)})
        except AuthenticationError as exc:
            success, reason = False, str(exc)
            rec.error("auth", reason)
        except Exception as exc:
            # un connecteur défaillant ne doit pas interrompre `run_all`
            success, reason = False, str(exc) or type(exc).__name__
            rec.error("fetch", reason, details={"error": type(exc).__name__})
            log.exception("ingestion_run_failed", source=source)

        result = rec.finalize(success, (time.perf_counter() - started) * 1000, reason)
        self.metrics.record(result)
        log.info(
            "ingestion_finished",
            source=source,
            success=result.success,
            fetched=result.items_fetched,
            mapped=result.items_mapped,
            failed=result.items_failed,
            schema_errors=result.schema_errors,
            accepted=result.items_accepted,
            quarantined=result.items_quarantined,
            rejected=result.items_rejected,
            duration_ms=round(result.duration_ms, 1),
            reason=reason,
        )
        return result

    def run_all(self, connectors: Iterable[Connector]) -> list[IngestionResult]:
        """Exécute les connecteurs l'un après l'autre (jamais en parallèle)."""
        return [self.run(connector) for connector in connectors]

    def print_summary(self) -> None:
        print("=== Ingestion summary ===")
        for line in self.metrics.summary_lines():
            print(line)

    # ------------------------------------------------------------- internes

    def _authenticate(self, connector: Connector) -> None:
        ok = with_retry(
            connector.validate_auth,
            self.config.retry,
            sleep=self._sleep,
            operation=f"{connector.source}.validate_auth",
        )
        if not ok:
            raise AuthenticationError(
                f"{connector.source}: authentication failed", source=connector.source
            )

    def _fetch_pages(self, connector: Connector, rec: RunRecorder) -> None:
        cfg = self.config
        limiter = self._limiter(connector.source)
        cursor: str | None = None
        pages = 0
        while True:
            limit = cfg.batch_size
            if cfg.dry_run:
                limit = min(limit, cfg.dry_run_item_cap - rec.items_fetched)

            limiter.acquire()
            page = with_retry(
                lambda: connector.fetch(cursor, limit),
                cfg.retry,
                sleep=self._sleep,
                operation=f"{connector.source}.fetch",
            )
            pages += 1
            # seul le dry run borne le nombre d'éléments traités
            items = page.items[:limit] if cfg.dry_run else page.items
            rec.items_fetched += len(items)
            for raw in items:
                self._process(connector, raw, rec)

            if rec.items_fetched:
                rate = rec.schema_errors / rec.items_fetched * 100
                if rate > cfg.schema_error_budget_pct:
                    raise BudgetExceededError(
                        rec.schema_errors, rec.items_fetched, cfg.schema_error_budget_pct
                    )

            if not page.has_more or not page.next_cursor or not items:
                break
            if cfg.dry_run and rec.items_fetched >= cfg.dry_run_item_cap:
                log.info("dry_run_cap_reached", source=connector.source, cap=cfg.dry_run_item_cap)
                break
            if cfg.max_pages is not None and pages >= cfg.max_pages:
                break
            cursor = page.next_cursor

    def _process(self, connector: Connector, raw: dict, rec: RunRecorder) -> None:
        cfg = self.config
        try:
            payload = connector.map(raw)
        except MappingError as exc:
            rec.items_failed += 1
            rec.error("mapping", str(exc), item_id=exc.item_id)
            return
        except Exception as exc:
            rec.items_failed += 1
            rec.error("mapping", f"{type(exc).__name__}: {exc}")
            log.warning("mapping_unexpected_error", source=connector.source, error=repr(exc))
            return

        try:
            item = validate_item(payload, cfg.embedding_dimensions)
        except ValidationError as exc:
            rec.schema_errors += 1
            rec.error(
                "validation",
                str(exc),
                item_id=exc.item_id,
                field=exc.field,
                details={"issues": exc.issues[:5]},
            )
            return
        rec.items_mapped += 1

        decision = None
        if self.quality is not None:
            decision = self.quality.check(item, cfg.quality_context)
            if decision.action == QualityAction.REJECT:
                rec.items_rejected += 1
                log.debug("item_rejected", item_id=item.id, flags=decision.metadata["flags"])
                return
            if decision.action == QualityAction.QUARANTINE:
                rec.items_quarantined += 1
                log.debug("item_quarantined", item_id=item.id, flags=decision.metadata["flags"])
                return
        rec.items_accepted += 1

        if cfg.dry_run:
            return
        if self.sink is not None:
            self.sink.save(item, decision)
        if self.queue is not None:
            self.queue.enqueue(
                EmbeddingJob(
                    item_id=item.id,
                    text=embedding_text(item),
                    domain=item.domain,
                    priority=Priority.NORMAL.value,
                )
            )
