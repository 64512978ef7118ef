"""
Worker d'embeddings: consomme la file, vectorise par lots et écrit les vecteurs.

Cycle d'un lot:
- `dequeue_batch(B)` (les jobs sont marqués « en cours » atomiquement)
- `embed_batch` sur les textes du lot
- pour chaque job: écriture du vecteur puis `complete`
- en cas d'échec (lot ou écriture): `requeue` avec attempts + 1, ou
  `dead_letter` une fois `max_attempts` atteint

`stop()` laisse le lot courant se terminer: aucun job ne reste marqué en cours.
Une erreur de la file ou du puits n'arrête pas la boucle; les jobs restés
en cours après un arrêt brutal sont repris au démarrage (`reclaim_in_flight`).
"""

from __future__ import annotations

import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

import structlog

from curator.app.metrics import EMBEDDING_BATCH_LATENCY
from curator.domain.errors import DimensionMismatchError, EmbeddingProviderError
from curator.infra.embeddings.base import EmbeddingProvider
from curator.infra.queue.embedding_queue import EmbeddingJob, EmbeddingQueue

log = structlog.get_logger(__name__)


class EmbeddingSink(Protocol):
    def set_embedding(self, item_id: str, vector: Sequence[float]) -> bool: ...


@dataclass(frozen=True)
class BatchOutcome:
    completed: int = 0
    requeued: int = 0
    dead_lettered: int = 0

    @property
    def processed(self) -> int:
        return self.completed + self.requeued + self.dead_lettered


class EmbeddingWorker:
    """Boucle de traitement de la file d'embeddings."""

    def __init__(
        self,
        queue: EmbeddingQueue,
        provider: EmbeddingProvider,
        sink: EmbeddingSink,
        *,
        batch_size: int = 10,
        poll_interval_s: float = 1.0,
        max_attempts: int = 3,
    ) -> None:
        self.queue = queue
        self.provider = provider
        self.sink = sink
        self.batch_size = batch_size
        self.poll_interval_s = poll_interval_s
        self.max_attempts = max_attempts
        self._stop = threading.Event()
        self.totals = {"completed": 0, "requeued": 0, "dead_lettered": 0}

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Demande l'arrêt; le lot en cours est terminé avant la sortie de `run`."""
        if not self._stop.is_set():
            log.info("embedding_worker_stopping")
        self._stop.set()

    def run(self) -> None:
        log.info(
            "embedding_worker_started",
            provider=self.provider.name,
            batch_size=self.batch_size,
            poll_interval_s=self.poll_interval_s,
        )
        try:
            self._reclaim()
            while not self._stop.is_set():
                try:
                    outcome = self.run_once()
                except Exception:
                    # erreur transitoire (Redis, base): on journalise et on continue
                    log.exception("embedding_batch_error")
                    self._stop.wait(self.poll_interval_s)
                    continue
                if outcome.processed == 0:
                    self._stop.wait(self.poll_interval_s)
        finally:
            self.close()
            log.info("embedding_worker_stopped", **self.totals)

    def _reclaim(self) -> None:
        try:
            self.queue.reclaim_in_flight()
        except Exception:
            log.exception("embedding_reclaim_failed")

    def run_once(self) -> BatchOutcome:
        """Traite au plus un lot. Renvoie un `BatchOutcome` vide si la file est vide.

        Chaque job dépilé est finalisé isolément (complete, requeue ou dead letter);
        un job dont la finalisation échoue est remis en file en fin de lot.
        """
        jobs = self.queue.dequeue_batch(self.batch_size)
        if not jobs:
            self.queue.stats()
            return BatchOutcome()

        started = time.perf_counter()
        counts = {"completed": 0, "requeued": 0, "dead_lettered": 0}
        pending = {job.item_id: job for job in jobs}
        try:
            self._process(jobs, counts, pending)
        finally:
            for job in list(pending.values()):
                self._release(job, counts)
        return self._finish(counts, started)

    def _process(
        self, jobs: list[EmbeddingJob], counts: dict[str, int], pending: dict[str, EmbeddingJob]
    ) -> None:
        try:
            result = self.provider.embed_batch([job.text for job in jobs])
            vectors = result.vectors
            if len(vectors) != len(jobs):
                raise EmbeddingProviderError(
                    f"expected {len(jobs)} vectors, got {len(vectors)}"
                )
        except Exception as exc:
            # échec du lot entier: chaque job suit la politique de reprise
            log.warning("embedding_batch_failed", size=len(jobs), error=str(exc))
            for job in jobs:
                self._fail(job, f"embed: {exc}", counts, pending)
            return

        for job, vector in zip(jobs, vectors):
            try:
                if not self.sink.set_embedding(job.item_id, vector):
                    raise LookupError(f"item {job.item_id} not found")
            except DimensionMismatchError as exc:
                # réessayer ne changera rien à la dimension
                self._settle(job, "dead_lettered", counts, pending, str(exc))
                continue
            except Exception as exc:
                log.warning("embedding_write_failed", item_id=job.item_id, error=str(exc))
                self._fail(job, f"write: {exc}", counts, pending)
                continue
            self._settle(job, "completed", counts, pending)

    def _fail(
        self,
        job: EmbeddingJob,
        reason: str,
        counts: dict[str, int],
        pending: dict[str, EmbeddingJob],
    ) -> None:
        job.attempts += 1
        if job.attempts >= self.max_attempts:
            self._settle(job, "dead_lettered", counts, pending, reason)
        else:
            self._settle(job, "requeued", counts, pending)

    def _settle(
        self,
        job: EmbeddingJob,
        outcome: str,
        counts: dict[str, int],
        pending: dict[str, EmbeddingJob],
        reason: str = "",
    ) -> None:
        try:
            if outcome == "completed":
                self.queue.complete(job.item_id)
            elif outcome == "dead_lettered":
                self.queue.dead_letter(job, reason)
            else:
                self.queue.requeue(job)
        except Exception:
            # le job reste dans `pending` et sera remis en file en fin de lot
            log.exception("embedding_job_settle_failed", item_id=job.item_id, outcome=outcome)
            return
        del pending[job.item_id]
        counts[outcome] += 1

    def _release(self, job: EmbeddingJob, counts: dict[str, int]) -> None:
        try:
            self.queue.requeue(job)
        except Exception:
            # reste marqué en cours: repris par `reclaim_in_flight` au prochain démarrage
            log.exception("embedding_job_release_failed", item_id=job.item_id)
            return
        counts["requeued"] += 1

    def _finish(self, counts: dict[str, int], started: float) -> BatchOutcome:
        EMBEDDING_BATCH_LATENCY.observe(time.perf_counter() - started)
        for key, value in counts.items():
            self.totals[key] += value
        outcome = BatchOutcome(counts["completed"], counts["requeued"], counts["dead_lettered"])
        log.info(
            "embedding_batch_processed",
            **counts,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        try:
            self.queue.stats()
        except Exception as exc:
            log.warning("embedding_queue_stats_failed", error=str(exc))
        return outcome

    def close(self) -> None:
        self.queue.close()
