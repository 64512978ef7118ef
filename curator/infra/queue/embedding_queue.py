"""File de jobs d'embedding ordonnée par priorité (Redis ou mémoire).

Une seule structure triée: le score est l'horodatage d'insertion (µs) décalé
de `PRIORITY_OFFSET_US` vers le bas pour `high` et vers le haut pour `low`.
On obtient ainsi un ordre strict entre niveaux, FIFO à l'intérieur d'un niveau,
et un unique pop atomique.

Clés Redis:
- `embeddings:queue`      sorted set  item_id -> score
- `embeddings:jobs`       hash        item_id -> job JSON
- `embeddings:processing` set         item_ids en cours de traitement
- `embeddings:dead`       list        jobs abandonnés (JSON + raison)
"""

from __future__ import annotations

import json
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Protocol

import redis
import structlog
from redis.exceptions import ConnectionError, NoScriptError, TimeoutError

from curator.app.metrics import EMBEDDING_IN_FLIGHT, EMBEDDING_JOBS_TOTAL, EMBEDDING_QUEUE_DEPTH
from curator.core.settings import Settings

log = structlog.get_logger(__name__)

QUEUE_KEY = "embeddings:queue"
JOBS_KEY = "embeddings:jobs"
PROCESSING_KEY = "embeddings:processing"
DEAD_KEY = "embeddings:dead"

# ~11,6 jours en microsecondes: dépasse l'âge de tout job en attente
PRIORITY_OFFSET_US = 10**12


class Priority(str, Enum):
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


_OFFSETS = {
    Priority.HIGH: -PRIORITY_OFFSET_US,
    Priority.NORMAL: 0,
    Priority.LOW: PRIORITY_OFFSET_US,
}


@dataclass
class EmbeddingJob:
    """Job d'embedding d'un élément persisté."""

    item_id: str
    text: str
    domain: str
    priority: str = Priority.NORMAL.value
    attempts: int = 0
    enqueued_at: float = field(default_factory=time.time)

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: str | bytes) -> EmbeddingJob:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        data = json.loads(raw)
        return cls(
            item_id=data["item_id"],
            text=data["text"],
            domain=data["domain"],
            priority=data.get("priority", Priority.NORMAL.value),
            attempts=int(data.get("attempts", 0)),
            enqueued_at=float(data.get("enqueued_at", 0.0)),
        )


class QueueStore(Protocol):
    """Primitives atomiques attendues du stockage de la file."""

    def push(self, entries: list[tuple[str, str, int]]) -> None: ...

    def pop(self, count: int) -> list[str]: ...

    def complete(self, item_id: str) -> bool: ...

    def requeue(self, item_id: str, payload: str, score: int) -> None: ...

    def dead_letter(self, item_id: str, record: str) -> None: ...

    def size(self) -> int: ...

    def in_flight(self) -> int: ...

    def in_flight_payloads(self) -> list[tuple[str, str | None]]: ...

    def dead_size(self) -> int: ...

    def clear(self) -> None: ...

    def close(self) -> None: ...


# Pop atomique: retire les N plus petits scores, relit le payload et marque en cours
POP_SCRIPT = """
local popped = redis.call('ZPOPMIN', KEYS[1], tonumber(ARGV[1]))
local out = {}
for i = 1, #popped, 2 do
    local id = popped[i]
    local payload = redis.call('HGET', KEYS[2], id)
    if payload then
        redis.call('SADD', KEYS[3], id)
        table.insert(out, payload)
    end
end
return out
"""


class RedisQueueStore:
    """Stockage Redis de la file (connexion paresseuse, script Lua pour le pop)."""

    def __init__(self, url: str, *, connect_timeout_s: float = 2.0, read_timeout_s: float = 5.0):
        self.url = url
        self.connect_timeout_s = connect_timeout_s
        self.read_timeout_s = read_timeout_s
        self._redis: redis.Redis | None = None
        self._script_hash: str | None = None

    def _get_redis(self) -> redis.Redis:
        """Get Redis connection with lazy initialization."""
        if self._redis is None:
            try:
                self._redis = redis.from_url(
                    self.url,
                    decode_responses=True,
                    socket_connect_timeout=self.connect_timeout_s,
                    socket_timeout=self.read_timeout_s,
                    retry_on_timeout=True,
                    health_check_interval=30,
                )
                self._redis.ping()
                log.info("embedding_queue_connected")
            except (ConnectionError, TimeoutError) as e:
                log.error("embedding_queue_connect_failed", error=str(e))
                self._redis = None
                raise
        return self._redis

    def _get_script_hash(self) -> str:
        if self._script_hash is None:
            self._script_hash = self._get_redis().script_load(POP_SCRIPT)
        return self._script_hash

    def push(self, entries: list[tuple[str, str, int]]) -> None:
        if not entries:
            return
        pipe = self._get_redis().pipeline(transaction=True)
        pipe.hset(JOBS_KEY, mapping={item_id: payload for item_id, payload, _ in entries})
        pipe.zadd(QUEUE_KEY, {item_id: score for item_id, _, score in entries})
        pipe.execute()

    def pop(self, count: int) -> list[str]:
        client = self._get_redis()
        try:
            result = client.evalsha(
                self._get_script_hash(), 3, QUEUE_KEY, JOBS_KEY, PROCESSING_KEY, count
            )
        except NoScriptError:
            # cache de scripts vidé (redémarrage, SCRIPT FLUSH)
            self._script_hash = None
            result = client.evalsha(
                self._get_script_hash(), 3, QUEUE_KEY, JOBS_KEY, PROCESSING_KEY, count
            )
        return list(result or [])

    def complete(self, item_id: str) -> bool:
        pipe = self._get_redis().pipeline(transaction=True)
        pipe.srem(PROCESSING_KEY, item_id)
        pipe.hdel(JOBS_KEY, item_id)
        removed, _ = pipe.execute()
        return bool(removed)

    def requeue(self, item_id: str, payload: str, score: int) -> None:
        pipe = self._get_redis().pipeline(transaction=True)
        pipe.srem(PROCESSING_KEY, item_id)
        pipe.hset(JOBS_KEY, item_id, payload)
        pipe.zadd(QUEUE_KEY, {item_id: score})
        pipe.execute()

    def dead_letter(self, item_id: str, record: str) -> None:
        pipe = self._get_redis().pipeline(transaction=True)
        pipe.srem(PROCESSING_KEY, item_id)
        pipe.hdel(JOBS_KEY, item_id)
        pipe.rpush(DEAD_KEY, record)
        pipe.execute()

    def size(self) -> int:
        return int(self._get_redis().zcard(QUEUE_KEY))

    def in_flight(self) -> int:
        return int(self._get_redis().scard(PROCESSING_KEY))

    def in_flight_payloads(self) -> list[tuple[str, str | None]]:
        client = self._get_redis()
        ids = sorted(client.smembers(PROCESSING_KEY))
        if not ids:
            return []
        return list(zip(ids, client.hmget(JOBS_KEY, ids)))

    def dead_size(self) -> int:
        return int(self._get_redis().llen(DEAD_KEY))

    def clear(self) -> None:
        self._get_redis().delete(QUEUE_KEY, JOBS_KEY, PROCESSING_KEY, DEAD_KEY)

    def close(self) -> None:
        if self._redis is not None:
            self._redis.close()
            self._redis = None


class InMemoryQueueStore:
    """Stockage en mémoire, thread-safe (tests, exécution locale sans Redis)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._scores: dict[str, int] = {}
        self._jobs: dict[str, str] = {}
        self._processing: set[str] = set()
        self._dead: list[str] = []

    def push(self, entries: list[tuple[str, str, int]]) -> None:
        with self._lock:
            for item_id, payload, score in entries:
                self._jobs[item_id] = payload
                self._scores[item_id] = score

    def pop(self, count: int) -> list[str]:
        with self._lock:
            ordered = sorted(self._scores.items(), key=lambda kv: (kv[1], kv[0]))[:count]
            out = []
            for item_id, _ in ordered:
                del self._scores[item_id]
                payload = self._jobs.get(item_id)
                if payload is not None:
                    self._processing.add(item_id)
                    out.append(payload)
            return out

    def complete(self, item_id: str) -> bool:
        with self._lock:
            self._jobs.pop(item_id, None)
            if item_id in self._processing:
                self._processing.discard(item_id)
                return True
            return False

    def requeue(self, item_id: str, payload: str, score: int) -> None:
        with self._lock:
            self._processing.discard(item_id)
            self._jobs[item_id] = payload
            self._scores[item_id] = score

    def dead_letter(self, item_id: str, record: str) -> None:
        with self._lock:
            self._processing.discard(item_id)
            self._jobs.pop(item_id, None)
            self._dead.append(record)

    def size(self) -> int:
        return len(self._scores)

    def in_flight(self) -> int:
        return len(self._processing)

    def in_flight_payloads(self) -> list[tuple[str, str | None]]:
        with self._lock:
            return [(item_id, self._jobs.get(item_id)) for item_id in sorted(self._processing)]

    def dead_size(self) -> int:
        return len(self._dead)

    def clear(self) -> None:
        with self._lock:
            self._scores.clear()
            self._jobs.clear()
            self._processing.clear()
            self._dead.clear()

    def close(self) -> None:
        return None


class EmbeddingQueue:
    """File de jobs d'embedding au-dessus d'un `QueueStore`."""

    def __init__(self, store: QueueStore, clock: Callable[[], float] = time.time) -> None:
        self.store = store
        self._clock = clock
        self._lock = threading.Lock()
        self._last_ts = 0

    def _score(self, priority: str) -> int:
        now = int(self._clock() * 1_000_000)
        with self._lock:
            # horodatages strictement croissants: FIFO même à résolution égale
            now = max(now, self._last_ts + 1)
            self._last_ts = now
        return now + _OFFSETS[Priority(priority)]

    def enqueue(self, job: EmbeddingJob) -> None:
        """Ajoute un job (un job existant pour le même élément est remplacé)."""
        self.enqueue_batch([job])

    def enqueue_batch(self, jobs: Iterable[EmbeddingJob]) -> int:
        entries = [(job.item_id, job.to_json(), self._score(job.priority)) for job in jobs]
        self.store.push(entries)
        if entries:
            EMBEDDING_JOBS_TOTAL.labels(result="enqueued").inc(len(entries))
            log.debug("embedding_jobs_enqueued", count=len(entries))
        return len(entries)

    def dequeue(self) -> EmbeddingJob | None:
        """Retire atomiquement le job de plus petit score et le marque en cours."""
        jobs = self.dequeue_batch(1)
        return jobs[0] if jobs else None

    def dequeue_batch(self, count: int) -> list[EmbeddingJob]:
        if count <= 0:
            return []
        return [EmbeddingJob.from_json(p) for p in self.store.pop(count)]

    def complete(self, item_id: str) -> bool:
        """Efface le marqueur « en cours » d'un job traité."""
        done = self.store.complete(item_id)
        EMBEDDING_JOBS_TOTAL.labels(result="completed").inc()
        return done

    def requeue(self, job: EmbeddingJob) -> None:
        """Remet un job en file (sans backoff, en fin de son niveau de priorité)."""
        job.enqueued_at = self._clock()
        self.store.requeue(job.item_id, job.to_json(), self._score(job.priority))
        EMBEDDING_JOBS_TOTAL.labels(result="requeued").inc()

    def reclaim_in_flight(self) -> int:
        """Remet en file les jobs restés « en cours » (worker interrompu, finalisation perdue).

        Un id en cours sans payload correspond à un job déjà terminé: son marqueur
        est simplement effacé. Renvoie le nombre de jobs remis en file.
        """
        reclaimed = 0
        for item_id, payload in self.store.in_flight_payloads():
            if payload is None:
                self.store.complete(item_id)
                continue
            job = EmbeddingJob.from_json(payload)
            self.store.requeue(item_id, payload, self._score(job.priority))
            reclaimed += 1
        if reclaimed:
            EMBEDDING_JOBS_TOTAL.labels(result="reclaimed").inc(reclaimed)
            log.info("embedding_jobs_reclaimed", count=reclaimed)
        return reclaimed

    def dead_letter(self, job: EmbeddingJob, reason: str) -> None:
        """Abandonne un job après épuisement des tentatives (conservé dans `embeddings:dead`)."""
        record = json.dumps({"job": asdict(job), "reason": reason, "at": self._clock()})
        self.store.dead_letter(job.item_id, record)
        EMBEDDING_JOBS_TOTAL.labels(result="dead_lettered").inc()
        log.warning("embedding_job_dead_lettered", item_id=job.item_id, reason=reason)

    def size(self) -> int:
        return self.store.size()

    def in_flight(self) -> int:
        return self.store.in_flight()

    def stats(self) -> dict[str, Any]:
        queued, in_flight = self.store.size(), self.store.in_flight()
        EMBEDDING_QUEUE_DEPTH.set(queued)
        EMBEDDING_IN_FLIGHT.set(in_flight)
        return {"queued": queued, "in_flight": in_flight, "dead": self.store.dead_size()}

    def clear(self) -> None:
        self.store.clear()

    def close(self) -> None:
        self.store.close()


def build_queue(settings: Settings) -> EmbeddingQueue:
    """Redis si `REDIS_URL` est défini, sinon mémoire (refusé si `REQUIRE_REDIS`)."""
    if settings.REDIS_URL:
        return EmbeddingQueue(RedisQueueStore(settings.REDIS_URL))
    if settings.REQUIRE_REDIS:
        raise RuntimeError("Redis required but REDIS_URL not set")
    log.warning("embedding_queue_memory_backend")
    return EmbeddingQueue(InMemoryQueueStore())
