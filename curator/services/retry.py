"""Retry avec backoff exponentiel et limiteur de débit à seau de jetons.

- `with_retry`: rejoue une opération tant que l'erreur est d'un type rejouable,
  avec un délai `min(max_delay, initial_delay * multiplier**n + jitter)`.
- `RateLimiter`: seau de jetons à remplissage paresseux; `acquire()` bloque
  jusqu'à disponibilité d'un jeton.
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

import structlog

from curator.app.metrics import INGEST_RETRY_ATTEMPTS_TOTAL
from curator.domain.errors import NetworkError, RateLimitError

log = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration du retry (délais en secondes)."""

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter: float = 1.0
    retryable: tuple[type[BaseException], ...] = field(
        default=(NetworkError, RateLimitError)
    )


def compute_delay(
    attempt: int, config: RetryConfig, rng: Callable[[], float] = random.random
) -> float:
    """Délai à appliquer après l'échec de la tentative `attempt` (0-indexée)."""
    delay = config.initial_delay * (config.backoff_multiplier**attempt)
    delay += rng() * config.jitter
    return min(config.max_delay, delay)


def with_retry(
    fn: Callable[[], T],
    config: RetryConfig | None = None,
    *,
    sleep: Callable[[float], None] = time.sleep,
    rng: Callable[[], float] = random.random,
    operation: str = "operation",
) -> T:
    """Exécute `fn` en rejouant les erreurs rejouables.

    Args:
        fn: Opération sans argument.
        config: Paramètres du retry.
        sleep: Fonction d'attente (injectable pour les tests).
        rng: Source d'aléa dans [0, 1) pour le jitter.
        operation: Libellé pour les logs.

    Returns:
        Le résultat de `fn`.

    Raises:
        L'erreur d'origine si elle n'est pas rejouable, ou la dernière erreur
        une fois les tentatives épuisées.
    """
    cfg = config or RetryConfig()
    attempt = 0
    while True:
        try:
            return fn()
        except cfg.retryable as exc:
            if attempt >= cfg.max_retries:
                log.warning(
                    "retry_exhausted",
                    operation=operation,
                    attempts=attempt + 1,
                    error=type(exc).__name__,
                )
                raise
            delay = compute_delay(attempt, cfg, rng)
            retry_after = getattr(exc, "retry_after", None)
            if retry_after:
                delay = min(cfg.max_delay, max(delay, float(retry_after)))
            INGEST_RETRY_ATTEMPTS_TOTAL.labels(error=type(exc).__name__).inc()
            log.info(
                "retry_scheduled",
                operation=operation,
                attempt=attempt + 1,
                max_retries=cfg.max_retries,
                delay_s=round(delay, 3),
                error=str(exc),
            )
            sleep(delay)
            attempt += 1


class RateLimiter:
    """Seau de jetons: capacité `bucket_size`, remplissage continu à `tokens_per_second`."""

    def __init__(
        self,
        tokens_per_second: float,
        bucket_size: float | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if tokens_per_second <= 0:
            raise ValueError("tokens_per_second must be positive")
        self.tokens_per_second = float(tokens_per_second)
        self.bucket_size = float(bucket_size) if bucket_size else 2 * self.tokens_per_second
        self._clock = clock
        self._sleep = sleep
        self._tokens = self.bucket_size
        self._last_refill = clock()

    @property
    def poll_interval(self) -> float:
        """Intervalle entre deux tentatives quand le seau est vide (secondes)."""
        return 1.0 / self.tokens_per_second

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self.bucket_size, self._tokens + elapsed * self.tokens_per_second)
        self._last_refill = now

    def available_tokens(self) -> float:
        """Jetons disponibles après remplissage."""
        self._refill()
        return self._tokens

    def acquire(self) -> None:
        """Bloque jusqu'à obtenir un jeton puis le débite."""
        self._refill()
        while self._tokens < 1:
            self._sleep(self.poll_interval)
            self._refill()
        self._tokens -= 1
