"""
Interface commune des connecteurs de sources.

Chaque source (Spotify, NewsAPI, YouTube, Spoonacular, Eventbrite) implémente
`fetch`, `map` et `validate_auth`; `get_health` est fourni ici à partir de
`validate_auth` et du taux d'erreur HTTP observé.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, ClassVar

import httpx
import structlog

from curator.domain.errors import AuthenticationError, ConnectorError, MappingError
from curator.domain.ingestion import ConnectorHealth, FetchResult
from curator.infra.http_clients import SourceHttpClient

log = structlog.get_logger(__name__)


@dataclass
class ConnectorConfig:
    """Paramètres d'un connecteur (les secrets ne sont jamais journalisés)."""

    api_key: str | None = None
    api_secret: str | None = None
    base_url: str | None = None
    timeout_s: float = 10.0
    query: str | None = None
    params: dict[str, Any] = field(default_factory=dict)


class Connector(ABC):
    """Adaptateur d'une source externe vers le schéma unifié."""

    source: ClassVar[str]
    domain: ClassVar[str]
    default_base_url: ClassVar[str]

    def __init__(self, config: ConnectorConfig, http: SourceHttpClient) -> None:
        self.config = config
        self.http = http
        self.base_url = (config.base_url or self.default_base_url).rstrip("/")

    @abstractmethod
    def fetch(self, cursor: str | None = None, limit: int = 20) -> FetchResult:
        """Récupère une page d'éléments bruts.

        Idempotent pour un curseur donné; `has_more=False` signale la fin.
        """
        raise NotImplementedError

    @abstractmethod
    def map(self, raw: dict[str, Any]) -> dict[str, Any]:
        """Convertit un élément brut en payload du schéma unifié (sans I/O).

        Raises:
            MappingError: un champ source requis est absent ou invalide.
        """
        raise NotImplementedError

    @abstractmethod
    def _probe_auth(self) -> None:
        """Appel minimal authentifié; lève une erreur typée en cas d'échec."""
        raise NotImplementedError

    def validate_auth(self) -> bool:
        """Vérifie les identifiants. `False` si la source les refuse.

        Les erreurs réseau et de rate limit se propagent pour être rejouées.
        """
        try:
            self._probe_auth()
        except AuthenticationError as exc:
            log.warning("connector_auth_rejected", source=self.source, error=str(exc))
            return False
        return True

    def get_health(self) -> ConnectorHealth:
        """Mesure la latence d'un appel authentifié et le taux d'erreur observé."""
        start = time.perf_counter()
        try:
            healthy = self.validate_auth()
            message = None if healthy else "authentication rejected"
        except ConnectorError as exc:
            healthy = False
            message = str(exc)
        return ConnectorHealth(
            healthy=healthy,
            latency_ms=(time.perf_counter() - start) * 1000,
            error_rate=self.http.error_rate,
            message=message,
        )

    def close(self) -> None:
        self.http.close()

    @contextmanager
    def mapping_guard(self, item_id: Any) -> Iterator[None]:
        """Convertit les erreurs d'accès aux champs bruts en `MappingError`."""
        try:
            yield
        except MappingError:
            raise
        except (KeyError, TypeError, ValueError, AttributeError, IndexError) as exc:
            raise MappingError(
                f"{self.source}: cannot map item {item_id}: {exc!r}",
                source=self.source,
                item_id=None if item_id is None else str(item_id),
            ) from exc

    @staticmethod
    def require(raw: dict[str, Any], key: str) -> Any:
        """Lit un champ obligatoire (absent, nul ou vide -> KeyError)."""
        value = raw.get(key) if isinstance(raw, dict) else None
        if value in (None, "", [], {}):
            raise KeyError(key)
        return value


def build_http(
    source: str,
    config: ConnectorConfig,
    client: httpx.Client | None = None,
    **kwargs: Any,
) -> SourceHttpClient:
    """Client HTTP d'un connecteur (client httpx injectable pour les tests)."""
    return SourceHttpClient(source, timeout_s=config.timeout_s, client=client, **kwargs)
