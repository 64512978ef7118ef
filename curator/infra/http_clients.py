"""Client HTTP partagé par les connecteurs de sources.

Objectif du module
------------------
- Encapsuler `httpx.Client` (timeouts, pool de connexions)
- Traduire les réponses en erreurs typées: authentification, rate limit, réseau
- Suivre le taux d'erreur observé pour `Connector.get_health`
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import structlog

from curator.app.metrics import CONNECTOR_HTTP_REQUESTS_TOTAL
from curator.core.constants import (
    HTTP_TOO_MANY_REQUESTS,
    HTTP_UNAUTHORIZED,
)
from curator.domain.errors import (
    AuthenticationError,
    ConnectorError,
    NetworkError,
    RateLimitError,
)

log = structlog.get_logger(__name__)

# Retourne une erreur spécifique à la source, ou None pour le traitement standard
ErrorClassifier = Callable[[httpx.Response], ConnectorError | None]


def parse_retry_after(value: str | None, default: float | None) -> float | None:
    """Convertit l'en-tête Retry-After (secondes) en float."""
    if not value:
        return default
    try:
        return max(0.0, float(value))
    except ValueError:
        return default


class SourceHttpClient:
    """Client HTTP d'une source externe avec erreurs typées."""

    def __init__(
        self,
        source: str,
        *,
        timeout_s: float = 10.0,
        client: httpx.Client | None = None,
        auth_statuses: tuple[int, ...] = (HTTP_UNAUTHORIZED,),
        default_retry_after: float | None = 60.0,
        classify: ErrorClassifier | None = None,
    ) -> None:
        self.source = source
        self.auth_statuses = auth_statuses
        self.default_retry_after = default_retry_after
        self._classify = classify
        if client is None:
            timeout = httpx.Timeout(timeout_s, connect=min(5.0, timeout_s))
            limits = httpx.Limits(max_keepalive_connections=5, max_connections=10)
            client = httpx.Client(timeout=timeout, limits=limits)
        self._client = client
        self.requests = 0
        self.failures = 0

    @property
    def error_rate(self) -> float:
        """Part des appels en échec depuis la création du client."""
        return self.failures / self.requests if self.requests else 0.0

    def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Émet une requête et lève une erreur typée si la réponse n'est pas 2xx.

        Raises:
            AuthenticationError: statut d'authentification refusée.
            RateLimitError: 429 ou code spécifique à la source.
            NetworkError: erreur de transport ou autre statut non 2xx.
        """
        self.requests += 1
        try:
            resp = self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            self.failures += 1
            CONNECTOR_HTTP_REQUESTS_TOTAL.labels(source=self.source, status="error").inc()
            log.warning("connector_http_error", source=self.source, error=str(exc))
            raise NetworkError(
                f"{self.source}: request failed: {exc}", source=self.source
            ) from exc

        CONNECTOR_HTTP_REQUESTS_TOTAL.labels(
            source=self.source, status=str(resp.status_code)
        ).inc()
        if resp.is_success:
            return resp

        self.failures += 1
        error = self._classify(resp) if self._classify else None
        if error is None:
            error = self._default_error(resp)
        log.warning(
            "connector_http_status",
            source=self.source,
            status=resp.status_code,
            error=type(error).__name__,
        )
        raise error

    def _default_error(self, resp: httpx.Response) -> ConnectorError:
        status = resp.status_code
        if status in self.auth_statuses:
            return AuthenticationError(
                f"{self.source}: authentication failed ({status})", source=self.source
            )
        if status == HTTP_TOO_MANY_REQUESTS:
            return RateLimitError(
                f"{self.source}: rate limit exceeded",
                source=self.source,
                retry_after=parse_retry_after(
                    resp.headers.get("Retry-After"), self.default_retry_after
                ),
            )
        return NetworkError(
            f"{self.source}: HTTP {status}: {resp.text[:200]}",
            source=self.source,
            status_code=status,
        )

    def get_json(self, url: str, **kwargs: Any) -> dict[str, Any]:
        """GET et décodage JSON."""
        resp = self.request("GET", url, **kwargs)
        return self._json(resp)

    def post_json(self, url: str, **kwargs: Any) -> dict[str, Any]:
        """POST et décodage JSON."""
        resp = self.request("POST", url, **kwargs)
        return self._json(resp)

    def _json(self, resp: httpx.Response) -> dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as exc:
            raise NetworkError(
                f"{self.source}: invalid JSON response", source=self.source
            ) from exc
        if not isinstance(data, dict):
            raise NetworkError(f"{self.source}: unexpected JSON payload", source=self.source)
        return data

    def close(self) -> None:
        """Ferme le pool de connexions."""
        self._client.close()
