"""Taxonomie d'erreurs du pipeline d'ingestion et d'indexation.

Les erreurs de connecteur sont typées pour que le runner applique des politiques
de retry différentes: l'authentification, le mapping et la validation ne sont
jamais rejoués, le réseau et le rate limit le sont avec backoff.
"""

from __future__ import annotations

from typing import Any


class CuratorError(Exception):
    """Erreur de base du pipeline."""


class ConfigurationError(CuratorError):
    """Configuration absente ou invalide (identifiants manquants, provider inconnu)."""


class ConnectorError(CuratorError):
    """Erreur remontée par un connecteur de source."""

    def __init__(self, message: str, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


class AuthenticationError(ConnectorError):
    """Identifiants refusés par la source (401/403 ou équivalent)."""


class RateLimitError(ConnectorError):
    """Quota de requêtes dépassé côté source.

    `retry_after` est l'indication (en secondes) renvoyée par la source, si présente.
    """

    def __init__(
        self,
        message: str,
        source: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, source=source)
        self.retry_after = retry_after


class NetworkError(ConnectorError):
    """Erreur de transport ou réponse HTTP non exploitable."""

    def __init__(
        self,
        message: str,
        source: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, source=source)
        self.status_code = status_code


class MappingError(ConnectorError):
    """Un élément brut ne peut pas être converti dans le schéma unifié."""

    def __init__(self, message: str, source: str | None = None, item_id: str | None = None) -> None:
        super().__init__(message, source=source)
        self.item_id = item_id


class ValidationError(CuratorError):
    """Un élément unifié ne respecte pas le schéma.

    Attributes:
        field: Chemin du premier champ en échec (ex: ``metadata.publication``).
        issues: Liste complète des problèmes (chemin, message).
        item_id: Identifiant de l'élément si connu.
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        issues: list[dict[str, Any]] | None = None,
        item_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.field = field
        self.issues = issues or []
        self.item_id = item_id


class BudgetExceededError(CuratorError):
    """Le taux d'erreurs de schéma dépasse le budget configuré; le run est interrompu."""

    def __init__(self, schema_errors: int, items_fetched: int, budget_pct: float) -> None:
        rate = (schema_errors / items_fetched * 100) if items_fetched else 0.0
        super().__init__(
            f"Schema error budget exceeded: {rate:.2f}% > {budget_pct}% "
            f"({schema_errors}/{items_fetched})"
        )
        self.schema_errors = schema_errors
        self.items_fetched = items_fetched
        self.budget_pct = budget_pct
        self.rate = rate


class QualityRulesError(CuratorError):
    """Document de règles qualité illisible ou mal formé."""


class EmbeddingProviderError(CuratorError):
    """Échec d'appel au fournisseur d'embeddings."""


class DimensionMismatchError(CuratorError):
    """La dimension d'un vecteur ne correspond pas à celle de l'index actif."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Embedding dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual
