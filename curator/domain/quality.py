"""
Types du moteur de règles qualité.

Décision qualité (score, palier de réputation, violations, action) et modèle
Pydantic du document de règles. Le document est validé au chargement: un
document mal formé lève `QualityRulesError` plutôt que de retomber sur des
valeurs par défaut.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    """Gravité d'une violation."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ReputationTier(str, Enum):
    """Palier de confiance dérivé du score de réputation."""

    TRUSTED = "trusted"
    VERIFIED = "verified"
    UNVERIFIED = "unverified"
    RISKY = "risky"
    BLOCKED = "blocked"


class QualityAction(str, Enum):
    """Action finale décidée pour un élément."""

    ALLOW = "allow"
    FLAG = "flag"
    QUARANTINE = "quarantine"
    REJECT = "reject"


class QualityContext(str, Enum):
    """Contexte d'évaluation, chacun avec son seuil de réputation."""

    INGEST = "ingest"
    RANKING = "ranking"
    FEATURED = "featured"


@dataclass(frozen=True)
class Violation:
    """Règle enfreinte par un élément."""

    type: str  # reputation | blocklist | filter | threshold
    severity: Severity
    message: str
    field: str | None = None
    value: Any = None
    recommendation: str | None = None


@dataclass(frozen=True)
class QualityDecision:
    """Résultat d'une vérification qualité (calculé à chaque appel, jamais persisté ici)."""

    passed: bool
    score: float
    tier: ReputationTier
    violations: tuple[Violation, ...]
    action: QualityAction
    metadata: dict[str, Any] = field(default_factory=dict)

    def count(self, severity: Severity) -> int:
        """Nombre de violations d'une gravité donnée."""
        return sum(1 for v in self.violations if v.severity == severity)


# --- Document de règles -----------------------------------------------------


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid")


class SourceReputation(_Strict):
    source: str = Field(min_length=1)
    score: float = Field(ge=0, le=100)
    credibility: str | None = None
    bias: str | None = None
    reason: str = ""


class BlockedSource(_Strict):
    source: str = Field(min_length=1)
    reason: str = Field(min_length=1)


class DomainReputation(_Strict):
    trusted: list[SourceReputation] = Field(default_factory=list)
    verified: list[SourceReputation] = Field(default_factory=list)
    risky: list[SourceReputation] = Field(default_factory=list)
    blocked: list[BlockedSource] = Field(default_factory=list)


class NewsFilters(_Strict):
    health_topics_min_credibility: str | None = None


class RecipeFilters(_Strict):
    require_nutrition_for_diet_recipes: bool = False


class LearningFilters(_Strict):
    min_instructor_rating: float | None = Field(default=None, ge=0, le=5)


class EventFilters(_Strict):
    require_verified_organizer_for_large: bool = False
    large_event_capacity_threshold: int = Field(default=500, gt=0)


class Filters(_Strict):
    min_reputation_score: float = Field(ge=0, le=100)
    news: NewsFilters | None = None
    recipes: RecipeFilters | None = None
    learning: LearningFilters | None = None
    events: EventFilters | None = None


class Blocklists(_Strict):
    spam_keywords: list[str] = Field(default_factory=list)
    sensitive_topics: list[str] = Field(default_factory=list)
    domains: dict[str, list[str]] = Field(default_factory=dict)


class Allowlists(_Strict):
    trusted_domains: list[str] = Field(default_factory=list)
    verified_creators: dict[str, list[str]] = Field(default_factory=dict)


class ContextThreshold(_Strict):
    min_reputation: float = Field(ge=0, le=100)


class Thresholds(_Strict):
    ingest: ContextThreshold
    ranking: ContextThreshold
    featured: ContextThreshold


class ActionPolicy(_Strict):
    action: QualityAction
    notify: bool = False
    log: bool = True
    manual_review: bool = False
    require_disclaimer: bool = False


class QualityRules(_Strict):
    """Document de règles qualité (YAML édité à la main)."""

    version: str
    last_updated: date | str
    reputation: dict[str, DomainReputation]
    filters: Filters
    blocklists: Blocklists
    allowlists: Allowlists
    thresholds: Thresholds
    actions: dict[str, ActionPolicy] = Field(default_factory=dict)
