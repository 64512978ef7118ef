# ============================================================
# Module : curator/domain/quality_rules.py
# Objet  : Moteur de règles qualité (réputation, blocklists, filtres, seuils).
# Notes  : Fonction pure de (item, contexte) et du document chargé.
# ============================================================
"""Moteur de règles qualité pour les éléments normalisés.

Pipeline, dans l'ordre:
1. source bloquée -> violation critique, réputation 0
2. allowlist (domaine de confiance ou créateur vérifié) -> réputation 100
3. paliers trusted/verified/risky, sinon score déclaré par la source (ou 50)
4. blocklists (spam, sujets sensibles, mots-clés du domaine)
5. filtres spécifiques au domaine
6. seuil de réputation du contexte (ingest/ranking/featured)
7. heuristique de qualité du contenu puis score global 0.6/0.4
8. action: reject > quarantine > flag > allow
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from urllib.parse import urlparse

import structlog
import yaml
from pydantic import ValidationError as PydanticValidationError

from curator.app.metrics import QUALITY_DECISIONS_TOTAL
from curator.domain.errors import QualityRulesError
from curator.domain.items import UnifiedItem
from curator.domain.quality import (
    QualityAction,
    QualityContext,
    QualityDecision,
    QualityRules,
    ReputationTier,
    Severity,
    Violation,
)

log = structlog.get_logger(__name__)

REPUTATION_WEIGHT = 0.6
CONTENT_WEIGHT = 0.4
DEFAULT_REPUTATION = 50.0
HEALTH_TOPICS = frozenset({"health", "medical", "medicine", "disease"})
_WEAK_CREDIBILITY = frozenset({"unverified", "questionable"})


def load_quality_rules(path: str | Path) -> QualityRules:
    """Charge et valide le document de règles.

    Raises:
        QualityRulesError: fichier absent, YAML invalide ou document non conforme.
    """
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except OSError as exc:
        raise QualityRulesError(f"Cannot read quality rules at {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise QualityRulesError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise QualityRulesError(f"Quality rules at {path} must be a mapping")
    try:
        return QualityRules.model_validate(raw)
    except PydanticValidationError as exc:
        raise QualityRulesError(f"Malformed quality rules at {path}: {exc}") from exc


def reputation_tier(score: float) -> ReputationTier:
    """Palier de réputation (bandes contiguës, monotones)."""
    if score >= 90:
        return ReputationTier.TRUSTED
    if score >= 70:
        return ReputationTier.VERIFIED
    if score >= 50:
        return ReputationTier.UNVERIFIED
    if score >= 30:
        return ReputationTier.RISKY
    return ReputationTier.BLOCKED


def _host_matches(url: str | None, trusted: str) -> bool:
    if not url:
        return False
    host = (urlparse(url).hostname or "").lower()
    trusted = trusted.lower().strip()
    if "://" in trusted:
        trusted = (urlparse(trusted).hostname or "").lower()
    return bool(host) and (host == trusted or host.endswith("." + trusted))


class QualityRulesEngine:
    """Évalue un élément normalisé et décide allow/flag/quarantine/reject."""

    def __init__(self, rules: QualityRules, path: str | Path | None = None) -> None:
        self.rules = rules
        self.path = Path(path) if path else None

    @classmethod
    def from_file(cls, path: str | Path) -> QualityRulesEngine:
        """Construit le moteur depuis un fichier YAML (échoue si le document est invalide)."""
        rules = load_quality_rules(path)
        log.info("quality_rules_loaded", path=str(path), version=rules.version)
        return cls(rules, path=path)

    def reload(self) -> QualityRules:
        """Relit le document; les règles courantes restent actives si le nouveau est invalide."""
        if self.path is None:
            raise QualityRulesError("Engine was not loaded from a file")
        try:
            rules = load_quality_rules(self.path)
        except QualityRulesError:
            log.error("quality_rules_reload_failed", path=str(self.path))
            raise
        self.rules = rules
        log.info("quality_rules_reloaded", path=str(self.path), version=rules.version)
        return rules

    # ------------------------------------------------------------------ API

    def check(
        self, item: UnifiedItem, context: QualityContext | str = QualityContext.INGEST
    ) -> QualityDecision:
        """Évalue un élément dans un contexte donné.

        Args:
            item: Élément validé.
            context: ingest, ranking ou featured.

        Returns:
            QualityDecision: score, palier, violations ordonnées, action et métadonnées.
        """
        ctx = QualityContext(context)
        violations: list[Violation] = []

        reputation, blocked = self._score_reputation(item, violations)
        self._check_blocklists(item, violations)
        self._check_domain_filters(item, violations)
        threshold_passed = self._check_threshold(ctx, reputation, violations)

        content_quality = self._assess_content_quality(item)
        score = min(100.0, max(0.0, REPUTATION_WEIGHT * reputation + CONTENT_WEIGHT * content_quality))
        tier = ReputationTier.BLOCKED if blocked else reputation_tier(reputation)
        action = self._determine_action(violations, tier, threshold_passed)

        flags = list(dict.fromkeys(v.type for v in violations))
        metadata = {
            "source_reputation": reputation,
            "content_quality": content_quality,
            "flags": flags,
            "requires_review": any(
                self.rules.actions[f].manual_review for f in flags if f in self.rules.actions
            ),
            "requires_disclaimer": any(
                self.rules.actions[f].require_disclaimer
                for f in flags
                if f in self.rules.actions
            ),
        }
        QUALITY_DECISIONS_TOTAL.labels(domain=item.domain, action=action.value).inc()
        return QualityDecision(
            passed=action == QualityAction.ALLOW,
            score=score,
            tier=tier,
            violations=tuple(violations),
            action=action,
            metadata=metadata,
        )

    def check_batch(
        self, items: Iterable[UnifiedItem], context: QualityContext | str = QualityContext.INGEST
    ) -> list[QualityDecision]:
        """Évalue une série d'éléments dans le même contexte."""
        return [self.check(item, context) for item in items]

    # ------------------------------------------------------------ réputation

    def _score_reputation(
        self, item: UnifiedItem, violations: list[Violation]
    ) -> tuple[float, bool]:
        """Retourne (score de réputation, source bloquée)."""
        source_name = item.source.name.strip().lower()
        domain_rules = self.rules.reputation.get(item.domain)

        if domain_rules:
            for blocked in domain_rules.blocked:
                if blocked.source.lower() == source_name:
                    violations.append(
                        Violation(
                            type="reputation",
                            severity=Severity.CRITICAL,
                            message=f"Source is blocked: {blocked.reason}",
                            field="source.name",
                            value=item.source.name,
                        )
                    )
                    return 0.0, True

        if self._in_allowlist(item):
            return 100.0, False

        if not domain_rules:
            violations.append(
                Violation(
                    type="reputation",
                    severity=Severity.LOW,
                    message=f"No reputation rules for domain: {item.domain}",
                    field="domain",
                    value=item.domain,
                )
            )
            return self._declared_score(item), False

        for tier_sources in (domain_rules.trusted, domain_rules.verified, domain_rules.risky):
            for entry in tier_sources:
                if entry.source.lower() == source_name:
                    return float(entry.score), False

        score = self._declared_score(item)
        minimum = self.rules.filters.min_reputation_score
        if score < minimum:
            violations.append(
                Violation(
                    type="reputation",
                    severity=Severity.HIGH,
                    message=f"Source reputation {score:g} below minimum {minimum:g}",
                    field="source.reputation_score",
                    value=score,
                    recommendation="Use sources with higher reputation scores",
                )
            )
        return score, False

    @staticmethod
    def _declared_score(item: UnifiedItem) -> float:
        if item.source.reputation_score is None:
            return DEFAULT_REPUTATION
        return float(item.source.reputation_score)

    def _in_allowlist(self, item: UnifiedItem) -> bool:
        allow = self.rules.allowlists
        if any(_host_matches(item.source.url, d) for d in allow.trusted_domains):
            return True
        creators = allow.verified_creators.get(item.domain, [])
        name = item.source.name.strip().lower()
        return any(c.lower() == name for c in creators)

    # ------------------------------------------------------------ blocklists

    def _check_blocklists(self, item: UnifiedItem, violations: list[Violation]) -> None:
        text = " ".join([item.title, item.description or "", " ".join(item.topics)]).lower()
        lists = self.rules.blocklists

        for keyword in lists.spam_keywords:
            if keyword.lower() in text:
                violations.append(
                    Violation(
                        type="blocklist",
                        severity=Severity.HIGH,
                        message=f'Contains spam keyword: "{keyword}"',
                        field="content",
                        value=keyword,
                        recommendation="Remove spam keywords from content",
                    )
                )
        for topic in lists.sensitive_topics:
            if topic.lower() in text:
                violations.append(
                    Violation(
                        type="blocklist",
                        severity=Severity.MEDIUM,
                        message=f'Contains sensitive topic: "{topic}"',
                        field="content",
                        value=topic,
                        recommendation="May require manual review or disclaimer",
                    )
                )
        for keyword in lists.domains.get(item.domain, []):
            if keyword.lower() in text:
                violations.append(
                    Violation(
                        type="blocklist",
                        severity=Severity.HIGH,
                        message=f'Contains blocked keyword for {item.domain}: "{keyword}"',
                        field="content",
                        value=keyword,
                    )
                )

    # ------------------------------------------------------- filtres domaine

    def _check_domain_filters(self, item: UnifiedItem, violations: list[Violation]) -> None:
        filters = self.rules.filters
        meta = item.metadata

        if item.domain == "news" and filters.news and filters.news.health_topics_min_credibility:
            is_health = any(t.lower() in HEALTH_TOPICS for t in item.topics)
            credibility = getattr(meta, "credibility_tier", None)
            if is_health and (credibility is None or credibility in _WEAK_CREDIBILITY):
                violations.append(
                    Violation(
                        type="filter",
                        severity=Severity.HIGH,
                        message="Health/medical content requires verified source",
                        field="metadata.credibility_tier",
                        value=credibility,
                        recommendation="Use verified sources for health information",
                    )
                )

        elif item.domain == "recipes" and filters.recipes:
            if (
                filters.recipes.require_nutrition_for_diet_recipes
                and getattr(meta, "dietary", None)
                and getattr(meta, "nutrition", None) is None
            ):
                violations.append(
                    Violation(
                        type="filter",
                        severity=Severity.MEDIUM,
                        message="Diet-specific recipes should include nutrition information",
                        field="metadata.nutrition",
                        recommendation="Add nutrition facts for dietary recipes",
                    )
                )

        elif item.domain == "learning" and filters.learning:
            minimum = filters.learning.min_instructor_rating
            rating = getattr(meta, "rating", None)
            if minimum is not None and rating is not None and rating < minimum:
                violations.append(
                    Violation(
                        type="filter",
                        severity=Severity.MEDIUM,
                        message=f"Instructor rating {rating:g} below minimum {minimum:g}",
                        field="metadata.rating",
                        value=rating,
                    )
                )

        elif item.domain == "events" and filters.events:
            capacity = getattr(meta, "capacity", None)
            if (
                filters.events.require_verified_organizer_for_large
                and capacity is not None
                and capacity >= filters.events.large_event_capacity_threshold
                and not getattr(meta, "organizer_verified", False)
            ):
                violations.append(
                    Violation(
                        type="filter",
                        severity=Severity.LOW,
                        message="Large events should have verified organizers",
                        field="metadata.organizer",
                        value=capacity,
                        recommendation="Verify event organizer for large-capacity events",
                    )
                )

    # ---------------------------------------------------------------- seuils

    def _check_threshold(
        self, context: QualityContext, reputation: float, violations: list[Violation]
    ) -> bool:
        threshold = getattr(self.rules.thresholds, context.value)
        if reputation >= threshold.min_reputation:
            return True
        violations.append(
            Violation(
                type="threshold",
                severity=Severity.HIGH if context == QualityContext.INGEST else Severity.MEDIUM,
                message=(
                    f"Reputation {reputation:g} below {context.value} threshold "
                    f"{threshold.min_reputation:g}"
                ),
                field="reputation",
                value=reputation,
            )
        )
        return False

    # ------------------------------------------------------- qualité contenu

    @staticmethod
    def _assess_content_quality(item: UnifiedItem) -> float:
        score = 50.0
        if item.description and len(item.description) >= 50:
            score += 10
        if len(item.topics) >= 3:
            score += 10
        if item.metadata.filled_fields() > 3:
            score += 10
        if not item.sponsored:
            score += 10
        if item.metadata.image_url:
            score += 10
        return min(100.0, score)

    # ---------------------------------------------------------------- action

    @staticmethod
    def _determine_action(
        violations: list[Violation], tier: ReputationTier, threshold_passed: bool
    ) -> QualityAction:
        if any(v.severity == Severity.CRITICAL for v in violations):
            return QualityAction.REJECT
        if tier == ReputationTier.BLOCKED:
            return QualityAction.REJECT
        if tier == ReputationTier.RISKY and not threshold_passed:
            return QualityAction.QUARANTINE
        high = sum(1 for v in violations if v.severity == Severity.HIGH)
        if high >= 2:
            return QualityAction.QUARANTINE
        if high == 1:
            return QualityAction.FLAG
        return QualityAction.ALLOW
