"""Connecteur Spoonacular (recettes, domaine recipes). Pagination par offset.

Un 402 signifie quota journalier épuisé: traité comme une erreur d'authentification
(non rejouable) plutôt qu'un rate limit.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import httpx

from curator.core.constants import HTTP_PAYMENT_REQUIRED, HTTP_UNAUTHORIZED
from curator.domain.errors import ConfigurationError
from curator.domain.ingestion import FetchResult
from curator.infra.connectors.base import Connector, ConnectorConfig, build_http

PREP_SHARE = 0.3
COOK_SHARE = 0.7

# Libellés Spoonacular -> régimes du schéma unifié
DIET_LABELS = {
    "vegetarian": "vegetarian",
    "lacto ovo vegetarian": "vegetarian",
    "vegan": "vegan",
    "gluten free": "gluten-free",
    "dairy free": "dairy-free",
    "ketogenic": "keto",
    "paleolithic": "paleo",
    "primal": "paleo",
    "low carb": "low-carb",
}
_NUTRIENTS = {"Calories": "calories", "Protein": "protein", "Carbohydrates": "carbs", "Fat": "fat"}


def infer_difficulty(ready_in_minutes: int) -> str:
    """Difficulté déduite du temps total de préparation."""
    if ready_in_minutes <= 30:
        return "beginner"
    if ready_in_minutes <= 60:
        return "intermediate"
    return "advanced"


def extract_nutrition(raw: dict[str, Any]) -> dict[str, float] | None:
    """Extrait calories/protéines/glucides/lipides de `nutrition.nutrients`."""
    nutrients = (raw.get("nutrition") or {}).get("nutrients") or []
    values = {
        _NUTRIENTS[n["name"]]: float(n["amount"])
        for n in nutrients
        if n.get("name") in _NUTRIENTS and n.get("amount") is not None
    }
    return values or None


class SpoonacularConnector(Connector):
    source = "spoonacular"
    domain = "recipes"
    default_base_url = "https://api.spoonacular.com"

    def __init__(self, config: ConnectorConfig, client: httpx.Client | None = None) -> None:
        if not config.api_key:
            raise ConfigurationError("spoonacular requires api_key")
        http = build_http(
            self.source, config, client, auth_statuses=(HTTP_UNAUTHORIZED, HTTP_PAYMENT_REQUIRED)
        )
        super().__init__(config, http)

    def fetch(self, cursor: str | None = None, limit: int = 20) -> FetchResult:
        offset = int(cursor) if cursor else 0
        params: dict[str, Any] = {
            "number": limit,
            "offset": offset,
            "addRecipeInformation": "true",
            "addRecipeNutrition": "true",
            "fillIngredients": "true",
            "apiKey": self.config.api_key,
        }
        if self.config.query:
            params["query"] = self.config.query
        data = self.http.get_json(f"{self.base_url}/recipes/complexSearch", params=params)
        results = data.get("results") or []
        has_more = len(results) == limit
        return FetchResult(
            items=results,
            next_cursor=str(offset + limit) if has_more else None,
            total=data.get("totalResults"),
            has_more=has_more,
        )

    def map(self, raw: dict[str, Any]) -> dict[str, Any]:
        recipe_id = raw.get("id") if isinstance(raw, dict) else None
        with self.mapping_guard(recipe_id):
            recipe_id = str(self.require(raw, "id"))
            ready = int(self.require(raw, "readyInMinutes"))
            cuisines = list(raw.get("cuisines") or []) or ["international"]
            dietary = list(
                dict.fromkeys(
                    DIET_LABELS[d.lower()] for d in raw.get("diets") or [] if d.lower() in DIET_LABELS
                )
            )
            ingredients = [
                i["original"] for i in raw.get("extendedIngredients") or [] if i.get("original")
            ]
            steps = (raw.get("analyzedInstructions") or [{}])[0].get("steps") or []
            return {
                "id": f"spoonacular-{recipe_id}",
                "domain": "recipes",
                "title": self.require(raw, "title"),
                "description": f"{', '.join(cuisines)} recipe - Ready in {ready} minutes",
                "source": {
                    "name": "Spoonacular",
                    "id": recipe_id,
                    "url": raw.get("sourceUrl") or None,
                    "reputation_score": 85,
                },
                "topics": [*cuisines, *(raw.get("dishTypes") or []), "recipes"],
                "actions": ["save", "try"],
                "sponsored": False,
                "created_at": datetime.now(UTC).isoformat(),
                "metadata": {
                    "domain": "recipes",
                    "cuisine": cuisines,
                    "dietary": dietary,
                    "difficulty": infer_difficulty(ready),
                    "prep_time_minutes": int(ready * PREP_SHARE),
                    "cook_time_minutes": int(ready * COOK_SHARE),
                    "total_time_minutes": ready,
                    "servings": raw.get("servings"),
                    "ingredients": ingredients,
                    "instructions": [s["step"] for s in steps if s.get("step")],
                    "nutrition": extract_nutrition(raw),
                    "image_url": raw.get("image") or None,
                    "source_url": raw.get("sourceUrl") or None,
                },
            }

    def _probe_auth(self) -> None:
        self.http.get_json(
            f"{self.base_url}/recipes/complexSearch",
            params={"number": 1, "apiKey": self.config.api_key},
        )
