"""
Schéma unifié des contenus produits par les connecteurs.

Ce module définit les modèles Pydantic de l'élément unifié (`UnifiedItem`) et des
métadonnées par domaine, sous forme d'union discriminée sur le champ `domain`.
Le validateur `validate_item` est le contrat de schéma appliqué par le runner:
toute violation lève une `ValidationError` portant le chemin du champ fautif.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError

from curator.core.constants import DOMAINS
from curator.domain.errors import ValidationError

Domain = Literal["music", "news", "recipes", "learning", "events"]
UserAction = Literal["save", "try", "attend", "purchase"]


class _Metadata(BaseModel):
    model_config = ConfigDict(extra="ignore")

    image_url: str | None = None

    def filled_fields(self) -> int:
        """Nombre de champs renseignés (hors valeurs nulles ou vides)."""
        return sum(
            1 for value in self.model_dump().values() if value not in (None, [], {}, "")
        )


class MusicMetadata(_Metadata):
    """Métadonnées d'un titre musical."""

    domain: Literal["music"] = "music"
    artists: list[str] = Field(min_length=1)
    album: str | None = None
    genres: list[str] = Field(default_factory=list)
    duration_ms: int | None = Field(default=None, ge=0)
    popularity: int | None = Field(default=None, ge=0, le=100)
    release_date: str | None = None
    mood: list[str] = Field(default_factory=list)
    explicit: bool = False
    preview_url: str | None = None
    external_url: str | None = None


class NewsMetadata(_Metadata):
    """Métadonnées d'un article de presse."""

    domain: Literal["news"] = "news"
    author: str | None = None
    publication: str = Field(min_length=1)
    published_at: datetime
    category: str | None = None
    read_time_minutes: int | None = Field(default=None, ge=0)
    credibility_tier: Literal["verified", "trusted", "unverified", "questionable"] | None = None
    bias: Literal["left", "center-left", "center", "center-right", "right", "unknown"] | None = None
    url: str | None = None


class Nutrition(BaseModel):
    """Valeurs nutritionnelles par portion."""

    calories: float | None = Field(default=None, ge=0)
    protein: float | None = Field(default=None, ge=0)
    carbs: float | None = Field(default=None, ge=0)
    fat: float | None = Field(default=None, ge=0)


class RecipeMetadata(_Metadata):
    """Métadonnées d'une recette."""

    domain: Literal["recipes"] = "recipes"
    cuisine: list[str] = Field(min_length=1)
    dietary: list[
        Literal["vegetarian", "vegan", "gluten-free", "dairy-free", "keto", "paleo", "low-carb"]
    ] = Field(default_factory=list)
    difficulty: Literal["beginner", "intermediate", "advanced"] | None = None
    prep_time_minutes: int | None = Field(default=None, ge=0)
    cook_time_minutes: int | None = Field(default=None, ge=0)
    total_time_minutes: int | None = Field(default=None, ge=0)
    servings: int | None = Field(default=None, gt=0)
    ingredients: list[str] = Field(min_length=1)
    instructions: list[str] = Field(default_factory=list)
    nutrition: Nutrition | None = None
    source_url: str | None = None


class LearningMetadata(_Metadata):
    """Métadonnées d'un contenu pédagogique."""

    domain: Literal["learning"] = "learning"
    instructor: str | None = None
    platform: str = Field(min_length=1)
    content_type: Literal["video", "course", "tutorial", "article", "podcast"] = "video"
    level: Literal["beginner", "intermediate", "advanced", "all"] = "all"
    duration_minutes: int | None = Field(default=None, ge=0)
    skills: list[str] = Field(min_length=1)
    prerequisites: list[str] = Field(default_factory=list)
    price: float | None = Field(default=None, ge=0)
    rating: float | None = Field(default=None, ge=0, le=5)
    reviews_count: int | None = Field(default=None, ge=0)
    url: str | None = None


class Location(BaseModel):
    """Localisation d'un évènement."""

    city: str | None = None
    country: str | None = None
    address: str | None = None
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)


class PriceRange(BaseModel):
    """Fourchette de prix d'un évènement."""

    min: float = Field(ge=0)
    max: float = Field(ge=0)
    currency: str = "USD"


class EventMetadata(_Metadata):
    """Métadonnées d'un évènement."""

    domain: Literal["events"] = "events"
    organizer: str = Field(min_length=1)
    organizer_verified: bool | None = None
    event_type: Literal[
        "concert", "workshop", "conference", "meetup", "festival", "exhibition", "sports", "other"
    ] = "other"
    event_date: datetime
    end_date: datetime | None = None
    venue: str | None = None
    location: Location | None = None
    capacity: int | None = Field(default=None, ge=0)
    price_range: PriceRange | None = None
    is_online: bool = False
    tickets_url: str | None = None


ItemMetadata = Annotated[
    Union[MusicMetadata, NewsMetadata, RecipeMetadata, LearningMetadata, EventMetadata],
    Field(discriminator="domain"),
]


class ItemSource(BaseModel):
    """Provenance d'un élément."""

    name: str = Field(min_length=1)
    id: str = Field(min_length=1)
    url: str | None = None
    reputation_score: float | None = Field(default=None, ge=0, le=100)

    @field_validator("url")
    @classmethod
    def _http_url(cls, v: str | None) -> str | None:
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError("source url must be an http(s) URL")
        return v


class UnifiedItem(BaseModel):
    """Élément de contenu canonique, commun à toutes les sources."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=3, pattern=r"^[a-z0-9_]+-.+$")
    domain: Domain
    title: str = Field(min_length=1, max_length=500)
    description: str | None = Field(default=None, max_length=2000)
    topics: list[str] = Field(min_length=1)
    source: ItemSource
    actions: list[UserAction] = Field(min_length=1)
    sponsored: bool = False
    embeddings: list[float] | None = None
    metadata: ItemMetadata
    created_at: datetime
    updated_at: datetime | None = None

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title must not be blank")
        return v

    @field_validator("topics")
    @classmethod
    def _dedupe_topics(cls, v: list[str]) -> list[str]:
        seen: list[str] = []
        for topic in v:
            topic = topic.strip()
            if topic and topic not in seen:
                seen.append(topic)
        if not seen:
            raise ValueError("topics must contain at least one non-empty tag")
        return seen

    @field_validator("actions")
    @classmethod
    def _dedupe_actions(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))

    @field_validator("embeddings")
    @classmethod
    def _embedding_dimensions(
        cls, v: list[float] | None, info: ValidationInfo
    ) -> list[float] | None:
        expected = (info.context or {}).get("embedding_dimensions")
        if v is not None and expected and len(v) != expected:
            raise ValueError(f"embedding must have {expected} dimensions, got {len(v)}")
        return v

    @model_validator(mode="after")
    def _metadata_matches_domain(self) -> UnifiedItem:
        if self.metadata.domain != self.domain:
            raise ValueError(
                f"metadata domain '{self.metadata.domain}' does not match item domain "
                f"'{self.domain}'"
            )
        return self

    def to_payload(self) -> dict[str, Any]:
        """Sérialise l'élément au format JSON (dates ISO 8601)."""
        return self.model_dump(mode="json", exclude_none=True)


def _field_path(loc: tuple[Any, ...]) -> str:
    parts = list(loc)
    # l'union discriminée insère le tag de domaine dans le chemin
    if len(parts) > 1 and parts[0] == "metadata" and parts[1] in DOMAINS:
        del parts[1]
    return ".".join(str(p) for p in parts) or "__root__"


def validate_item(payload: dict[str, Any] | UnifiedItem, dimensions: int | None = None) -> UnifiedItem:
    """Valide un élément contre le schéma unifié.

    Args:
        payload: Sortie de `Connector.map` (dict) ou élément déjà construit.
        dimensions: Dimension attendue des embeddings, si un provider est actif.

    Returns:
        UnifiedItem: L'élément validé.

    Raises:
        ValidationError: Avec le chemin du premier champ invalide et la liste des problèmes.
    """
    if isinstance(payload, UnifiedItem):
        payload = payload.model_dump()
    try:
        return UnifiedItem.model_validate(
            payload, context={"embedding_dimensions": dimensions}
        )
    except PydanticValidationError as exc:
        issues = [
            {"field": _field_path(err["loc"]), "message": err["msg"]} for err in exc.errors()
        ]
        first = issues[0] if issues else {"field": None, "message": str(exc)}
        item_id = payload.get("id") if isinstance(payload, dict) else None
        raise ValidationError(
            f"{first['field']}: {first['message']}",
            field=first["field"],
            issues=issues,
            item_id=item_id,
        ) from exc


# Sous-ensemble de métadonnées injecté dans le texte d'embedding, par domaine
_EMBEDDING_FIELDS: dict[str, tuple[str, ...]] = {
    "music": ("artists", "album", "genres"),
    "news": ("author", "publication", "category"),
    "recipes": ("cuisine", "dietary"),
    "learning": ("instructor", "skills"),
    "events": ("organizer", "venue"),
}


def embedding_text(item: UnifiedItem) -> str:
    """Construit le texte à vectoriser: titre, description, topics, métadonnées du domaine."""
    parts: list[str] = [item.title]
    if item.description:
        parts.append(item.description)
    parts.append(" ".join(item.topics))
    for name in _EMBEDDING_FIELDS.get(item.domain, ()):
        value = getattr(item.metadata, name, None)
        if not value:
            continue
        if isinstance(value, list):
            parts.append(" ".join(str(v) for v in value))
        else:
            parts.append(str(value))
    return " ".join(p for p in parts if p).strip()
