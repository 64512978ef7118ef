"""Connecteur Eventbrite (évènements, domaine events). Pagination par page."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import httpx

from curator.domain.errors import ConfigurationError
from curator.domain.ingestion import FetchResult
from curator.infra.connectors.base import Connector, ConnectorConfig, build_http

DEFAULT_LOCATION = "San Francisco"
DEFAULT_RADIUS = "50mi"

_EVENT_TYPES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("concert", ("music", "concert")),
    ("meetup", ("meetup", "networking")),
    ("workshop", ("workshop", "training", "class")),
    ("conference", ("conference", "summit", "seminar")),
    ("festival", ("festival",)),
    ("exhibition", ("exhibition", "expo", "gallery")),
    ("sports", ("sports", "fitness")),
)


def map_event_type(category: str | None) -> str:
    """Type d'évènement déduit de la catégorie ou du format Eventbrite."""
    lower = (category or "").lower()
    for event_type, keywords in _EVENT_TYPES:
        if any(k in lower for k in keywords):
            return event_type
    return "other"


def _float_or_none(value: Any) -> float | None:
    try:
        return float(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


class EventbriteConnector(Connector):
    source = "eventbrite"
    domain = "events"
    default_base_url = "https://www.eventbriteapi.com/v3"

    def __init__(self, config: ConnectorConfig, client: httpx.Client | None = None) -> None:
        if not config.api_key:
            raise ConfigurationError("eventbrite requires an OAuth token (api_key)")
        super().__init__(config, build_http(self.source, config, client))

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.config.api_key}"}

    def fetch(self, cursor: str | None = None, limit: int = 20) -> FetchResult:
        page = int(cursor) if cursor else 1
        params = {
            "location.address": self.config.params.get("location", DEFAULT_LOCATION),
            "location.within": self.config.params.get("within", DEFAULT_RADIUS),
            "expand": "venue,organizer,category,format",
            "page": page,
            "page_size": limit,
        }
        if self.config.query:
            params["q"] = self.config.query
        data = self.http.get_json(
            f"{self.base_url}/events/search/", params=params, headers=self._headers()
        )
        pagination = data.get("pagination") or {}
        has_more = bool(pagination.get("has_more_items"))
        return FetchResult(
            items=data.get("events") or [],
            next_cursor=str(page + 1) if has_more else None,
            total=pagination.get("object_count"),
            has_more=has_more,
        )

    def map(self, raw: dict[str, Any]) -> dict[str, Any]:
        event_id = raw.get("id") if isinstance(raw, dict) else None
        with self.mapping_guard(event_id):
            event_id = str(self.require(raw, "id"))
            title = self.require(self.require(raw, "name"), "text")
            start = self.require(raw, "start")
            category = (raw.get("category") or {}).get("name") or (raw.get("format") or {}).get(
                "name"
            )
            venue = raw.get("venue") or None
            address = (venue or {}).get("address") or {}
            online = bool(raw.get("online_event")) or venue is None
            organizer = raw.get("organizer") or {}
            return {
                "id": f"eventbrite-{event_id}",
                "domain": "events",
                "title": title,
                "description": (raw.get("description") or {}).get("text") or None,
                "source": {
                    "name": "Eventbrite",
                    "id": event_id,
                    "url": raw.get("url") or None,
                    "reputation_score": 80,
                },
                "topics": [category or "event", "events"],
                "actions": ["save", "attend"],
                "sponsored": False,
                "created_at": datetime.now(UTC).isoformat(),
                "metadata": {
                    "domain": "events",
                    "organizer": organizer.get("name") or "Unknown",
                    "organizer_verified": organizer.get("verified"),
                    "event_type": map_event_type(category),
                    "event_date": start["utc"],
                    "end_date": (raw.get("end") or {}).get("utc"),
                    "venue": venue.get("name") if venue else "Online",
                    "location": {
                        "city": address.get("city") or ("Online" if online else None),
                        "country": address.get("country") or None,
                        "address": address.get("localized_address_display"),
                        "lat": _float_or_none(address.get("latitude")),
                        "lng": _float_or_none(address.get("longitude")),
                    },
                    "capacity": raw.get("capacity") or None,
                    "price_range": {"min": 0, "max": 0} if raw.get("is_free") else None,
                    "is_online": online,
                    "tickets_url": raw.get("url") or None,
                    "image_url": (raw.get("logo") or {}).get("url"),
                },
            }

    def _probe_auth(self) -> None:
        self.http.get_json(f"{self.base_url}/users/me/", headers=self._headers())
