"""Connecteur Spotify (recherche de titres, domaine music).

Authentification client-credentials: le jeton est mis en cache jusqu'à son
expiration. Pagination par offset.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import httpx

from curator.core.constants import HTTP_BAD_REQUEST, HTTP_UNAUTHORIZED
from curator.domain.errors import AuthenticationError, ConfigurationError
from curator.domain.ingestion import FetchResult
from curator.infra.connectors.base import Connector, ConnectorConfig, build_http

TOKEN_URL = "https://accounts.spotify.com/api/token"
DEFAULT_QUERY = "year:2023-2024"


def infer_mood(popularity: int | None) -> list[str]:
    """Humeur déduite de la popularité (heuristique)."""
    popularity = popularity or 0
    if popularity >= 80:
        return ["trending", "popular"]
    if popularity >= 60:
        return ["upbeat"]
    if popularity >= 40:
        return ["chill"]
    return ["discover"]


class SpotifyConnector(Connector):
    source = "spotify"
    domain = "music"
    default_base_url = "https://api.spotify.com/v1"

    def __init__(
        self,
        config: ConnectorConfig,
        client: httpx.Client | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not config.api_key or not config.api_secret:
            raise ConfigurationError("spotify requires client id (api_key) and secret (api_secret)")
        # Le endpoint de jeton répond 400 (invalid_client) sur identifiants refusés
        http = build_http(
            self.source, config, client, auth_statuses=(HTTP_BAD_REQUEST, HTTP_UNAUTHORIZED)
        )
        super().__init__(config, http)
        self._clock = clock
        self._token: str | None = None
        self._token_expiry = 0.0

    def _access_token(self) -> str:
        if self._token and self._clock() < self._token_expiry:
            return self._token
        data = self.http.post_json(
            TOKEN_URL,
            data={"grant_type": "client_credentials"},
            auth=(self.config.api_key or "", self.config.api_secret or ""),
        )
        token = data.get("access_token")
        if not token:
            raise AuthenticationError("spotify: token response without access_token", source=self.source)
        self._token = token
        # marge de 30 s avant expiration
        self._token_expiry = self._clock() + float(data.get("expires_in", 3600)) - 30
        return token

    def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {self._access_token()}"}
        return self.http.get_json(f"{self.base_url}{path}", params=params, headers=headers)

    def fetch(self, cursor: str | None = None, limit: int = 20) -> FetchResult:
        offset = int(cursor) if cursor else 0
        data = self._get(
            "/search",
            {
                "q": self.config.query or DEFAULT_QUERY,
                "type": "track",
                "limit": limit,
                "offset": offset,
            },
        )
        tracks = data.get("tracks") or {}
        items = tracks.get("items") or []
        has_more = tracks.get("next") is not None
        return FetchResult(
            items=items,
            next_cursor=str(offset + limit) if has_more else None,
            total=tracks.get("total"),
            has_more=has_more,
        )

    def map(self, raw: dict[str, Any]) -> dict[str, Any]:
        track_id = raw.get("id") if isinstance(raw, dict) else None
        with self.mapping_guard(track_id):
            track_id = self.require(raw, "id")
            album = self.require(raw, "album")
            artists = [a["name"] for a in self.require(raw, "artists")]
            images = sorted(album.get("images") or [], key=lambda i: i.get("width") or 0, reverse=True)
            popularity = raw.get("popularity")
            genres: list[str] = []
            return {
                "id": f"spotify-{track_id}",
                "domain": "music",
                "title": self.require(raw, "name"),
                "description": f"{', '.join(artists)} - {album['name']}",
                "source": {
                    "name": "Spotify",
                    "id": track_id,
                    "url": (raw.get("external_urls") or {}).get("spotify"),
                    "reputation_score": 95,
                },
                "topics": [*artists, *genres, "music"],
                "actions": ["save"],
                "sponsored": False,
                "created_at": datetime.now(UTC).isoformat(),
                "metadata": {
                    "domain": "music",
                    "artists": artists,
                    "album": album["name"],
                    "genres": genres,
                    "duration_ms": raw.get("duration_ms"),
                    "popularity": popularity,
                    "release_date": album.get("release_date"),
                    "mood": infer_mood(popularity),
                    "explicit": bool(raw.get("explicit", False)),
                    "preview_url": raw.get("preview_url"),
                    "external_url": (raw.get("external_urls") or {}).get("spotify"),
                    "image_url": images[0]["url"] if images else None,
                },
            }

    def _probe_auth(self) -> None:
        self._token = None
        self._access_token()
