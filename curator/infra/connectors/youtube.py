"""Connecteur YouTube Data API v3 (vidéos éducatives, domaine learning).

La recherche renvoie les snippets; les durées sont lues via `videos?part=contentDetails`.
Pagination par `pageToken`.
"""

from __future__ import annotations

import math
import re
from datetime import UTC, datetime
from typing import Any

import httpx

from curator.core.constants import HTTP_FORBIDDEN, HTTP_UNAUTHORIZED
from curator.domain.errors import (
    AuthenticationError,
    ConfigurationError,
    ConnectorError,
    RateLimitError,
)
from curator.domain.ingestion import FetchResult
from curator.infra.connectors.base import Connector, ConnectorConfig, build_http

DEFAULT_QUERY = "tutorial OR course OR learn"
EDUCATION_CATEGORY_ID = "27"
SKILL_KEYWORDS = (
    "python",
    "javascript",
    "typescript",
    "react",
    "node",
    "machine learning",
    "data science",
    "web development",
    "ai",
    "design",
    "photography",
    "marketing",
)
_DURATION_RE = re.compile(r"^P(?:(\d+)D)?T?(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$")
_QUOTA_REASONS = {"quotaExceeded", "rateLimitExceeded", "userRateLimitExceeded", "dailyLimitExceeded"}


def extract_skills(text: str) -> list[str]:
    """Compétences repérées par mots-clés (mots entiers); `general` à défaut."""
    lower = text.lower()
    skills = [s for s in SKILL_KEYWORDS if re.search(rf"\b{re.escape(s)}\b", lower)]
    return skills or ["general"]


def parse_iso_duration(value: str | None) -> int | None:
    """Durée ISO 8601 (PT1H2M3S) convertie en minutes, arrondie au supérieur."""
    if not value:
        return None
    match = _DURATION_RE.match(value)
    if not match:
        return None
    days, hours, minutes, seconds = (int(g or 0) for g in match.groups())
    total_seconds = ((days * 24 + hours) * 60 + minutes) * 60 + seconds
    return math.ceil(total_seconds / 60) if total_seconds else None


def _video_id(raw: Any) -> str | None:
    ident = raw.get("id") if isinstance(raw, dict) else None
    return ident.get("videoId") if isinstance(ident, dict) else None


def _classify(resp: httpx.Response) -> ConnectorError | None:
    """Le 403 YouTube couvre à la fois clé invalide et quota épuisé."""
    if resp.status_code not in (HTTP_UNAUTHORIZED, HTTP_FORBIDDEN):
        return None
    try:
        errors = resp.json().get("error", {}).get("errors", [])
    except ValueError:
        errors = []
    reasons = {e.get("reason") for e in errors if isinstance(e, dict)}
    if reasons & _QUOTA_REASONS:
        return RateLimitError("youtube: quota exceeded", source="youtube", retry_after=None)
    return AuthenticationError(
        f"youtube: authentication failed ({resp.status_code})", source="youtube"
    )


class YouTubeConnector(Connector):
    source = "youtube"
    domain = "learning"
    default_base_url = "https://www.googleapis.com/youtube/v3"

    def __init__(self, config: ConnectorConfig, client: httpx.Client | None = None) -> None:
        if not config.api_key:
            raise ConfigurationError("youtube requires api_key")
        super().__init__(config, build_http(self.source, config, client, classify=_classify))

    def fetch(self, cursor: str | None = None, limit: int = 20) -> FetchResult:
        params: dict[str, Any] = {
            "part": "snippet",
            "q": self.config.query or DEFAULT_QUERY,
            "type": "video",
            "videoCategoryId": EDUCATION_CATEGORY_ID,
            "maxResults": limit,
            "key": self.config.api_key,
        }
        if cursor:
            params["pageToken"] = cursor
        data = self.http.get_json(f"{self.base_url}/search", params=params)
        items = data.get("items") or []
        self._attach_durations(items)
        next_token = data.get("nextPageToken")
        return FetchResult(
            items=items,
            next_cursor=next_token,
            total=(data.get("pageInfo") or {}).get("totalResults"),
            has_more=bool(next_token),
        )

    def _attach_durations(self, items: list[dict[str, Any]]) -> None:
        ids = [vid for vid in (_video_id(i) for i in items) if vid]
        if not ids:
            return
        data = self.http.get_json(
            f"{self.base_url}/videos",
            params={"part": "contentDetails", "id": ",".join(ids), "key": self.config.api_key},
        )
        details = {v.get("id"): v.get("contentDetails") for v in data.get("items") or []}
        for item in items:
            video_id = _video_id(item)
            if video_id in details:
                item["contentDetails"] = details[video_id]

    def map(self, raw: dict[str, Any]) -> dict[str, Any]:
        video_id = _video_id(raw)
        with self.mapping_guard(video_id):
            video_id = self.require(self.require(raw, "id"), "videoId")
            snippet = self.require(raw, "snippet")
            title = self.require(snippet, "title")
            description = snippet.get("description") or None
            skills = extract_skills(f"{title} {description or ''}")
            thumbnails = snippet.get("thumbnails") or {}
            thumb = thumbnails.get("high") or thumbnails.get("default") or {}
            return {
                "id": f"youtube-{video_id}",
                "domain": "learning",
                "title": title,
                "description": description,
                "source": {
                    "name": "YouTube",
                    "id": video_id,
                    "url": f"https://www.youtube.com/watch?v={video_id}",
                    "reputation_score": 75,
                },
                "topics": [*skills, "learning", "video"],
                "actions": ["save"],
                "sponsored": False,
                "created_at": datetime.now(UTC).isoformat(),
                "metadata": {
                    "domain": "learning",
                    "instructor": snippet.get("channelTitle"),
                    "platform": "YouTube",
                    "content_type": "video",
                    "level": "all",
                    "duration_minutes": parse_iso_duration(
                        (raw.get("contentDetails") or {}).get("duration")
                    ),
                    "skills": skills,
                    "price": 0,
                    "image_url": thumb.get("url"),
                    "url": f"https://www.youtube.com/watch?v={video_id}",
                },
            }

    def _probe_auth(self) -> None:
        self.http.get_json(
            f"{self.base_url}/search",
            params={"part": "snippet", "q": "test", "maxResults": 1, "key": self.config.api_key},
        )
