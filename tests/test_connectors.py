"""Tests des connecteurs de sources (transport httpx simulé)."""

from __future__ import annotations

import json

import httpx
import pytest

from curator.core.settings import Settings
from curator.domain.errors import (
    AuthenticationError,
    ConfigurationError,
    MappingError,
    NetworkError,
    RateLimitError,
)
from curator.domain.items import validate_item
from curator.infra.connectors import (
    SUPPORTED_SOURCES,
    ConnectorConfig,
    config_from_settings,
    create_connector,
)
from curator.infra.connectors.news import NewsConnector, article_id, estimate_read_time
from curator.infra.connectors.spotify import TOKEN_URL, SpotifyConnector
from curator.infra.connectors.youtube import YouTubeConnector, parse_iso_duration


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


ARTICLE = {
    "source": {"id": "reuters", "name": "Reuters"},
    "author": "Sam Lee",
    "title": "New climate research shows faster warming",
    "description": "Scientists publish updated climate projections.",
    "url": "https://www.reuters.com/climate/warming-2025",
    "urlToImage": "https://www.reuters.com/img.jpg",
    "publishedAt": "2025-01-12T08:30:00Z",
    "content": "word " * 450,
}


def test_fetch_paginates_by_page_number() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"totalResults": 5, "articles": [ARTICLE, ARTICLE]})

    conn = NewsConnector(ConnectorConfig(api_key="k"), client=_client(handler))
    page = conn.fetch(limit=2)
    assert page.has_more is True
    assert page.next_cursor == "2"
    assert page.total == 5
    assert seen[0].url.path == "/v2/everything"
    assert seen[0].url.params["pageSize"] == "2"
    assert seen[0].headers["X-Api-Key"] == "k"

    last = conn.fetch("2", limit=5)
    assert last.has_more is False
    assert last.next_cursor is None


def test_map_produces_valid_item() -> None:
    conn = NewsConnector(ConnectorConfig(api_key="k"), client=_client(lambda r: httpx.Response(200)))
    payload = conn.map(ARTICLE)
    item = validate_item(payload)
    assert item.id == article_id(ARTICLE["url"])
    assert item.topics == ["climate", "news"]
    assert item.metadata.publication == "Reuters"
    assert item.metadata.read_time_minutes == 3
    assert conn.map(ARTICLE)["id"] == payload["id"]


def test_map_missing_title_raises_mapping_error() -> None:
    conn = NewsConnector(ConnectorConfig(api_key="k"), client=_client(lambda r: httpx.Response(200)))
    raw = {k: v for k, v in ARTICLE.items() if k != "title"}
    with pytest.raises(MappingError) as exc:
        conn.map(raw)
    assert exc.value.item_id == ARTICLE["url"]


def test_401_means_invalid_credentials() -> None:
    conn = NewsConnector(
        ConnectorConfig(api_key="bad"),
        client=_client(lambda r: httpx.Response(401, json={"status": "error"})),
    )
    assert conn.validate_auth() is False
    with pytest.raises(AuthenticationError):
        conn.fetch()
    health = conn.get_health()
    assert health.healthy is False
    assert health.error_rate == 1.0


def test_429_carries_retry_after() -> None:
    conn = NewsConnector(
        ConnectorConfig(api_key="k"),
        client=_client(lambda r: httpx.Response(429, headers={"Retry-After": "12"})),
    )
    with pytest.raises(RateLimitError) as exc:
        conn.fetch()
    assert exc.value.retry_after == 12.0


def test_server_error_is_network_error() -> None:
    conn = NewsConnector(
        ConnectorConfig(api_key="k"), client=_client(lambda r: httpx.Response(503, text="down"))
    )
    with pytest.raises(NetworkError) as exc:
        conn.fetch()
    assert exc.value.status_code == 503


def test_requires_api_key() -> None:
    with pytest.raises(ConfigurationError):
        NewsConnector(ConnectorConfig())


def test_read_time_has_minimum() -> None:
    assert estimate_read_time("") == 1
    assert estimate_read_time("w " * 401) == 3


TRACK = {
    "id": "4uLU6hMCjMI75M1A2tKUQC",
    "name": "Midnight Drive",
    "artists": [{"name": "Nova"}],
    "album": {
        "name": "Night Roads",
        "release_date": "2024-03-01",
        "images": [{"url": "https://i.scdn.co/small", "width": 64}, {"url": "https://i.scdn.co/big", "width": 640}],
    },
    "popularity": 82,
    "duration_ms": 215000,
    "explicit": False,
    "external_urls": {"spotify": "https://open.spotify.com/track/4uLU6hMCjMI75M1A2tKUQC"},
}


def _spotify_connector(now: list[float]) -> tuple[SpotifyConnector, dict[str, int]]:
    calls = {"token": 0, "search": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == TOKEN_URL:
            calls["token"] += 1
            return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
        calls["search"] += 1
        assert request.headers["Authorization"] == "Bearer tok"
        return httpx.Response(
            200, json={"tracks": {"items": [TRACK], "next": None, "total": 1}}
        )

    conn = SpotifyConnector(
        ConnectorConfig(api_key="id", api_secret="secret"),
        client=_client(handler),
        clock=lambda: now[0],
    )
    return conn, calls


def test_token_is_cached_until_expiry() -> None:
    now = [0.0]
    conn, calls = _spotify_connector(now)
    conn.fetch()
    conn.fetch()
    assert calls == {"token": 1, "search": 2}
    now[0] = 4000.0
    conn.fetch()
    assert calls["token"] == 2


def test_fetch_and_map() -> None:
    conn, _ = _spotify_connector([0.0])
    page = conn.fetch(limit=10)
    assert page.has_more is False
    item = validate_item(conn.map(page.items[0]))
    assert item.id == "spotify-4uLU6hMCjMI75M1A2tKUQC"
    assert item.metadata.artists == ["Nova"]
    assert item.metadata.mood == ["trending", "popular"]
    assert item.metadata.image_url == "https://i.scdn.co/big"


def test_rejected_credentials() -> None:
    conn = SpotifyConnector(
        ConnectorConfig(api_key="id", api_secret="bad"),
        client=_client(lambda r: httpx.Response(400, json={"error": "invalid_client"})),
    )
    assert conn.validate_auth() is False


def _quota_response(reason: str) -> httpx.Response:
    body = {"error": {"code": 403, "errors": [{"reason": reason}]}}
    return httpx.Response(403, content=json.dumps(body), headers={"content-type": "application/json"})


def test_quota_exceeded_is_rate_limit() -> None:
    conn = YouTubeConnector(
        ConnectorConfig(api_key="k"), client=_client(lambda r: _quota_response("quotaExceeded"))
    )
    with pytest.raises(RateLimitError):
        conn.fetch()


def test_forbidden_key_is_authentication_error() -> None:
    conn = YouTubeConnector(
        ConnectorConfig(api_key="k"), client=_client(lambda r: _quota_response("keyInvalid"))
    )
    assert conn.validate_auth() is False


def test_fetch_attaches_durations() -> None:
    video = {
        "id": {"videoId": "abc123"},
        "snippet": {
            "title": "Python for beginners",
            "description": "Learn python and machine learning basics",
            "channelTitle": "Code Academy",
            "thumbnails": {"high": {"url": "https://i.ytimg.com/abc123.jpg"}},
        },
    }

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/search"):
            return httpx.Response(200, json={"items": [video], "nextPageToken": "NEXT"})
        assert request.url.params["id"] == "abc123"
        return httpx.Response(
            200, json={"items": [{"id": "abc123", "contentDetails": {"duration": "PT1H2M3S"}}]}
        )

    conn = YouTubeConnector(ConnectorConfig(api_key="k"), client=_client(handler))
    page = conn.fetch(limit=1)
    assert page.next_cursor == "NEXT"
    item = validate_item(conn.map(page.items[0]))
    assert item.metadata.duration_minutes == 63
    assert item.metadata.skills == ["python", "machine learning"]


@pytest.mark.parametrize(
    ("value", "minutes"),
    [("PT45S", 1), ("PT10M", 10), ("PT1H", 60), ("P1DT1M", 1441), ("bogus", None), (None, None)],
)
def test_parse_iso_duration(value, minutes) -> None:
    assert parse_iso_duration(value) == minutes


def test_known_sources() -> None:
    assert set(SUPPORTED_SOURCES) == {"spotify", "news", "youtube", "spoonacular", "eventbrite"}
    conn = create_connector("NEWS", ConnectorConfig(api_key="k"))
    assert isinstance(conn, NewsConnector)
    conn.close()


def test_unknown_source() -> None:
    with pytest.raises(ValueError):
        create_connector("myspace", ConnectorConfig(api_key="k"))


def test_missing_credentials() -> None:
    settings = Settings(_env_file=None, SPOTIFY_CLIENT_ID="id")
    with pytest.raises(ConfigurationError) as exc:
        config_from_settings("spotify", settings)
    assert "SPOTIFY_CLIENT_SECRET" in str(exc.value)


def test_config_from_settings() -> None:
    settings = Settings(_env_file=None, NEWS_API_KEY="abc", CONNECTOR_TIMEOUT_S=3)
    cfg = config_from_settings("news", settings)
    assert cfg.api_key == "abc"
    assert cfg.timeout_s == 3
