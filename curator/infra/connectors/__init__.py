"""Connecteurs de sources et fabrique indexée par nom de source."""

from __future__ import annotations

import httpx

from curator.core.settings import Settings
from curator.domain.errors import ConfigurationError
from curator.infra.connectors.base import Connector, ConnectorConfig
from curator.infra.connectors.eventbrite import EventbriteConnector
from curator.infra.connectors.news import NewsConnector
from curator.infra.connectors.spoonacular import SpoonacularConnector
from curator.infra.connectors.spotify import SpotifyConnector
from curator.infra.connectors.youtube import YouTubeConnector

CONNECTORS: dict[str, type[Connector]] = {
    SpotifyConnector.source: SpotifyConnector,
    NewsConnector.source: NewsConnector,
    YouTubeConnector.source: YouTubeConnector,
    SpoonacularConnector.source: SpoonacularConnector,
    EventbriteConnector.source: EventbriteConnector,
}
SUPPORTED_SOURCES = tuple(CONNECTORS)

# Variables d'environnement portant les identifiants de chaque source
_CREDENTIALS: dict[str, tuple[str, str | None]] = {
    "spotify": ("SPOTIFY_CLIENT_ID", "SPOTIFY_CLIENT_SECRET"),
    "news": ("NEWS_API_KEY", None),
    "youtube": ("YOUTUBE_API_KEY", None),
    "spoonacular": ("SPOONACULAR_API_KEY", None),
    "eventbrite": ("EVENTBRITE_TOKEN", None),
}


def create_connector(
    source: str, config: ConnectorConfig, client: httpx.Client | None = None
) -> Connector:
    """Instancie le connecteur d'une source.

    Raises:
        ValueError: source inconnue.
        ConfigurationError: identifiants manquants.
    """
    try:
        cls = CONNECTORS[source.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown source '{source}', expected one of: {', '.join(SUPPORTED_SOURCES)}"
        ) from None
    return cls(config, client=client)


def config_from_settings(source: str, settings: Settings) -> ConnectorConfig:
    """Construit la configuration d'une source à partir des settings (env/.env)."""
    if source not in _CREDENTIALS:
        raise ValueError(f"Unknown source '{source}'")
    key_name, secret_name = _CREDENTIALS[source]
    api_key = getattr(settings, key_name, None)
    api_secret = getattr(settings, secret_name, None) if secret_name else None
    if not api_key or (secret_name and not api_secret):
        missing = [n for n in (key_name, secret_name) if n and not getattr(settings, n, None)]
        raise ConfigurationError(f"{source}: missing credentials {', '.join(missing)}")
    return ConnectorConfig(
        api_key=api_key, api_secret=api_secret, timeout_s=settings.CONNECTOR_TIMEOUT_S
    )


__all__ = [
    "CONNECTORS",
    "SUPPORTED_SOURCES",
    "Connector",
    "ConnectorConfig",
    "config_from_settings",
    "create_connector",
]
