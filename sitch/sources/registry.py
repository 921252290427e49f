"""Plugin registry.

Maps every SourceKind to exactly one plugin. Plugins are listed explicitly
rather than discovered, so a missing mapping is a type error, not a
silently absent provider.
"""

import logging

from sitch.errors import ConfigError
from sitch.models import SourceKind
from sitch.sources.base import DEFAULT_HTTP_TIMEOUT, SearchProvider, SourceAdapter, SourcePlugin

logger = logging.getLogger(__name__)


class PluginRegistry:
    """Registry for source plugins with adapters and search providers."""

    def __init__(self):
        self._plugins: dict[SourceKind, SourcePlugin] = {}

    def register(self, plugin: SourcePlugin) -> None:
        """Register a source plugin, replacing any previous one for its kind."""
        self._plugins[plugin.kind] = plugin
        logger.debug(f"Registered plugin: {plugin.kind.value}")

    @property
    def plugins(self) -> list[SourcePlugin]:
        """All registered plugins."""
        return list(self._plugins.values())

    def get(self, kind: SourceKind) -> SourcePlugin:
        try:
            return self._plugins[kind]
        except KeyError:
            raise ConfigError(f"No plugin registered for {kind.label}") from None

    def adapter(self, kind: SourceKind) -> SourceAdapter:
        return self.get(kind).adapter

    def search_provider(self, kind: SourceKind) -> SearchProvider | None:
        return self.get(kind).search


def create_plugin(
    kind: SourceKind,
    credentials: dict[str, str] | None = None,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
) -> SourcePlugin:
    """Build the plugin for one kind."""
    credentials = credentials or {}

    match kind:
        case SourceKind.YOUTUBE:
            from sitch.sources import youtube
            return youtube.create_plugin(api_key=credentials.get("youtube"), timeout=timeout)
        case SourceKind.RSS:
            from sitch.sources import rss
            return rss.create_plugin(timeout=timeout)
        case SourceKind.ANIME:
            from sitch.sources import anime
            return anime.create_plugin(timeout=timeout)
        case SourceKind.MANGA:
            from sitch.sources import manga
            return manga.create_plugin(timeout=timeout)
        case SourceKind.BANDCAMP:
            from sitch.sources import bandcamp
            return bandcamp.create_plugin(timeout=timeout)
        case _:
            raise ValueError(f"Unknown source kind: {kind}")


def create_registry(
    credentials: dict[str, str] | None = None,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
) -> PluginRegistry:
    """Create a registry holding a plugin for every kind."""
    registry = PluginRegistry()
    for kind in SourceKind:
        registry.register(create_plugin(kind, credentials, timeout))
    return registry
