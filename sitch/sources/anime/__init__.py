"""Anime source plugin.

Supports:
- Anime series, by MyAnimeList ID
- Fetches aired episodes via the Jikan v4 API
- Searches MyAnimeList titles

No API key required.
"""

from sitch.sources.anime.adapter import AnimeAdapter
from sitch.sources.anime.search import JikanSearchProvider
from sitch.sources.base import DEFAULT_HTTP_TIMEOUT, SourcePlugin


def create_plugin(timeout: float = DEFAULT_HTTP_TIMEOUT) -> SourcePlugin:
    return SourcePlugin(
        adapter=AnimeAdapter(timeout=timeout),
        search=JikanSearchProvider(),
    )


__all__ = ["AnimeAdapter", "JikanSearchProvider", "create_plugin"]
