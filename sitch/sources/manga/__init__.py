"""Manga source plugin.

Supports:
- Manga series, by MangaDex ID
- Fetches translated chapters via the MangaDex API
- Searches MangaDex titles

No API key required.
"""

from sitch.sources.base import DEFAULT_HTTP_TIMEOUT, SourcePlugin
from sitch.sources.manga.adapter import MangaAdapter
from sitch.sources.manga.search import MangaDexSearchProvider


def create_plugin(timeout: float = DEFAULT_HTTP_TIMEOUT) -> SourcePlugin:
    return SourcePlugin(
        adapter=MangaAdapter(timeout=timeout),
        search=MangaDexSearchProvider(),
    )


__all__ = ["MangaAdapter", "MangaDexSearchProvider", "create_plugin"]
