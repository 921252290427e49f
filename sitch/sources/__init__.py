"""Source plugins for Sitch.

Each provider kind (YouTube, RSS, Anime, Manga, Bandcamp) is a plugin in its
own directory. See sitch/sources/base.py for the SourceAdapter and
SearchProvider protocols.
"""

from sitch.sources.base import SearchCandidate, SearchProvider, SourceAdapter, SourcePlugin
from sitch.sources.registry import PluginRegistry, create_registry

__all__ = [
    "SearchCandidate",
    "SearchProvider",
    "SourceAdapter",
    "SourcePlugin",
    "PluginRegistry",
    "create_registry",
]
