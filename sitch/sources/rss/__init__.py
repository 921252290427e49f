"""RSS/Atom feed source plugin.

Supports:
- Any RSS 2.0 or Atom feed, by URL
- Feed discovery via Feedly search

No API key required.
"""

from sitch.sources.base import DEFAULT_HTTP_TIMEOUT, SourcePlugin
from sitch.sources.rss.adapter import RSSAdapter
from sitch.sources.rss.discovery import FeedlySearchProvider


def create_plugin(timeout: float = DEFAULT_HTTP_TIMEOUT) -> SourcePlugin:
    return SourcePlugin(
        adapter=RSSAdapter(timeout=timeout),
        search=FeedlySearchProvider(),
    )


__all__ = ["RSSAdapter", "FeedlySearchProvider", "create_plugin"]
