"""YouTube source plugin.

Supports:
- YouTube channels, by channel ID
- Fetches uploads via YouTube Data API v3
- Searches for channels

Requires:
- A YouTube API key (`sitch youtube apikey set -k <key>` or YOUTUBE_API_KEY)
"""

from sitch.sources.base import DEFAULT_HTTP_TIMEOUT, SourcePlugin
from sitch.sources.youtube.adapter import YouTubeAdapter
from sitch.sources.youtube.search import YouTubeSearchProvider


def create_plugin(api_key: str | None = None, timeout: float = DEFAULT_HTTP_TIMEOUT) -> SourcePlugin:
    return SourcePlugin(
        adapter=YouTubeAdapter(api_key=api_key, timeout=timeout),
        search=YouTubeSearchProvider(api_key=api_key),
    )


__all__ = ["YouTubeAdapter", "YouTubeSearchProvider", "create_plugin"]
