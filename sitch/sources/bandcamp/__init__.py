"""Bandcamp artist/label source plugin.

Supports:
- Artist pages: https://artistname.bandcamp.com
- Label pages: https://labelname.bandcamp.com

No API key required - uses web scraping.
"""

from sitch.sources.bandcamp.adapter import BandcampAdapter
from sitch.sources.bandcamp.search import BandcampSearchProvider
from sitch.sources.base import DEFAULT_HTTP_TIMEOUT, SourcePlugin


def create_plugin(timeout: float = DEFAULT_HTTP_TIMEOUT) -> SourcePlugin:
    return SourcePlugin(
        adapter=BandcampAdapter(timeout=timeout),
        search=BandcampSearchProvider(),
    )


__all__ = ["BandcampAdapter", "BandcampSearchProvider", "create_plugin"]
