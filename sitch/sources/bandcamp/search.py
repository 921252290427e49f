"""Searching Bandcamp for bands and labels."""

import re

from sitch.models import SourceKind
from sitch.sources.base import SearchCandidate, SearchProvider


BANDCAMP_SEARCH_URL = "https://bandcamp.com/search"

RESULT_PATTERN = re.compile(
    r'<li class="searchresult[^"]*"[^>]*>.*?'
    r'<div class="heading">\s*<a href="([^"]+)"[^>]*>\s*([^<]+?)\s*</a>.*?'
    r'(?:<div class="subhead">\s*([^<]*?)\s*</div>)?.*?'
    r'(?:<div class="genre">\s*([^<]*?)\s*</div>)?.*?'
    r'</li>',
    re.DOTALL,
)


class BandcampSearchProvider(SearchProvider):
    """Scrapes Bandcamp's band search results page."""

    kind = SourceKind.BANDCAMP

    async def search(self, query: str, limit: int = 5) -> list[SearchCandidate]:
        params = {"q": query, "item_type": "b"}  # b = bands

        async with self._client() as client:
            html = await self._get_text(client, BANDCAMP_SEARCH_URL, params)

        candidates = []
        for match in RESULT_PATTERN.finditer(html):
            if len(candidates) >= limit:
                break

            # Strip tracking params
            artist_url = match.group(1).split("?")[0].rstrip("/")
            name = match.group(2).strip()
            subhead = (match.group(3) or "").strip()
            genre = (match.group(4) or "").strip()

            desc_parts = [part for part in (genre, subhead) if part]

            candidates.append(SearchCandidate(
                id=artist_url,
                name=name,
                kind=self.kind,
                description=" · ".join(desc_parts),
                url=artist_url,
                metadata={"genre": genre, "location": subhead},
            ))

        return candidates
