"""YouTube channel search provider."""

import httpx

from sitch.errors import Unavailable
from sitch.models import SourceKind
from sitch.sources.base import SearchCandidate, SearchProvider
from sitch.sources.youtube.adapter import API_KEY_HELP, YOUTUBE_API_BASE


class YouTubeSearchProvider(SearchProvider):
    """Search for YouTube channels."""

    kind = SourceKind.YOUTUBE

    def __init__(self, api_key: str | None = None, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(transport=transport)
        self.api_key = api_key

    def ensure_available(self) -> None:
        if not self.api_key:
            raise Unavailable("YouTube", f"an API key is required to search; {API_KEY_HELP}")

    async def search(self, query: str, limit: int = 5) -> list[SearchCandidate]:
        self.ensure_available()

        params = {
            "key": self.api_key,
            "part": "snippet",
            "q": query,
            "type": "channel",
            "maxResults": min(limit, 50),
        }

        async with self._client() as client:
            data = await self._get_json(client, f"{YOUTUBE_API_BASE}/search", params)

        candidates = []
        for item in data.get("items", []):
            snippet = item.get("snippet") or {}
            channel_id = snippet.get("channelId")
            name = snippet.get("channelTitle") or snippet.get("title")
            if not channel_id or not name:
                continue

            candidates.append(SearchCandidate(
                id=channel_id,
                name=name,
                kind=self.kind,
                description=snippet.get("description", ""),
                url=f"https://www.youtube.com/channel/{channel_id}",
            ))

        return candidates[:limit]
