"""Anime search provider."""

from sitch.models import SourceKind
from sitch.sources.anime.adapter import JIKAN_API_BASE, anime_page_url
from sitch.sources.base import SearchCandidate, SearchProvider


class JikanSearchProvider(SearchProvider):
    """Search MyAnimeList through Jikan."""

    kind = SourceKind.ANIME

    async def search(self, query: str, limit: int = 5) -> list[SearchCandidate]:
        params = {"q": query, "limit": limit}

        async with self._client() as client:
            data = await self._get_json(client, f"{JIKAN_API_BASE}/anime", params)

        candidates = []
        for result in data.get("data") or []:
            anime_id = result.get("mal_id")
            title = result.get("title")
            if anime_id is None or not title:
                continue

            desc_parts = []
            if result.get("type"):
                desc_parts.append(result["type"])
            if result.get("episodes"):
                desc_parts.append(f"{result['episodes']} episodes")
            if result.get("status"):
                desc_parts.append(result["status"])

            candidates.append(SearchCandidate(
                id=str(anime_id),
                name=title,
                kind=self.kind,
                description=" · ".join(desc_parts),
                url=result.get("url") or anime_page_url(str(anime_id)),
            ))

        return candidates[:limit]
