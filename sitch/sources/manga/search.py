"""Manga search provider."""

from typing import Any

from sitch.models import SourceKind
from sitch.sources.base import SearchCandidate, SearchProvider
from sitch.sources.manga.adapter import DEFAULT_LANGUAGE, MANGADEX_API_BASE, manga_url


def _localized(values: dict[str, Any] | None) -> str:
    """Pick the English string from a MangaDex localized map, or any other."""
    if not values:
        return ""
    return values.get(DEFAULT_LANGUAGE) or next(iter(values.values()), "")


class MangaDexSearchProvider(SearchProvider):
    """Search MangaDex titles."""

    kind = SourceKind.MANGA

    async def search(self, query: str, limit: int = 5) -> list[SearchCandidate]:
        params = {"title": query, "limit": limit}

        async with self._client() as client:
            data = await self._get_json(client, f"{MANGADEX_API_BASE}/manga", params)

        candidates = []
        for result in data.get("data") or []:
            manga_id = result.get("id")
            attributes = result.get("attributes") or {}
            title = _localized(attributes.get("title"))
            if not manga_id or not title:
                continue

            candidates.append(SearchCandidate(
                id=manga_id,
                name=title,
                kind=self.kind,
                description=_localized(attributes.get("description"))[:200],
                url=manga_url(manga_id),
                metadata={"language": DEFAULT_LANGUAGE},
            ))

        return candidates[:limit]
