"""Anime adapter using the Jikan (MyAnimeList) API."""

import logging
from datetime import datetime
from typing import Any

from sitch.errors import ConfigError, ParseError
from sitch.models import Source, SourceKind, UpdateItem, ensure_utc
from sitch.sources.base import SearchCandidate, SourceAdapter, new_source

logger = logging.getLogger(__name__)


JIKAN_API_BASE = "https://api.jikan.moe/v4"

# Episode lists are oldest first, so every page has to be read
MAX_PAGES = 20


def anime_page_url(anime_id: str) -> str:
    return f"https://myanimelist.net/anime/{anime_id}"


def parse_aired(value: str | None) -> datetime:
    if not value:
        raise ParseError("episode has not aired")
    try:
        return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError as e:
        raise ParseError(f"bad air date {value!r}") from e


class AnimeAdapter(SourceAdapter):
    """Adapter for anime series, identified by MyAnimeList ID."""

    kind = SourceKind.ANIME

    def validate(self, source: Source) -> None:
        if not source.identity.isdigit():
            raise ConfigError(f"{source.identity!r} is not a MyAnimeList ID")

    def _to_item(self, source: Source, episode: dict[str, Any]) -> UpdateItem:
        number = episode.get("mal_id")
        if number is None:
            raise ParseError("episode without a number")

        return UpdateItem(
            source_key=source.key,
            id=str(number),
            title=f"Episode {number} - {episode.get('title') or '<no title>'}",
            published_at=parse_aired(episode.get("aired")),
            url=episode.get("url") or anime_page_url(source.identity),
        )

    def fetch_since(self, source: Source, watermark: datetime) -> list[UpdateItem]:
        items: list[UpdateItem] = []

        for page in range(1, MAX_PAGES + 1):
            data = self._get_json(
                f"{JIKAN_API_BASE}/anime/{source.identity}/episodes",
                {"page": page},
            )
            items.extend(self.parse_items(data.get("data") or [], lambda e: self._to_item(source, e)))

            if not (data.get("pagination") or {}).get("has_next_page"):
                break
        else:
            logger.info(f"Stopped after {MAX_PAGES} pages for {source.name}")

        return [item for item in items if item.published_at > watermark]

    def source_from_candidate(self, candidate: SearchCandidate) -> Source:
        return new_source(self.kind, str(candidate.id), candidate.name)
