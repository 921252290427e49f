"""Manga adapter using the MangaDex API.

Chapters are read from the manga's feed, newest first, in the language
stored in the source's params (English by default).
"""

import logging
from datetime import datetime
from typing import Any

from sitch.errors import ParseError
from sitch.models import Source, SourceKind, UpdateItem, ensure_utc
from sitch.sources.base import SearchCandidate, SourceAdapter, new_source

logger = logging.getLogger(__name__)


MANGADEX_API_BASE = "https://api.mangadex.org"

PAGE_SIZE = 100
MAX_PAGES = 5

DEFAULT_LANGUAGE = "en"


def chapter_url(chapter_id: str) -> str:
    return f"https://mangadex.org/chapter/{chapter_id}"


def manga_url(manga_id: str) -> str:
    return f"https://mangadex.org/title/{manga_id}"


def parse_publish_at(value: str | None) -> datetime:
    if not value:
        raise ParseError("chapter without a publish date")
    try:
        return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError as e:
        raise ParseError(f"bad publish date {value!r}") from e


class MangaAdapter(SourceAdapter):
    """Adapter for manga series, identified by MangaDex ID."""

    kind = SourceKind.MANGA

    def _to_item(self, source: Source, chapter: dict[str, Any]) -> UpdateItem:
        chapter_id = chapter.get("id")
        if not chapter_id:
            raise ParseError("chapter without an ID")

        attributes = chapter.get("attributes") or {}
        number = attributes.get("chapter") or "?"
        title = attributes.get("title") or "<no title>"

        return UpdateItem(
            source_key=source.key,
            id=chapter_id,
            title=f"Chapter {number} - {title}",
            published_at=parse_publish_at(attributes.get("publishAt")),
            url=chapter_url(chapter_id),
        )

    def fetch_since(self, source: Source, watermark: datetime) -> list[UpdateItem]:
        language = source.params.get("language", DEFAULT_LANGUAGE)
        items: list[UpdateItem] = []

        for page in range(MAX_PAGES):
            offset = page * PAGE_SIZE
            data = self._get_json(
                f"{MANGADEX_API_BASE}/manga/{source.identity}/feed",
                {
                    "translatedLanguage[]": language,
                    "order[publishAt]": "desc",
                    "limit": PAGE_SIZE,
                    "offset": offset,
                },
            )
            chapters = data.get("data") or []
            page_items = self.parse_items(chapters, lambda c: self._to_item(source, c))
            items.extend(page_items)

            if any(item.published_at <= watermark for item in page_items):
                break
            if not chapters or offset + len(chapters) >= data.get("total", 0):
                break
        else:
            logger.info(f"Stopped after {MAX_PAGES} pages for {source.name}")

        return items

    def source_from_candidate(self, candidate: SearchCandidate) -> Source:
        return new_source(
            self.kind,
            candidate.id,
            candidate.name,
            {"language": candidate.metadata.get("language", DEFAULT_LANGUAGE)},
        )
