"""RSS and Atom feeds, fetched with httpx and parsed by feedparser."""

import hashlib
import html
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import feedparser

from sitch.errors import ParseError, ProviderError
from sitch.models import Source, SourceKind, UpdateItem, ensure_utc
from sitch.sources.base import SourceAdapter

TAG_PATTERN = re.compile(r"<[^>]+>")
WHITESPACE_PATTERN = re.compile(r"\s+")

# feedparser fills these with UTC struct_time when it understands the date
PARSED_DATE_FIELDS = ("published_parsed", "updated_parsed", "created_parsed")
RAW_DATE_FIELDS = ("published", "updated", "created")


def entry_published(entry: dict[str, Any]) -> datetime:
    """When an entry was published, preferring feedparser's parsed fields."""
    for name in PARSED_DATE_FIELDS:
        parsed = entry.get(name)
        if parsed:
            try:
                return datetime(*parsed[:6], tzinfo=timezone.utc)
            except (TypeError, ValueError):
                continue

    for name in RAW_DATE_FIELDS:
        raw = entry.get(name)
        if raw:
            try:
                return ensure_utc(parsedate_to_datetime(raw))
            except (TypeError, ValueError):
                continue

    raise ParseError(f"entry {entry.get('title') or '<unnamed>'!r} has no usable date")


def plain_text(markup: str) -> str:
    """Strip tags and entities and collapse whitespace."""
    text = html.unescape(TAG_PATTERN.sub("", markup))
    return WHITESPACE_PATTERN.sub(" ", text).strip()


def entry_id(entry: dict[str, Any], feed_url: str) -> str:
    """The entry's guid, else its link, else a hash of feed and title."""
    if entry.get("id") or entry.get("link"):
        return entry.get("id") or entry["link"]
    digest = hashlib.sha256(f"{feed_url}:{entry.get('title', '')}".encode())
    return digest.hexdigest()[:16]


class RSSAdapter(SourceAdapter):
    """Adapter for RSS and Atom feeds, identified by feed URL.

    A feed is a single document, so there is nothing to paginate: every
    entry it currently lists is returned.
    """

    kind = SourceKind.RSS

    def _to_item(self, source: Source, entry: dict[str, Any]) -> UpdateItem:
        return UpdateItem(
            source_key=source.key,
            id=entry_id(entry, source.identity),
            title=plain_text(entry.get("title") or "") or "<unnamed>",
            published_at=entry_published(entry),
            url=entry.get("link") or "<no link>",
        )

    def fetch_since(self, source: Source, watermark: datetime) -> list[UpdateItem]:
        document = feedparser.parse(self._get(source.identity).content)

        if document.bozo and not document.entries:
            raise ProviderError(f"Couldn't load RSS feed from {source.identity}: {document.bozo_exception}")

        return self.parse_items(document.entries, lambda e: self._to_item(source, e))
