"""Core data models for Sitch."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any


# Watermark used for sources that have never been checked
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalize a datetime to aware UTC. Naive values are assumed to be UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class SourceVariant(Enum):
    """The shape of a source, independent of which provider serves it."""
    CHANNEL = "channel"
    FEED = "feed"
    CATALOG = "catalog"
    ARTIST = "artist"

    @property
    def identity_label(self) -> str:
        """What the identity of a source of this shape is, for column headers."""
        return _IDENTITY_LABELS[self]


class SourceKind(Enum):
    """Provider kinds Sitch knows how to poll."""
    YOUTUBE = "youtube"
    RSS = "rss"
    ANIME = "anime"
    MANGA = "manga"
    BANDCAMP = "bandcamp"

    @property
    def label(self) -> str:
        """Human-readable name used in reports."""
        return _KIND_LABELS[self]

    @property
    def variant(self) -> SourceVariant:
        return _KIND_VARIANTS[self]


_KIND_LABELS = {
    SourceKind.YOUTUBE: "YouTube",
    SourceKind.RSS: "RSS",
    SourceKind.ANIME: "Anime",
    SourceKind.MANGA: "Manga",
    SourceKind.BANDCAMP: "Bandcamp",
}

_IDENTITY_LABELS = {
    SourceVariant.CHANNEL: "Channel ID",
    SourceVariant.FEED: "Feed URL",
    SourceVariant.CATALOG: "Catalog ID",
    SourceVariant.ARTIST: "Artist URL",
}

_KIND_VARIANTS = {
    SourceKind.YOUTUBE: SourceVariant.CHANNEL,
    SourceKind.RSS: SourceVariant.FEED,
    SourceKind.ANIME: SourceVariant.CATALOG,
    SourceKind.MANGA: SourceVariant.CATALOG,
    SourceKind.BANDCAMP: SourceVariant.ARTIST,
}


@dataclass(frozen=True)
class Source:
    """A followed source stored in the registry.

    `identity` is what the provider needs to look the source up: a channel ID
    for YouTube, the feed URL for RSS, a catalog ID for anime and manga, and
    the artist page URL for Bandcamp.
    """
    id: str
    kind: SourceKind
    identity: str
    name: str
    created_at: datetime
    params: dict[str, Any] = field(default_factory=dict)
    enabled: bool = True

    @property
    def key(self) -> str:
        """Stable key used for watermarks and duplicate detection."""
        return f"{self.kind.value}:{self.identity}"

    def renamed(self, name: str) -> "Source":
        """Return a copy with refreshed display metadata."""
        return replace(self, name=name)


@dataclass(frozen=True)
class UpdateItem:
    """A single new piece of content, normalized at the adapter boundary."""
    source_key: str
    id: str  # Canonical ID used for dedup
    title: str
    published_at: datetime
    url: str


@dataclass
class SourceReport:
    """New items for one source in one run, ascending by published_at."""
    source: Source
    items: list[UpdateItem]
    elapsed: float = 0.0

    @property
    def count(self) -> int:
        return len(self.items)

    @property
    def earliest(self) -> UpdateItem:
        return self.items[0]

    @property
    def latest(self) -> UpdateItem:
        return self.items[-1]


@dataclass
class SourceError:
    """A failure for one source in one run."""
    source: Source
    error: Exception
    elapsed: float = 0.0

    @property
    def message(self) -> str:
        return str(self.error) or type(self.error).__name__


@dataclass
class AggregatedReport:
    """Everything found in one run, in registry order."""
    reports: list[SourceReport] = field(default_factory=list)
    errors: list[SourceError] = field(default_factory=list)
    started_at: datetime = field(default_factory=utcnow)
    since: datetime | None = None  # Previous successful run, for display only
    interrupted: bool = False

    @property
    def is_empty(self) -> bool:
        """True when there is nothing to render at all."""
        return not self.reports and not self.errors

    @property
    def total_items(self) -> int:
        return sum(r.count for r in self.reports)
