"""YouTube adapter using the Data API.

Follows channels by ID (the "UC..." string in a channel URL). New videos are
read from the channel's uploads playlist, newest first.
"""

import logging
import re
from datetime import datetime
from typing import Any

import httpx

from sitch.errors import ConfigError, ParseError, ProviderError, Unavailable
from sitch.models import Source, SourceKind, UpdateItem, ensure_utc
from sitch.sources.base import DEFAULT_HTTP_TIMEOUT, SearchCandidate, SourceAdapter, new_source

logger = logging.getLogger(__name__)


# YouTube Data API v3 endpoints
YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"

# playlistItems returns at most 50 per page; stop after this many pages
PAGE_SIZE = 50
MAX_PAGES = 10

CHANNEL_ID_PATTERN = re.compile(r"^UC[\w-]{22}$")

API_KEY_HELP = (
    "set one with `sitch youtube apikey set -k <key>` "
    "(see https://developers.google.com/youtube/v3/getting-started)"
)


def uploads_playlist_id(channel_id: str) -> str:
    """Every channel's uploads playlist is its ID with UC replaced by UU."""
    if channel_id.startswith("UC"):
        return "UU" + channel_id[2:]
    raise ProviderError(f"Not a YouTube channel ID: {channel_id}")


def parse_timestamp(value: str | None) -> datetime:
    if not value:
        raise ParseError("missing publish date")
    try:
        return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError as e:
        raise ParseError(f"bad publish date {value!r}") from e


class YouTubeAdapter(SourceAdapter):
    """Adapter for YouTube channels using the Data API.

    Requires a YouTube Data API key. Without one, YouTube sources are
    skipped until a key is configured.
    """

    kind = SourceKind.YOUTUBE

    def __init__(
        self,
        api_key: str | None = None,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ):
        super().__init__(client=client, timeout=timeout)
        self.api_key = api_key

    def ensure_available(self) -> None:
        if not self.api_key:
            raise Unavailable("YouTube", f"no API key configured; {API_KEY_HELP}")

    def validate(self, source: Source) -> None:
        if not CHANNEL_ID_PATTERN.match(source.identity):
            raise ConfigError(f"{source.identity!r} is not a YouTube channel ID")

    def _get_playlist_items(self, playlist_id: str, page_token: str | None = None) -> dict[str, Any]:
        params = {
            "key": self.api_key,
            "part": "snippet,contentDetails",
            "playlistId": playlist_id,
            "maxResults": PAGE_SIZE,
        }
        if page_token:
            params["pageToken"] = page_token
        return self._get_json(f"{YOUTUBE_API_BASE}/playlistItems", params)

    def _to_item(self, source: Source, playlist_item: dict[str, Any]) -> UpdateItem:
        snippet = playlist_item.get("snippet") or {}
        details = playlist_item.get("contentDetails") or {}

        video_id = details.get("videoId") or (snippet.get("resourceId") or {}).get("videoId")
        if not video_id:
            raise ParseError("playlist item without a video ID")

        published_at = parse_timestamp(details.get("videoPublishedAt") or snippet.get("publishedAt"))

        return UpdateItem(
            source_key=source.key,
            id=video_id,
            title=snippet.get("title") or "<unnamed>",
            published_at=published_at,
            url=f"https://www.youtube.com/watch?v={video_id}",
        )

    def fetch_since(self, source: Source, watermark: datetime) -> list[UpdateItem]:
        self.ensure_available()

        playlist_id = source.params.get("uploads_playlist_id") or uploads_playlist_id(source.identity)

        items: list[UpdateItem] = []
        page_token = None

        for page in range(MAX_PAGES):
            logger.debug(f"Fetching page {page + 1} of {source.name}")
            data = self._get_playlist_items(playlist_id, page_token)

            page_items = self.parse_items(data.get("items", []), lambda i: self._to_item(source, i))
            items.extend(page_items)

            # Uploads are newest first, so once a page reaches the watermark
            # everything after it is old
            if any(item.published_at <= watermark for item in page_items):
                break

            page_token = data.get("nextPageToken")
            if not page_token:
                break
        else:
            logger.info(f"Stopped after {MAX_PAGES} pages for {source.name}")

        logger.info(f"Fetched {len(items)} videos from {source.name}")
        return items

    def source_from_candidate(self, candidate: SearchCandidate) -> Source:
        if not CHANNEL_ID_PATTERN.match(candidate.id):
            raise ProviderError(f"Not a YouTube channel ID: {candidate.id}")
        return new_source(
            self.kind,
            candidate.id,
            candidate.name,
            {"uploads_playlist_id": uploads_playlist_id(candidate.id)},
        )
