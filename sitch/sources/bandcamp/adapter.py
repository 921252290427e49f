"""Bandcamp adapter for artist and label pages.

Bandcamp has no public API for other artists' releases, so the artist's
music grid and each release page are scraped.
"""

import logging
import re
from datetime import datetime, timezone
from urllib.parse import urljoin, urlparse

from sitch.errors import ParseError, ProviderError
from sitch.models import Source, SourceKind, UpdateItem
from sitch.sources.base import SearchCandidate, SourceAdapter, new_source

logger = logging.getLogger(__name__)


# Only the newest releases are fetched to keep the request count down
MAX_RELEASES = 10

# Releases are listed newest first but not strictly; stop after this many old ones in a row
STOP_AFTER_OLD = 2

GRID_LINK_PATTERN = re.compile(
    r'<li[^>]*class="music-grid-item[^"]*"[^>]*>\s*<a[^>]*href="([^"]+)"',
    re.DOTALL,
)
DISCOGRAPHY_LINK_PATTERN = re.compile(
    r'<div[^>]*class="trackTitle"[^>]*>\s*<a[^>]*href="([^"]+)"',
    re.DOTALL,
)
TITLE_PATTERN = re.compile(r'<h2[^>]*class="trackTitle"[^>]*>\s*([^<]+?)\s*</h2>', re.DOTALL)
ARTIST_PATTERN = re.compile(r'<span[^>]*itemprop="byArtist"[^>]*>\s*<a[^>]*>\s*([^<]+?)\s*</a>', re.DOTALL)
META_DATE_PATTERN = re.compile(r'<meta[^>]*itemprop="datePublished"[^>]*content="(\d{8})"')
JSON_DATE_PATTERN = re.compile(r'"datePublished"\s*:\s*"([^"]+)"')


def normalize_artist_url(url: str) -> str:
    """Reduce an artist or label URL to its scheme and host."""
    parsed = urlparse(url if "://" in url else f"https://{url}")
    if not parsed.netloc:
        raise ProviderError(f"Not a Bandcamp artist URL: {url}")
    return f"{parsed.scheme}://{parsed.netloc}"


def parse_release_date(html: str) -> datetime:
    match = META_DATE_PATTERN.search(html)
    if match:
        return datetime.strptime(match.group(1), "%Y%m%d").replace(tzinfo=timezone.utc)

    match = JSON_DATE_PATTERN.search(html)
    if match:
        date_str = match.group(1)
        for fmt in ["%d %b %Y %H:%M:%S GMT", "%Y-%m-%d", "%d %B %Y"]:
            try:
                return datetime.strptime(date_str, fmt).replace(tzinfo=timezone.utc)
            except ValueError:
                continue

    raise ParseError("no release date found")


def find_release_links(html: str, base_url: str) -> list[str]:
    """Release URLs from an artist page, in page order, deduplicated."""
    links = GRID_LINK_PATTERN.findall(html) or DISCOGRAPHY_LINK_PATTERN.findall(html)
    seen = []
    for link in links:
        url = urljoin(base_url + "/", link.split("?")[0])
        if url not in seen:
            seen.append(url)
    return seen[:MAX_RELEASES]


class BandcampAdapter(SourceAdapter):
    """Adapter for Bandcamp artists and labels, identified by page URL."""

    kind = SourceKind.BANDCAMP

    def _fetch_release(self, source: Source, url: str) -> UpdateItem:
        html = self._get(url).text

        title_match = TITLE_PATTERN.search(html)
        artist_match = ARTIST_PATTERN.search(html)
        album = title_match.group(1) if title_match else "<no album name>"
        artist = artist_match.group(1) if artist_match else source.name

        return UpdateItem(
            source_key=source.key,
            id=url,
            title=f"{album} by {artist}",
            published_at=parse_release_date(html),
            url=url,
        )

    def fetch_since(self, source: Source, watermark: datetime) -> list[UpdateItem]:
        base_url = normalize_artist_url(source.identity)
        html = self._get(f"{base_url}/music").text
        links = find_release_links(html, base_url)
        logger.debug(f"Found {len(links)} releases on {base_url}")

        items: list[UpdateItem] = []
        old_in_a_row = 0

        for url in links:
            try:
                item = self._fetch_release(source, url)
            except ParseError as e:
                logger.debug(f"Dropping Bandcamp release {url}: {e}")
                continue

            if item.published_at <= watermark:
                old_in_a_row += 1
                if old_in_a_row >= STOP_AFTER_OLD:
                    break
                continue

            old_in_a_row = 0
            items.append(item)

        return items

    def source_from_candidate(self, candidate: SearchCandidate) -> Source:
        return new_source(self.kind, normalize_artist_url(candidate.id), candidate.name)
