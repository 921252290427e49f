"""Finding feeds by name through Feedly's public search."""

from urllib.parse import urlparse

from sitch.models import SourceKind
from sitch.sources.base import SearchCandidate, SearchProvider


FEEDLY_SEARCH_URL = "https://cloud.feedly.com/v3/search/feeds"
FEED_ID_PREFIX = "feed/"


def _host(url: str) -> str:
    host = urlparse(url).netloc
    return host.removeprefix("www.") or url


class FeedlySearchProvider(SearchProvider):
    """RSS search backed by Feedly, most subscribed feeds first."""

    kind = SourceKind.RSS

    async def search(self, query: str, limit: int = 5) -> list[SearchCandidate]:
        async with self._client() as client:
            client.headers["User-Agent"] = "Sitch/1.0"
            data = await self._get_json(client, FEEDLY_SEARCH_URL, {"query": query, "count": limit})

        candidates = []
        for result in data.get("results") or []:
            feed_id = result.get("feedId") or ""
            if not feed_id.startswith(FEED_ID_PREFIX):
                continue
            feed_url = feed_id[len(FEED_ID_PREFIX):]
            subscribers = result.get("subscribers") or 0

            details = [(result.get("description") or "")[:200]]
            if subscribers:
                details.append(f"{subscribers:,} subscribers")

            candidates.append(SearchCandidate(
                id=feed_url,
                name=result.get("title") or _host(feed_url),
                kind=self.kind,
                description=" · ".join(d for d in details if d),
                url=result.get("website") or feed_url,
                metadata={"subscribers": subscribers},
            ))

        candidates.sort(key=lambda c: c.metadata["subscribers"], reverse=True)
        return candidates[:limit]
