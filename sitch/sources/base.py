"""Base protocols for source plugins.

A source plugin provides:
1. SourceAdapter - fetches updates for a followed source (required)
2. SearchProvider - finds new sources to follow (optional)

Every provider kind is a member of the closed SourceKind enum; the registry
maps each kind to exactly one plugin. To add a provider:
1. Add a member to SourceKind in sitch/models.py
2. Create a package under sitch/sources/ with adapter.py (and search.py)
3. Map the kind to its plugin in sitch/sources/registry.py
"""

import copy
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeVar

import httpx

from sitch.errors import ConfigError, FetchCancelled, ParseError, ProviderError
from sitch.models import Source, SourceKind, UpdateItem, utcnow

logger = logging.getLogger(__name__)

# Default timeout for a single HTTP request, in seconds
DEFAULT_HTTP_TIMEOUT = 30.0

T = TypeVar("T")


# =============================================================================
# Data Models
# =============================================================================


@dataclass
class SearchCandidate:
    """A result from search(), which can be turned into a Source."""

    id: str  # Provider-side identity (channel ID, feed URL, catalog ID, page URL)
    name: str
    kind: SourceKind

    # Optional display info
    description: str = ""
    url: str = ""

    # Additional metadata for the adapter
    metadata: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Protocols
# =============================================================================


class SourceAdapter(ABC):
    """Interface for fetching updates from one provider kind.

    Example:
        class MyAdapter(SourceAdapter):
            kind = SourceKind.RSS

            def fetch_since(self, source, watermark):
                entries = ...  # paginate until <= watermark or exhausted
                return self.parse_items(entries, lambda e: self._to_item(source, e))
    """

    kind: SourceKind

    def __init__(self, client: httpx.Client | None = None, timeout: float = DEFAULT_HTTP_TIMEOUT):
        self._client = client
        self._owns_client = False
        self._cancel: threading.Event | None = None
        self.timeout = timeout

    def for_job(self, cancel: threading.Event) -> "SourceAdapter":
        """A copy of this adapter for one fetch that stops once `cancel` is set.

        Every request goes through `_get`, which checks `cancel` first, so
        paginated fetches stop between pages. Unless a client was injected,
        the copy gets its own httpx.Client, and `close()` on it fails any
        request still in flight.
        """
        job = copy.copy(self)
        job._cancel = cancel
        if self._client is None:
            job._client = httpx.Client(timeout=self.timeout, follow_redirects=True)
            job._owns_client = True
        return job

    def close(self) -> None:
        """Close the client created by `for_job`, if any."""
        if self._owns_client and self._client is not None:
            self._client.close()

    @property
    def cancelled(self) -> bool:
        return self._cancel is not None and self._cancel.is_set()

    def check_cancelled(self) -> None:
        """Raise FetchCancelled if this fetch has been told to stop."""
        if self.cancelled:
            raise FetchCancelled(f"{self.kind.label} fetch was cancelled")

    def ensure_available(self) -> None:
        """Raise Unavailable if this provider cannot be used right now.

        Providers without credentials are always available.
        """

    def validate(self, source: Source) -> None:
        """Raise ConfigError if a registry entry can't be looked up."""
        if not source.identity.strip():
            raise ConfigError(f"{source.name} has no {self.kind.label} identity")

    @abstractmethod
    def fetch_since(self, source: Source, watermark: datetime) -> list[UpdateItem]:
        """Fetch items published after the watermark.

        Must handle a watermark older than any real update (returns everything
        available, bounded by pagination limits) and a watermark of "now"
        (returns nothing).

        Raises:
            ProviderError: If the provider could not be queried.
        """
        pass

    def source_from_candidate(self, candidate: SearchCandidate) -> Source:
        """Build a new Source from a search result."""
        return new_source(self.kind, candidate.id, candidate.name, candidate.metadata)

    # -------------------------------------------------------------------------
    # Helpers for implementations
    # -------------------------------------------------------------------------

    def _get(self, url: str, params: dict[str, Any] | None = None) -> httpx.Response:
        """GET a URL, converting transport and status failures to ProviderError.

        Raises:
            FetchCancelled: If the fetch was cancelled before or during the request.
        """
        self.check_cancelled()
        http = self._client or httpx
        try:
            response = http.get(url, params=params, timeout=self.timeout, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"{self.kind.label} returned {e.response.status_code} for {e.request.url}"
            ) from e
        except (httpx.HTTPError, RuntimeError) as e:
            # A client closed by cancellation raises RuntimeError for new requests
            if self.cancelled:
                raise FetchCancelled(f"{self.kind.label} fetch was cancelled") from e
            if isinstance(e, RuntimeError):
                raise
            raise ProviderError(f"Couldn't access {url}: {e}") from e
        return response

    def _get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        response = self._get(url, params)
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError("Couldn't parse response data as JSON") from e

    def parse_items(self, entries: Iterable[T], parse: Callable[[T], UpdateItem]) -> list[UpdateItem]:
        """Parse raw entries, dropping the ones that raise ParseError."""
        items = []
        for entry in entries:
            try:
                items.append(parse(entry))
            except ParseError as e:
                logger.debug(f"Dropping malformed {self.kind.label} item: {e}")
        return items


class SearchProvider(ABC):
    """Interface for finding sources to follow.

    This is OPTIONAL - a kind without search can still be added by hand.
    """

    kind: SourceKind

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self._transport = transport

    def ensure_available(self) -> None:
        """Raise Unavailable if search cannot be used right now."""

    @abstractmethod
    async def search(self, query: str, limit: int = 5) -> list[SearchCandidate]:
        """Search for sources matching the query.

        Raises:
            ProviderError: If the search request failed.
        """
        pass

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=DEFAULT_HTTP_TIMEOUT)

    async def _get(self, client: httpx.AsyncClient, url: str, params: dict[str, Any]) -> httpx.Response:
        try:
            response = await client.get(url, params=params, follow_redirects=True)
        except httpx.HTTPError as e:
            raise ProviderError(f"Couldn't access {url}: {e}") from e
        if response.status_code != 200:
            raise ProviderError(f"{self.kind.label} search returned {response.status_code}")
        return response

    async def _get_text(self, client: httpx.AsyncClient, url: str, params: dict[str, Any]) -> str:
        return (await self._get(client, url, params)).text

    async def _get_json(self, client: httpx.AsyncClient, url: str, params: dict[str, Any]) -> Any:
        response = await self._get(client, url, params)
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError("Couldn't parse search results as JSON") from e


# =============================================================================
# Plugin Definition
# =============================================================================


@dataclass
class SourcePlugin:
    """One provider kind: its adapter and, if it has one, its search."""

    adapter: SourceAdapter
    search: SearchProvider | None = None

    @property
    def kind(self) -> SourceKind:
        return self.adapter.kind


def new_source(
    kind: SourceKind,
    identity: str,
    name: str,
    params: dict[str, Any] | None = None,
) -> Source:
    """Create a Source with a fresh ID."""
    return Source(
        id=uuid.uuid4().hex[:12],
        kind=kind,
        identity=identity,
        name=name,
        created_at=utcnow(),
        params=dict(params or {}),
    )
