"""Shared fixtures: in-memory adapters, recording sinks and a temp store."""

import tempfile
import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from sitch.errors import RenderError, Unavailable
from sitch.models import AggregatedReport, Source, SourceKind, UpdateItem
from sitch.sinks.base import OutputSink
from sitch.sources.base import SourceAdapter, SourcePlugin
from sitch.sources.registry import PluginRegistry
from sitch.store import FileStore


T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_item(source: Source, hours: float, item_id: str | None = None, title: str | None = None) -> UpdateItem:
    """An item published `hours` after T0."""
    item_id = item_id or f"{source.identity}-{hours:g}"
    return UpdateItem(
        source_key=source.key,
        id=item_id,
        title=title or f"Video {item_id}",
        published_at=T0 + timedelta(hours=hours),
        url=f"https://example.com/{item_id}",
    )


class FakeAdapter(SourceAdapter):
    """Serves canned items per source identity, like a provider would.

    Items are filtered by watermark the way real adapters paginate: anything
    at or before the watermark may or may not be returned, so by default it
    is returned to make sure the aggregator filters it.
    """

    def __init__(self, kind: SourceKind = SourceKind.YOUTUBE, available: bool = True):
        super().__init__()
        self.kind = kind
        self.available = available
        self.items: dict[str, list[UpdateItem]] = {}
        self.failures: dict[str, Exception] = {}
        self.delays: dict[str, float] = {}
        self.calls: list[tuple[str, datetime]] = []
        # Slow paginated sources: identity -> (page count, seconds per page)
        self.pages: dict[str, tuple[int, float]] = {}
        self.pages_read: dict[str, int] = {}
        self.stopped: dict[str, threading.Event] = {}
        self._lock = threading.Lock()

    def ensure_available(self) -> None:
        if not self.available:
            raise Unavailable(self.kind.label, "no API key configured")

    def paginate(self, identity: str, count: int, delay: float) -> threading.Event:
        """Make a source slow and paginated. The returned event is set when its fetch ends."""
        self.pages[identity] = (count, delay)
        self.stopped[identity] = threading.Event()
        return self.stopped[identity]

    def _read_pages(self, identity: str) -> None:
        count, delay = self.pages[identity]
        stopped = self.stopped[identity]
        try:
            for _ in range(count):
                self.check_cancelled()
                time.sleep(delay)
                with self._lock:
                    self.pages_read[identity] = self.pages_read.get(identity, 0) + 1
        finally:
            stopped.set()

    def fetch_since(self, source: Source, watermark: datetime) -> list[UpdateItem]:
        with self._lock:
            self.calls.append((source.identity, watermark))
        if source.identity in self.pages:
            self._read_pages(source.identity)
        if source.identity in self.delays:
            time.sleep(self.delays[source.identity])
        if source.identity in self.failures:
            raise self.failures[source.identity]
        return list(self.items.get(source.identity, []))


class RecordingSink(OutputSink):
    """Keeps every report it is given."""

    def __init__(self):
        self.reports: list[AggregatedReport] = []

    def render(self, report: AggregatedReport) -> None:
        self.reports.append(report)


class FailingSink(OutputSink):
    def render(self, report: AggregatedReport) -> None:
        raise RenderError("notification daemon is not running")


def registry_with(*adapters: SourceAdapter) -> PluginRegistry:
    registry = PluginRegistry()
    for adapter in adapters:
        registry.register(SourcePlugin(adapter=adapter))
    return registry


@pytest.fixture
def store():
    """A temporary file store."""
    with tempfile.TemporaryDirectory() as tmpdir:
        with FileStore(tmpdir) as store:
            yield store
