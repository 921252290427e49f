"""Tests for the update aggregator."""

import io
from dataclasses import replace
from datetime import timedelta, timezone

import pytest
from rich.console import Console

from sitch.aggregator import UpdateAggregator, build_report
from sitch.errors import ConfigError, ProviderError
from sitch.models import EPOCH, SourceKind
from sitch.sinks import TextSink
from sitch.sources.base import new_source

from conftest import T0, FailingSink, FakeAdapter, RecordingSink, make_item, registry_with


RUN_AT = T0 + timedelta(hours=100)


def aggregator_for(store, *adapters, **kwargs) -> UpdateAggregator:
    kwargs.setdefault("clock", lambda: RUN_AT)
    kwargs.setdefault("poll_interval", 0.02)
    return UpdateAggregator(store, registry_with(*adapters), **kwargs)


def follow(store, kind: SourceKind, identity: str, name: str, watermark=None):
    return store.add_source(new_source(kind, identity, name), watermark=watermark)


class TestBuildReport:
    """Normalization of one source's items."""

    def test_filters_sorts_and_dedups(self):
        """Only newer items remain, ascending, one per ID."""
        source = new_source(SourceKind.RSS, "https://example.com/feed.xml", "Example")
        items = [
            make_item(source, 5, "e"),
            make_item(source, 1, "a"),
            make_item(source, -1, "old"),
            make_item(source, 0, "at-watermark"),
            make_item(source, 3, "c"),
            make_item(source, 9, "a", title="Duplicate of a"),
        ]

        report = build_report(source, items, T0)

        assert [i.id for i in report.items] == ["a", "c", "e"]
        assert report.earliest.title == "Video a"
        assert report.latest.published_at == T0 + timedelta(hours=5)

    def test_ties_broken_by_id(self):
        """Items published at the same instant are ordered by ID."""
        source = new_source(SourceKind.RSS, "https://example.com/feed.xml", "Example")
        items = [make_item(source, 1, "b"), make_item(source, 1, "a")]

        assert [i.id for i in build_report(source, items, T0).items] == ["a", "b"]

    def test_naive_datetimes_treated_as_utc(self):
        """Naive timestamps are normalized before comparing."""
        source = new_source(SourceKind.RSS, "https://example.com/feed.xml", "Example")
        item = make_item(source, 1)
        naive = replace(item, published_at=item.published_at.replace(tzinfo=None))

        report = build_report(source, [naive], T0)

        assert report.earliest.published_at.tzinfo == timezone.utc

    def test_nothing_new(self):
        """No report when every item is old."""
        source = new_source(SourceKind.RSS, "https://example.com/feed.xml", "Example")
        assert build_report(source, [make_item(source, -2)], T0) is None


class TestRun:
    """End-to-end runs against fake providers."""

    def test_northernlion_scenario(self, store):
        """25 new videos are summarized by the earliest and committed at the latest."""
        youtube = FakeAdapter(SourceKind.YOUTUBE)
        source = follow(store, SourceKind.YOUTUBE, "UCnorthernlion", "Northernlion", watermark=T0)
        hours = [1] + list(range(4, 51, 2))
        youtube.items[source.identity] = [make_item(source, -3, "older")] + [
            make_item(source, h, f"v{h:02d}") for h in reversed(hours)
        ]

        out = io.StringIO()
        sink = TextSink(console=Console(file=out, width=300), err_console=Console(file=io.StringIO()))
        result = aggregator_for(store, youtube).run([sink])

        assert len(hours) == 25
        assert result.ok
        line = out.getvalue().splitlines()[1]
        assert line.startswith("YouTube - Northernlion: There have been 25 updates, the earliest was \"Video v01\"")
        assert "found here: https://example.com/v01" in line
        assert store.get_watermark(source.key) == T0 + timedelta(hours=50)
        assert result.committed == {source.key: T0 + timedelta(hours=50)}
        assert store.get_last_run() == RUN_AT

    def test_second_run_is_empty(self, store):
        """Re-running with no new provider data reports nothing."""
        rss = FakeAdapter(SourceKind.RSS)
        source = follow(store, SourceKind.RSS, "https://example.com/feed.xml", "Example", watermark=T0)
        rss.items[source.identity] = [make_item(source, 1), make_item(source, 2)]
        aggregator = aggregator_for(store, rss)

        first = aggregator.run([RecordingSink()])
        second = aggregator.run([RecordingSink()])

        assert first.report.total_items == 2
        assert second.report.is_empty
        assert store.get_watermark(source.key) == RUN_AT

    def test_reports_in_registry_order(self, store):
        """Report order follows the registry, not completion order."""
        rss = FakeAdapter(SourceKind.RSS)
        names = ["Slow", "Fast", "Medium"]
        delays = [0.3, 0.0, 0.1]
        for i, (name, delay) in enumerate(zip(names, delays)):
            source = follow(store, SourceKind.RSS, f"https://{name.lower()}.com/feed", name, watermark=T0)
            rss.items[source.identity] = [make_item(source, i + 1)]
            rss.delays[source.identity] = delay

        result = aggregator_for(store, rss, max_workers=3).run([RecordingSink()])

        assert [r.source.name for r in result.report.reports] == names

    def test_partial_failure_isolated(self, store):
        """One failing source doesn't affect the others."""
        rss = FakeAdapter(SourceKind.RSS)
        good1 = follow(store, SourceKind.RSS, "https://one.com/feed", "One", watermark=T0)
        bad = follow(store, SourceKind.RSS, "https://two.com/feed", "Two", watermark=T0)
        good2 = follow(store, SourceKind.RSS, "https://three.com/feed", "Three", watermark=T0)
        rss.items[good1.identity] = [make_item(good1, 1)]
        rss.items[good2.identity] = [make_item(good2, 2)]
        rss.failures[bad.identity] = ProviderError("RSS returned 503 for https://two.com/feed")

        result = aggregator_for(store, rss).run([RecordingSink()])

        assert [r.source.name for r in result.report.reports] == ["One", "Three"]
        assert [e.source.name for e in result.report.errors] == ["Two"]
        assert "503" in result.report.errors[0].message
        assert store.get_watermark(bad.key) == T0
        assert store.get_watermark(good1.key) == T0 + timedelta(hours=1)
        assert store.get_watermark(good2.key) == T0 + timedelta(hours=2)

    def test_unexpected_exception_isolated(self, store):
        """A bug in one adapter is recorded as that source's error."""
        rss = FakeAdapter(SourceKind.RSS)
        bad = follow(store, SourceKind.RSS, "https://bad.com/feed", "Bad")
        rss.failures[bad.identity] = RuntimeError("boom")

        result = aggregator_for(store, rss).run([RecordingSink()])

        assert result.report.errors[0].message == "boom"
        assert store.get_watermark(bad.key) is None

    def test_sink_failure_commits_nothing(self, store):
        """If any sink fails, the same updates are reported next time."""
        rss = FakeAdapter(SourceKind.RSS)
        source = follow(store, SourceKind.RSS, "https://example.com/feed.xml", "Example", watermark=T0)
        rss.items[source.identity] = [make_item(source, 1), make_item(source, 2)]
        aggregator = aggregator_for(store, rss)

        failed = aggregator.run([RecordingSink(), FailingSink()])

        assert not failed.ok
        assert failed.committed == {}
        assert store.get_watermark(source.key) == T0
        assert store.get_last_run() is None

        retry = aggregator.run([RecordingSink()])
        assert [i.id for i in retry.report.reports[0].items] == [i.id for i in failed.report.reports[0].items]

    def test_unavailable_kind_skipped_silently(self, store):
        """A provider without its credential produces no report and no error."""
        youtube = FakeAdapter(SourceKind.YOUTUBE, available=False)
        rss = FakeAdapter(SourceKind.RSS)
        channel = follow(store, SourceKind.YOUTUBE, "UCchannel", "Channel", watermark=T0)
        feed = follow(store, SourceKind.RSS, "https://example.com/feed.xml", "Example", watermark=T0)
        youtube.items[channel.identity] = [make_item(channel, 1)]
        rss.items[feed.identity] = [make_item(feed, 1)]

        result = aggregator_for(store, youtube, rss).run([RecordingSink()])

        assert [r.source.name for r in result.report.reports] == ["Example"]
        assert result.report.errors == []
        assert youtube.calls == []
        assert store.get_watermark(channel.key) == T0
        assert store.get_source(channel.id) is not None

    def test_malformed_source_reported(self, store):
        """A registry entry the adapter can't look up is a per-source error."""
        rss = FakeAdapter(SourceKind.RSS)
        broken = follow(store, SourceKind.RSS, "   ", "Broken")

        result = aggregator_for(store, rss).run([RecordingSink()])

        assert isinstance(result.report.errors[0].error, ConfigError)
        assert result.report.errors[0].source.id == broken.id
        assert rss.calls == []

    def test_timeout(self, store):
        """A call running past the deadline is abandoned and recorded."""
        rss = FakeAdapter(SourceKind.RSS)
        slow = follow(store, SourceKind.RSS, "https://slow.com/feed", "Slow", watermark=T0)
        fast = follow(store, SourceKind.RSS, "https://fast.com/feed", "Fast", watermark=T0)
        rss.items[slow.identity] = [make_item(slow, 1)]
        rss.items[fast.identity] = [make_item(fast, 1)]
        rss.delays[slow.identity] = 1.0

        result = aggregator_for(store, rss, fetch_timeout=0.2).run([RecordingSink()])

        assert [r.source.name for r in result.report.reports] == ["Fast"]
        assert "Timed out" in result.report.errors[0].message
        assert store.get_watermark(slow.key) == T0

    def test_timed_out_fetch_stops(self, store):
        """An abandoned fetch stops at its next request instead of running on."""
        rss = FakeAdapter(SourceKind.RSS)
        slow = follow(store, SourceKind.RSS, "https://slow.com/feed", "Slow", watermark=T0)
        stopped = rss.paginate(slow.identity, 100, 0.05)

        result = aggregator_for(store, rss, fetch_timeout=0.2).run([RecordingSink()])

        assert "Timed out" in result.report.errors[0].message
        assert stopped.wait(2)
        assert rss.pages_read[slow.identity] < 20

    def test_never_checked_source_starts_at_epoch(self, store):
        """A source without a watermark reports its whole history."""
        rss = FakeAdapter(SourceKind.RSS)
        source = follow(store, SourceKind.RSS, "https://example.com/feed.xml", "Example")
        rss.items[source.identity] = [make_item(source, -1000), make_item(source, 1)]

        result = aggregator_for(store, rss).run([RecordingSink()])

        assert rss.calls == [(source.identity, EPOCH)]
        assert result.report.total_items == 2

    def test_since_time_widens_window(self, store):
        """--since-time re-reports items but never moves a watermark back."""
        rss = FakeAdapter(SourceKind.RSS)
        source = follow(store, SourceKind.RSS, "https://example.com/feed.xml", "Example",
                        watermark=T0 + timedelta(hours=10))
        rss.items[source.identity] = [make_item(source, 1), make_item(source, 5)]

        result = aggregator_for(store, rss).run([RecordingSink()], since=T0)

        assert result.report.total_items == 2
        assert result.report.since == T0
        assert store.get_watermark(source.key) == T0 + timedelta(hours=10)

    def test_no_new_items_commits_run_start(self, store):
        """A successful empty fetch advances the watermark to the run start."""
        rss = FakeAdapter(SourceKind.RSS)
        source = follow(store, SourceKind.RSS, "https://example.com/feed.xml", "Example", watermark=T0)

        result = aggregator_for(store, rss).run([RecordingSink()])

        assert result.report.is_empty
        assert store.get_watermark(source.key) == RUN_AT

    def test_disabled_sources_skipped(self, store):
        """Disabled sources are not fetched."""
        rss = FakeAdapter(SourceKind.RSS)
        source = follow(store, SourceKind.RSS, "https://example.com/feed.xml", "Example")
        store.update_source(replace(source, enabled=False))

        aggregator_for(store, rss).run([RecordingSink()])

        assert rss.calls == []

    def test_every_sink_sees_the_same_report(self, store):
        """All sinks render the same report object."""
        rss = FakeAdapter(SourceKind.RSS)
        source = follow(store, SourceKind.RSS, "https://example.com/feed.xml", "Example", watermark=T0)
        rss.items[source.identity] = [make_item(source, 1)]
        first, second = RecordingSink(), RecordingSink()

        result = aggregator_for(store, rss).run([first, second])

        assert first.reports == [result.report]
        assert second.reports == [result.report]

    def test_interrupt_keeps_completed_reports(self, store):
        """Ctrl-C during fan-in still delivers and commits what finished."""
        rss = FakeAdapter(SourceKind.RSS)
        done = follow(store, SourceKind.RSS, "https://done.com/feed", "Done", watermark=T0)
        interrupter = follow(store, SourceKind.RSS, "https://interrupt.com/feed", "Interrupter", watermark=T0)
        pending = follow(store, SourceKind.RSS, "https://pending.com/feed", "Pending", watermark=T0)
        rss.items[done.identity] = [make_item(done, 1)]
        rss.items[pending.identity] = [make_item(pending, 1)]
        rss.failures[interrupter.identity] = KeyboardInterrupt()
        rss.delays[interrupter.identity] = 0.3
        rss.delays[pending.identity] = 1.0

        sink = RecordingSink()
        result = aggregator_for(store, rss, max_workers=3).run([sink])

        assert result.report.interrupted
        assert sink.reports == [result.report]
        assert [r.source.name for r in result.report.reports] == ["Done"]
        assert "Pending" in [e.source.name for e in result.report.errors]
        assert store.get_watermark(done.key) == T0 + timedelta(hours=1)
        assert store.get_watermark(pending.key) == T0
        assert store.get_last_run() is None

    def test_interrupt_stops_running_fetches(self, store):
        """Fetches still running when Ctrl-C arrives are told to stop."""
        rss = FakeAdapter(SourceKind.RSS)
        interrupter = follow(store, SourceKind.RSS, "https://interrupt.com/feed", "Interrupter", watermark=T0)
        slow = follow(store, SourceKind.RSS, "https://slow.com/feed", "Slow", watermark=T0)
        rss.failures[interrupter.identity] = KeyboardInterrupt()
        rss.delays[interrupter.identity] = 0.1
        stopped = rss.paginate(slow.identity, 100, 0.05)

        result = aggregator_for(store, rss, max_workers=2).run([RecordingSink()])

        assert result.report.interrupted
        assert stopped.wait(2)
        assert rss.pages_read.get(slow.identity, 0) < 20


@pytest.mark.parametrize("workers", [1, 4])
def test_worker_count_independent_of_source_count(store, workers):
    """Any number of workers checks every source."""
    rss = FakeAdapter(SourceKind.RSS)
    for i in range(6):
        source = follow(store, SourceKind.RSS, f"https://example{i}.com/feed", f"Feed {i}", watermark=T0)
        rss.items[source.identity] = [make_item(source, i + 1)]

    result = aggregator_for(store, rss, max_workers=workers).run([RecordingSink()])

    assert len(result.report.reports) == 6
