"""Update aggregation.

One run of the aggregator:

    read watermarks -> fetch (bounded parallel) -> merge -> render -> commit

Each source is fetched on a worker thread and fails on its own: a timeout,
network error or unexpected exception for one source is recorded against
that source and never affects the others. Watermarks are committed only
after every sink has rendered the report.
"""

import logging
import threading
import time
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field, replace
from datetime import datetime

from sitch.errors import ConfigError, ProviderError, RenderError, Unavailable
from sitch.models import (
    EPOCH,
    AggregatedReport,
    Source,
    SourceError,
    SourceKind,
    SourceReport,
    UpdateItem,
    ensure_utc,
    utcnow,
)
from sitch.sinks.base import OutputSink
from sitch.sources.base import SourceAdapter
from sitch.sources.registry import PluginRegistry
from sitch.store.base import Store

logger = logging.getLogger(__name__)


DEFAULT_MAX_WORKERS = 8
DEFAULT_FETCH_TIMEOUT = 30.0

# How often the collector wakes up to check for calls past their deadline
POLL_INTERVAL = 0.25


@dataclass
class RunResult:
    """Outcome of UpdateAggregator.run()."""

    report: AggregatedReport
    committed: dict[str, datetime] = field(default_factory=dict)
    render_errors: list[RenderError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.render_errors


@dataclass
class _Job:
    """One source's fetch. `started` and `finished` are written once by the worker."""

    source: Source
    adapter: SourceAdapter
    watermark: datetime
    cancel: threading.Event = field(default_factory=threading.Event)
    started: float | None = None
    finished: float | None = None


def build_report(
    source: Source,
    items: Iterable[UpdateItem],
    watermark: datetime,
    elapsed: float = 0.0,
) -> SourceReport | None:
    """Normalize one source's fetch result into a report.

    Keeps only items strictly newer than the watermark, drops repeated IDs
    (first occurrence wins) and sorts ascending by (published_at, id).
    Returns None when nothing is new.
    """
    seen: set[str] = set()
    fresh = []
    for item in items:
        published_at = ensure_utc(item.published_at)
        if published_at <= watermark or item.id in seen:
            continue
        seen.add(item.id)
        fresh.append(replace(item, published_at=published_at))

    if not fresh:
        return None

    fresh.sort(key=lambda i: (i.published_at, i.id))
    return SourceReport(source=source, items=fresh, elapsed=elapsed)


class UpdateAggregator:
    """Polls every enabled source and turns the results into one report."""

    def __init__(
        self,
        store: Store,
        plugins: PluginRegistry,
        max_workers: int = DEFAULT_MAX_WORKERS,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        poll_interval: float = POLL_INTERVAL,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.plugins = plugins
        self.max_workers = max_workers
        self.fetch_timeout = fetch_timeout
        self.poll_interval = poll_interval
        self.clock = clock

    def _available_kinds(self, sources: Sequence[Source]) -> set[SourceKind]:
        """Kinds whose provider can be used this run. Unavailable kinds are logged once."""
        available = set()
        for kind in dict.fromkeys(s.kind for s in sources):
            try:
                self.plugins.adapter(kind).ensure_available()
            except Unavailable as e:
                logger.warning(f"Skipping {kind.label} sources: {e.reason}")
                continue
            available.add(kind)
        return available

    def _watermark(self, source: Source, since: datetime | None) -> datetime:
        watermark = self.store.get_watermark(source.key) or EPOCH
        if since is not None:
            watermark = min(watermark, ensure_utc(since))
        return watermark

    @staticmethod
    def _run_job(job: _Job) -> list[UpdateItem]:
        job.started = time.monotonic()
        try:
            return job.adapter.fetch_since(job.source, job.watermark)
        finally:
            job.finished = time.monotonic()
            job.adapter.close()

    @staticmethod
    def _abandon(future: Future, job: _Job) -> None:
        """Stop a job: drop it if queued, otherwise make its next request fail."""
        future.cancel()
        job.cancel.set()
        job.adapter.close()

    def collect(
        self,
        since: datetime | None = None,
    ) -> tuple[AggregatedReport, dict[str, datetime]]:
        """Fetch every enabled source.

        Returns the report and, for each source that was fetched successfully,
        the watermark it should advance to once the report has been delivered.
        """
        started_at = self.clock()
        run_start = time.monotonic()

        sources = [s for s in self.store.list_sources() if s.enabled]
        report = AggregatedReport(
            started_at=started_at,
            since=ensure_utc(since) if since else self.store.get_last_run(),
        )
        available = self._available_kinds(sources)

        errors: dict[str, SourceError] = {}
        jobs: list[_Job] = []
        for source in sources:
            if source.kind not in available:
                continue
            adapter = self.plugins.adapter(source.kind)
            try:
                adapter.validate(source)
            except ConfigError as e:
                errors[source.key] = SourceError(source, e)
                continue
            cancel = threading.Event()
            jobs.append(_Job(source, adapter.for_job(cancel), self._watermark(source, since), cancel))

        logger.info(f"Checking {len(jobs)} sources with {self.max_workers} workers")

        results: dict[str, list[UpdateItem]] = {}
        finished: dict[str, _Job] = {}

        def elapsed(job: _Job) -> float:
            return (job.finished or time.monotonic()) - run_start

        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="sitch-fetch")
        pending: dict[Future, _Job] = {executor.submit(self._run_job, job): job for job in jobs}
        try:
            while pending:
                done, _ = wait(pending, timeout=self.poll_interval, return_when=FIRST_COMPLETED)

                for future in done:
                    job = pending.pop(future)
                    key = job.source.key
                    try:
                        results[key] = future.result()
                        finished[key] = job
                    except Exception as e:
                        logger.info(f"{job.source.kind.label} - {job.source.name} failed: {e}")
                        errors[key] = SourceError(job.source, e, elapsed(job))

                now = time.monotonic()
                for future, job in list(pending.items()):
                    if job.started is not None and now - job.started > self.fetch_timeout:
                        pending.pop(future)
                        self._abandon(future, job)
                        logger.info(f"{job.source.kind.label} - {job.source.name} timed out")
                        errors[job.source.key] = SourceError(
                            job.source,
                            ProviderError(f"Timed out after {self.fetch_timeout:g} seconds"),
                            now - run_start,
                        )
        except KeyboardInterrupt:
            logger.warning(f"Interrupted with {len(pending)} sources still pending")
            report.interrupted = True
            for future, job in pending.items():
                self._abandon(future, job)
                errors[job.source.key] = SourceError(
                    job.source, ProviderError("Interrupted before the check finished"), elapsed(job)
                )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        watermarks: dict[str, datetime] = {}
        for source in sources:
            key = source.key
            if key in errors:
                report.errors.append(errors[key])
            elif key in results:
                job = finished[key]
                source_report = build_report(source, results[key], job.watermark, elapsed(job))
                if source_report:
                    report.reports.append(source_report)
                    watermarks[key] = source_report.latest.published_at
                else:
                    watermarks[key] = started_at

        logger.info(
            f"Found {report.total_items} updates from {len(report.reports)} sources, "
            f"{len(report.errors)} errors"
        )
        return report, watermarks

    def run(self, sinks: Sequence[OutputSink], since: datetime | None = None) -> RunResult:
        """Collect, render to every sink, then commit.

        If any sink fails, nothing is committed so the next run reports the
        same updates again.
        """
        report, watermarks = self.collect(since)
        result = RunResult(report=report)

        for sink in sinks:
            try:
                sink.render(report)
            except RenderError as e:
                logger.error(f"{type(sink).__name__} failed: {e}")
                result.render_errors.append(e)

        if result.render_errors:
            logger.warning("Not committing watermarks because a sink failed")
            return result

        last_run = None if report.interrupted else report.started_at
        self.store.commit_many(watermarks, last_run=last_run)
        result.committed = watermarks
        return result
