"""Plain text report, printed with rich."""

import logging
from datetime import datetime, tzinfo

from rich.console import Console
from rich.text import Text

from sitch.errors import RenderError
from sitch.models import AggregatedReport, SourceError, SourceReport
from sitch.sinks.base import OutputSink

logger = logging.getLogger(__name__)


def format_timestamp(dt: datetime, tz: tzinfo | None = None) -> str:
    """Format as "January 5, 2024 at 3:07 PM" in local time (or `tz`)."""
    local = dt.astimezone(tz)
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return f"{local:%B} {local.day}, {local.year} at {hour}:{local:%M} {meridiem}"


def format_elapsed(seconds: float) -> str:
    whole = int(seconds)
    return f"[{whole} second{'' if whole == 1 else 's'}]"


def update_message(report: SourceReport, tz: tzinfo | None = None) -> str:
    """Describe a source's new items, leading with the earliest one."""
    earliest = report.earliest
    details = (
        f'"{earliest.title}" released on {format_timestamp(earliest.published_at, tz)}, '
        f"found here: {earliest.url}"
    )
    if report.count == 1:
        return f"There has been 1 update, it was {details}"
    return f"There have been {report.count} updates, the earliest was {details}"


class TextSink(OutputSink):
    """Prints one line per updated source, then errors on stderr.

    In quiet mode only `<name>: "<title>" <url>` is printed per source, with
    no header and no errors.
    """

    def __init__(
        self,
        console: Console | None = None,
        err_console: Console | None = None,
        quiet: bool = False,
        tz: tzinfo | None = None,
    ):
        self.console = console or Console(soft_wrap=True)
        self.err_console = err_console or Console(stderr=True, soft_wrap=True)
        self.quiet = quiet
        self.tz = tz

    def _header(self, report: AggregatedReport) -> str:
        if report.since:
            return f"The following sources have updated since {format_timestamp(report.since, self.tz)}:"
        return "The following sources have updates:"

    def _report_line(self, report: SourceReport) -> Text:
        return Text.assemble(
            (report.source.kind.label, "green"),
            " - ",
            (report.source.name, "green"),
            ": ",
            update_message(report, self.tz),
            " ",
            (format_elapsed(report.elapsed), "magenta"),
        )

    def _quiet_line(self, report: SourceReport) -> Text:
        earliest = report.earliest
        return Text.assemble(
            (report.source.name, "green"),
            f': "{earliest.title}" ',
            (earliest.url, "bright_blue"),
        )

    def _error_line(self, error: SourceError) -> Text:
        return Text.assemble(
            (error.source.kind.label, "red"),
            " - ",
            (error.source.name, "red"),
            f": {error.message} ",
            (format_elapsed(error.elapsed), "magenta"),
        )

    def _print(self, report: AggregatedReport) -> None:
        if self.quiet:
            for source_report in report.reports:
                self.console.print(self._quiet_line(source_report))
            return

        if report.reports:
            self.console.print(self._header(report))
            for source_report in report.reports:
                self.console.print(self._report_line(source_report))
        else:
            self.err_console.print("No updates at this time.")

        if report.errors:
            self.err_console.print()
            self.err_console.print("The following errors occurred:")
            for error in report.errors:
                self.err_console.print(self._error_line(error))

    def render(self, report: AggregatedReport) -> None:
        if report.is_empty:
            return
        try:
            self._print(report)
        except OSError as e:
            raise RenderError(f"Couldn't write report: {e}") from e
