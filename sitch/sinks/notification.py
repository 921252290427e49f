"""Desktop notification sink."""

import asyncio
import logging
import webbrowser
from collections.abc import Callable

from desktop_notifier import Button, DesktopNotifier

from sitch.errors import RenderError
from sitch.models import AggregatedReport, SourceReport
from sitch.sinks.base import OutputSink

logger = logging.getLogger(__name__)


APP_NAME = "Sitch"
DEFAULT_WAIT = 60.0


class NotificationSink(OutputSink):
    """Sends one desktop notification per updated source.

    Each notification shows the source's earliest new item and has an
    "Open in Browser" button. Errors get their own notifications. After
    sending, the sink waits until every update notification has been
    clicked or dismissed, for at most `wait` seconds.
    """

    def __init__(
        self,
        notifier: DesktopNotifier | None = None,
        wait: float = DEFAULT_WAIT,
        open_url: Callable[[str], object] = webbrowser.open,
    ):
        self._notifier = notifier
        self.wait = wait
        self.open_url = open_url

    async def _send_update(self, notifier: DesktopNotifier, report: SourceReport) -> asyncio.Event:
        loop = asyncio.get_running_loop()
        handled = asyncio.Event()
        item = report.earliest

        # Callbacks may arrive on the notifier backend's own thread
        def finish() -> None:
            loop.call_soon_threadsafe(handled.set)

        def open_item() -> None:
            self.open_url(item.url)
            finish()

        await notifier.send(
            title=f"{APP_NAME} - {report.source.name}",
            message=item.title,
            buttons=[Button(title="Open in Browser", on_pressed=open_item)],
            on_clicked=open_item,
            on_dismissed=finish,
        )
        return handled

    async def _deliver(self, report: AggregatedReport) -> None:
        notifier = self._notifier or DesktopNotifier(app_name=APP_NAME)

        pending = [await self._send_update(notifier, r) for r in report.reports]

        for error in report.errors:
            await notifier.send(
                title=f"{APP_NAME} Error - {error.source.name}",
                message=error.message,
            )

        if not pending or self.wait <= 0:
            return
        try:
            await asyncio.wait_for(
                asyncio.gather(*(event.wait() for event in pending)),
                timeout=self.wait,
            )
        except asyncio.TimeoutError:
            logger.info(f"Stopped waiting for notifications after {self.wait:g} seconds")

    def render(self, report: AggregatedReport) -> None:
        if report.is_empty:
            return
        try:
            asyncio.run(self._deliver(report))
        except Exception as e:
            raise RenderError(f"Couldn't send notifications: {e}") from e
