"""Output sinks - where a run's report goes."""

from sitch.sinks.base import OutputSink
from sitch.sinks.notification import NotificationSink
from sitch.sinks.text import TextSink, format_elapsed, format_timestamp

__all__ = ["OutputSink", "NotificationSink", "TextSink", "format_elapsed", "format_timestamp"]
