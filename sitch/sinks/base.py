"""Output sink protocol."""

from abc import ABC, abstractmethod

from sitch.models import AggregatedReport


class OutputSink(ABC):
    """A destination for a run's report.

    Sinks treat an empty report as a no-op.
    """

    @abstractmethod
    def render(self, report: AggregatedReport) -> None:
        """Deliver the report.

        Raises:
            RenderError: If the report could not be delivered. The aggregator
                commits no watermarks when any sink raises.
        """
        pass
