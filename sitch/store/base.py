"""Abstract base classes for storage backends."""

from abc import ABC, abstractmethod
from datetime import datetime

from sitch.models import Source, SourceKind


def advance(current: datetime | None, candidate: datetime) -> datetime:
    """The watermark to store: never earlier than the current one."""
    if current is None:
        return candidate
    return max(current, candidate)


class SourceRegistry(ABC):
    """Durable, ordered list of followed sources."""

    @abstractmethod
    def add_source(self, source: Source, watermark: datetime | None = None) -> Source:
        """Append a source, and its first watermark if given, in one write.

        Raises ConfigError if its key is already followed.
        """
        pass

    @abstractmethod
    def list_sources(self, kind: SourceKind | None = None) -> list[Source]:
        """List sources in the order they were added."""
        pass

    @abstractmethod
    def get_source(self, source_id: str) -> Source | None:
        """Get a source by ID."""
        pass

    @abstractmethod
    def get_source_by_key(self, key: str) -> Source | None:
        """Get a source by its "<kind>:<identity>" key."""
        pass

    @abstractmethod
    def update_source(self, source: Source) -> None:
        """Replace a stored source with the same ID (display metadata refresh)."""
        pass

    @abstractmethod
    def remove_source(self, source_id: str) -> bool:
        """Remove a source and its watermark. Returns False if it didn't exist."""
        pass

    @abstractmethod
    def replace_kind(self, kind: SourceKind, sources: list[Source]) -> None:
        """Replace every source of one kind, as after a bulk edit.

        Watermarks of sources whose key survives the edit are kept.
        """
        pass


class WatermarkStore(ABC):
    """Durable mapping from source key to last-checked instant."""

    @abstractmethod
    def get_watermark(self, key: str) -> datetime | None:
        """Get the watermark for a source key, or None if it has never been set."""
        pass

    @abstractmethod
    def commit_watermark(self, key: str, instant: datetime) -> None:
        """Commit one watermark. The stored value never decreases."""
        pass

    @abstractmethod
    def commit_many(self, watermarks: dict[str, datetime], last_run: datetime | None = None) -> None:
        """Commit several watermarks and the last run instant in one atomic write."""
        pass

    @abstractmethod
    def get_last_run(self) -> datetime | None:
        """Get the instant of the last successful run."""
        pass


class Store(SourceRegistry, WatermarkStore):
    """Persistence layer for the source registry and watermarks."""

    def close(self) -> None:
        """Release any resources held by the store."""
        pass

    def __enter__(self) -> "Store":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
