"""File backend: two JSON documents in a data directory."""

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any

from sitch.errors import ConfigError, PersistenceError
from sitch.models import Source, SourceKind, ensure_utc
from sitch.store.base import Store, advance

logger = logging.getLogger(__name__)


def _datetime_to_str(dt: datetime) -> str:
    """ISO 8601 in UTC."""
    return ensure_utc(dt).isoformat()


def _str_to_datetime(s: str) -> datetime:
    """Parse ISO format string to an aware UTC datetime."""
    return ensure_utc(datetime.fromisoformat(s))


def source_to_dict(source: Source) -> dict[str, Any]:
    """The JSON form of a Source, also used by `edit`."""
    return {
        "id": source.id,
        "kind": source.kind.value,
        "identity": source.identity,
        "name": source.name,
        "params": source.params,
        "created_at": _datetime_to_str(source.created_at),
        "enabled": source.enabled,
    }


def source_from_dict(d: dict[str, Any]) -> Source:
    """Deserialize a dictionary to a Source.

    Raises:
        ConfigError: If the entry is missing fields or names an unknown kind.
    """
    try:
        return Source(
            id=str(d["id"]),
            kind=SourceKind(d["kind"]),
            identity=str(d["identity"]),
            name=str(d["name"]),
            params=dict(d.get("params") or {}),
            created_at=_str_to_datetime(d["created_at"]),
            enabled=bool(d.get("enabled", True)),
        )
    except KeyError as e:
        raise ConfigError(f"Source entry is missing {e.args[0]!r}") from e
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Malformed source entry: {e}") from e


def _atomic_write(path: Path, data: Any) -> None:
    """Write JSON to a temp file in the same directory, then swap it in."""
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class FileStore(Store):
    """JSON file-backed store. Simple, inspectable, good for testing.

    Layout:
        sources.json     - list of source records, in registry order
        watermarks.json  - {"last_run": ..., "watermarks": {key: instant}}
    """

    def __init__(self, data_dir: str):
        self.data_dir = Path(data_dir).expanduser()
        self.sources_file = self.data_dir / "sources.json"
        self.watermarks_file = self.data_dir / "watermarks.json"

        self._sources: list[Source] = []
        self._watermarks: dict[str, datetime] = {}
        self._last_run: datetime | None = None
        self._load()

    def _read_json(self, path: Path) -> Any:
        try:
            return json.loads(path.read_text())
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Couldn't read {path}: {e}") from e

    def _load(self) -> None:
        """Read both documents, if they exist."""
        if self.sources_file.exists():
            data = self._read_json(self.sources_file)
            try:
                self._sources = [source_from_dict(s) for s in data]
            except (ConfigError, TypeError) as e:
                raise PersistenceError(f"Couldn't load {self.sources_file}: {e}") from e

        if self.watermarks_file.exists():
            data = self._read_json(self.watermarks_file)
            try:
                self._watermarks = {
                    key: _str_to_datetime(value) for key, value in data.get("watermarks", {}).items()
                }
                last_run = data.get("last_run")
                self._last_run = _str_to_datetime(last_run) if last_run else None
            except (AttributeError, TypeError, ValueError) as e:
                raise PersistenceError(f"Couldn't load {self.watermarks_file}: {e}") from e

    def _write(self, path: Path, data: Any) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            _atomic_write(path, data)
        except OSError as e:
            raise PersistenceError(f"Couldn't write {path}: {e}") from e

    # In-memory state is replaced only after its write succeeds

    def _save_sources(self, sources: list[Source]) -> None:
        self._write(self.sources_file, [source_to_dict(s) for s in sources])
        self._sources = sources

    def _save_watermarks(self, watermarks: dict[str, datetime], last_run: datetime | None) -> None:
        self._write(self.watermarks_file, {
            "last_run": _datetime_to_str(last_run) if last_run else None,
            "watermarks": {key: _datetime_to_str(value) for key, value in watermarks.items()},
        })
        self._watermarks = watermarks
        self._last_run = last_run

    # Sources

    def add_source(self, source: Source, watermark: datetime | None = None) -> Source:
        if self.get_source_by_key(source.key):
            raise ConfigError(f"{source.kind.label} source {source.identity!r} is already followed")
        # Watermark first: a leftover watermark is ignored, a source without one isn't
        if watermark is not None:
            self._save_watermarks({**self._watermarks, source.key: ensure_utc(watermark)}, self._last_run)
        self._save_sources(self._sources + [source])
        return source

    def list_sources(self, kind: SourceKind | None = None) -> list[Source]:
        return [s for s in self._sources if kind is None or s.kind == kind]

    def get_source(self, source_id: str) -> Source | None:
        return next((s for s in self._sources if s.id == source_id), None)

    def get_source_by_key(self, key: str) -> Source | None:
        return next((s for s in self._sources if s.key == key), None)

    def update_source(self, source: Source) -> None:
        for i, existing in enumerate(self._sources):
            if existing.id == source.id:
                self._save_sources(self._sources[:i] + [source] + self._sources[i + 1:])
                return

    def remove_source(self, source_id: str) -> bool:
        source = self.get_source(source_id)
        if source is None:
            return False
        self._save_sources([s for s in self._sources if s.id != source_id])
        if source.key in self._watermarks:
            watermarks = {k: v for k, v in self._watermarks.items() if k != source.key}
            self._save_watermarks(watermarks, self._last_run)
        return True

    def replace_kind(self, kind: SourceKind, sources: list[Source]) -> None:
        kept = [s for s in self._sources if s.kind != kind]
        removed_keys = {s.key for s in self._sources if s.kind == kind} - {s.key for s in sources}
        self._save_sources(kept + list(sources))

        if removed_keys & self._watermarks.keys():
            watermarks = {k: v for k, v in self._watermarks.items() if k not in removed_keys}
            self._save_watermarks(watermarks, self._last_run)

    # Watermarks

    def get_watermark(self, key: str) -> datetime | None:
        return self._watermarks.get(key)

    def commit_watermark(self, key: str, instant: datetime) -> None:
        self.commit_many({key: instant})

    def commit_many(self, watermarks: dict[str, datetime], last_run: datetime | None = None) -> None:
        updated = dict(self._watermarks)
        for key, instant in watermarks.items():
            updated[key] = advance(updated.get(key), ensure_utc(instant))
        if last_run is not None:
            last_run = advance(self._last_run, ensure_utc(last_run))
        self._save_watermarks(updated, last_run or self._last_run)
        logger.debug(f"Committed {len(watermarks)} watermarks to {self.watermarks_file}")

    def get_last_run(self) -> datetime | None:
        return self._last_run
