"""SQLite backend: one database file holding sources, watermarks and the last run."""

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from sitch.errors import ConfigError, PersistenceError
from sitch.models import Source, SourceKind, ensure_utc
from sitch.store.base import Store, advance

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS sources (
    id TEXT PRIMARY KEY,
    kind TEXT NOT NULL,
    identity TEXT NOT NULL,
    name TEXT NOT NULL,
    params JSON,
    created_at TEXT NOT NULL,
    enabled INTEGER DEFAULT 1,
    position INTEGER NOT NULL,
    UNIQUE(kind, identity)
);

CREATE INDEX IF NOT EXISTS idx_sources_position ON sources(position);

CREATE TABLE IF NOT EXISTS watermarks (
    key TEXT PRIMARY KEY,
    instant TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS meta (
    key TEXT PRIMARY KEY,
    value TEXT
);
"""

SOURCE_COLUMNS = "id, kind, identity, name, params, created_at, enabled"


def _datetime_to_str(dt: datetime) -> str:
    """ISO 8601 in UTC."""
    return ensure_utc(dt).isoformat()


def _str_to_datetime(s: str) -> datetime:
    """Parse ISO format string to an aware UTC datetime."""
    return ensure_utc(datetime.fromisoformat(s))


def _row_to_source(row: sqlite3.Row) -> Source:
    """Build a Source from a `sources` row."""
    try:
        return Source(
            id=row["id"],
            kind=SourceKind(row["kind"]),
            identity=row["identity"],
            name=row["name"],
            params=json.loads(row["params"]) if row["params"] else {},
            created_at=_str_to_datetime(row["created_at"]),
            enabled=bool(row["enabled"]),
        )
    except (TypeError, ValueError) as e:
        raise PersistenceError(f"Malformed source row {row['id']!r}: {e}") from e


class SQLiteStore(Store):
    """SQLite-backed store."""

    def __init__(self, db_path: str):
        self.db_path = Path(db_path).expanduser()
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._init_schema()
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(f"Couldn't open {self.db_path}: {e}") from e

    def _init_schema(self) -> None:
        """Create the tables on first use."""
        self._conn.executescript(SCHEMA)
        self._conn.commit()

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, params)
        except sqlite3.Error as e:
            raise PersistenceError(f"Database error in {self.db_path}: {e}") from e

    def _next_position(self) -> int:
        row = self._execute("SELECT COALESCE(MAX(position), -1) + 1 FROM sources").fetchone()
        return row[0]

    def _insert_source(self, source: Source, position: int) -> None:
        self._execute(
            f"INSERT INTO sources ({SOURCE_COLUMNS}, position) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                source.id,
                source.kind.value,
                source.identity,
                source.name,
                json.dumps(source.params),
                _datetime_to_str(source.created_at),
                int(source.enabled),
                position,
            ),
        )

    def _upsert_watermark(self, key: str, instant: datetime) -> None:
        self._execute(
            "INSERT INTO watermarks (key, instant) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET instant = excluded.instant",
            (key, _datetime_to_str(instant)),
        )

    # Sources

    def add_source(self, source: Source, watermark: datetime | None = None) -> Source:
        if self.get_source_by_key(source.key):
            raise ConfigError(f"{source.kind.label} source {source.identity!r} is already followed")
        with self._conn:
            self._insert_source(source, self._next_position())
            if watermark is not None:
                self._upsert_watermark(source.key, ensure_utc(watermark))
        return source

    def list_sources(self, kind: SourceKind | None = None) -> list[Source]:
        if kind is None:
            cursor = self._execute(f"SELECT {SOURCE_COLUMNS} FROM sources ORDER BY position")
        else:
            cursor = self._execute(
                f"SELECT {SOURCE_COLUMNS} FROM sources WHERE kind = ? ORDER BY position",
                (kind.value,),
            )
        return [_row_to_source(row) for row in cursor.fetchall()]

    def get_source(self, source_id: str) -> Source | None:
        row = self._execute(f"SELECT {SOURCE_COLUMNS} FROM sources WHERE id = ?", (source_id,)).fetchone()
        return _row_to_source(row) if row else None

    def get_source_by_key(self, key: str) -> Source | None:
        kind, _, identity = key.partition(":")
        row = self._execute(
            f"SELECT {SOURCE_COLUMNS} FROM sources WHERE kind = ? AND identity = ?",
            (kind, identity),
        ).fetchone()
        return _row_to_source(row) if row else None

    def update_source(self, source: Source) -> None:
        with self._conn:
            self._execute(
                "UPDATE sources SET name = ?, params = ?, enabled = ? WHERE id = ?",
                (source.name, json.dumps(source.params), int(source.enabled), source.id),
            )

    def remove_source(self, source_id: str) -> bool:
        source = self.get_source(source_id)
        if source is None:
            return False
        with self._conn:
            self._execute("DELETE FROM sources WHERE id = ?", (source_id,))
            self._execute("DELETE FROM watermarks WHERE key = ?", (source.key,))
        return True

    def replace_kind(self, kind: SourceKind, sources: list[Source]) -> None:
        removed_keys = {s.key for s in self.list_sources(kind)} - {s.key for s in sources}
        with self._conn:
            self._execute("DELETE FROM sources WHERE kind = ?", (kind.value,))
            position = self._next_position()
            for offset, source in enumerate(sources):
                self._insert_source(source, position + offset)
            for key in removed_keys:
                self._execute("DELETE FROM watermarks WHERE key = ?", (key,))

    # Watermarks

    def get_watermark(self, key: str) -> datetime | None:
        row = self._execute("SELECT instant FROM watermarks WHERE key = ?", (key,)).fetchone()
        return _str_to_datetime(row["instant"]) if row else None

    def commit_watermark(self, key: str, instant: datetime) -> None:
        self.commit_many({key: instant})

    def commit_many(self, watermarks: dict[str, datetime], last_run: datetime | None = None) -> None:
        with self._conn:
            for key, instant in watermarks.items():
                self._upsert_watermark(key, advance(self.get_watermark(key), ensure_utc(instant)))
            if last_run is not None:
                value = advance(self.get_last_run(), ensure_utc(last_run))
                self._execute(
                    "INSERT INTO meta (key, value) VALUES ('last_run', ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                    (_datetime_to_str(value),),
                )
        logger.debug(f"Committed {len(watermarks)} watermarks to {self.db_path}")

    def get_last_run(self) -> datetime | None:
        row = self._execute("SELECT value FROM meta WHERE key = 'last_run'").fetchone()
        return _str_to_datetime(row["value"]) if row and row["value"] else None

    # Lifecycle

    def close(self) -> None:
        """Close the connection; the store is unusable afterwards."""
        self._conn.close()
