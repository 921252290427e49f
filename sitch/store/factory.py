"""Choosing and locating a storage backend."""

from enum import Enum
from pathlib import Path

from sitch.store.base import Store


class StoreType(Enum):
    """Where the registry and watermarks live."""
    SQLITE = "sqlite"
    FILE = "file"


def create_store(store_type: StoreType, path: str) -> Store:
    """Open the backend for `store_type`.

    `path` is the database file for SQLite and the data directory for the
    file backend.
    """
    from sitch.store.file import FileStore
    from sitch.store.sqlite import SQLiteStore

    match store_type:
        case StoreType.SQLITE:
            return SQLiteStore(path)
        case StoreType.FILE:
            return FileStore(path)
        case _:
            raise ValueError(f"No such store type: {store_type}")


def lock_path(store_type: StoreType, path: str) -> Path:
    """The run lock file that lives next to a store."""
    store_path = Path(path).expanduser()
    match store_type:
        case StoreType.SQLITE:
            return store_path.with_name(store_path.name + ".lock")
        case StoreType.FILE:
            return store_path / "sitch.lock"
        case _:
            raise ValueError(f"No such store type: {store_type}")
