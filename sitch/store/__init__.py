"""Store module - persistence layer for Sitch."""

from sitch.store.base import SourceRegistry, Store, WatermarkStore
from sitch.store.file import FileStore, source_from_dict, source_to_dict
from sitch.store.sqlite import SQLiteStore
from sitch.store.factory import StoreType, create_store, lock_path
from sitch.store.lock import run_lock

__all__ = [
    "SourceRegistry",
    "Store",
    "WatermarkStore",
    "FileStore",
    "SQLiteStore",
    "StoreType",
    "create_store",
    "lock_path",
    "run_lock",
    "source_from_dict",
    "source_to_dict",
]
