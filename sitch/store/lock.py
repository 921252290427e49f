"""Advisory lock serializing concurrent runs against one store."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from filelock import FileLock, Timeout

from sitch.errors import PersistenceError

logger = logging.getLogger(__name__)


@contextmanager
def run_lock(path: Path, timeout: float) -> Iterator[None]:
    """Hold the lock at `path` for the duration of the block.

    Raises:
        PersistenceError: If another run holds the lock for longer than `timeout` seconds.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise PersistenceError(f"Couldn't create {path.parent}: {e}") from e

    lock = FileLock(str(path))
    try:
        lock.acquire(timeout=timeout)
    except Timeout as e:
        raise PersistenceError(
            f"Another sitch run is holding {path}; gave up after {timeout:g} seconds"
        ) from e

    logger.debug(f"Acquired run lock {path}")
    try:
        yield
    finally:
        lock.release()
