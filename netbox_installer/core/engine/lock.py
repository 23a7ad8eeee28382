"""
Advisory run lock: at most one provisioning run per host.

An exclusive, non-blocking flock on a lock file. The lock is released
when the file handle closes, including when the process dies.
"""

from __future__ import annotations

import fcntl
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)


class LockError(Exception):
    """The run lock is held by another run or cannot be opened."""


@contextmanager
def run_lock(path: str | Path) -> Iterator[None]:
    lock_path = Path(path)
    try:
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        fh = open(lock_path, "a+")
    except OSError as e:
        raise LockError(f"Cannot open run lock {lock_path}: {e}") from e

    try:
        try:
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as e:
            raise LockError(
                f"Another installer run holds {lock_path}; wait for it to finish"
            ) from e

        fh.seek(0)
        fh.truncate()
        fh.write(f"pid={os.getpid()}\n")
        fh.flush()
        logger.debug("Acquired run lock %s", lock_path)
        yield
    finally:
        fh.close()
