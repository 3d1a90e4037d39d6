"""Single-run guard for a work directory."""

import fcntl
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from discards.models.failure import ConcurrentRunError, PersistenceError

logger = logging.getLogger(__name__)


@contextmanager
def run_lock(path: Path) -> Iterator[None]:
    """
    Hold an exclusive advisory lock on `path` for the duration of a run.

    The ledger and the request file assume a single writer. The lock is
    released when the block exits or the process dies.

    Raises:
        ConcurrentRunError: If another process holds the lock
        PersistenceError: If the lock file cannot be opened
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o644)
    except OSError as e:
        raise PersistenceError(str(path), detail=str(e)) from e

    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            logger.warning("RUN_LOCK_HELD", extra={"lock_path": str(path)})
            raise ConcurrentRunError(str(path)) from e
        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        try:
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)
