"""Advisory project lock serializing management operations."""

import fcntl
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from portainer_setup.config import get_logger
from portainer_setup.errors import LockBusyError

logger = get_logger("lock")


@contextmanager
def project_lock(path: Path) -> Iterator[Path]:
    """Hold an exclusive, non-blocking ``flock`` on ``path``.

    Raises:
        LockBusyError: If another process already holds the lock.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o644)
    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as exc:
            raise LockBusyError(path) from exc

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        logger.debug("Acquired project lock", path=str(path))
        try:
            yield path
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            logger.debug("Released project lock", path=str(path))
    finally:
        os.close(fd)
