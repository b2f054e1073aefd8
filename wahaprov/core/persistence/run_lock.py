"""
Run lock — one provisioning run per target directory at a time.

An exclusive ``flock`` on a lock file held for the whole run. The
lock file sits beside the target directory, not in it, because the
fetch step replaces the target wholesale. The kernel drops the lock if
the process dies, so a stale lock file on disk is harmless.
"""

from __future__ import annotations

import fcntl
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from wahaprov.core.errors import LockHeldError, ProvisionError

logger = logging.getLogger(__name__)


@contextmanager
def run_lock(path: Path) -> Iterator[Path]:
    """Hold an exclusive lock on ``path`` for the duration of the block.

    Raises:
        LockHeldError: another process holds the lock.
        ProvisionError: the lock file cannot be created.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o600)
    except OSError as e:
        raise ProvisionError(f"Cannot create lock file {path}: {e}") from e
    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            raise LockHeldError(
                f"Another provisioning run holds {path}; concurrent runs are not supported"
            ) from e
        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        logger.debug("Acquired run lock %s", path)
        try:
            yield path
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            logger.debug("Released run lock %s", path)
    finally:
        os.close(fd)
