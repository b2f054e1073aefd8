"""
Atomic file writes — readers see the old file or the new one, never half.

Writes go to a temp file in the same directory, are fsync'ed, then
renamed over the target. The target's permission bits are kept when
it already exists.
"""

from __future__ import annotations

import logging
import os
import stat
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def atomic_write_bytes(path: Path, data: bytes, mode: int | None = None) -> None:
    """Replace ``path`` with ``data`` atomically.

    Args:
        path: Target file. Its parent directory must exist.
        data: New content.
        mode: Permission bits for a new file. Existing files keep theirs.
    """
    if path.exists():
        mode = stat.S_IMODE(path.stat().st_mode)

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        if mode is not None:
            os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    logger.debug("Wrote %s (%d bytes)", path, len(data))


def atomic_write_text(path: Path, text: str, mode: int | None = None) -> None:
    """Text variant of :func:`atomic_write_bytes` (UTF-8)."""
    atomic_write_bytes(path, text.encode("utf-8"), mode=mode)
