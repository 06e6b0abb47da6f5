"""Shared file helpers: crash-safe writes with restrictive permissions."""

from __future__ import annotations

import os
from pathlib import Path

PRIVATE_MODE = 0o600


def atomic_write_text(
    path: Path, content: str, mode: int = PRIVATE_MODE, errors: str = "strict"
) -> None:
    """Write a file via temp file + fsync + rename.

    Readers see either the old content or the new content, never a
    partial write. The temp file lives in the same directory so the
    rename stays on one filesystem.

    Args:
        path: Destination file.
        content: Full new content.
        mode: Permission bits for the new file.
        errors: Encoding error handler, as for ``open()``.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.{os.getpid()}.{os.urandom(4).hex()}.tmp")
    fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", errors=errors, newline="") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
