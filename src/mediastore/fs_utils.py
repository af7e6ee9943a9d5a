"""Filesystem helpers shared by the local adapter and media sync."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path


def write_atomic(dest: Path, data: bytes, *, file_mode: int | None = None) -> None:
    """Write ``data`` to ``dest`` via a temp file in the same directory and a rename."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.name}.", suffix=".tmp", dir=dest.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        if file_mode is not None:
            os.chmod(tmp_path, file_mode)
        os.replace(tmp_path, dest)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def prune_empty_parents(directory: Path, root: Path) -> None:
    """Remove empty directories from ``directory`` upwards, stopping below ``root``."""
    current = directory
    while current != root and current.is_relative_to(root):
        try:
            current.rmdir()
        except FileNotFoundError:
            pass
        except OSError:
            return
        current = current.parent


def is_within(path: Path, root: Path) -> bool:
    """True when ``path`` resolves to ``root`` or somewhere below it."""
    return path.resolve().is_relative_to(root)
