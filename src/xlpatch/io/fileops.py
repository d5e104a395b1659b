"""File operations: fingerprinting, backup, temp staging, atomic replace."""

from __future__ import annotations

import hashlib
import os
import shutil
from pathlib import Path


def fingerprint(path: str | Path) -> str:
    """Compute SHA-256 fingerprint of a file."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return f"sha256:{h.hexdigest()}"


def sibling_path(path: str | Path, suffix: str) -> Path:
    """``book.xlsx`` + ``.bak`` -> ``book.xlsx.bak`` in the same directory."""
    path = Path(path)
    return path.with_name(path.name + suffix)


def backup(path: str | Path, *, suffix: str = ".bak") -> str:
    """Copy ``path`` to its sibling backup path. Returns backup path.

    An existing backup at that path is overwritten.
    """
    backup_path = sibling_path(path, suffix)
    shutil.copy2(path, backup_path)
    return str(backup_path)


def write_temp(target: str | Path, data: bytes, *, suffix: str = ".tmp", fsync: bool = True) -> Path:
    """Write ``data`` to a sibling temp file of ``target``. Returns temp path.

    The temp file lives in the target's directory so the later rename stays on
    one filesystem.  On failure the temp file is removed and the error
    re-raised.
    """
    tmp_path = sibling_path(target, suffix)
    try:
        with open(tmp_path, "wb") as f:
            f.write(data)
            f.flush()
            if fsync:
                os.fsync(f.fileno())
    except BaseException:
        if tmp_path.exists():
            tmp_path.unlink()
        raise
    return tmp_path


def replace(tmp_path: str | Path, target: str | Path, *, fsync: bool = True) -> None:
    """Atomically move ``tmp_path`` over ``target``.

    Uses ``os.replace`` (never a copy fallback); the temp file is left in place
    if the rename fails.
    """
    os.replace(tmp_path, target)
    if fsync:
        _fsync_dir(Path(target).parent)


def discard(path: str | Path) -> None:
    """Remove a transient artifact (backup or temp file)."""
    os.unlink(path)


def _fsync_dir(directory: Path) -> None:
    # Directory fsync is POSIX-only; elsewhere the rename is as durable as it gets.
    if not hasattr(os, "O_DIRECTORY"):
        return
    try:
        fd = os.open(directory, os.O_RDONLY | os.O_DIRECTORY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def read_text_safe(path: str | Path) -> str:
    """Read a text file with UTF-8 BOM tolerance.

    Uses ``utf-8-sig`` encoding which silently strips a leading BOM when
    present, while reading plain UTF-8 correctly.
    """
    return Path(path).read_text(encoding="utf-8-sig")
