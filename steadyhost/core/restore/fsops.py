from __future__ import annotations

import os
import shutil
import tempfile

from steadyhost.core.config.paths import ensure_dirs


def relative_backup_path(target: str) -> str:
    """Absolute target -> path relative to a backup root (drive/anchor stripped)."""
    p = os.path.abspath(target)
    drive, rest = os.path.splitdrive(p)
    drive = drive.replace(":", "").strip("\\/").replace("\\", "_").replace("/", "_")
    rest = rest.lstrip("\\/")
    return os.path.join(drive, rest) if drive else rest


def _atomic_copy_file(src: str, dst: str) -> None:
    ensure_dirs(os.path.dirname(dst) or ".")
    fd, tmp = tempfile.mkstemp(prefix=".tmp_", dir=os.path.dirname(dst) or ".")
    os.close(fd)
    try:
        shutil.copy2(src, tmp)
        os.replace(tmp, dst)
    finally:
        if os.path.exists(tmp):
            try:
                os.remove(tmp)
            except OSError:
                pass


def remove_path(path: str) -> bool:
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
        return True
    if os.path.lexists(path):
        os.remove(path)
        return True
    return False


def _swap_in(src: str, dst: str) -> None:
    """Build the copy beside `dst`, then swap it in. `dst` is untouched until the copy has succeeded."""
    parent = os.path.dirname(os.path.abspath(dst))
    ensure_dirs(parent)
    staging = tempfile.mkdtemp(prefix=".tmp_", dir=parent)
    fresh, old = os.path.join(staging, "new"), os.path.join(staging, "old")
    try:
        if os.path.isdir(src):
            shutil.copytree(src, fresh)
        else:
            shutil.copy2(src, fresh)
        if os.path.lexists(dst):
            os.replace(dst, old)
        try:
            os.replace(fresh, dst)
        except OSError:
            if os.path.lexists(old):
                os.replace(old, dst)
            raise
    finally:
        shutil.rmtree(staging, ignore_errors=True)


def copy_path(src: str, dst: str) -> None:
    """
    Copy file or directory `src` to exactly `dst`, replacing whatever is there.

    A directory source never ends up nested inside an existing `dst`.
    """
    if os.path.isdir(src) or (os.path.isdir(dst) and not os.path.islink(dst)):
        _swap_in(src, dst)
        return
    _atomic_copy_file(src, dst)


def backup_target(target: str, backup_root: str) -> str:
    dest = os.path.join(backup_root, relative_backup_path(target))
    copy_path(target, dest)
    return dest
