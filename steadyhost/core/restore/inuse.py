from __future__ import annotations

import os
from typing import Optional, Set

import psutil


def _norm(p: str) -> str:
    return os.path.normcase(os.path.realpath(p))


class InUseProbe:
    """
    Best-effort check whether another process holds a target open.

    - open-file handles of other processes (psutil; processes we may not
      inspect are skipped)
    - on Windows, a failed exclusive open of a writable file
    The handle table is sampled once per probe instance.
    """

    def __init__(self, *, logger=None):
        self.logger = logger
        self._open: Optional[Set[str]] = None

    def _open_files(self) -> Set[str]:
        if self._open is not None:
            return self._open
        me = os.getpid()
        out: Set[str] = set()
        for proc in psutil.process_iter(["pid"]):
            if proc.info.get("pid") == me:
                continue
            try:
                for f in proc.open_files():
                    out.add(_norm(f.path))
            except (psutil.AccessDenied, psutil.NoSuchProcess, psutil.ZombieProcess):
                continue
            except OSError:
                continue
        self._open = out
        if self.logger:
            self.logger.debug("in-use probe sampled %d open file handles", len(out))
        return out

    def is_in_use(self, path: str) -> bool:
        if not os.path.exists(path):
            return False
        if os.path.isfile(path) and _exclusive_open_fails(path):
            return True
        target = _norm(path)
        opened = self._open_files()
        if os.path.isdir(path):
            prefix = target.rstrip(os.sep) + os.sep
            return any(p == target or p.startswith(prefix) for p in opened)
        return target in opened


def _exclusive_open_fails(path: str) -> bool:
    if os.name != "nt" or not os.access(path, os.W_OK):
        return False
    try:
        with open(path, "r+b"):
            return False
    except PermissionError:
        return True
    except OSError:
        return False
