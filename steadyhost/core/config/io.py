from __future__ import annotations

import json
import os
import shutil
import tempfile
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from steadyhost.core.config.paths import ensure_dirs


@dataclass(frozen=True)
class ReadResult:
    ok: bool
    data: Dict[str, Any]
    error: Optional[str] = None


def read_json_file(path: str) -> ReadResult:
    """`error` is "missing", "not_object", "corrupt_json:<msg>" or an OS error string."""
    if not os.path.exists(path):
        return ReadResult(ok=False, data={}, error="missing")
    try:
        with open(path, "r", encoding="utf-8") as f:
            obj = json.load(f)
    except json.JSONDecodeError as e:
        return ReadResult(ok=False, data={}, error=f"corrupt_json:{e}")
    except OSError as e:
        return ReadResult(ok=False, data={}, error=str(e))
    if not isinstance(obj, dict):
        return ReadResult(ok=False, data={}, error="not_object")
    return ReadResult(ok=True, data=obj)


def _stem(path: str) -> str:
    return os.path.splitext(os.path.basename(path))[0]


def _backup_name(path: str, kind: str) -> str:
    # state.json -> state.20260101_120000.prewrite.json
    return f"{_stem(path)}.{time.strftime('%Y%m%d_%H%M%S', time.gmtime())}.{kind}.json"


def _backups_of(path: str, backups_dir: str, kind: str) -> List[str]:
    if not os.path.isdir(backups_dir):
        return []
    prefix, suffix = f"{_stem(path)}.", f".{kind}.json"
    return [
        os.path.join(backups_dir, f)
        for f in os.listdir(backups_dir)
        if f.startswith(prefix) and f.endswith(suffix) and os.path.isfile(os.path.join(backups_dir, f))
    ]


def backup_copy(path: str, backups_dir: str, *, kind: str, keep: int = 10) -> Optional[str]:
    """Copy `path` aside and prune older copies of the same kind beyond `keep`."""
    if not os.path.isfile(path):
        return None
    ensure_dirs(backups_dir)
    dest = os.path.join(backups_dir, _backup_name(path, kind))
    try:
        shutil.copy2(path, dest)
    except OSError:
        return None
    older = sorted(_backups_of(path, backups_dir, kind), key=os.path.getmtime, reverse=True)
    for p in older[max(1, int(keep)):]:
        try:
            os.remove(p)
        except OSError:
            pass
    return dest


def atomic_write_json(path: str, data: Any, *, backups_dir: Optional[str] = None, max_backups: int = 10) -> None:
    """Serialize next to the target, fsync, then rename over it. Readers never see a partial file."""
    parent = os.path.dirname(path) or "."
    ensure_dirs(parent)
    if backups_dir:
        backup_copy(path, backups_dir, kind="prewrite", keep=max_backups)
    payload = json.dumps(data, indent=2, ensure_ascii=False, sort_keys=True) + "\n"
    fd, tmp = tempfile.mkstemp(prefix=".tmp_", suffix=".json", dir=parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            try:
                os.fsync(f.fileno())
            except OSError:
                pass
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            try:
                os.remove(tmp)
            except OSError:
                pass


def snapshot_last_known_good(path: str, last_known_good_dir: str) -> None:
    """Called after every successful save; the copy is what recovery falls back to."""
    if not os.path.isfile(path):
        return
    ensure_dirs(last_known_good_dir)
    try:
        shutil.copy2(path, os.path.join(last_known_good_dir, os.path.basename(path)))
    except OSError:
        return


def recover_from_corrupt(path: str, backups_dir: str, last_known_good_dir: str) -> Tuple[Dict[str, Any], bool]:
    """
    Move an unreadable file aside as `<stem>.<ts>.corrupt.json` and put the
    last-known-good copy back in its place.

    Returns (data, recovered). Without a usable snapshot the caller starts
    from defaults and the corrupt copy stays in `backups_dir` for inspection.
    """
    if os.path.exists(path):
        ensure_dirs(backups_dir)
        try:
            shutil.move(path, os.path.join(backups_dir, _backup_name(path, "corrupt")))
        except OSError:
            pass
    snapshot = read_json_file(os.path.join(last_known_good_dir, os.path.basename(path)))
    if not snapshot.ok:
        return {}, False
    atomic_write_json(path, snapshot.data)
    return snapshot.data, True
