from __future__ import annotations

import configparser
import io
import json
import os
import tempfile
from typing import Any, Dict

from steadyhost.core.config.paths import ensure_dirs
from steadyhost.core.manifest import jsonc


def deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Objects merge recursively; anything else (arrays included) from `overlay` wins."""
    out = dict(base)
    for k, v in overlay.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _read_text(path: str) -> str:
    with open(path, "r", encoding="utf-8-sig") as f:
        return f.read()


def _atomic_write_text(path: str, text: str) -> None:
    ensure_dirs(os.path.dirname(path) or ".")
    fd, tmp = tempfile.mkstemp(prefix=".tmp_", dir=os.path.dirname(path) or ".")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            try:
                os.remove(tmp)
            except OSError:
                pass


def _load_object(path: str) -> Dict[str, Any]:
    text = _read_text(path)
    data = jsonc.loads(text) if text.strip() else {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a JSON object")
    return data


def merge_json(source: str, target: str) -> None:
    merged = deep_merge(_load_object(target), _load_object(source))
    _atomic_write_text(target, json.dumps(merged, indent=2, ensure_ascii=False) + "\n")


def _ini_parser() -> configparser.ConfigParser:
    cp = configparser.ConfigParser(interpolation=None, strict=False)
    cp.optionxform = str  # keep key case
    return cp


def merge_ini(source: str, target: str) -> None:
    cp = _ini_parser()
    cp.read_string(_read_text(target), source=target)
    cp.read_string(_read_text(source), source=source)
    buf = io.StringIO()
    cp.write(buf)
    _atomic_write_text(target, buf.getvalue())


def append_needed(source: str, target: str) -> bool:
    snippet = _read_text(source)
    if not snippet.strip():
        return False
    if not os.path.exists(target):
        return True
    return snippet.strip() not in _read_text(target)


def append_text(source: str, target: str) -> bool:
    """Append the source text once; returns False when the target already holds it."""
    if not append_needed(source, target):
        return False
    snippet = _read_text(source)
    existing = _read_text(target) if os.path.exists(target) else ""
    if existing and not existing.endswith("\n"):
        existing += "\n"
    if not snippet.endswith("\n"):
        snippet += "\n"
    _atomic_write_text(target, existing + snippet)
    return True
