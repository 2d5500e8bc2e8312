from __future__ import annotations

import json
import os
import zipfile
from typing import Any, Dict, Optional


def write_json(path: str, obj: Any) -> str:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, ensure_ascii=False)
        f.write("\n")
    return path


def write_text(path: str, text: str) -> str:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(text)
    return path


def read_text(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def manifest(apps=None, **extra: Any) -> Dict[str, Any]:
    out: Dict[str, Any] = {"version": 1, "name": extra.pop("name", "test"), "apps": list(apps or [])}
    out.update(extra)
    return out


def app(app_id: str, version: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    out: Dict[str, Any] = {"id": app_id}
    if version is not None:
        out["version"] = version
    out.update(extra)
    return out


def write_bundle(path: str, files: Dict[str, Any]) -> str:
    """files: archive name -> dict (written as JSON) or str."""
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with zipfile.ZipFile(path, "w") as z:
        for name, content in files.items():
            data = json.dumps(content) if isinstance(content, dict) else str(content)
            z.writestr(name, data)
    return path
