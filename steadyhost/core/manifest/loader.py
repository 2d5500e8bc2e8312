from __future__ import annotations

import json
import os
from typing import Any, Dict

import yaml

from steadyhost.core.errors import ManifestNotFound, ManifestParseError
from steadyhost.core.manifest import jsonc

MANIFEST_EXTENSIONS = (".jsonc", ".json", ".yaml", ".yml")


def is_yaml_path(path: str) -> bool:
    return path.lower().endswith((".yaml", ".yml"))


def parse_manifest_text(text: str, *, path: str = "<memory>") -> Dict[str, Any]:
    if is_yaml_path(path):
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ManifestParseError("Manifest YAML is malformed.", detail=str(e), path=path) from e
    else:
        try:
            data = jsonc.loads(text)
        except json.JSONDecodeError as e:
            raise ManifestParseError(
                "Manifest JSON is malformed.",
                detail=f"line {e.lineno} column {e.colno}: {e.msg}",
                path=path,
            ) from e
        except ValueError as e:
            raise ManifestParseError("Manifest JSON is malformed.", detail=str(e), path=path) from e
    if not isinstance(data, dict):
        raise ManifestParseError("Manifest must be an object at the top level.", path=path)
    return data


def read_manifest_bytes(path: str) -> bytes:
    if not os.path.isfile(path):
        raise ManifestNotFound(detail=path, path=path)
    with open(path, "rb") as f:
        return f.read()


def load_manifest_dict(path: str) -> Dict[str, Any]:
    raw = read_manifest_bytes(path)
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ManifestParseError("Manifest is not valid UTF-8.", detail=str(e), path=path) from e
    return parse_manifest_text(text, path=path)
