from __future__ import annotations

import contextlib
import os
import shutil
import tempfile
import zipfile
from typing import Iterator, Optional, Tuple

from steadyhost.core.errors import ManifestNotFound, ManifestParseError
from steadyhost.core.manifest.loader import MANIFEST_EXTENSIONS

BUNDLE_EXTENSIONS = (".zip",)
BUNDLE_MANIFEST_NAMES = tuple(f"manifest{ext}" for ext in MANIFEST_EXTENSIONS)


def is_bundle_path(path: str) -> bool:
    return str(path).lower().endswith(BUNDLE_EXTENSIONS)


def _safe_extract(z: zipfile.ZipFile, dest: str) -> None:
    root = os.path.realpath(dest)
    for info in z.infolist():
        out = os.path.realpath(os.path.join(dest, info.filename))
        if out != root and not out.startswith(root + os.sep):
            raise ManifestParseError("Bundle contains a path outside its root.", detail=info.filename)
    z.extractall(dest)


def find_bundle_manifest(bundle_dir: str) -> Optional[str]:
    for name in BUNDLE_MANIFEST_NAMES:
        p = os.path.join(bundle_dir, name)
        if os.path.isfile(p):
            return p
    # single top-level folder (zip of a directory)
    entries = [e for e in os.listdir(bundle_dir) if not e.startswith(".")]
    if len(entries) == 1 and os.path.isdir(os.path.join(bundle_dir, entries[0])):
        return find_bundle_manifest(os.path.join(bundle_dir, entries[0]))
    return None


@contextlib.contextmanager
def expanded_bundle(path: str) -> Iterator[Tuple[str, str]]:
    """
    Expand a bundle archive into a private temp dir.
    Yields (bundle_dir, manifest_path). The temp dir is removed on every exit path.
    """
    if not os.path.isfile(path):
        raise ManifestNotFound("Bundle not found.", detail=path, path=path)
    tmp = tempfile.mkdtemp(prefix="steadyhost_bundle_")
    try:
        try:
            with zipfile.ZipFile(path, "r") as z:
                _safe_extract(z, tmp)
        except zipfile.BadZipFile as e:
            raise ManifestParseError("Bundle is not a valid zip archive.", detail=str(e), path=path) from e
        manifest_path = find_bundle_manifest(tmp)
        if manifest_path is None:
            raise ManifestNotFound("Bundle has no manifest.", detail=path, path=path)
        yield os.path.dirname(manifest_path), manifest_path
    finally:
        shutil.rmtree(tmp, ignore_errors=True)
