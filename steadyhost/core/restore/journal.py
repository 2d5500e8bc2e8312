from __future__ import annotations

import os
from typing import List, Optional

from pydantic import ValidationError

from steadyhost.core.config.io import atomic_write_json, read_json_file
from steadyhost.core.config.paths import StatePaths
from steadyhost.core.errors import JournalNotFound, JournalParseError, SchemaIncompatible
from steadyhost.core.restore.models import JOURNAL_SCHEMA_VERSION, RestoreJournal


def write_journal(paths: StatePaths, journal: RestoreJournal) -> str:
    path = paths.journal_path(journal.run_id)
    atomic_write_json(path, journal.to_wire())
    return path


def read_journal(path: str) -> RestoreJournal:
    rr = read_json_file(path)
    if not rr.ok:
        if rr.error == "missing":
            raise JournalNotFound(detail=path, path=path)
        raise JournalParseError(detail=rr.error, path=path)
    version = int(rr.data.get("schemaVersion") or JOURNAL_SCHEMA_VERSION)
    if version > JOURNAL_SCHEMA_VERSION:
        raise SchemaIncompatible(detail=f"journal schemaVersion {version} > {JOURNAL_SCHEMA_VERSION}", path=path)
    try:
        return RestoreJournal.model_validate(rr.data)
    except ValidationError as e:
        raise JournalParseError(detail=str(e), path=path) from e


def list_journals(paths: StatePaths) -> List[str]:
    """Journal paths, most recently written first."""
    d = paths.journals_dir
    if not os.path.isdir(d):
        return []
    names = [f for f in os.listdir(d) if f.endswith(".json") and not f.startswith(".tmp_")]
    items = [os.path.join(d, f) for f in names]
    items.sort(key=lambda p: (os.path.getmtime(p), os.path.basename(p)), reverse=True)
    return items


def latest_journal(paths: StatePaths) -> Optional[str]:
    items = list_journals(paths)
    return items[0] if items else None


def find_journal(paths: StatePaths, ref: Optional[str]) -> str:
    """`ref` is a run id, a journal path, or None for the most recent journal."""
    if not ref:
        latest = latest_journal(paths)
        if latest is None:
            raise JournalNotFound("No restore journals recorded yet.")
        return latest
    if os.path.isfile(ref):
        return os.path.abspath(ref)
    candidate = paths.journal_path(ref)
    if os.path.isfile(candidate):
        return candidate
    raise JournalNotFound(detail=ref, ref=ref)
