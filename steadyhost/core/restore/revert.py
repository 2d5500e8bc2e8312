"""
Undo a restore run from its journal.

Entries are replayed newest first:
- backup recorded      -> copy the backup back over the target
- target was created   -> delete it
- overwritten, no backup -> not revertible, reported
- failed after its backup -> copy the backup back
- anything else skipped/failed -> nothing to undo

Running revert twice converges: restoring a backup again is a no-op in
effect, and a deleted target stays absent.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from steadyhost.core.events.stream import EventStream, NullEventStream
from steadyhost.core.restore.fsops import copy_path, remove_path
from steadyhost.core.restore.models import EntryAction, RestoreJournal

RESTORED_BACKUP = "restored_backup"
DELETED = "deleted"
NOOP = "noop"
NOT_REVERTIBLE = "not_revertible"
FAILED = "failed"


@dataclass(frozen=True)
class RevertedEntry:
    target: str
    action: str
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"target": self.target, "action": self.action}
        if self.detail:
            out["detail"] = self.detail
        return out


@dataclass
class RevertResult:
    run_id: str
    dry_run: bool = False
    entries: List[RevertedEntry] = field(default_factory=list)

    def counts(self) -> Dict[str, int]:
        out = {k: 0 for k in (RESTORED_BACKUP, DELETED, NOOP, NOT_REVERTIBLE, FAILED)}
        for e in self.entries:
            out[e.action] = out.get(e.action, 0) + 1
        return out

    @property
    def ok(self) -> bool:
        c = self.counts()
        return c[FAILED] == 0 and c[NOT_REVERTIBLE] == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runId": self.run_id,
            "dryRun": self.dry_run,
            "counts": self.counts(),
            "entries": [e.to_dict() for e in self.entries],
        }


def revert_journal(journal: RestoreJournal, *, dry_run: bool = False, events: Optional[EventStream] = None, logger=None) -> RevertResult:
    events = events or NullEventStream()
    result = RevertResult(run_id=journal.run_id, dry_run=dry_run)
    events.phase("revert", journal=journal.run_id, dryRun=bool(dry_run))
    for e in reversed(journal.entries):
        r = _revert_entry(e, dry_run=dry_run)
        result.entries.append(r)
        events.item(r.target, r.action, detail=r.detail)
        if logger:
            logger.info("revert %s: %s%s", r.target, r.action, f" ({r.detail})" if r.detail else "")
    return result


def _revert_entry(e: Any, *, dry_run: bool) -> RevertedEntry:
    backed_up = bool(e.backup_created and e.backup_path)
    if e.action != EntryAction.restored and not (e.action == EntryAction.failed and backed_up):
        return RevertedEntry(e.target, NOOP, f"entry was {e.action.value}")
    try:
        if backed_up:
            if not os.path.exists(e.backup_path):
                return RevertedEntry(e.target, FAILED, f"backup missing: {e.backup_path}")
            if not dry_run:
                copy_path(e.backup_path, e.target)
            return RevertedEntry(e.target, RESTORED_BACKUP)
        if not e.target_existed_before:
            if not os.path.lexists(e.target):
                return RevertedEntry(e.target, NOOP, "already absent")
            if not dry_run:
                remove_path(e.target)
            return RevertedEntry(e.target, DELETED)
    except OSError as ex:
        return RevertedEntry(e.target, FAILED, f"{type(ex).__name__}: {ex}")
    return RevertedEntry(e.target, NOT_REVERTIBLE, "target was overwritten without a backup")
