from __future__ import annotations

import configparser
import os
from typing import Any, Dict, Iterable, List, Optional

from steadyhost.core.config.paths import StatePaths
from steadyhost.core.errors import RequiredSourceNotFound
from steadyhost.core.events.stream import EventStream, NullEventStream
from steadyhost.core.manifest.models import ConflictPolicy
from steadyhost.core.restore.fsops import backup_target, copy_path, relative_backup_path
from steadyhost.core.restore.inuse import InUseProbe
from steadyhost.core.restore.journal import write_journal
from steadyhost.core.restore.merge import append_needed, append_text, merge_ini, merge_json
from steadyhost.core.restore.models import EntryAction, JournalEntry, RestoreJournal
from steadyhost.core.restore.sensitivity import SensitivePathPolicy, expand_path
from steadyhost.core.runid import utc_now_iso


def resolve_source(source: str, source_root: str) -> str:
    src = expand_path(source)
    if os.path.isabs(src):
        return os.path.normpath(src)
    return os.path.normpath(os.path.join(source_root, src))


class RestoreEngine:
    """
    Applies restore entries in manifest order and records one journal entry
    each. Per-entry problems never abort the run; they land in the journal
    as `failed` or one of the `skipped_*` actions.
    """

    def __init__(
        self,
        *,
        paths: StatePaths,
        sensitive: Optional[SensitivePathPolicy] = None,
        in_use: Optional[InUseProbe] = None,
        events: Optional[EventStream] = None,
        logger=None,
    ):
        self.paths = paths
        self.sensitive = sensitive or SensitivePathPolicy()
        self.in_use = in_use or InUseProbe(logger=logger)
        self.events = events or NullEventStream()
        self.logger = logger

    def run(
        self,
        entries: Iterable[Any],
        *,
        run_id: str,
        manifest_path: str = "",
        manifest_dir: str = "",
        export_root: Optional[str] = None,
        dry_run: bool = False,
        timestamp: Optional[str] = None,
    ) -> RestoreJournal:
        source_root = os.path.abspath(export_root or manifest_dir or os.getcwd())
        header = {
            "run_id": run_id,
            "timestamp_utc": timestamp or utc_now_iso(),
            "manifest_path": manifest_path or "",
            "manifest_dir": os.path.abspath(manifest_dir) if manifest_dir else "",
            "export_root": os.path.abspath(export_root) if export_root else None,
            "dry_run": bool(dry_run),
        }
        done: List[JournalEntry] = []
        # first backup per target in this run; later entries reuse it
        backups: Dict[str, str] = {}
        self.events.phase("restore", dryRun=bool(dry_run))
        try:
            for entry in entries:
                je = self._restore_one(entry, run_id=run_id, source_root=source_root, dry_run=dry_run, backups=backups)
                done.append(je)
                self._report(je)
        except KeyboardInterrupt:
            self._persist(RestoreJournal(**header, interrupted=True, entries=done))
            raise
        return self._persist(RestoreJournal(**header, entries=done))

    # ---------- internals ----------
    def _persist(self, journal: RestoreJournal) -> RestoreJournal:
        if journal.dry_run:
            return journal
        path = write_journal(self.paths, journal)
        self.events.artifact("journal", path)
        if self.logger:
            self.logger.info("Restore journal written: %s (%s)", path, journal.counts())
        return journal

    def _report(self, je: JournalEntry) -> None:
        fields = {"target": je.target, "type": je.type}
        if je.error:
            fields["error"] = je.error
        self.events.item(je.target, je.action.value, **fields)
        for w in je.warnings:
            self.events.warning(w, target=je.target)
        if self.logger:
            if je.action == EntryAction.failed:
                self.logger.warning("restore %s -> %s failed: %s", je.source, je.target, je.error)
            else:
                self.logger.info("restore %s -> %s: %s", je.source, je.target, je.action.value)

    def _restore_one(self, entry: Any, *, run_id: str, source_root: str, dry_run: bool, backups: Dict[str, str]) -> JournalEntry:
        source = resolve_source(entry.source, source_root)
        target = os.path.abspath(expand_path(entry.target))
        base = {"source": source, "target": target, "type": entry.type, "module_id": entry.module_id}
        warnings: List[str] = []

        if not os.path.exists(source):
            if entry.optional:
                return JournalEntry(**base, action=EntryAction.skipped_missing_source)
            err = RequiredSourceNotFound(detail=source, source=source)
            return JournalEntry(**base, action=EntryAction.failed, error=f"{err.code}: {source}")

        decision = self.sensitive.evaluate(target, sensitivity=entry.sensitivity, restorer=entry.restorer)
        if decision.warning:
            warnings.append(decision.warning)
        if decision.blocked:
            return JournalEntry(**base, action=EntryAction.skipped_sensitive, warnings=warnings)

        existed = os.path.lexists(target)
        base["target_existed_before"] = existed
        if existed and self.in_use.is_in_use(target):
            return JournalEntry(**base, action=EntryAction.skipped_in_use, warnings=warnings)

        if entry.type == "copy":
            if existed and entry.on_conflict == ConflictPolicy.skip:
                return JournalEntry(**base, action=EntryAction.skipped_exists, warnings=warnings)
            backup_requested = existed and entry.on_conflict == ConflictPolicy.backup_and_overwrite
        else:
            if entry.type == "append" and existed and not append_needed(source, target):
                return JournalEntry(**base, action=EntryAction.skipped_exists, warnings=warnings)
            backup_requested = existed and bool(entry.backup)

        backup_root = self.paths.run_backup_dir(run_id)
        key = os.path.normcase(target)
        planned_backup = None
        if backup_requested:
            planned_backup = backups.get(key) or os.path.abspath(os.path.join(backup_root, relative_backup_path(target)))
        base["backup_requested"] = backup_requested

        if dry_run:
            return JournalEntry(**base, backup_path=planned_backup, action=EntryAction.restored, warnings=warnings)

        backup_path: Optional[str] = None
        try:
            if backup_requested:
                backup_path = backups.get(key)
                if backup_path is None:
                    backup_path = os.path.abspath(backup_target(target, backup_root))
                    backups[key] = backup_path
            if not existed or entry.type == "copy":
                copy_path(source, target)
            elif entry.type == "merge-json":
                merge_json(source, target)
            elif entry.type == "merge-ini":
                merge_ini(source, target)
            else:
                append_text(source, target)
        except (OSError, ValueError, configparser.Error) as e:
            return JournalEntry(
                **base,
                backup_created=backup_path is not None,
                backup_path=backup_path,
                action=EntryAction.failed,
                error=f"{type(e).__name__}: {e}",
                warnings=warnings,
            )
        return JournalEntry(
            **base,
            backup_created=backup_path is not None,
            backup_path=backup_path,
            action=EntryAction.restored,
            warnings=warnings,
        )
