from __future__ import annotations

import os
import threading
from typing import Dict, Optional

from pydantic import ValidationError

from steadyhost.core.config.io import atomic_write_json, read_json_file, recover_from_corrupt, snapshot_last_known_good
from steadyhost.core.config.paths import StatePaths, ensure_dirs
from steadyhost.core.errors import SchemaIncompatible
from steadyhost.core.runid import dedupe_run_id, utc_now_iso
from steadyhost.core.state.models import (
    STATE_SCHEMA_VERSION,
    InstalledRecord,
    LastApplied,
    LastVerify,
    RunHistoryEntry,
    RunState,
)


class StateStore:
    """
    Sole owner of state/state.json.

    Every mutation is load -> modify copy -> atomic replace, so a crash
    mid-write never leaves a truncated file. A corrupt file is moved aside
    and the last-known-good copy restored. History is append-only.
    """

    def __init__(self, paths: StatePaths, *, logger=None, backup_keep: int = 10):
        self.paths = paths
        self.logger = logger
        self.backup_keep = int(backup_keep)
        self._lock = threading.Lock()

    # ---- read ----
    def load(self) -> RunState:
        rr = read_json_file(self.paths.state_file)
        if not rr.ok and rr.error == "missing":
            return RunState()
        data = rr.data
        if not rr.ok:
            if self.logger:
                self.logger.warning("State file unreadable (%s); recovering from last known good", rr.error)
            data, recovered = recover_from_corrupt(self.paths.state_file, self.paths.backups_dir, self.paths.last_known_good_dir)
            if not recovered:
                return RunState()
        version = int(data.get("schemaVersion") or STATE_SCHEMA_VERSION)
        if version > STATE_SCHEMA_VERSION:
            raise SchemaIncompatible(detail=f"state schemaVersion {version} > {STATE_SCHEMA_VERSION}", path=self.paths.state_file)
        try:
            return RunState.model_validate(data)
        except ValidationError as e:
            if self.logger:
                self.logger.warning("State file invalid (%s); starting fresh", e.error_count())
            return RunState()

    def allocate_run_id(self, run_id: str) -> str:
        st = self.load()
        taken = set(st.history)
        if os.path.isdir(self.paths.journals_dir):
            taken |= {f[:-5] for f in os.listdir(self.paths.journals_dir) if f.endswith(".json")}
        return dedupe_run_id(run_id, taken)

    # ---- write ----
    def save(self, state: RunState) -> None:
        ensure_dirs(self.paths.state_dir)
        atomic_write_json(self.paths.state_file, state.to_wire(), backups_dir=self.paths.backups_dir, max_backups=self.backup_keep)
        snapshot_last_known_good(self.paths.state_file, self.paths.last_known_good_dir)

    def record_apply(
        self,
        *,
        run_id: str,
        manifest_path: Optional[str],
        manifest_hash: str,
        summary: Dict[str, int],
        outcome: str,
        dry_run: bool,
        installed: Optional[Dict[str, InstalledRecord]] = None,
        interrupted: bool = False,
        timestamp: Optional[str] = None,
    ) -> RunState:
        ts = timestamp or utc_now_iso()
        with self._lock:
            st = self.load()
            prev_installed = dict(st.last_applied.installed) if st.last_applied else {}
            if dry_run or installed is None:
                new_installed = prev_installed
            else:
                new_installed = dict(installed)
            st.last_applied = LastApplied(
                run_id=run_id,
                manifest_path=manifest_path,
                manifest_hash=manifest_hash,
                timestamp_utc=ts,
                dry_run=bool(dry_run),
                outcome=str(outcome),
                summary=dict(summary),
                installed=new_installed,
            )
            self._append_history_locked(
                st,
                RunHistoryEntry(
                    run_id=run_id,
                    command="apply",
                    timestamp_utc=ts,
                    manifest_path=manifest_path,
                    manifest_hash=manifest_hash,
                    dry_run=bool(dry_run),
                    outcome=str(outcome),
                    interrupted=bool(interrupted),
                    summary=dict(summary),
                ),
            )
            self.save(st)
        if self.logger:
            self.logger.info("State recorded apply run %s (%s, dry_run=%s)", run_id, outcome, dry_run)
        return st

    def record_verify(
        self,
        *,
        run_id: str,
        manifest_path: Optional[str],
        manifest_hash: str,
        total: int,
        passed: int,
        failed: int,
        timestamp: Optional[str] = None,
    ) -> RunState:
        ts = timestamp or utc_now_iso()
        with self._lock:
            st = self.load()
            st.last_verify = LastVerify(
                run_id=run_id,
                manifest_path=manifest_path,
                manifest_hash=manifest_hash,
                timestamp_utc=ts,
                total=int(total),
                passed=int(passed),
                failed=int(failed),
                success=int(failed) == 0,
            )
            self._append_history_locked(
                st,
                RunHistoryEntry(
                    run_id=run_id,
                    command="verify",
                    timestamp_utc=ts,
                    manifest_path=manifest_path,
                    manifest_hash=manifest_hash,
                    outcome="success" if int(failed) == 0 else "partial",
                    summary={"total": int(total), "pass": int(passed), "fail": int(failed)},
                ),
            )
            self.save(st)
        return st

    def record_run(self, *, run_id: str, command: str, outcome: str, summary: Dict[str, int], manifest_path: Optional[str] = None, manifest_hash: Optional[str] = None) -> RunState:
        with self._lock:
            st = self.load()
            self._append_history_locked(
                st,
                RunHistoryEntry(
                    run_id=run_id,
                    command=command,
                    timestamp_utc=utc_now_iso(),
                    manifest_path=manifest_path,
                    manifest_hash=manifest_hash,
                    outcome=outcome,
                    summary=dict(summary),
                ),
            )
            self.save(st)
        return st

    def _append_history_locked(self, st: RunState, entry: RunHistoryEntry) -> None:
        key = entry.run_id
        if key in st.history:
            # never overwrite history; same run id recorded twice gets a command suffix
            key = dedupe_run_id(f"{entry.run_id}.{entry.command}", set(st.history))
        st.history[key] = entry
