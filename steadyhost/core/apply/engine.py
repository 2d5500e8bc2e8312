from __future__ import annotations

import os
from typing import Dict, Iterable, List, Optional

from steadyhost.core.apply.models import SUCCESS_STATUSES, ApplyReport, ApplySummary, ItemResult, ItemStatus
from steadyhost.core.apply.scheduler import InstallScheduler
from steadyhost.core.config.io import atomic_write_json
from steadyhost.core.config.models import EngineConfig
from steadyhost.core.config.paths import StatePaths
from steadyhost.core.drivers.registry import DriverRegistry
from steadyhost.core.errors import InstallFailed
from steadyhost.core.events.stream import EventStream, NullEventStream
from steadyhost.core.manifest.resolver import ResolvedManifest
from steadyhost.core.plan.generator import plan_for
from steadyhost.core.plan.models import CurrentState, Decision, Plan, PlannedAction
from steadyhost.core.restore.engine import RestoreEngine
from steadyhost.core.restore.journal import read_journal
from steadyhost.core.restore.inuse import InUseProbe
from steadyhost.core.restore.models import RestoreJournal
from steadyhost.core.restore.sensitivity import SensitivePathPolicy
from steadyhost.core.runid import new_run_id, utc_now_iso
from steadyhost.core.state.models import InstalledRecord
from steadyhost.core.state.store import StateStore


class ApplyEngine:
    """
    Executes a plan: installs/upgrades through the drivers, then (optionally)
    restores configuration, then persists the report and run state.

    Fatal problems (driver missing) surface before any action runs. Per-item
    failures are recorded and never abort the batch.
    """

    def __init__(
        self,
        *,
        registry: DriverRegistry,
        paths: StatePaths,
        store: Optional[StateStore] = None,
        config: Optional[EngineConfig] = None,
        in_use: Optional[InUseProbe] = None,
        events: Optional[EventStream] = None,
        logger=None,
    ):
        self.registry = registry
        self.paths = paths
        self.config = config or EngineConfig()
        self.store = store or StateStore(paths, logger=logger, backup_keep=self.config.backup_keep)
        self.in_use = in_use
        self.events = events or NullEventStream()
        self.logger = logger

    # ---------- public API ----------
    def apply(
        self,
        resolved: Optional[ResolvedManifest] = None,
        *,
        plan: Optional[Plan] = None,
        run_id: Optional[str] = None,
        dry_run: bool = False,
        enable_restore: bool = True,
        export_root: Optional[str] = None,
        warnings: Iterable[str] = (),
    ) -> ApplyReport:
        if resolved is None and plan is None:
            raise ValueError("apply needs a resolved manifest or a plan")
        run_id = self.store.allocate_run_id(run_id or new_run_id(host_qualified=self.config.host_qualified_run_ids))
        started = utc_now_iso()
        warnings = list(warnings)
        self.events.run_id = self.events.run_id or run_id
        self.events.phase("plan", runId=run_id, dryRun=bool(dry_run))

        if plan is None:
            plan, _ = plan_for(
                resolved.manifest,
                self.registry,
                manifest_hash=resolved.manifest_hash,
                manifest_path=resolved.path,
                logger=self.logger,
            )
        else:
            if resolved is not None and resolved.manifest_hash != plan.manifest_hash:
                warnings.append("plan was generated from a different manifest revision")
            # a pre-generated plan skipped inventory; still refuse to start without its drivers
            self.registry.require_available({a.driver for a in plan.actions if a.decision != Decision.skip})

        manifest_hash = plan.manifest_hash
        manifest_path = resolved.path if resolved is not None else plan.manifest_path
        for w in warnings:
            self.events.warning(w)
            if self.logger:
                self.logger.warning("apply: %s", w)

        scheduler = InstallScheduler(
            max_parallel=self.config.max_parallel,
            unsafe_patterns=self.config.unsafe_parallel_patterns,
            logger=self.logger,
        )
        skipped = {a.app_id: self._skip_result(a, dry_run=dry_run) for a in plan.actions if a.decision == Decision.skip or dry_run}
        to_run = [a for a in plan.actions if a.app_id not in skipped]

        self.events.phase("install", total=len(plan.actions), dryRun=bool(dry_run))
        for res in skipped.values():
            self._emit_item(res)

        journal: Optional[RestoreJournal] = None
        try:
            scheduler.run(to_run, self._execute, on_result=self._emit_item)
            if enable_restore and not dry_run and resolved is not None and resolved.manifest.restore:
                journal = self._restore(resolved, run_id=run_id, export_root=export_root)
        except KeyboardInterrupt:
            # the restore phase persists its own partial journal before re-raising
            if journal is None and os.path.isfile(self.paths.journal_path(run_id)):
                journal = read_journal(self.paths.journal_path(run_id))
            items = self._ordered(plan, skipped, scheduler.completed)
            if self.logger:
                self.logger.warning("apply interrupted after %d of %d actions", len(items), len(plan.actions))
            self._finish(
                run_id=run_id,
                started=started,
                manifest_path=manifest_path,
                manifest_hash=manifest_hash,
                dry_run=dry_run,
                items=items,
                journal=journal,
                warnings=warnings,
                interrupted=True,
            )
            raise

        items = self._ordered(plan, skipped, scheduler.completed)
        return self._finish(
            run_id=run_id,
            started=started,
            manifest_path=manifest_path,
            manifest_hash=manifest_hash,
            dry_run=dry_run,
            items=items,
            journal=journal,
            warnings=warnings,
            interrupted=False,
        )

    # ---------- internals ----------
    @staticmethod
    def _ordered(plan: Plan, skipped: Dict[str, ItemResult], completed: Dict[str, ItemResult]) -> List[ItemResult]:
        out: List[ItemResult] = []
        for a in plan.actions:
            res = skipped.get(a.app_id) or completed.get(a.app_id)
            if res is not None:
                out.append(res)
        return out

    @staticmethod
    def _skip_result(a: PlannedAction, *, dry_run: bool) -> ItemResult:
        if a.decision == Decision.install:
            status, msg = ItemStatus.installed, "would install"
        elif a.decision == Decision.upgrade:
            status, msg = ItemStatus.upgraded, "would upgrade"
        elif a.current_state == CurrentState.version_mismatch:
            status, msg = ItemStatus.skipped_filtered, a.reason
        else:
            status, msg = ItemStatus.already_installed, a.reason
        return ItemResult(
            app_id=a.app_id,
            driver=a.driver,
            ref=a.ref,
            decision=a.decision,
            status=status,
            version=a.installed_version,
            message=msg,
            dry_run=dry_run,
        )

    def _execute(self, a: PlannedAction) -> ItemResult:
        base = {"app_id": a.app_id, "driver": a.driver, "ref": a.ref, "decision": a.decision}
        try:
            driver = self.registry.get(a.driver)
            res = driver.upgrade(a.ref) if a.decision == Decision.upgrade else driver.install(a.ref)
        except Exception as e:  # noqa: BLE001
            err = InstallFailed(detail=f"{type(e).__name__}: {e}", app_id=a.app_id)
            return ItemResult(**base, status=ItemStatus.failed, message=err.user_message, error=err.to_dict())
        if not res.ok:
            err = InstallFailed(detail=res.message or f"exit code {res.exit_code}", app_id=a.app_id)
            return ItemResult(**base, status=ItemStatus.failed, message=res.message, error=err.to_dict())
        if res.already_installed:
            status = ItemStatus.already_installed
        elif a.decision == Decision.upgrade:
            status = ItemStatus.upgraded
        else:
            status = ItemStatus.installed
        return ItemResult(**base, status=status, version=res.version, message=res.message)

    def _emit_item(self, res: ItemResult) -> None:
        fields = {"driver": res.driver, "decision": res.decision.value}
        if res.error:
            fields["error"] = res.error
        self.events.item(res.app_id, res.status.value, **fields)
        if self.logger:
            if res.status == ItemStatus.failed:
                self.logger.warning("apply %s failed: %s", res.app_id, res.message)
            else:
                self.logger.info("apply %s: %s", res.app_id, res.status.value)

    def _restore(self, resolved: ResolvedManifest, *, run_id: str, export_root: Optional[str]) -> RestoreJournal:
        engine = RestoreEngine(
            paths=self.paths,
            sensitive=SensitivePathPolicy(self.config.sensitive_paths),
            in_use=self.in_use,
            events=self.events,
            logger=self.logger,
        )
        return engine.run(
            resolved.manifest.restore,
            run_id=run_id,
            manifest_path=resolved.path,
            manifest_dir=resolved.manifest_dir,
            export_root=export_root,
        )

    def _installed_map(self, items: List[ItemResult]) -> Dict[str, InstalledRecord]:
        st = self.store.load()
        out = dict(st.last_applied.installed) if st.last_applied else {}
        for it in items:
            if it.status in SUCCESS_STATUSES:
                out[it.app_id] = InstalledRecord(driver=it.driver, ref=it.ref, version=it.version)
        return out

    def _finish(
        self,
        *,
        run_id: str,
        started: str,
        manifest_path: Optional[str],
        manifest_hash: str,
        dry_run: bool,
        items: List[ItemResult],
        journal: Optional[RestoreJournal],
        warnings: List[str],
        interrupted: bool,
    ) -> ApplyReport:
        summary = ApplySummary.from_items(items)
        report = ApplyReport(
            run_id=run_id,
            manifest_path=manifest_path,
            manifest_hash=manifest_hash,
            started_utc=started,
            finished_utc=utc_now_iso(),
            dry_run=dry_run,
            interrupted=interrupted,
            summary=summary,
            items=items,
            restore_counts=journal.counts() if journal is not None else None,
            journal_path=self.paths.journal_path(run_id) if journal is not None else None,
            warnings=warnings,
        )
        report_path = self.paths.report_path(run_id)
        atomic_write_json(report_path, report.to_wire())
        self.events.artifact("report", report_path)

        self.store.record_apply(
            run_id=run_id,
            manifest_path=manifest_path,
            manifest_hash=manifest_hash,
            summary=summary.to_wire(),
            outcome=report.outcome.value,
            dry_run=dry_run,
            installed=None if dry_run else self._installed_map(items),
            interrupted=interrupted,
        )
        self.events.summary(outcome=report.outcome.value, counts=summary.to_wire(), restore=report.restore_counts)
        if self.logger:
            self.logger.info("Apply %s finished: %s (%s)", run_id, report.outcome.value, summary.to_wire())
        return report
