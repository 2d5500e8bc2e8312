from __future__ import annotations

import os
from typing import List, Optional, Tuple

from steadyhost.core.apply.engine import ApplyEngine
from steadyhost.core.apply.models import ApplyReport
from steadyhost.core.config.models import EngineConfig
from steadyhost.core.config.paths import StatePaths
from steadyhost.core.drivers.registry import DriverRegistry, snapshot_inventory
from steadyhost.core.errors import SteadyError
from steadyhost.core.events.envelope import Outcome
from steadyhost.core.events.stream import EventStream, NullEventStream
from steadyhost.core.manifest.capture import capture_manifest, write_manifest
from steadyhost.core.manifest.catalog import ConfigModuleCatalog
from steadyhost.core.manifest.models import Manifest
from steadyhost.core.manifest.resolver import ManifestResolver, ResolvedManifest
from steadyhost.core.plan.generator import plan_for
from steadyhost.core.plan.io import read_plan, write_plan
from steadyhost.core.plan.models import Plan
from steadyhost.core.restore.engine import RestoreEngine
from steadyhost.core.restore.inuse import InUseProbe
from steadyhost.core.restore.journal import find_journal, read_journal
from steadyhost.core.restore.models import RestoreJournal
from steadyhost.core.restore.revert import RevertResult, revert_journal
from steadyhost.core.restore.sensitivity import SensitivePathPolicy
from steadyhost.core.runid import new_run_id
from steadyhost.core.state.drift import DriftReport, compute_drift
from steadyhost.core.state.store import StateStore
from steadyhost.core.verify.checks import Runner
from steadyhost.core.verify.engine import VerifyEngine, VerifyReport


class Provisioner:
    """
    One object per invocation wiring config, registry, catalog and state
    together. Every collaborator is passed in or built here once; nothing
    is global.
    """

    def __init__(
        self,
        *,
        config: EngineConfig,
        registry: DriverRegistry,
        catalog: Optional[ConfigModuleCatalog] = None,
        in_use: Optional[InUseProbe] = None,
        runner: Optional[Runner] = None,
        events: Optional[EventStream] = None,
        logger=None,
    ):
        self.config = config
        self.registry = registry
        self.paths = StatePaths(config.state_root)
        self.catalog = catalog if catalog is not None else ConfigModuleCatalog.from_dir(config.catalog_dir)
        self.in_use = in_use
        self.runner = runner
        self.events = events or NullEventStream()
        self.logger = logger
        self.store = StateStore(self.paths, logger=logger, backup_keep=config.backup_keep)
        self.resolver = ManifestResolver(manifests_root=config.manifests_root, catalog=self.catalog, logger=logger)

    def _run_id(self, run_id: Optional[str] = None) -> str:
        rid = self.store.allocate_run_id(run_id or new_run_id(host_qualified=self.config.host_qualified_run_ids))
        if not self.events.run_id:
            self.events.run_id = rid
        return rid

    # ---- manifest / plan ----
    def resolve(self, ref: str) -> ResolvedManifest:
        self.events.phase("resolve", manifest=ref)
        resolved = self.resolver.resolve(ref)
        for w in resolved.warnings:
            self.events.warning(w)
        return resolved

    def plan(self, ref: str, *, save: bool = False, out_path: Optional[str] = None) -> Tuple[Plan, Optional[str]]:
        run_id = self._run_id()
        resolved = self.resolve(ref)
        self.events.phase("plan")
        plan, _ = plan_for(resolved.manifest, self.registry, manifest_hash=resolved.manifest_hash, manifest_path=resolved.path, logger=self.logger)
        for a in plan.actions:
            self.events.item(a.app_id, a.decision.value, currentState=a.current_state.value)
        path = None
        if save or out_path:
            path = write_plan(plan, out_path or self.paths.plan_path(run_id))
            self.events.artifact("plan", path)
        return plan, path

    # ---- apply ----
    def apply(
        self,
        ref: Optional[str] = None,
        *,
        plan_path: Optional[str] = None,
        dry_run: bool = False,
        enable_restore: bool = True,
        export_root: Optional[str] = None,
    ) -> ApplyReport:
        run_id = self._run_id()
        plan = read_plan(plan_path) if plan_path else None
        resolved = None
        warnings: List[str] = []
        if ref:
            resolved = self.resolve(ref)
        elif plan is not None and plan.manifest_path:
            resolved = self._resolve_for_plan(plan, warnings)
        engine = ApplyEngine(
            registry=self.registry,
            paths=self.paths,
            store=self.store,
            config=self.config,
            in_use=self.in_use,
            events=self.events,
            logger=self.logger,
        )
        return engine.apply(
            resolved,
            plan=plan,
            run_id=run_id,
            dry_run=dry_run,
            enable_restore=enable_restore,
            export_root=export_root,
            warnings=warnings,
        )

    def _resolve_for_plan(self, plan: Plan, warnings: List[str]) -> Optional[ResolvedManifest]:
        """The plan alone drives installs; its manifest is only needed for restore entries."""
        if not os.path.isfile(plan.manifest_path):
            warnings.append(f"manifest {plan.manifest_path} no longer exists; restore skipped")
            return None
        try:
            return self.resolve(plan.manifest_path)
        except SteadyError as e:
            if self.logger:
                self.logger.warning("Plan manifest unusable: %s", e)
            warnings.append(f"manifest {plan.manifest_path} could not be loaded ({e.code}); restore skipped")
            return None

    # ---- restore / revert ----
    def restore(self, ref: str, *, export_root: Optional[str] = None, dry_run: bool = False) -> RestoreJournal:
        run_id = self._run_id()
        resolved = self.resolve(ref)
        engine = RestoreEngine(
            paths=self.paths,
            sensitive=SensitivePathPolicy(self.config.sensitive_paths),
            in_use=self.in_use,
            events=self.events,
            logger=self.logger,
        )
        journal = engine.run(
            resolved.manifest.restore,
            run_id=run_id,
            manifest_path=resolved.path,
            manifest_dir=resolved.manifest_dir,
            export_root=export_root,
            dry_run=dry_run,
        )
        if not dry_run:
            self.store.record_run(
                run_id=run_id,
                command="restore",
                outcome=(Outcome.partial if journal.failed else Outcome.success).value,
                summary=journal.counts(),
                manifest_path=resolved.path,
                manifest_hash=resolved.manifest_hash,
            )
        self.events.summary(counts=journal.counts())
        return journal

    def revert(self, journal_ref: Optional[str] = None, *, dry_run: bool = False) -> RevertResult:
        run_id = self._run_id()
        journal = read_journal(find_journal(self.paths, journal_ref))
        result = revert_journal(journal, dry_run=dry_run, events=self.events, logger=self.logger)
        if not dry_run:
            self.store.record_run(
                run_id=run_id,
                command="revert",
                outcome=(Outcome.success if result.ok else Outcome.partial).value,
                summary=result.counts(),
                manifest_path=journal.manifest_path or None,
            )
        self.events.summary(counts=result.counts())
        return result

    # ---- verify / drift ----
    def verify(self, ref: str) -> VerifyReport:
        run_id = self._run_id()
        resolved = self.resolve(ref)
        engine = VerifyEngine(registry=self.registry, runner=self.runner, events=self.events, logger=self.logger)
        report = engine.run(resolved.manifest)
        self.store.record_verify(
            run_id=run_id,
            manifest_path=resolved.path,
            manifest_hash=resolved.manifest_hash,
            total=report.total,
            passed=report.passed,
            failed=report.failed,
        )
        self.events.summary(counts=report.counts())
        return report

    def drift(self, ref: str) -> DriftReport:
        self._run_id()
        resolved = self.resolve(ref)
        drivers = {a.driver_name(self.registry.primary) for a in resolved.manifest.apps}
        state = self.store.load()
        if state.last_applied is not None:
            drivers |= {r.driver for r in state.last_applied.installed.values()}
        inventory = snapshot_inventory(self.registry, drivers, logger=self.logger)
        report = compute_drift(
            state,
            manifest=resolved.manifest,
            manifest_hash=resolved.manifest_hash,
            inventory=inventory,
            primary_driver=self.registry.primary,
        )
        self.events.summary(hasDrift=report.has_drift, missing=len(report.missing), extra=len(report.extra))
        return report

    # ---- capture ----
    def capture(self, out_path: str, *, driver: Optional[str] = None, name: str = "captured") -> Manifest:
        self._run_id()
        manifest = capture_manifest(self.registry, driver=driver, name=name, catalog=self.catalog, logger=self.logger)
        path = write_manifest(manifest, out_path)
        self.events.artifact("manifest", path)
        return manifest
