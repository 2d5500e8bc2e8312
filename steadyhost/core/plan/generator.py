from __future__ import annotations

import sys
from typing import Dict, Mapping, Optional, Tuple

from steadyhost.core.drivers.registry import DriverRegistry, Inventory, snapshot_inventory
from steadyhost.core.manifest.models import AppEntry, Manifest
from steadyhost.core.plan.models import CurrentState, Decision, Plan, PlannedAction
from steadyhost.core.plan.versions import parse_constraint
from steadyhost.core.runid import utc_now_iso


def current_platform() -> str:
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform == "darwin":
        return "macos"
    return "linux"


def lookup_installed(installed: Mapping[str, str], ref: str) -> Optional[str]:
    if ref in installed:
        return installed[ref]
    low = ref.lower()
    for k, v in installed.items():
        if k.lower() == low:
            return v
    return None


def classify(app: AppEntry, installed_version: Optional[str]) -> Tuple[CurrentState, str]:
    if installed_version is None:
        return CurrentState.absent, "not installed"
    vc = parse_constraint(app.version)
    if vc is None:
        return CurrentState.installed, "installed"
    if vc.satisfied_by(installed_version):
        return CurrentState.installed, f"installed {installed_version} satisfies {vc}"
    shown = installed_version or "unknown"
    return CurrentState.version_mismatch, f"installed {shown} does not satisfy {vc}"


def decide(state: CurrentState, *, supports_upgrade: bool) -> Tuple[Decision, str]:
    if state == CurrentState.absent:
        return Decision.install, ""
    if state == CurrentState.version_mismatch:
        if supports_upgrade:
            return Decision.upgrade, ""
        return Decision.skip, "driver does not support upgrade"
    return Decision.skip, ""


def generate_plan(
    manifest: Manifest,
    inventory: Inventory,
    *,
    manifest_hash: str,
    primary_driver: str,
    supports_upgrade: Mapping[str, bool],
    platform: Optional[str] = None,
    manifest_path: Optional[str] = None,
    generated_at: Optional[str] = None,
) -> Plan:
    """
    Pure function of its inputs: action order is manifest app order, so two
    plans from identical inputs (and the same generated_at) are identical.
    """
    platform = platform or current_platform()
    actions = []
    for app in manifest.apps:
        driver = app.driver_name(primary_driver)
        ref = app.ref_for(platform)
        installed = lookup_installed(inventory.get(driver) or {}, ref)
        state, why = classify(app, installed)
        decision, extra = decide(state, supports_upgrade=bool(supports_upgrade.get(driver, False)))
        actions.append(
            PlannedAction(
                app_id=app.id,
                driver=driver,
                ref=ref,
                current_state=state,
                installed_version=installed or None,
                constraint=app.version,
                decision=decision,
                reason=f"{why}; {extra}" if extra else why,
            )
        )
    return Plan(
        manifest_hash=manifest_hash,
        manifest_path=manifest_path,
        platform=platform,
        generated_at=generated_at or utc_now_iso(),
        actions=actions,
    )


def plan_for(
    manifest: Manifest,
    registry: DriverRegistry,
    *,
    manifest_hash: str,
    manifest_path: Optional[str] = None,
    platform: Optional[str] = None,
    generated_at: Optional[str] = None,
    logger=None,
) -> Tuple[Plan, Inventory]:
    drivers = {a.driver_name(registry.primary) for a in manifest.apps}
    inventory = snapshot_inventory(registry, drivers, logger=logger)
    upgrade_support: Dict[str, bool] = {n: bool(registry.get(n).supports_upgrade()) for n in drivers}
    plan = generate_plan(
        manifest,
        inventory,
        manifest_hash=manifest_hash,
        primary_driver=registry.primary,
        supports_upgrade=upgrade_support,
        platform=platform,
        manifest_path=manifest_path,
        generated_at=generated_at,
    )
    if logger:
        logger.info("Plan: %s", plan.counts())
    return plan, inventory
