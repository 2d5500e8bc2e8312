"""
Drift detection: divergence between what was last applied and what the
host looks like now.

- missing:           desired by the current manifest, not installed
- extra:             installed by a previous run, still installed, no longer desired
- versionMismatches: installed, but the version constraint is not satisfied
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from steadyhost.core.drivers.registry import Inventory
from steadyhost.core.manifest.models import Manifest
from steadyhost.core.plan.generator import classify, current_platform, lookup_installed
from steadyhost.core.plan.models import CurrentState
from steadyhost.core.state.models import RunState


@dataclass
class DriftReport:
    current_hash: str
    last_applied_hash: Optional[str] = None
    never_applied: bool = False
    manifest_changed: bool = False
    missing: List[str] = field(default_factory=list)
    extra: List[str] = field(default_factory=list)
    version_mismatches: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def has_drift(self) -> bool:
        return bool(self.manifest_changed or self.missing or self.extra or self.version_mismatches)

    def summary(self) -> str:
        if self.never_applied:
            return "manifest has never been applied"
        if not self.has_drift:
            return "no drift detected"
        parts = []
        if self.manifest_changed:
            parts.append("manifest changed")
        if self.missing:
            parts.append(f"{len(self.missing)} missing")
        if self.extra:
            parts.append(f"{len(self.extra)} extra")
        if self.version_mismatches:
            parts.append(f"{len(self.version_mismatches)} version mismatch")
        return "drift: " + ", ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentHash": self.current_hash,
            "lastAppliedHash": self.last_applied_hash,
            "neverApplied": self.never_applied,
            "manifestChanged": self.manifest_changed,
            "hasDrift": self.has_drift,
            "missing": list(self.missing),
            "extra": list(self.extra),
            "versionMismatches": list(self.version_mismatches),
        }


def compute_drift(
    state: RunState,
    *,
    manifest: Manifest,
    manifest_hash: str,
    inventory: Inventory,
    primary_driver: str,
    platform: Optional[str] = None,
) -> DriftReport:
    platform = platform or current_platform()
    last = state.last_applied
    report = DriftReport(
        current_hash=manifest_hash,
        last_applied_hash=last.manifest_hash if last else None,
        never_applied=last is None,
        manifest_changed=bool(last is not None and last.manifest_hash != manifest_hash),
    )

    desired = set()
    for app in manifest.apps:
        desired.add(app.id)
        driver = app.driver_name(primary_driver)
        installed = lookup_installed(inventory.get(driver) or {}, app.ref_for(platform))
        st, _ = classify(app, installed)
        if st == CurrentState.absent:
            report.missing.append(app.id)
        elif st == CurrentState.version_mismatch:
            report.version_mismatches.append({"appId": app.id, "installed": installed or None, "constraint": app.version})

    if last is not None:
        for app_id in sorted(last.installed):
            if app_id in desired:
                continue
            rec = last.installed[app_id]
            if lookup_installed(inventory.get(rec.driver) or {}, rec.ref) is not None:
                report.extra.append(app_id)
    return report
