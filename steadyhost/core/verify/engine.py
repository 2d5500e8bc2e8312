from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from steadyhost.core.drivers.registry import DriverRegistry, Inventory, snapshot_inventory
from steadyhost.core.errors import SteadyError, VerifyFailed
from steadyhost.core.events.stream import EventStream, NullEventStream
from steadyhost.core.manifest.models import Manifest
from steadyhost.core.plan.generator import current_platform
from steadyhost.core.verify.checks import (
    CheckResult,
    Runner,
    check_command_exists,
    check_file_exists,
    check_registry_key,
    check_version,
    run_command,
)


@dataclass
class VerifyReport:
    results: List[CheckResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def failed(self) -> int:
        return self.total - self.passed

    @property
    def success(self) -> bool:
        return self.failed == 0

    def counts(self) -> Dict[str, int]:
        return {"total": self.total, "pass": self.passed, "fail": self.failed}

    def raise_for_failures(self) -> None:
        if not self.success:
            raise VerifyFailed(detail=f"{self.failed} of {self.total} checks failed", **self.counts())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "counts": self.counts(),
            "success": self.success,
            "results": [r.to_dict() for r in self.results],
        }


class VerifyEngine:
    """
    Evaluates verify checks independently of apply. Never calls a driver's
    install/upgrade; `version` checks against an app read the inventory only.
    """

    def __init__(
        self,
        *,
        registry: Optional[DriverRegistry] = None,
        runner: Optional[Runner] = None,
        events: Optional[EventStream] = None,
        logger=None,
    ):
        self.registry = registry
        self.runner = runner or run_command
        self.events = events or NullEventStream()
        self.logger = logger

    def run(self, manifest: Manifest, *, inventory: Optional[Inventory] = None, platform: Optional[str] = None) -> VerifyReport:
        platform = platform or current_platform()
        primary = self.registry.primary if self.registry else ""
        if inventory is None and self.registry is not None and any(getattr(c, "app", None) for c in manifest.verify):
            drivers = {a.driver_name(primary) for a in manifest.apps} or {primary}
            inventory = snapshot_inventory(self.registry, drivers, logger=self.logger)

        self.events.phase("verify", total=len(manifest.verify))
        report = VerifyReport()
        for check in manifest.verify:
            try:
                result = self._evaluate(check, manifest=manifest, inventory=inventory, primary=primary, platform=platform)
            except SteadyError as e:
                result = CheckResult(check.type, _target_of(check), False, e.user_message)
            except (OSError, ValueError) as e:
                result = CheckResult(check.type, _target_of(check), False, f"{type(e).__name__}: {e}")
            report.results.append(result)
            self.events.item(result.target, "pass" if result.passed else "fail", type=result.type, message=result.message)
            if self.logger and not result.passed:
                self.logger.warning("verify %s %s failed: %s", result.type, result.target, result.message)

        if self.logger:
            self.logger.info("Verify: %s", report.counts())
        return report

    def _evaluate(self, check: Any, *, manifest: Manifest, inventory: Optional[Inventory], primary: str, platform: str) -> CheckResult:
        if check.type == "file-exists":
            return check_file_exists(check)
        if check.type == "command-exists":
            return check_command_exists(check)
        if check.type == "registry-key-exists":
            return check_registry_key(check)
        return check_version(check, manifest=manifest, inventory=inventory, primary_driver=primary, platform=platform, runner=self.runner)


def _target_of(check: Any) -> str:
    for attr in ("path", "command", "app"):
        v = getattr(check, attr, None)
        if v:
            return str(v)
    return check.type
