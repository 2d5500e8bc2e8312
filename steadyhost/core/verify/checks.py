from __future__ import annotations

import os
import re
import shutil
import subprocess
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from steadyhost.core.drivers.registry import Inventory
from steadyhost.core.manifest.models import (
    CommandExistsCheck,
    FileExistsCheck,
    Manifest,
    RegistryKeyExistsCheck,
    VersionCheck,
)
from steadyhost.core.plan.generator import lookup_installed
from steadyhost.core.plan.versions import satisfies

Runner = Callable[[List[str]], str]

_VERSION_RE = re.compile(r"\d+(?:\.\d+)+|\d+")

_HIVES = {
    "HKLM": "HKEY_LOCAL_MACHINE",
    "HKCU": "HKEY_CURRENT_USER",
    "HKCR": "HKEY_CLASSES_ROOT",
    "HKU": "HKEY_USERS",
    "HKCC": "HKEY_CURRENT_CONFIG",
}


@dataclass(frozen=True)
class CheckResult:
    type: str
    target: str
    passed: bool
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "target": self.target, "pass": self.passed, "message": self.message}


def run_command(argv: List[str], *, timeout: float = 30.0) -> str:
    cp = subprocess.run(argv, capture_output=True, text=True, timeout=timeout, check=False)
    return (cp.stdout or "") + (cp.stderr or "")


def extract_version(text: str) -> Optional[str]:
    m = _VERSION_RE.search(text or "")
    return m.group(0) if m else None


def check_file_exists(check: FileExistsCheck) -> CheckResult:
    p = os.path.expandvars(os.path.expanduser(check.path))
    ok = os.path.exists(p)
    return CheckResult(check.type, check.path, ok, "exists" if ok else f"not found: {p}")


def check_command_exists(check: CommandExistsCheck) -> CheckResult:
    found = shutil.which(check.command)
    return CheckResult(check.type, check.command, found is not None, found or "not on PATH")


def _split_registry_path(path: str):
    head, _, sub = path.replace("/", "\\").partition("\\")
    hive = _HIVES.get(head.upper().rstrip(":"), head.upper().rstrip(":"))
    return hive, sub


def check_registry_key(check: RegistryKeyExistsCheck) -> CheckResult:
    if os.name != "nt":
        return CheckResult(check.type, check.path, False, "registry checks require Windows")
    import winreg

    hive_name, sub = _split_registry_path(check.path)
    hive = getattr(winreg, hive_name, None)
    if hive is None:
        return CheckResult(check.type, check.path, False, f"unknown hive {hive_name}")
    try:
        with winreg.OpenKey(hive, sub) as key:
            if check.value_name:
                winreg.QueryValueEx(key, check.value_name)
    except OSError as e:
        return CheckResult(check.type, check.path, False, f"missing: {e}")
    return CheckResult(check.type, check.path, True, "present")


def _installed_version_of(app_id: str, *, manifest: Manifest, inventory: Inventory, primary_driver: str, platform: str) -> Optional[str]:
    for app in manifest.apps:
        if app.id == app_id:
            return lookup_installed(inventory.get(app.driver_name(primary_driver)) or {}, app.ref_for(platform))
    for installed in inventory.values():
        v = lookup_installed(installed, app_id)
        if v is not None:
            return v
    return None


def check_version(
    check: VersionCheck,
    *,
    manifest: Manifest,
    inventory: Optional[Inventory],
    primary_driver: str,
    platform: str,
    runner: Runner,
) -> CheckResult:
    if check.app:
        subject = check.app
        if inventory is None:
            return CheckResult(check.type, subject, False, "no installer inventory available")
        installed = _installed_version_of(check.app, manifest=manifest, inventory=inventory, primary_driver=primary_driver, platform=platform)
        if installed is None:
            return CheckResult(check.type, subject, False, "not installed")
    else:
        subject = str(check.command)
        if shutil.which(subject) is None and not os.path.isfile(subject):
            return CheckResult(check.type, subject, False, "command not found")
        installed = extract_version(runner([subject] + list(check.args)))
        if installed is None:
            return CheckResult(check.type, subject, False, "no version in command output")
    ok = satisfies(installed, check.constraint)
    verdict = "satisfies" if ok else "does not satisfy"
    return CheckResult(check.type, subject, ok, f"{installed or 'unknown'} {verdict} {check.constraint}")
