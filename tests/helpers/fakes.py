from __future__ import annotations

import os
import threading
import time as _time
from typing import Dict, Iterable, List, Optional, Tuple

from steadyhost.core.drivers.base import Driver, DriverResult, InstalledApp


class FakeDriver(Driver):
    """
    In-memory package manager. Records every call; installs succeed unless
    the ref is listed in `fail`. Thread-safe so the apply pool can use it.
    """

    def __init__(
        self,
        name: str = "fake",
        installed: Optional[Dict[str, str]] = None,
        *,
        available: bool = True,
        upgrade: bool = True,
        fail: Iterable[str] = (),
        versions: Optional[Dict[str, str]] = None,
        delays: Optional[Dict[str, float]] = None,
    ):
        self.name = name
        self.installed: Dict[str, str] = dict(installed or {})
        self.available = available
        self.upgrade_supported = upgrade
        self.fail = set(fail)
        self.versions = dict(versions or {})
        self.delays = dict(delays or {})
        self.calls: List[Tuple[str, str]] = []
        self.threads: Dict[str, str] = {}
        self._lock = threading.Lock()

    def _call(self, op: str, ref: str) -> None:
        with self._lock:
            self.calls.append((op, ref))
            self.threads[ref] = threading.current_thread().name
        if ref in self.delays:
            _time.sleep(self.delays[ref])

    def mutations(self) -> List[Tuple[str, str]]:
        return [c for c in self.calls if c[0] in ("install", "upgrade")]

    def is_available(self) -> bool:
        return self.available

    def list_installed(self) -> List[InstalledApp]:
        self._call("list", "")
        with self._lock:
            return [InstalledApp(id=k, version=v) for k, v in sorted(self.installed.items())]

    def install(self, ref: str) -> DriverResult:
        self._call("install", ref)
        if ref in self.fail:
            return DriverResult(ok=False, message=f"installer for {ref} exited with 1603", exit_code=1603)
        with self._lock:
            if ref in self.installed:
                return DriverResult(ok=True, already_installed=True, version=self.installed[ref])
            self.installed[ref] = self.versions.get(ref, "1.0.0")
            return DriverResult(ok=True, version=self.installed[ref], exit_code=0)

    def upgrade(self, ref: str) -> DriverResult:
        self._call("upgrade", ref)
        if ref in self.fail:
            return DriverResult(ok=False, message=f"upgrade of {ref} failed", exit_code=1)
        with self._lock:
            self.installed[ref] = self.versions.get(ref, "99.0.0")
            return DriverResult(ok=True, version=self.installed[ref], exit_code=0)

    def supports_upgrade(self) -> bool:
        return self.upgrade_supported


class ExplodingDriver(FakeDriver):
    def install(self, ref: str) -> DriverResult:
        self._call("install", ref)
        raise RuntimeError(f"driver crashed on {ref}")


class FakeInUseProbe:
    def __init__(self, busy: Iterable[str] = ()):
        self.busy = {os.path.normcase(os.path.abspath(p)) for p in busy}
        self.asked: List[str] = []

    def is_in_use(self, path: str) -> bool:
        self.asked.append(path)
        return os.path.normcase(os.path.abspath(path)) in self.busy


class FakeRunner:
    """Stands in for subprocess: maps argv[0] to canned output."""

    def __init__(self, outputs: Optional[Dict[str, str]] = None):
        self.outputs = dict(outputs or {})
        self.calls: List[List[str]] = []

    def __call__(self, argv: List[str]) -> str:
        self.calls.append(list(argv))
        return self.outputs.get(argv[0], "")
