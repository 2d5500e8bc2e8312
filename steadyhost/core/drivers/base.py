from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class InstalledApp:
    id: str
    version: Optional[str] = None
    display_name: Optional[str] = None


@dataclass(frozen=True)
class DriverResult:
    ok: bool
    already_installed: bool = False
    message: str = ""
    version: Optional[str] = None
    exit_code: Optional[int] = None


class Driver(abc.ABC):
    """
    Installer adapter (winget/apt/brew/...). Only this interface is consumed
    by the engine; concrete drivers live outside the core.

    install/upgrade run synchronously and may be called from worker threads.
    """

    name: str = "driver"

    def is_available(self) -> bool:
        return True

    @abc.abstractmethod
    def list_installed(self) -> List[InstalledApp]:
        raise NotImplementedError

    @abc.abstractmethod
    def install(self, ref: str) -> DriverResult:
        raise NotImplementedError

    def upgrade(self, ref: str) -> DriverResult:
        return DriverResult(ok=False, message=f"{self.name} does not support upgrade")

    def supports_upgrade(self) -> bool:
        return False
