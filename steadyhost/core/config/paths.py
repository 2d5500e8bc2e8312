from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class StatePaths:
    root: str = "."

    @property
    def state_dir(self) -> str:
        return os.path.join(self.root, "state")

    @property
    def state_file(self) -> str:
        return os.path.join(self.state_dir, "state.json")

    @property
    def plans_dir(self) -> str:
        return os.path.join(self.state_dir, "plans")

    @property
    def journals_dir(self) -> str:
        return os.path.join(self.state_dir, "journals")

    @property
    def backups_dir(self) -> str:
        return os.path.join(self.state_dir, "backups")

    @property
    def reports_dir(self) -> str:
        return os.path.join(self.state_dir, "reports")

    @property
    def last_known_good_dir(self) -> str:
        return os.path.join(self.state_dir, "last_known_good")

    @property
    def logs_dir(self) -> str:
        return os.path.join(self.root, "logs")

    @property
    def config_file(self) -> str:
        return os.path.join(self.root, "steadyhost.json")

    # per-run
    def run_backup_dir(self, run_id: str) -> str:
        return os.path.join(self.backups_dir, run_id)

    def journal_path(self, run_id: str) -> str:
        return os.path.join(self.journals_dir, f"{run_id}.json")

    def plan_path(self, run_id: str) -> str:
        return os.path.join(self.plans_dir, f"{run_id}.json")

    def report_path(self, run_id: str) -> str:
        return os.path.join(self.reports_dir, f"{run_id}.json")


def ensure_dirs(*dirs: str) -> None:
    for d in dirs:
        os.makedirs(d, exist_ok=True)
