from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from steadyhost.core.events.envelope import Outcome
from steadyhost.core.plan.models import Decision

REPORT_SCHEMA_VERSION = 1


class ItemStatus(str, Enum):
    installed = "installed"
    already_installed = "alreadyInstalled"
    upgraded = "upgraded"
    failed = "failed"
    skipped_filtered = "skippedFiltered"


SUCCESS_STATUSES = frozenset({ItemStatus.installed, ItemStatus.upgraded, ItemStatus.already_installed})

_RECORD = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)


class ItemResult(BaseModel):
    model_config = _RECORD

    app_id: str = Field(alias="appId")
    driver: str
    ref: str
    decision: Decision
    status: ItemStatus
    version: Optional[str] = None
    message: str = ""
    dry_run: bool = Field(default=False, alias="dryRun")
    error: Optional[Dict[str, Any]] = None


class ApplySummary(BaseModel):
    model_config = _RECORD

    total: int = 0
    success: int = 0
    skipped: int = 0
    failed: int = 0
    installed: int = 0
    upgraded: int = 0
    already_installed: int = Field(default=0, alias="alreadyInstalled")

    @classmethod
    def from_items(cls, items: List[ItemResult]) -> "ApplySummary":
        by = {s: 0 for s in ItemStatus}
        for it in items:
            by[it.status] += 1
        return cls(
            total=len(items),
            success=sum(by[s] for s in SUCCESS_STATUSES),
            skipped=by[ItemStatus.skipped_filtered],
            failed=by[ItemStatus.failed],
            installed=by[ItemStatus.installed],
            upgraded=by[ItemStatus.upgraded],
            already_installed=by[ItemStatus.already_installed],
        )

    def to_wire(self) -> Dict[str, int]:
        return self.model_dump(by_alias=True)


class ApplyReport(BaseModel):
    model_config = _RECORD

    schema_version: int = Field(default=REPORT_SCHEMA_VERSION, alias="schemaVersion")
    run_id: str = Field(alias="runId")
    manifest_path: Optional[str] = Field(default=None, alias="manifestPath")
    manifest_hash: str = Field(alias="manifestHash")
    started_utc: str = Field(alias="startedUtc")
    finished_utc: str = Field(alias="finishedUtc")
    dry_run: bool = Field(default=False, alias="dryRun")
    interrupted: bool = False
    summary: ApplySummary
    items: List[ItemResult] = Field(default_factory=list)
    restore_counts: Optional[Dict[str, int]] = Field(default=None, alias="restoreCounts")
    journal_path: Optional[str] = Field(default=None, alias="journalPath")
    warnings: List[str] = Field(default_factory=list)

    @property
    def restore_failed(self) -> int:
        return int((self.restore_counts or {}).get("failed", 0))

    @property
    def outcome(self) -> Outcome:
        if self.summary.failed or self.restore_failed or self.interrupted:
            return Outcome.partial
        return Outcome.success

    def to_wire(self) -> Dict[str, Any]:
        out = self.model_dump(mode="json", by_alias=True)
        out["outcome"] = self.outcome.value
        return out
