from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

JOURNAL_SCHEMA_VERSION = 1


class EntryAction(str, Enum):
    restored = "restored"
    skipped_exists = "skipped_exists"
    skipped_in_use = "skipped_in_use"
    skipped_missing_source = "skipped_missing_source"
    skipped_sensitive = "skipped_sensitive"
    failed = "failed"


_RECORD = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)


class JournalEntry(BaseModel):
    model_config = _RECORD

    source: str
    target: str
    type: str = "copy"
    module_id: Optional[str] = Field(default=None, alias="moduleId")
    target_existed_before: bool = Field(default=False, alias="targetExistedBefore")
    backup_requested: bool = Field(default=False, alias="backupRequested")
    backup_created: bool = Field(default=False, alias="backupCreated")
    backup_path: Optional[str] = Field(default=None, alias="backupPath")
    action: EntryAction
    error: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)


class RestoreJournal(BaseModel):
    """Write-once record of a restore run; the input to revert."""

    model_config = _RECORD

    schema_version: int = Field(default=JOURNAL_SCHEMA_VERSION, alias="schemaVersion")
    run_id: str = Field(alias="runId")
    timestamp_utc: str = Field(alias="timestampUtc")
    manifest_path: str = Field(default="", alias="manifestPath")
    manifest_dir: str = Field(default="", alias="manifestDir")
    export_root: Optional[str] = Field(default=None, alias="exportRoot")
    dry_run: bool = Field(default=False, alias="dryRun")
    interrupted: bool = False
    entries: List[JournalEntry] = Field(default_factory=list)

    def counts(self) -> Dict[str, int]:
        out = {a.value: 0 for a in EntryAction}
        for e in self.entries:
            out[e.action.value] += 1
        return out

    @property
    def failed(self) -> int:
        return sum(1 for e in self.entries if e.action == EntryAction.failed)

    def to_wire(self) -> Dict:
        return self.model_dump(mode="json", by_alias=True)
