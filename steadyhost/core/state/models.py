from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

STATE_SCHEMA_VERSION = 1

_RECORD = ConfigDict(extra="forbid", populate_by_name=True)


class InstalledRecord(BaseModel):
    model_config = _RECORD
    driver: str
    ref: str
    version: Optional[str] = None


class LastApplied(BaseModel):
    model_config = _RECORD
    run_id: str = Field(alias="runId")
    manifest_path: Optional[str] = Field(default=None, alias="manifestPath")
    manifest_hash: str = Field(alias="manifestHash")
    timestamp_utc: str = Field(alias="timestampUtc")
    dry_run: bool = Field(default=False, alias="dryRun")
    outcome: str = "success"
    summary: Dict[str, int] = Field(default_factory=dict)
    # app id -> what the engine last saw installed; only committed runs update it
    installed: Dict[str, InstalledRecord] = Field(default_factory=dict)


class LastVerify(BaseModel):
    model_config = _RECORD
    run_id: str = Field(alias="runId")
    manifest_path: Optional[str] = Field(default=None, alias="manifestPath")
    manifest_hash: str = Field(alias="manifestHash")
    timestamp_utc: str = Field(alias="timestampUtc")
    total: int = 0
    passed: int = Field(default=0, alias="pass")
    failed: int = Field(default=0, alias="fail")
    success: bool = True


class RunHistoryEntry(BaseModel):
    model_config = _RECORD
    run_id: str = Field(alias="runId")
    command: str
    timestamp_utc: str = Field(alias="timestampUtc")
    manifest_path: Optional[str] = Field(default=None, alias="manifestPath")
    manifest_hash: Optional[str] = Field(default=None, alias="manifestHash")
    dry_run: bool = Field(default=False, alias="dryRun")
    outcome: str = "success"
    interrupted: bool = False
    summary: Dict[str, int] = Field(default_factory=dict)


class RunState(BaseModel):
    model_config = _RECORD
    schema_version: int = Field(default=STATE_SCHEMA_VERSION, alias="schemaVersion")
    last_applied: Optional[LastApplied] = Field(default=None, alias="lastApplied")
    last_verify: Optional[LastVerify] = Field(default=None, alias="lastVerify")
    history: Dict[str, RunHistoryEntry] = Field(default_factory=dict)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
