from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

PLAN_SCHEMA_VERSION = 1


class CurrentState(str, Enum):
    absent = "absent"
    installed = "installed"
    version_mismatch = "version-mismatch"


class Decision(str, Enum):
    install = "install"
    upgrade = "upgrade"
    skip = "skip"


_RECORD = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)


class PlannedAction(BaseModel):
    model_config = _RECORD

    app_id: str = Field(alias="appId")
    driver: str
    ref: str
    current_state: CurrentState = Field(alias="currentState")
    installed_version: Optional[str] = Field(default=None, alias="installedVersion")
    constraint: Optional[str] = None
    decision: Decision
    reason: str = ""


class Plan(BaseModel):
    model_config = _RECORD

    schema_version: int = Field(default=PLAN_SCHEMA_VERSION, alias="schemaVersion")
    manifest_hash: str = Field(alias="manifestHash")
    manifest_path: Optional[str] = Field(default=None, alias="manifestPath")
    platform: str
    generated_at: str = Field(alias="generatedAt")
    actions: List[PlannedAction] = Field(default_factory=list)

    def counts(self) -> dict:
        out = {d.value: 0 for d in Decision}
        for a in self.actions:
            out[a.decision.value] += 1
        return out

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
